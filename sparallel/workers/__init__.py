"""Task queues, worker processes, the pool that runs them and the scaling service."""