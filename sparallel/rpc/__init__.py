"""Remote-call endpoint objects for the workers service and ping."""