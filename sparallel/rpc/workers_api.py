"""Remote calls that drive the workers service."""

from __future__ import annotations

import logging
import threading

from sparallel.workers.service import WorkersService

_log = logging.getLogger(__name__)


class WorkersApi:
    """Exposes the workers service; replies are dictionaries of wire fields."""

    def __init__(self, service: WorkersService) -> None:
        self.service = service

    def reload(self, message: str) -> dict:
        self.service.reload(message)
        return {"Answer": "Ok"}

    def stop(self, message: str) -> dict:
        threading.Thread(
            target=self.service.stop, args=(message,), name="workers-stop", daemon=True
        ).start()
        return {"Answer": "Ok"}

    def add_task(
        self, group_uuid: str, task_uuid: str, unix_timeout: int, payload: str
    ) -> dict:
        task = self.service.add_task(group_uuid, task_uuid, unix_timeout, payload)
        return {"Uuid": task.task_uuid}

    def detect_any_finished_task(self, group_uuid: str) -> dict:
        task = self.service.detect_any_finished_task(group_uuid)
        return {
            "GroupUuid": task.group_uuid,
            "TaskUuid": task.task_uuid,
            "IsFinished": task.is_finished,
            "Response": task.response,
            "IsError": task.is_error,
        }

    def cancel_group(self, group_uuid: str) -> dict:
        threading.Thread(
            target=self.service.cancel_group,
            args=(group_uuid,),
            name="workers-cancel",
            daemon=True,
        ).start()
        return {"GroupUuid": group_uuid}

    def close(self) -> None:
        _log.warning("Closing workers server")
        self.service.close()