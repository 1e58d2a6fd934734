"""Controller for browsing, deleting and resuming stored tasks."""

import json
import logging
from typing import Any, Dict, List, Optional

from fastapi import HTTPException, Request

from controllers.task_controller import start_task
from dal.task_history_dal import TaskHistoryDAL
from models.session_models import Message
from models.task_record import TaskRecord, TaskStatus

LOGGER = logging.getLogger(__name__)


def _load_json_list(raw: Optional[str]) -> List[Any]:
    if not raw:
        return []
    try:
        value = json.loads(raw)
    except json.JSONDecodeError:
        LOGGER.warning("Stored JSON column could not be decoded")
        return []
    return value if isinstance(value, list) else []


class HistoryController:
    """Coordinate task-history requests between the API layer and the DAL."""

    def __init__(self, dal: TaskHistoryDAL) -> None:
        self.dal = dal

    @classmethod
    def from_request(cls, request: Request) -> "HistoryController":
        return cls(TaskHistoryDAL(request.app.state.db_initializer))

    async def list_tasks(
        self,
        limit: int = 20,
        offset: int = 0,
        status: Optional[str] = None,
        query: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Return a page of task summaries, optionally filtered by status or text."""
        if query:
            records = await self.dal.search_tasks(query, limit=limit)
        else:
            status_filter = None
            if status:
                try:
                    status_filter = TaskStatus(status.upper())
                except ValueError as exc:
                    raise HTTPException(status_code=400, detail=f"Unknown status: {status}") from exc
            records = await self.dal.list_tasks(limit=limit, offset=offset, status=status_filter)
        return {"items": [record.to_dict() for record in records], "limit": limit, "offset": offset}

    async def stats(self) -> Dict[str, Any]:
        return await self.dal.get_stats()

    async def _require(self, task_id: int) -> TaskRecord:
        record = await self.dal.get_task(task_id)
        if record is None:
            raise HTTPException(status_code=404, detail=f"Task {task_id} not found")
        return record

    async def get_task(self, task_id: int) -> Dict[str, Any]:
        """Return one task with its transcript and executed actions."""
        record = await self._require(task_id)
        result = record.to_dict()
        result["messages"] = _load_json_list(record.messages_json)
        result["actions"] = _load_json_list(record.actions_json)
        return result

    async def delete_task(self, task_id: int) -> Dict[str, Any]:
        if not await self.dal.delete_task(task_id):
            raise HTTPException(status_code=404, detail=f"Task {task_id} not found")
        return {"deleted": True, "id": task_id}

    async def resume_task(self, request: Request, task_id: int) -> Dict[str, Any]:
        """Start a new run of a stored task seeded with its text-only history."""
        record = await self._require(task_id)
        api_history = [
            Message.from_payload(item)
            for item in _load_json_list(record.api_context_json)
            if isinstance(item, dict)
        ]
        result = await start_task(request, record.task_description, api_history=api_history)
        result["resumed_from"] = task_id
        return result
