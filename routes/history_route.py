"""FastAPI routes for stored task history."""

from typing import Optional

from fastapi import APIRouter, HTTPException, Query, Request

from controllers.history_controller import HistoryController

router = APIRouter(prefix="/history", tags=["history"])


@router.get("", summary="List stored tasks")
async def list_history(
    request: Request,
    limit: int = Query(20, ge=1, le=200),
    offset: int = Query(0, ge=0),
    status: Optional[str] = None,
    q: Optional[str] = None,
):
    """Return a page of stored tasks, newest first.

    Args:
        request: The FastAPI request containing application state.
        limit: Page size.
        offset: Rows to skip.
        status: Optional status filter (e.g. COMPLETED).
        q: Optional substring to search in task descriptions.
    """
    try:
        return await HistoryController.from_request(request).list_tasks(limit, offset, status, q)
    except HTTPException:
        raise
    except Exception as exc:  # pylint: disable=broad-exception-caught
        raise HTTPException(status_code=500, detail=str(exc)) from exc


@router.get("/stats", summary="Task statistics")
async def history_stats(request: Request):
    try:
        return await HistoryController.from_request(request).stats()
    except Exception as exc:  # pylint: disable=broad-exception-caught
        raise HTTPException(status_code=500, detail=str(exc)) from exc


@router.get("/{task_id}", summary="Get one stored task")
async def get_history_task(request: Request, task_id: int):
    try:
        return await HistoryController.from_request(request).get_task(task_id)
    except HTTPException:
        raise
    except Exception as exc:  # pylint: disable=broad-exception-caught
        raise HTTPException(status_code=500, detail=str(exc)) from exc


@router.delete("/{task_id}", summary="Delete a stored task")
async def delete_history_task(request: Request, task_id: int):
    try:
        return await HistoryController.from_request(request).delete_task(task_id)
    except HTTPException:
        raise
    except Exception as exc:  # pylint: disable=broad-exception-caught
        raise HTTPException(status_code=500, detail=str(exc)) from exc


@router.post("/{task_id}/resume", summary="Resume a stored task")
async def resume_history_task(request: Request, task_id: int):
    """Start a new run seeded with the stored task's conversation."""
    try:
        return await HistoryController.from_request(request).resume_task(request, task_id)
    except HTTPException:
        raise
    except Exception as exc:  # pylint: disable=broad-exception-caught
        raise HTTPException(status_code=500, detail=str(exc)) from exc
