"""FastAPI routes for running the device agent and answering its requests."""

from typing import Optional

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel

from controllers.task_controller import (
	answer_confirmation,
	answer_interaction,
	cancel_take_over,
	complete_take_over,
	current_task,
	start_task,
	stop_task,
)

router = APIRouter(prefix="/tasks", tags=["tasks"])


class StartPayload(BaseModel):
	task: str


class ConfirmationPayload(BaseModel):
	confirmed: bool


class InteractionPayload(BaseModel):
	choice: Optional[str] = None


@router.post("")
async def start_task_route(request: Request, payload: StartPayload):
	try:
		return await start_task(request, payload.task)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.post("/stop")
async def stop_task_route(request: Request):
	try:
		return await stop_task(request)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.get("/current")
async def current_task_route(request: Request):
	return current_task(request)


@router.post("/confirmation")
async def confirmation_route(request: Request, payload: ConfirmationPayload):
	return answer_confirmation(request, payload.confirmed)


@router.post("/take-over/complete")
async def take_over_complete_route(request: Request):
	return complete_take_over(request)


@router.post("/take-over/cancel")
async def take_over_cancel_route(request: Request):
	try:
		return await cancel_take_over(request)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.post("/interaction")
async def interaction_route(request: Request, payload: InteractionPayload):
	return answer_interaction(request, payload.choice)
