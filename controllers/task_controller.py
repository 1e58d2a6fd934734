"""Task lifecycle helpers: start, stop, inspect and answer pending interactions."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import HTTPException, Request

from dal.task_history_dal import TaskHistoryDAL
from models.session_models import Message
from services.agent.task_runner import TaskRun
from services.agent.task_supervisor import TaskSupervisor
from services.openai.reasoning_client import ReasoningClient


def _current_run(request: Request) -> Optional[TaskRun]:
	return getattr(request.app.state, "current_run", None)


def _require_run(request: Request) -> TaskRun:
	run = _current_run(request)
	if run is None:
		raise HTTPException(status_code=404, detail="No task has been started")
	return run


async def start_task(request: Request, task: str, api_history: Optional[List[Message]] = None) -> Dict[str, Any]:
	"""Stop any running task and launch a new one for `task`."""
	task = task.strip()
	if not task:
		raise HTTPException(status_code=400, detail="Task description must not be empty")

	state = request.app.state
	supervisor: TaskSupervisor = state.supervisor
	config = state.config_loader()

	run = TaskRun(
		task,
		config,
		ReasoningClient(state.openai_client, config),
		state.device,
		state.app_registry,
		TaskHistoryDAL(state.db_initializer),
		api_history=api_history,
	)
	await supervisor.launch(
		run.run(),
		name=f"agent-task: {task[:40]}",
		session=run.session,
		gate=run.gate,
		cleanups=[run.cleanup],
	)
	state.current_run = run
	return {"started": True, "task": task, "model": config.model, "resumed": bool(api_history)}


async def stop_task(request: Request) -> Dict[str, Any]:
	"""Cancel the running task and wait for its cleanup."""
	supervisor: TaskSupervisor = request.app.state.supervisor
	stopped = await supervisor.stop_current_task()
	run = _current_run(request)
	outcome = run.outcome if run is not None else None
	return {
		"stopped": stopped,
		"status": outcome.status.value if outcome else None,
		"message": outcome.message if outcome else None,
	}


def current_task(request: Request) -> Dict[str, Any]:
	"""Return the transcript and state of the most recent task."""
	run = _current_run(request)
	if run is None:
		return {"running": False, "task": None}

	supervisor: TaskSupervisor = request.app.state.supervisor
	outcome = run.outcome
	return {
		"running": supervisor.is_running,
		"task": run.task,
		"record_id": run.record_id,
		"step_count": run.step_count,
		"rationale": run.session.last_rationale,
		"pending_interaction": run.gate.pending,
		"transcript": run.transcript.to_list(),
		"status": outcome.status.value if outcome else None,
		"message": outcome.message if outcome else None,
	}


def answer_confirmation(request: Request, confirmed: bool) -> Dict[str, Any]:
	run = _require_run(request)
	if not run.gate.confirm(confirmed):
		raise HTTPException(status_code=409, detail="No confirmation is pending")
	return {"confirmed": confirmed}


def complete_take_over(request: Request) -> Dict[str, Any]:
	run = _require_run(request)
	if not run.gate.complete_take_over():
		raise HTTPException(status_code=409, detail="No take over is pending")
	return {"completed": True}


async def cancel_take_over(request: Request) -> Dict[str, Any]:
	"""Abandon a manual take over; this stops the whole task."""
	_require_run(request)
	result = await stop_task(request)
	result["cancelled"] = True
	return result


def answer_interaction(request: Request, choice: Optional[str]) -> Dict[str, Any]:
	run = _require_run(request)
	if not run.gate.choose(choice):
		raise HTTPException(status_code=409, detail="No interaction is pending")
	return {"choice": choice}
