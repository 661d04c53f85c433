"""
Agent turn endpoints.

POST /api/agent/turn          run one turn and return its reply
POST /api/agent/task          run one turn in the background
GET  /api/agent/tasks/{id}    poll a background turn and its agent events

The caller's bearer token is forwarded to the records backend as-is.
"""
from typing import Any, Callable, Dict, Optional
import logging
import threading
import time
import uuid
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Header, HTTPException

from ..config import settings
from ..errors import AgentError, ConfigurationError, InvalidToolArguments, MaxToolIterationsExceeded
from ..llm.orchestrator import TurnOrchestrator
from ..schemas import TaskStatus, TurnRequest, TurnResponse


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/agent", tags=["Agent"])

OrchestratorFactory = Callable[[Optional[str], Optional[str], Optional[str]], TurnOrchestrator]


def get_orchestrator_factory() -> OrchestratorFactory:
    def build(token: Optional[str], role: Optional[str], session_id: Optional[str]) -> TurnOrchestrator:
        return TurnOrchestrator.from_settings(settings, token=token, role=role, session_id=session_id)
    return build


def bearer_token(authorization: Optional[str] = Header(None)) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, value = authorization.partition(" ")
    if scheme.lower() != "bearer" or not value.strip():
        raise HTTPException(status_code=401, detail="Invalid authorization header")
    return value.strip()


def _status_for(err: AgentError) -> int:
    if isinstance(err, ConfigurationError):
        return 500
    if isinstance(err, (InvalidToolArguments, MaxToolIterationsExceeded)):
        return 422
    return 502


@router.post("/turn", response_model=TurnResponse)
def run_turn(
    payload: TurnRequest,
    token: Optional[str] = Depends(bearer_token),
    factory: OrchestratorFactory = Depends(get_orchestrator_factory),
):
    try:
        orch = factory(token, payload.role, payload.session_id)
        result = orch.run_turn(payload.prompt)
    except AgentError as e:
        raise HTTPException(status_code=_status_for(e), detail=f"Agent error: {e}")
    return TurnResponse(reply=result.text, called=result.called, outputs=result.outputs, model_used=result.model_used)


# -------- Lightweight Task API (background turn with live agent events) --------

_tasks: Dict[str, Dict[str, Any]] = {}

# finished tasks older than this are dropped on the next task creation
TASK_TTL_SECONDS = 3600


def _prune_tasks(now: Optional[float] = None) -> None:
    cutoff = (now if now is not None else time.time()) - TASK_TTL_SECONDS
    for tid in [t for t, rec in list(_tasks.items()) if rec["status"] in ("done", "error") and rec["created"] < cutoff]:
        _tasks.pop(tid, None)


def _new_task() -> str:
    _prune_tasks()
    tid = str(uuid.uuid4())
    _tasks[tid] = {
        "status": "pending",
        "reply": None,
        "called": [],
        "error": None,
        "events": [],
        "created": time.time(),
    }
    return tid


def _task_event(task_id: str, agent: str, label: str, detail: Optional[Dict[str, Any]] = None):
    rec = _tasks.get(task_id)
    if not rec:
        return
    rec["events"].append({
        "ts": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        "agent": agent,
        "label": label,
        "detail": detail or {},
    })


def _task_set(task_id: str, **kwargs):
    rec = _tasks.get(task_id)
    if not rec:
        return
    rec.update(kwargs)


def run_task(task_id: str, factory: OrchestratorFactory, payload: TurnRequest, token: Optional[str]) -> None:
    _task_set(task_id, status="running")
    try:
        orch = factory(token, payload.role, payload.session_id)

        def on_event(agent: str, label: str, detail: Optional[Dict[str, Any]] = None):
            _task_event(task_id, agent, label, detail)

        # initial event to update UI instantly
        _task_event(task_id, "planner", "starting", {})
        result = orch.run_turn(payload.prompt, on_event=on_event)
        _task_set(task_id, status="done", reply=result.text, called=result.called)
    except Exception as e:
        logger.exception("Background turn %s failed", task_id)
        _task_set(task_id, status="error", error=str(e))


@router.post("/task", response_model=Dict[str, str])
def start_turn_task(
    payload: TurnRequest,
    token: Optional[str] = Depends(bearer_token),
    factory: OrchestratorFactory = Depends(get_orchestrator_factory),
):
    task_id = _new_task()
    threading.Thread(target=run_task, args=(task_id, factory, payload, token), daemon=True).start()
    return {"task_id": task_id}


@router.get("/tasks/{task_id}", response_model=TaskStatus)
def get_turn_task_status(task_id: str):
    rec = _tasks.get(task_id)
    if not rec:
        raise HTTPException(status_code=404, detail="Task not found")
    return TaskStatus(status=rec.get("status"), reply=rec.get("reply"), called=rec.get("called", []),
                      error=rec.get("error"), events=rec.get("events", []))
