"""
Pydantic schemas for the agent loop and its HTTP surface.
"""
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field


# ============ Tool Schemas ============

class ToolCall(BaseModel):
    """One model-requested action. `raw_arguments` is whatever the model sent."""
    call_id: str = ""
    name: str = ""
    raw_arguments: Dict[str, Any] = Field(default_factory=dict)


class TransformResult(BaseModel):
    """Canonical mutation payload for one writeback tool call."""
    payload: Dict[str, Any]
    summary_text: str


class ToolOutput(BaseModel):
    name: str
    result: Dict[str, Any]


# ============ Writeback Schemas ============

class Draft(BaseModel):
    """One logical write. `draft_id` stays the same across polls of the same write."""
    draft_id: str = Field(..., min_length=8, max_length=128)
    payload: Dict[str, Any]
    context_text: str = ""
    request_meta: Dict[str, Any] = Field(default_factory=dict)


CommitKind = Literal["success", "pending", "failure", "unconfirmed"]


class CommitOutcome(BaseModel):
    """Result of a single commit attempt.

    `unconfirmed` is a terminal answer whose state is neither a known success
    state nor `pending_remote`; the data is passed through verbatim.
    """
    kind: CommitKind
    state: Optional[str] = None
    summary: Any = None
    reason: Optional[str] = None
    status_code: Optional[int] = None
    data: Dict[str, Any] = Field(default_factory=dict)

    @property
    def is_terminal(self) -> bool:
        return self.kind != "pending"


# ============ Runtime Schemas ============

class RuntimeContext(BaseModel):
    role: str = "trainer"
    role_name: Optional[str] = None
    system_prompt: str = ""
    context_text: str = ""
    writeback_mode: str = "remote"


class ModelReply(BaseModel):
    model_used: str
    response: Dict[str, Any]
    # "model#attempt: detail" for every attempt that failed before this one succeeded
    failures: List[str] = Field(default_factory=list)


class TurnResult(BaseModel):
    text: str
    called: List[str] = Field(default_factory=list)
    outputs: List[ToolOutput] = Field(default_factory=list)
    rounds: int = 0
    model_used: Optional[str] = None


# ============ API Schemas ============

class TurnRequest(BaseModel):
    prompt: str = Field(..., min_length=1, max_length=20_000)
    role: Optional[str] = Field(None, pattern=r"^(doctor|rehab|nutritionist|trainer)$")
    session_id: Optional[str] = Field(None, max_length=128)


class TurnResponse(BaseModel):
    reply: str
    called: List[str] = Field(default_factory=list)
    outputs: List[ToolOutput] = Field(default_factory=list)
    model_used: Optional[str] = None


class TaskStatus(BaseModel):
    status: str
    reply: Optional[str] = None
    called: List[str] = Field(default_factory=list)
    error: Optional[str] = None
    events: List[Dict[str, Any]] = Field(default_factory=list)
