"""Error types raised by the agent loop.

Transient conditions (a failed model attempt, a pending-remote commit) are retried
locally and never surface on their own. What reaches the turn caller is one of:

    InvalidToolArguments      writeback tool with unmappable arguments, aborts the turn
    ModelCallExhausted        every candidate model and attempt failed
    CommitTimeout             commit still pending after the poll budget
    RemoteCommitRejected      commit endpoint answered with a hard failure
    MaxToolIterationsExceeded model kept requesting tools past the round limit

UnknownTool is never raised: the orchestrator reports unknown tool names
back to the model as data.
"""

from __future__ import annotations

from typing import Any, List, Optional


class AgentError(Exception):
    """Base for all coach_agent errors."""

    def __init__(self, message: str, tool_name: Optional[str] = None, detail: Any = None) -> None:
        super().__init__(message)
        self.tool_name = tool_name
        self.detail = detail


class ConfigurationError(AgentError):
    """Missing or invalid configuration (endpoint, key, budgets)."""


class InvalidToolArguments(AgentError):
    def __init__(self, tool_name: str, detail: Any = None) -> None:
        super().__init__(f"Invalid tool arguments: {tool_name}", tool_name=tool_name, detail=detail)


class UnknownTool(AgentError):
    def __init__(self, tool_name: str) -> None:
        super().__init__(f"Unknown tool: {tool_name}", tool_name=tool_name)


class ModelCallExhausted(AgentError):
    """All models x all attempts failed. `failures` keeps them in attempt order."""

    def __init__(self, failures: List[str]) -> None:
        super().__init__("Model call failed: " + " | ".join(failures), detail=failures)
        self.failures = list(failures)


class CommitTimeout(AgentError):
    """Commit still unresolved after the poll budget. `detail` is the last transport error, if any."""

    def __init__(self, draft_id: str, attempts: int, tool_name: Optional[str] = None, detail: Any = None) -> None:
        label = f"{tool_name}: " if tool_name else ""
        message = f"{label}commit timed out after {attempts} attempts (draft {draft_id})"
        if detail:
            message += f"; last error: {detail}"
        super().__init__(message, tool_name=tool_name, detail=detail)
        self.draft_id = draft_id
        self.attempts = attempts


class RemoteCommitRejected(AgentError):
    def __init__(self, status_code: int, detail: Any, tool_name: Optional[str] = None) -> None:
        label = f"{tool_name}: " if tool_name else ""
        super().__init__(f"{label}commit failed: {status_code} {detail}", tool_name=tool_name, detail=detail)
        self.status_code = status_code


class MaxToolIterationsExceeded(AgentError):
    def __init__(self, rounds: int, called: Optional[List[str]] = None) -> None:
        super().__init__(f"Exceeded max tool iterations ({rounds})")
        self.rounds = rounds
        self.called = list(called or [])


class BackendRequestError(AgentError):
    """A read endpoint on the remote backend failed."""

    def __init__(self, path: str, status_code: int, detail: Any) -> None:
        super().__init__(f"{path} failed: {status_code} {detail}", detail=detail)
        self.path = path
        self.status_code = status_code


def with_tool_name(err: AgentError, tool_name: str) -> AgentError:
    """Attach the failing tool name to a commit error raised below the orchestrator."""
    if err.tool_name:
        return err
    if isinstance(err, CommitTimeout):
        return CommitTimeout(err.draft_id, err.attempts, tool_name=tool_name, detail=err.detail)
    if isinstance(err, RemoteCommitRejected):
        return RemoteCommitRejected(err.status_code, err.detail, tool_name=tool_name)
    err.tool_name = tool_name
    return err
