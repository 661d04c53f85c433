"""
HTTP client for the remote backend that owns the user's records.

Writes go through the idempotent commit endpoint (POST /api/writeback/commit);
reads use the per-resource list/detail endpoints. Authentication is a bearer
token obtained elsewhere.
"""
import logging
import secrets
import string
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional, Tuple

import requests
from pydantic import ValidationError

from .config import AgentLoopConfig, Settings
from .errors import BackendRequestError, CommitTimeout, ConfigurationError, RemoteCommitRejected
from .llm.retry import RetryExhausted, RetryPolicy
from .schemas import CommitOutcome, Draft, RuntimeContext

logger = logging.getLogger(__name__)

COMMIT_PATH = "/api/writeback/commit"
RUNTIME_CONTEXT_PATH = "/api/agent/runtime-context"

PENDING_STATE = "pending_remote"
SUCCESS_STATES = frozenset({"success", "committed", "applied"})

# resource -> (path, query params the endpoint understands)
READ_ENDPOINTS: Dict[str, Tuple[str, Tuple[str, ...]]] = {
    "user": ("/api/auth/me", ()),
    "profile": ("/api/profile", ()),
    "conditions": ("/api/conditions", ("status",)),
    "training_goals": ("/api/training-goals", ("status",)),
    "health_metrics": ("/api/health", ("metric_type",)),
    "training_plans": ("/api/training", ("limit",)),
    "nutrition_plans": ("/api/nutrition", ("limit",)),
    "diet_records": ("/api/diet", ("date",)),
    "daily_logs": ("/api/daily-logs", ("date", "limit")),
}

_BASE36 = string.digits + string.ascii_lowercase


def new_draft_id() -> str:
    suffix = "".join(secrets.choice(_BASE36) for _ in range(6))
    return f"draft-{int(time.time() * 1000)}-{suffix}"


def build_request_meta(now: Optional[datetime] = None) -> Dict[str, Any]:
    local = (now or datetime.now(timezone.utc)).astimezone()
    offset = local.utcoffset()
    meta: Dict[str, Any] = {
        "client_request_at": local.astimezone(timezone.utc).isoformat().replace("+00:00", "Z"),
        "client_local_date": local.date().isoformat(),
        "client_utc_offset_minutes": int(offset.total_seconds() // 60) if offset else 0,
    }
    tz_name = local.tzname()
    if tz_name:
        meta["client_timezone"] = tz_name
    return meta


def _json_or_none(response: requests.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return None


def classify_commit_response(status_code: int, body: Any, raw: str = "") -> CommitOutcome:
    """Turn one commit HTTP answer into a CommitOutcome."""
    data = body.get("data") if isinstance(body, dict) else None
    data = data if isinstance(data, dict) else {}
    if status_code == 202 or data.get("state") == PENDING_STATE:
        return CommitOutcome(kind="pending", state=PENDING_STATE, status_code=status_code, data=data)
    ok = 200 <= status_code < 300 and isinstance(body, dict) and bool(body.get("success"))
    if not ok:
        reason = body.get("error") if isinstance(body, dict) and body.get("error") else (raw or str(status_code))
        return CommitOutcome(kind="failure", reason=str(reason), status_code=status_code, data=data)
    state = data.get("state") or data.get("status")
    # any other state inside a success envelope is passed through, flagged as unconfirmed
    kind = "success" if state is None or state in SUCCESS_STATES else "unconfirmed"
    return CommitOutcome(kind=kind, state=state or "success", summary=data.get("summary"),
                         status_code=status_code, data=data)


class BackendClient:
    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        config: Optional[AgentLoopConfig] = None,
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], Any] = time.sleep,
    ):
        if not base_url:
            raise ConfigurationError("BACKEND_BASE_URL not configured")
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.config = config or AgentLoopConfig()
        self.timeout = timeout
        self.session = session or requests.Session()
        self.sleep = sleep

    @classmethod
    def from_settings(cls, s: Settings, token: Optional[str] = None,
                      config: Optional[AgentLoopConfig] = None, **kwargs) -> "BackendClient":
        return cls(
            s.backend_base_url,
            token=token or s.backend_token,
            config=config or AgentLoopConfig.from_settings(s),
            timeout=s.backend_request_timeout_seconds,
            **kwargs,
        )

    def _headers(self) -> Dict[str, str]:
        headers = {"accept": "application/json", "content-type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    # -------------------- Reads --------------------

    def get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """GET an enveloped endpoint and return its `data`."""
        try:
            response = self.session.get(f"{self.base_url}{path}", params=params or None,
                                        headers=self._headers(), timeout=self.timeout)
        except requests.RequestException as e:
            raise BackendRequestError(path, 0, str(e))
        body = _json_or_none(response)
        if not response.ok or not isinstance(body, dict) or not body.get("success"):
            detail = body.get("error") if isinstance(body, dict) and body.get("error") else response.text
            raise BackendRequestError(path, response.status_code, detail)
        return body.get("data")

    def read(self, resource: str, **params: Any) -> Any:
        path, accepted = READ_ENDPOINTS[resource]
        query = {k: v for k, v in params.items() if k in accepted and v is not None}
        return self.get(path, query)

    def runtime_context(self, role: str, session_id: Optional[str] = None) -> RuntimeContext:
        params = {"role": role}
        if session_id:
            params["session_id"] = session_id
        data = self.get(RUNTIME_CONTEXT_PATH, params)
        fields = data if isinstance(data, dict) else {}
        try:
            return RuntimeContext(**{k: v for k, v in fields.items() if k in RuntimeContext.model_fields and v is not None})
        except ValidationError as e:
            raise BackendRequestError(RUNTIME_CONTEXT_PATH, 200, f"invalid runtime context: {e}")

    # -------------------- Writeback --------------------

    def submit(self, draft: Draft) -> CommitOutcome:
        """One POST of the draft. Transport errors come back as pending so the same draft is resubmitted."""
        try:
            response = self.session.post(f"{self.base_url}{COMMIT_PATH}", json=draft.model_dump(),
                                         headers=self._headers(), timeout=self.timeout)
        except requests.RequestException as e:
            logger.warning("Commit transport error for %s: %s", draft.draft_id, e)
            return CommitOutcome(kind="pending", state=PENDING_STATE, reason=str(e))
        return classify_commit_response(response.status_code, _json_or_none(response), response.text)

    def commit(self, payload: Dict[str, Any], context_text: str = "") -> CommitOutcome:
        """Commit one logical write, polling with the same draft id while the remote is pending.

        Raises RemoteCommitRejected on a hard failure and CommitTimeout when the
        poll budget runs out.
        """
        draft = Draft(draft_id=new_draft_id(), payload=payload, context_text=context_text or "",
                      request_meta=build_request_meta())
        policy = RetryPolicy(
            max_attempts=self.config.commit_max_polls,
            interval_ms=self.config.commit_poll_interval_ms,
            sleep=self.sleep,
        )

        def on_pending(attempt: int, outcome: CommitOutcome) -> None:
            logger.warning("Commit %s pending (attempt %d/%d)", draft.draft_id, attempt, policy.max_attempts)

        try:
            outcome = policy.run(lambda _attempt: self.submit(draft),
                                 should_retry=lambda o: not o.is_terminal, on_retry=on_pending)
        except RetryExhausted as e:
            raise CommitTimeout(draft.draft_id, e.attempts, detail=getattr(e.last, "reason", None))
        if outcome.kind == "failure":
            raise RemoteCommitRejected(outcome.status_code or 0, outcome.reason)
        if outcome.kind == "unconfirmed":
            logger.warning("Commit %s returned unrecognized state %r", draft.draft_id, outcome.state)
        logger.info("Commit %s finished: %s", draft.draft_id, outcome.state)
        return outcome
