"""
Single chat-completion call with model-priority fallback.

Candidates are tried in order; each gets a fixed number of attempts with a fixed
backoff between them. Only when every model and attempt has failed does the call
raise, carrying the ordered list of failures.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

import openai
from openai import OpenAI

from ..config import AgentLoopConfig, Settings, unique_models
from ..errors import ConfigurationError, ModelCallExhausted
from ..schemas import ModelReply
from .retry import RetryExhausted, RetryPolicy

logger = logging.getLogger(__name__)


@dataclass
class _Attempt:
    response: Optional[Dict[str, Any]] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.response is not None


def _as_dict(completion: Any) -> Optional[Dict[str, Any]]:
    if isinstance(completion, dict):
        return completion
    dump = getattr(completion, "model_dump", None)
    if callable(dump):
        value = dump()
        return value if isinstance(value, dict) else None
    return None


def _describe(err: Exception) -> str:
    status = getattr(err, "status_code", None)
    message = getattr(err, "message", None) or str(err)
    return f"{status} {message}" if status else message


class ModelGateway:
    def __init__(
        self,
        models: List[str],
        config: AgentLoopConfig,
        client: Any = None,
        sleep: Callable[[float], Any] = time.sleep,
    ):
        self.models = unique_models(models)
        if not self.models:
            raise ConfigurationError("No candidate models configured")
        self.config = config
        self.client = client
        self.sleep = sleep

    @classmethod
    def from_settings(cls, s: Settings, config: Optional[AgentLoopConfig] = None, **kwargs) -> "ModelGateway":
        if not s.model_api_key:
            raise ConfigurationError("MODEL_API_KEY not configured")
        client = OpenAI(
            api_key=s.model_api_key,
            base_url=s.model_base_url,
            timeout=s.model_request_timeout_seconds,
            max_retries=0,  # retries are ours
        )
        return cls(s.candidate_models, config or AgentLoopConfig.from_settings(s), client=client, **kwargs)

    def _attempt(self, model: str, body: Dict[str, Any]) -> _Attempt:
        try:
            completion = self.client.chat.completions.create(**{**body, "model": model, "stream": False})
        except (openai.APIError, ValueError) as e:
            return _Attempt(error=_describe(e))
        response = _as_dict(completion)
        if response is None:
            return _Attempt(error=f"non-object response body: {type(completion).__name__}")
        return _Attempt(response=response)

    def call(self, body: Dict[str, Any]) -> ModelReply:
        """Run `body` (messages, tools, tool_choice, temperature) against the candidates."""
        failures: List[str] = []
        policy = RetryPolicy(
            max_attempts=self.config.model_attempts_per_candidate,
            interval_ms=self.config.model_backoff_ms,
            sleep=self.sleep,
        )
        for model in self.models:

            def record(attempt: int, result: _Attempt, model: str = model) -> None:
                failures.append(f"{model}#{attempt}: {result.error}")
                logger.warning("Model attempt failed %s#%d: %s", model, attempt, result.error)

            try:
                result = policy.run(
                    lambda _attempt, model=model: self._attempt(model, body),
                    should_retry=lambda a: not a.ok,
                    on_retry=record,
                )
            except RetryExhausted:
                continue
            return ModelReply(model_used=model, response=result.response or {}, failures=failures)
        raise ModelCallExhausted(failures)


def first_message(response: Dict[str, Any]) -> Dict[str, Any]:
    """choices[0].message of a completion, or {} when the shape is off."""
    choices = response.get("choices") if isinstance(response, dict) else None
    choice = choices[0] if isinstance(choices, list) and choices else None
    message = choice.get("message") if isinstance(choice, dict) else None
    return message if isinstance(message, dict) else {}


def message_text(message: Dict[str, Any]) -> str:
    content = message.get("content")
    return content.strip() if isinstance(content, str) else ""
