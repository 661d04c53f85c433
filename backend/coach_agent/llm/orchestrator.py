from __future__ import annotations
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple
import json
import logging

from ..backend_client import BackendClient
from ..config import AgentLoopConfig, Settings
from ..errors import AgentError, MaxToolIterationsExceeded, UnknownTool
from ..schemas import RuntimeContext, ToolCall, ToolOutput, TurnResult
from .agents import BaseAgent, DelegateAgent, QueryAgent, WritebackAgent
from .gateway import ModelGateway, first_message, message_text
from .tools import ROLES, as_text, is_known_tool, parse_arguments

logger = logging.getLogger(__name__)

EventCallback = Callable[[str, str, Optional[Dict[str, Any]]], None]

EXECUTION_MODE = "build"

DEFAULT_SYSTEM_PROMPT = (
    "You are a fitness and health coach assistant with access to the user's records. "
    "Use query_user_data to read existing records before overwriting or merging them. "
    "Use delegate_generate for long plans or analysis; it does not save anything. "
    "To save, update or delete a record, call the matching writeback tool with the record's fields. "
    "Do not ask for confirmation. When the user requests a change, perform it with tool calls in this turn. "
    "Never claim a change was saved unless the writeback tool reported success. "
    "For casual conversation, answer briefly without tools."
)


class TurnState(str, Enum):
    AWAITING_MODEL = "awaiting_model"
    MODEL_REPLIED = "model_replied"
    DISPATCHING_TOOLS = "dispatching_tools"
    DONE = "done"
    ITERATION_EXCEEDED = "iteration_exceeded"
    FAILED = "failed"


class Conversation:
    """Append-only message log owned by one turn."""

    def __init__(self) -> None:
        self._messages: List[Dict[str, Any]] = []

    def append(self, message: Dict[str, Any]) -> None:
        self._messages.append(dict(message))

    def snapshot(self) -> List[Dict[str, Any]]:
        return [dict(m) for m in self._messages]

    def __len__(self) -> int:
        return len(self._messages)


def parse_tool_calls(message: Dict[str, Any]) -> List[Tuple[ToolCall, Dict[str, Any]]]:
    """ToolCalls from an assistant message, each paired with its wire form for the history."""
    raw_calls = message.get("tool_calls")
    if not isinstance(raw_calls, list):
        return []
    out: List[Tuple[ToolCall, Dict[str, Any]]] = []
    for i, tc in enumerate(raw_calls):
        if not isinstance(tc, dict):
            continue
        fn = tc.get("function") if isinstance(tc.get("function"), dict) else {}
        call_id = as_text(tc.get("id"), f"call_{i}")
        name = as_text(fn.get("name"))
        raw_args = fn.get("arguments")
        wire_args = raw_args if isinstance(raw_args, str) else json.dumps(raw_args or {}, ensure_ascii=False)
        call = ToolCall(call_id=call_id, name=name, raw_arguments=parse_arguments(raw_args))
        wire = {"id": call_id, "type": "function", "function": {"name": name, "arguments": wire_args}}
        out.append((call, wire))
    return out


class TurnOrchestrator:
    def __init__(
        self,
        gateway: ModelGateway,
        backend: BackendClient,
        config: AgentLoopConfig,
        runtime: Optional[RuntimeContext] = None,
        temperature: float = 0.25,
        delegate_temperature: float = 0.3,
    ):
        self.gateway = gateway
        self.backend = backend
        self.config = config
        self.runtime = runtime or RuntimeContext()
        self.temperature = temperature
        self.agents: List[BaseAgent] = [
            QueryAgent(backend),
            DelegateAgent(gateway, temperature=delegate_temperature),
            WritebackAgent(backend, context_text=self.runtime.context_text),
        ]
        self.state = TurnState.AWAITING_MODEL

    @classmethod
    def from_settings(
        cls,
        s: Settings,
        token: Optional[str] = None,
        role: Optional[str] = None,
        session_id: Optional[str] = None,
        runtime: Optional[RuntimeContext] = None,
    ) -> "TurnOrchestrator":
        config = AgentLoopConfig.from_settings(s)
        gateway = ModelGateway.from_settings(s, config)
        backend = BackendClient.from_settings(s, token=token, config=config)
        if runtime is None:
            resolved = role if role in ROLES else (s.default_role if s.default_role in ROLES else "trainer")
            runtime = backend.runtime_context(resolved, session_id=session_id)
        return cls(gateway, backend, config, runtime=runtime,
                   temperature=s.model_temperature, delegate_temperature=s.delegate_temperature)

    def build_system_prompt(self) -> str:
        head = "\n\n".join(p for p in [self.runtime.system_prompt or DEFAULT_SYSTEM_PROMPT, self.runtime.context_text] if p)
        return f"{head}\n\nExecution mode: {EXECUTION_MODE}\nWriteback mode: {self.runtime.writeback_mode}"

    def _aggregate_tools(self) -> List[Dict[str, Any]]:
        tools: List[Dict[str, Any]] = []
        for a in self.agents:
            tools.extend(a.tools())
        return tools

    def _exec_tool(self, name: str, args: Dict[str, Any]) -> Dict[str, Any]:
        if is_known_tool(name):
            for a in self.agents:
                res = a.execute(name, args)
                if res is not None:
                    return res
        logger.warning("%s", UnknownTool(name))
        return {"success": False, "error": "unknown tool"}

    def run_turn(self, prompt: str, on_event: Optional[EventCallback] = None) -> TurnResult:
        """Drive one turn until the model stops calling tools or the round limit is hit."""

        def emit(agent: str, label: str, detail: Optional[Dict[str, Any]] = None) -> None:
            if on_event:
                on_event(agent, label, detail)

        convo = Conversation()
        convo.append({"role": "system", "content": self.build_system_prompt()})
        convo.append({"role": "user", "content": prompt})
        tools = self._aggregate_tools()
        called: List[str] = []
        outputs: List[ToolOutput] = []
        max_rounds = self.config.max_tool_rounds
        logger.info("Turn started (role=%s, max_rounds=%d)", self.runtime.role, max_rounds)

        try:
            for round_no in range(1, max_rounds + 1):
                self.state = TurnState.AWAITING_MODEL
                emit("planner", "planning", {"round": round_no})
                reply = self.gateway.call({
                    "messages": convo.snapshot(),
                    "tools": tools,
                    "tool_choice": "auto",
                    "temperature": self.temperature,
                })
                self.state = TurnState.MODEL_REPLIED
                message = first_message(reply.response)
                text = message_text(message)
                calls = parse_tool_calls(message)
                assistant: Dict[str, Any] = {"role": "assistant", "content": text}
                if calls:
                    assistant["tool_calls"] = [wire for _, wire in calls]
                convo.append(assistant)

                if not calls:
                    self.state = TurnState.DONE
                    emit("responder", "finalizing", None)
                    logger.info("Turn finished after %d round(s), tools=%s", round_no, called)
                    return TurnResult(text=text, called=called, outputs=outputs,
                                      rounds=round_no, model_used=reply.model_used)

                self.state = TurnState.DISPATCHING_TOOLS
                emit("planner", "tool_call", {"count": len(calls)})
                for call, _ in calls:
                    called.append(call.name)
                    logger.info("Dispatching %s (round %d)", call.name, round_no)
                    emit(self._agent_name(call.name), call.name, None)
                    result = self._exec_tool(call.name, call.raw_arguments)
                    outputs.append(ToolOutput(name=call.name, result=result))
                    convo.append({
                        "role": "tool",
                        "tool_call_id": call.call_id,
                        "content": json.dumps(result, ensure_ascii=False, default=str),
                    })
            self.state = TurnState.ITERATION_EXCEEDED
            raise MaxToolIterationsExceeded(max_rounds, called)
        except AgentError as e:
            if self.state != TurnState.ITERATION_EXCEEDED:
                self.state = TurnState.FAILED
            logger.error("Turn aborted: %s", e)
            emit("responder", "error", {"error": str(e)})
            raise

    def _agent_name(self, tool_name: str) -> str:
        for a in self.agents:
            if any(t["function"]["name"] == tool_name for t in a.tools()):
                return a.name
        return "unknown"
