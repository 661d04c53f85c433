from __future__ import annotations
from typing import Any, Dict, List, Optional
import logging

from ..backend_client import BackendClient
from ..errors import AgentError, BackendRequestError, InvalidToolArguments, with_tool_name
from .gateway import ModelGateway, first_message, message_text
from .tools import (
    DELEGATE_TOOL,
    QUERY_RESOURCES,
    QUERY_TOOL,
    WRITEBACK_TOOL_NAMES,
    as_text,
    clamp_limit,
    delegate_tool,
    is_writeback_tool,
    parse_date_str,
    query_tool,
    transform,
    writeback_tool,
)

logger = logging.getLogger(__name__)

SUPPLEMENT_PREFIX = "【补剂方案】"

# resource -> row field used for date_from/date_to filtering
DATE_FIELDS = {
    "health_metrics": "recorded_at",
    "training_plans": "plan_date",
    "nutrition_plans": "plan_date",
    "diet_records": "record_date",
    "daily_logs": "log_date",
}

TRUNCATE_FIELDS = {
    "content": 2400,
    "notes": 800,
    "food_description": 1200,
    "foods_json": 2400,
}

STATUS_FILTERS = {
    "conditions": ("active", "recovered", "all"),
    "training_goals": ("active", "completed", "all"),
}

DEFAULT_DELEGATE_REQUESTS = {
    "training_plan": "Generate a training plan.",
    "nutrition_plan": "Generate a nutrition plan.",
    "supplement_plan": "Generate a supplement plan.",
    "analysis": "Analyze the user's recent data.",
}


def truncate(text: Any, limit: int) -> Any:
    if not isinstance(text, str) or len(text) <= limit:
        return text
    return text[:limit] + "...(truncated)"


class BaseAgent:
    name: str = "agent"

    def tools(self) -> List[Dict[str, Any]]:
        return []

    def execute(self, tool_name: str, args: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        return None


class QueryAgent(BaseAgent):
    """Read-only access to the user's records through the backend read endpoints."""

    name = "query"

    def __init__(self, backend: BackendClient):
        self.backend = backend

    def tools(self) -> List[Dict[str, Any]]:
        return [query_tool()]

    def _params(self, resource: str, args: Dict[str, Any]) -> Dict[str, Any]:
        params: Dict[str, Any] = {}
        status = args.get("status")
        if resource in STATUS_FILTERS and status in STATUS_FILTERS[resource]:
            params["status"] = status
        if resource == "health_metrics" and args.get("metric_type"):
            params["metric_type"] = args.get("metric_type")
        if resource in ("training_plans", "nutrition_plans", "daily_logs"):
            # fetch the widest page so client-side filters still fill `limit`
            params["limit"] = 50
        if resource == "diet_records":
            day_from = parse_date_str(args.get("date_from"))
            if day_from and day_from == parse_date_str(args.get("date_to")):
                params["date"] = day_from.isoformat()
        return params

    def _keep(self, resource: str, row: Dict[str, Any], args: Dict[str, Any]) -> bool:
        field = DATE_FIELDS.get(resource)
        if field:
            day = parse_date_str(row.get(field))
            date_from = parse_date_str(args.get("date_from"))
            date_to = parse_date_str(args.get("date_to"))
            if date_from and (day is None or day < date_from):
                return False
            if date_to and (day is None or day > date_to):
                return False
        if resource == "nutrition_plans":
            kind = args.get("plan_kind")
            is_supplement = str(row.get("content") or "").startswith(SUPPLEMENT_PREFIX)
            if kind == "supplement" and not is_supplement:
                return False
            if kind == "nutrition" and is_supplement:
                return False
        if resource == "diet_records" and args.get("meal_type"):
            if row.get("meal_type") != args.get("meal_type"):
                return False
        return True

    def execute(self, tool_name: str, args: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        if tool_name != QUERY_TOOL:
            return None
        resource = args.get("resource")
        if resource not in QUERY_RESOURCES:
            return {"success": False, "error": "unsupported"}
        limit = clamp_limit(args.get("limit"))
        if resource in ("training_plans", "nutrition_plans"):
            limit = min(limit, 30)
        try:
            data = self.backend.read(resource, **self._params(resource, args))
        except BackendRequestError as e:
            logger.warning("query_user_data %s failed: %s", resource, e)
            return {"success": False, "error": str(e)}
        if isinstance(data, list):
            rows = [r for r in data if isinstance(r, dict) and self._keep(resource, r, args)]
            data = [
                {k: truncate(v, TRUNCATE_FIELDS[k]) if k in TRUNCATE_FIELDS else v for k, v in r.items()}
                for r in rows[:limit]
            ]
        return {"success": True, "data": data}


class DelegateAgent(BaseAgent):
    """Single-shot generation with no tools attached; never writes anything."""

    name = "delegate"

    def __init__(self, gateway: ModelGateway, temperature: float = 0.3):
        self.gateway = gateway
        self.temperature = temperature

    def tools(self) -> List[Dict[str, Any]]:
        return [delegate_tool()]

    def build_prompt(self, args: Dict[str, Any]) -> str:
        parts = [as_text(args.get("request")), as_text(args.get("plan_date"))]
        prompt = "\n".join(p for p in parts if p)
        kind = as_text(args.get("kind"), "training_plan")
        return prompt or DEFAULT_DELEGATE_REQUESTS.get(kind, DEFAULT_DELEGATE_REQUESTS["training_plan"])

    def execute(self, tool_name: str, args: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        if tool_name != DELEGATE_TOOL:
            return None
        reply = self.gateway.call({
            "messages": [{"role": "user", "content": self.build_prompt(args)}],
            "temperature": self.temperature,
        })
        return {"success": True, "content": message_text(first_message(reply.response))}


class WritebackAgent(BaseAgent):
    """Transforms writeback tool calls into payloads and commits them."""

    name = "writeback"

    def __init__(self, backend: BackendClient, context_text: str = ""):
        self.backend = backend
        self.context_text = context_text

    def tools(self) -> List[Dict[str, Any]]:
        return [writeback_tool(n) for n in WRITEBACK_TOOL_NAMES]

    def execute(self, tool_name: str, args: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        if not is_writeback_tool(tool_name):
            return None
        mapped = transform(tool_name, args)
        if mapped is None:
            raise InvalidToolArguments(tool_name, detail=args)
        try:
            outcome = self.backend.commit(mapped.payload, self.context_text)
        except AgentError as e:
            raise with_tool_name(e, tool_name)
        result: Dict[str, Any] = {"success": True, "state": outcome.state or "success"}
        if outcome.kind == "unconfirmed":
            result["confirmed"] = False
        return result
