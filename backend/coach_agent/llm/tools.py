from __future__ import annotations
from typing import Any, Callable, Dict, List, Optional, Tuple
from datetime import date
import json

from ..schemas import TransformResult


QUERY_TOOL = "query_user_data"
DELEGATE_TOOL = "delegate_generate"

WRITEBACK_TOOL_NAMES: Tuple[str, ...] = (
    "user_patch",
    "profile_patch",
    "conditions_upsert",
    "conditions_replace_all",
    "conditions_delete",
    "conditions_clear_all",
    "training_goals_upsert",
    "training_goals_replace_all",
    "training_goals_delete",
    "training_goals_clear_all",
    "health_metrics_create",
    "health_metrics_update",
    "health_metrics_delete",
    "training_plan_set",
    "training_plan_delete",
    "nutrition_plan_set",
    "nutrition_plan_delete",
    "supplement_plan_set",
    "supplement_plan_delete",
    "diet_records_create",
    "diet_records_delete",
    "daily_log_upsert",
    "daily_log_delete",
)

_WRITEBACK_TOOL_SET = frozenset(WRITEBACK_TOOL_NAMES)

USER_FIELDS = ("nickname", "avatar_key")
PROFILE_FIELDS = (
    "height",
    "weight",
    "birth_date",
    "gender",
    "training_start_time",
    "breakfast_time",
    "lunch_time",
    "dinner_time",
    "training_years",
    "training_goal",
)


def is_writeback_tool(name: str) -> bool:
    return name in _WRITEBACK_TOOL_SET


def is_known_tool(name: str) -> bool:
    return name in (QUERY_TOOL, DELEGATE_TOOL) or is_writeback_tool(name)


def is_plain_object(value: Any) -> bool:
    return isinstance(value, dict)


def as_text(value: Any, fallback: str = "") -> str:
    if not isinstance(value, str):
        return fallback
    v = value.strip()
    return v or fallback


def parse_arguments(raw: Any) -> Dict[str, Any]:
    """Lenient parse of a model's JSON-encoded arguments.

    Unparsable text, and JSON that is not an object, both become {}.
    """
    if isinstance(raw, dict):
        return raw
    text = as_text(raw, "{}")
    try:
        value = json.loads(text)
    except (TypeError, ValueError):
        return {}
    return value if isinstance(value, dict) else {}


def parse_date_str(s: Any) -> Optional[date]:
    if s is None:
        return None
    try:
        return date.fromisoformat(str(s)[:10])
    except Exception:
        pass
    try:
        from dateutil import parser as _parser
        dt = _parser.parse(str(s))
        return dt.date()
    except Exception:
        return None


def clamp_limit(value: Any, default: int = 20, lo: int = 1, hi: int = 50) -> int:
    if isinstance(value, bool):
        return default
    try:
        n = int(float(value))
    except (TypeError, ValueError):
        return default
    return max(lo, min(hi, n))


# -------------------- Transformer --------------------

def _pick(args: Dict[str, Any], keys: Tuple[str, ...]) -> Dict[str, Any]:
    return {k: args[k] for k in keys if k in args}


def _has(args: Dict[str, Any], *keys: str) -> bool:
    return all(args.get(k) is not None for k in keys)


def _patch(domain: str, keys: Tuple[str, ...]) -> Callable[[Dict[str, Any]], Optional[Dict[str, Any]]]:
    def build(args: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        patch = _pick(args, keys)
        if not patch:
            return None
        return {domain: patch}
    return build


def _collection(arg_key: str, domain: str, mode_key: Optional[str] = None, mode: Optional[str] = None):
    def build(args: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        if not _has(args, arg_key):
            return None
        payload: Dict[str, Any] = {domain: args[arg_key]}
        if mode_key:
            payload[mode_key] = mode
        return payload
    return build


def _mode_only(mode_key: str, mode: str):
    def build(args: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        return {mode_key: mode}
    return build


def _dated(domain: str, date_key: str, required: Tuple[str, ...], optional: Tuple[str, ...] = ()):
    def build(args: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        if not _has(args, date_key, *required):
            return None
        return {domain: _pick(args, (date_key,) + required + optional)}
    return build


def _delete_by_date(domain: str, date_key: str):
    def build(args: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        value = as_text(args.get(date_key))
        if not value:
            return None
        return {domain: value}
    return build


# tool name -> (payload builder, default summary)
_TRANSFORMS: Dict[str, Tuple[Callable[[Dict[str, Any]], Optional[Dict[str, Any]]], str]] = {
    "user_patch": (_patch("user", USER_FIELDS), "Update user info"),
    "profile_patch": (_patch("profile", PROFILE_FIELDS), "Update body profile"),
    "conditions_upsert": (_collection("conditions", "conditions", "conditions_mode", "upsert"), "Sync conditions"),
    "conditions_replace_all": (_collection("conditions", "conditions", "conditions_mode", "replace_all"), "Replace all conditions"),
    "conditions_delete": (_collection("ids", "conditions_delete_ids"), "Delete conditions"),
    "conditions_clear_all": (_mode_only("conditions_mode", "clear_all"), "Clear all conditions"),
    "training_goals_upsert": (_collection("goals", "training_goals", "training_goals_mode", "upsert"), "Sync training goals"),
    "training_goals_replace_all": (_collection("goals", "training_goals", "training_goals_mode", "replace_all"), "Replace all training goals"),
    "training_goals_delete": (_collection("ids", "training_goals_delete_ids"), "Delete training goals"),
    "training_goals_clear_all": (_mode_only("training_goals_mode", "clear_all"), "Clear all training goals"),
    "health_metrics_create": (_collection("metrics", "health_metrics"), "Add health metrics"),
    "health_metrics_update": (_collection("updates", "health_metrics_update"), "Update health metrics"),
    "health_metrics_delete": (_collection("ids", "health_metrics_delete_ids"), "Delete health metrics"),
    "training_plan_set": (_dated("training_plan", "plan_date", ("content",), ("notes", "completed")), "Save training plan"),
    "training_plan_delete": (_delete_by_date("training_plan_delete_date", "plan_date"), "Delete training plan"),
    "nutrition_plan_set": (_dated("nutrition_plan", "plan_date", ("content",)), "Save nutrition plan"),
    "nutrition_plan_delete": (_delete_by_date("nutrition_plan_delete_date", "plan_date"), "Delete nutrition plan"),
    "supplement_plan_set": (_dated("supplement_plan", "plan_date", ("content",)), "Save supplement plan"),
    "supplement_plan_delete": (_delete_by_date("supplement_plan_delete_date", "plan_date"), "Delete supplement plan"),
    "diet_records_create": (_collection("records", "diet_records"), "Add diet records"),
    "diet_records_delete": (_collection("deletes", "diet_records_delete"), "Delete diet records"),
    "daily_log_upsert": (_dated("daily_log", "log_date", (), ("weight", "sleep_hours", "sleep_quality", "note")), "Save daily log"),
    "daily_log_delete": (_delete_by_date("daily_log_delete_date", "log_date"), "Delete daily log"),
}


def transform(name: str, raw_args: Any) -> Optional[TransformResult]:
    """Map a writeback tool call onto its mutation payload.

    Shape mapping only: field values are copied as-is and left for the remote
    store to validate. Returns None when the arguments are not an object, the
    tool is not a writeback tool, or a required field is missing.
    """
    if not is_plain_object(raw_args):
        return None
    entry = _TRANSFORMS.get(name)
    if entry is None:
        return None
    build, default_summary = entry
    payload = build(raw_args)
    if payload is None:
        return None
    return TransformResult(payload=payload, summary_text=as_text(raw_args.get("summary_text"), default_summary))


# -------------------- Catalog --------------------

QUERY_RESOURCES = (
    "user",
    "profile",
    "conditions",
    "training_goals",
    "health_metrics",
    "training_plans",
    "nutrition_plans",
    "diet_records",
    "daily_logs",
)

DELEGATE_KINDS = ("training_plan", "nutrition_plan", "supplement_plan", "analysis")
ROLES = ("doctor", "rehab", "nutritionist", "trainer")


def query_tool() -> Dict[str, Any]:
    return {
        "type": "function",
        "function": {
            "name": QUERY_TOOL,
            "description": "Read the current user's records (read-only). Use it before overwriting or merging existing content.",
            "parameters": {
                "type": "object",
                "properties": {
                    "resource": {"type": "string", "enum": list(QUERY_RESOURCES)},
                    "status": {"type": ["string", "null"]},
                    "metric_type": {"type": ["string", "null"]},
                    "meal_type": {"type": ["string", "null"], "enum": ["breakfast", "lunch", "dinner", "snack", None]},
                    "plan_kind": {"type": ["string", "null"], "enum": ["nutrition", "supplement", "all", None]},
                    "date_from": {"type": ["string", "null"]},
                    "date_to": {"type": ["string", "null"]},
                    "limit": {"type": ["integer", "null"], "minimum": 1, "maximum": 50},
                },
                "required": ["resource"],
            },
        },
    }


def delegate_tool() -> Dict[str, Any]:
    return {
        "type": "function",
        "function": {
            "name": DELEGATE_TOOL,
            "description": "Delegate long-form generation (training/nutrition/supplement plans, analysis). Returns ready-to-save text and writes nothing.",
            "parameters": {
                "type": "object",
                "properties": {
                    "kind": {"type": "string", "enum": list(DELEGATE_KINDS)},
                    "role": {"type": ["string", "null"], "enum": list(ROLES) + [None]},
                    "plan_date": {"type": ["string", "null"]},
                    "request": {"type": "string"},
                },
                "required": ["kind", "request"],
            },
        },
    }


def writeback_tool(name: str) -> Dict[str, Any]:
    return {
        "type": "function",
        "function": {
            "name": name,
            "description": name,
            "parameters": {"type": "object", "additionalProperties": True},
        },
    }


def build_tool_catalog() -> List[Dict[str, Any]]:
    return [query_tool(), delegate_tool()] + [writeback_tool(n) for n in WRITEBACK_TOOL_NAMES]
