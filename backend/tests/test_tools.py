"""Tool vocabulary, transform and catalog."""

import pytest

from coach_agent.llm.tools import (
    DELEGATE_TOOL,
    QUERY_TOOL,
    WRITEBACK_TOOL_NAMES,
    build_tool_catalog,
    clamp_limit,
    is_known_tool,
    is_writeback_tool,
    parse_arguments,
    parse_date_str,
    transform,
)


# tool -> (minimal arguments, expected top-level payload keys)
MINIMAL = {
    "user_patch": ({"nickname": "kai"}, {"user"}),
    "profile_patch": ({"training_goal": "strength"}, {"profile"}),
    "conditions_upsert": ({"conditions": [{"name": "knee"}]}, {"conditions", "conditions_mode"}),
    "conditions_replace_all": ({"conditions": []}, {"conditions", "conditions_mode"}),
    "conditions_delete": ({"ids": ["c1"]}, {"conditions_delete_ids"}),
    "conditions_clear_all": ({}, {"conditions_mode"}),
    "training_goals_upsert": ({"goals": [{"name": "bulk"}]}, {"training_goals", "training_goals_mode"}),
    "training_goals_replace_all": ({"goals": []}, {"training_goals", "training_goals_mode"}),
    "training_goals_delete": ({"ids": ["g1"]}, {"training_goals_delete_ids"}),
    "training_goals_clear_all": ({}, {"training_goals_mode"}),
    "health_metrics_create": ({"metrics": [{"metric_type": "other"}]}, {"health_metrics"}),
    "health_metrics_update": ({"updates": [{"id": "m1"}]}, {"health_metrics_update"}),
    "health_metrics_delete": ({"ids": ["m1"]}, {"health_metrics_delete_ids"}),
    "training_plan_set": ({"plan_date": "2026-10-18", "content": "squat"}, {"training_plan"}),
    "training_plan_delete": ({"plan_date": "2026-10-18"}, {"training_plan_delete_date"}),
    "nutrition_plan_set": ({"plan_date": "2026-10-18", "content": "rice"}, {"nutrition_plan"}),
    "nutrition_plan_delete": ({"plan_date": "2026-10-18"}, {"nutrition_plan_delete_date"}),
    "supplement_plan_set": ({"plan_date": "2026-10-18", "content": "creatine"}, {"supplement_plan"}),
    "supplement_plan_delete": ({"plan_date": "2026-10-18"}, {"supplement_plan_delete_date"}),
    "diet_records_create": ({"records": [{"meal_type": "lunch"}]}, {"diet_records"}),
    "diet_records_delete": ({"deletes": [{"meal_type": "lunch"}]}, {"diet_records_delete"}),
    "daily_log_upsert": ({"log_date": "2026-10-17", "weight": 70.5}, {"daily_log"}),
    "daily_log_delete": ({"log_date": "2026-10-17"}, {"daily_log_delete_date"}),
}


def test_minimal_table_covers_vocabulary():
    assert set(MINIMAL) == set(WRITEBACK_TOOL_NAMES)


@pytest.mark.parametrize("name", WRITEBACK_TOOL_NAMES)
def test_minimal_arguments_map_to_domain_key(name):
    args, keys = MINIMAL[name]
    result = transform(name, args)
    assert result is not None
    assert set(result.payload) == keys
    assert result.summary_text


def test_training_plan_set_payload_is_exact():
    result = transform("training_plan_set", {"plan_date": "2026-10-18", "content": "5x5 squat"})
    assert result.payload == {"training_plan": {"plan_date": "2026-10-18", "content": "5x5 squat"}}


def test_training_plan_set_keeps_optional_fields():
    result = transform("training_plan_set", {
        "plan_date": "2026-10-18", "content": "run", "notes": "easy", "completed": False, "extra": 1,
    })
    assert result.payload["training_plan"] == {
        "plan_date": "2026-10-18", "content": "run", "notes": "easy", "completed": False,
    }


def test_values_are_not_coerced():
    result = transform("daily_log_upsert", {"log_date": "yesterday", "weight": "heavy", "sleep_hours": -3})
    assert result.payload["daily_log"] == {"log_date": "yesterday", "weight": "heavy", "sleep_hours": -3}


def test_delete_tools_carry_only_identifiers():
    result = transform("training_plan_delete", {"plan_date": "2026-10-18", "content": "ignored"})
    assert result.payload == {"training_plan_delete_date": "2026-10-18"}


def test_profile_patch_copies_only_known_fields():
    result = transform("profile_patch", {"height": 180, "password": "x"})
    assert result.payload == {"profile": {"height": 180}}


def test_user_patch_allows_explicit_null():
    result = transform("user_patch", {"nickname": None})
    assert result.payload == {"user": {"nickname": None}}


def test_mode_payloads():
    assert transform("conditions_upsert", {"conditions": []}).payload["conditions_mode"] == "upsert"
    assert transform("training_goals_replace_all", {"goals": []}).payload["training_goals_mode"] == "replace_all"
    assert transform("conditions_clear_all", {}).payload == {"conditions_mode": "clear_all"}


@pytest.mark.parametrize("name,args", [
    ("user_patch", {}),
    ("profile_patch", {"unrelated": 1}),
    ("conditions_upsert", {}),
    ("conditions_delete", {"id": "c1"}),
    ("training_plan_set", {"plan_date": "2026-10-18"}),
    ("training_plan_set", {"content": "squat"}),
    ("training_plan_delete", {}),
    ("training_plan_delete", {"plan_date": "   "}),
    ("daily_log_upsert", {"weight": 70}),
    ("diet_records_create", {"records": None}),
])
def test_missing_required_fields_returns_none(name, args):
    assert transform(name, args) is None


@pytest.mark.parametrize("raw", [None, [], ["plan_date"], "text", 3])
def test_non_object_arguments_return_none(raw):
    assert transform("training_plan_set", raw) is None


def test_transform_rejects_non_writeback_names():
    assert transform(QUERY_TOOL, {"resource": "user"}) is None
    assert transform("drop_tables", {"x": 1}) is None


def test_summary_text_from_arguments():
    result = transform("training_plan_delete", {"plan_date": "2026-10-18", "summary_text": "  remove Saturday  "})
    assert result.summary_text == "remove Saturday"
    fallback = transform("training_plan_delete", {"plan_date": "2026-10-18", "summary_text": "   "})
    assert fallback.summary_text == "Delete training plan"


def test_vocabulary_membership():
    assert is_writeback_tool("training_plan_set")
    assert not is_writeback_tool(QUERY_TOOL)
    assert is_known_tool(QUERY_TOOL) and is_known_tool(DELEGATE_TOOL)
    assert not is_known_tool("shell")


class TestParseArguments:
    def test_json_object(self):
        assert parse_arguments('{"a": 1}') == {"a": 1}

    def test_invalid_json_is_empty(self):
        assert parse_arguments("{not json") == {}

    def test_non_object_json_is_empty(self):
        assert parse_arguments("[1, 2]") == {}

    def test_blank_and_none(self):
        assert parse_arguments("") == {}
        assert parse_arguments(None) == {}

    def test_dict_passthrough(self):
        assert parse_arguments({"k": "v"}) == {"k": "v"}


def test_clamp_limit():
    assert clamp_limit(None) == 20
    assert clamp_limit("abc") == 20
    assert clamp_limit(0) == 1
    assert clamp_limit(500) == 50
    assert clamp_limit(7.9) == 7
    assert clamp_limit(True) == 20


def test_parse_date_str():
    assert parse_date_str("2026-10-17").isoformat() == "2026-10-17"
    assert parse_date_str("2026-10-17T08:30:00Z").isoformat() == "2026-10-17"
    assert parse_date_str(None) is None
    assert parse_date_str("not a date") is None


def test_catalog_shape():
    catalog = build_tool_catalog()
    names = [t["function"]["name"] for t in catalog]
    assert names[:2] == [QUERY_TOOL, DELEGATE_TOOL]
    assert names[2:] == list(WRITEBACK_TOOL_NAMES)
    for entry in catalog[2:]:
        assert entry["type"] == "function"
        assert entry["function"]["parameters"] == {"type": "object", "additionalProperties": True}
