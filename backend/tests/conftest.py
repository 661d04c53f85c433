import copy
import json
import types

import pytest

from coach_agent.config import AgentLoopConfig
from coach_agent.llm.gateway import ModelGateway


BACKEND = "http://backend.test"


def completion(content="", tool_calls=None):
    message = {"role": "assistant", "content": content}
    if tool_calls:
        message["tool_calls"] = tool_calls
    return {"id": "cmpl-1", "object": "chat.completion", "choices": [{"index": 0, "message": message}]}


def tool_call(name, args, call_id="call_1"):
    arguments = args if isinstance(args, str) else json.dumps(args)
    return {"id": call_id, "type": "function", "function": {"name": name, "arguments": arguments}}


class FakeCompletions:
    """Replays a script of completions (dicts) or exceptions, one per create() call."""

    def __init__(self, script):
        self.script = list(script)
        self.calls = []

    def create(self, **kwargs):
        self.calls.append(copy.deepcopy(kwargs))
        if not self.script:
            raise AssertionError("unexpected model call")
        item = self.script.pop(0)
        if callable(item):
            item = item(kwargs)
        if isinstance(item, Exception):
            raise item
        return item


def fake_client(script):
    completions = FakeCompletions(script)
    return types.SimpleNamespace(chat=types.SimpleNamespace(completions=completions)), completions


class SleepRecorder:
    def __init__(self):
        self.calls = []

    def __call__(self, seconds):
        self.calls.append(seconds)


class FakeBackend:
    """Stands in for BackendClient: records commits and serves canned reads."""

    def __init__(self, outcome_state="success", reads=None, commit_error=None):
        from coach_agent.schemas import CommitOutcome

        self.commits = []
        self.reads = []
        self._reads = reads or {}
        self._outcome = CommitOutcome(kind="success", state=outcome_state)
        self._commit_error = commit_error

    def commit(self, payload, context_text=""):
        self.commits.append((payload, context_text))
        if self._commit_error:
            raise self._commit_error
        return self._outcome

    def read(self, resource, **params):
        self.reads.append((resource, params))
        return copy.deepcopy(self._reads.get(resource, []))


@pytest.fixture
def loop_config():
    return AgentLoopConfig(
        model_attempts_per_candidate=3,
        model_backoff_ms=600,
        commit_max_polls=20,
        commit_poll_interval_ms=1000,
        max_tool_rounds=6,
    )


@pytest.fixture
def sleeps():
    return SleepRecorder()


@pytest.fixture
def make_gateway(loop_config, sleeps):
    def build(script, models=("primary", "fallback")):
        client, completions = fake_client(script)
        gateway = ModelGateway(list(models), loop_config, client=client, sleep=sleeps)
        return gateway, completions
    return build
