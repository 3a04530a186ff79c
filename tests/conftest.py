import json

import pytest

from canvasplan.registry import CapabilityRegistry


class ScriptedCompletion:
    """Completion backend for tests: serves canned replies in order and records every prompt."""

    def __init__(self, *replies):
        self.replies = list(replies)
        self.prompts = []

    def __call__(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if not self.replies:
            return ""
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply if isinstance(reply, str) else json.dumps(reply)


@pytest.fixture
def registry():
    return CapabilityRegistry.default()


@pytest.fixture
def scripted():
    return ScriptedCompletion
