from typing import Any

import pytest

from agentcore.tools import ToolRegistry

from scripted import Script, ScriptedClient, add, echo


@pytest.fixture
def registry():
    registry = ToolRegistry()
    registry.register_many([echo, add])
    return registry


@pytest.fixture
def make_client(registry):
    def factory(*scripts: Script, **kwargs: Any) -> ScriptedClient:
        kwargs.setdefault("registry", registry)
        return ScriptedClient(scripts, **kwargs)

    return factory
