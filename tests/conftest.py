"""Shared test fixtures."""

from __future__ import annotations

import json
import os
import shlex
import sys
from pathlib import Path

import pytest
from support import FakeClock

SRC_DIR = Path(__file__).resolve().parents[1] / "src"

ECHO_AGENT_COMMAND_TEMPLATE = (
    f"{shlex.quote(sys.executable)} -m agent_router.router.invoker.echo_agent "
    "--prompt {prompt} --agent-id {agent_id}"
)


@pytest.fixture()
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def echo_subprocess_env(monkeypatch) -> None:
    """Make the package importable from echo agent subprocesses."""

    monkeypatch.setenv(
        "PYTHONPATH",
        os.pathsep.join(filter(None, [str(SRC_DIR), os.environ.get("PYTHONPATH")])),
    )


@pytest.fixture()
def echo_catalog(tmp_path: Path, echo_subprocess_env) -> Path:
    """Catalog of echo agents runnable as real subprocesses."""

    catalog_path = tmp_path / "agents.json"
    catalog_path.write_text(
        json.dumps(
            {
                "agents": [
                    {
                        "id": "docs-lite",
                        "specializations": ["documentation", "general"],
                        "cost_tier": "budget",
                        "description": "Cheap agent for docs and small fixes",
                        "transport": {
                            "kind": "command",
                            "target": ECHO_AGENT_COMMAND_TEMPLATE + " --cost 0.01",
                        },
                    },
                    {
                        "id": "compliance-pro",
                        "specializations": ["compliance", "architecture"],
                        "cost_tier": "premium",
                        "transport": {
                            "kind": "command",
                            "target": ECHO_AGENT_COMMAND_TEMPLATE,
                        },
                    },
                    {
                        "id": "broken-premium",
                        "specializations": ["compliance"],
                        "cost_tier": "premium",
                        "transport": {
                            "kind": "command",
                            "target": ECHO_AGENT_COMMAND_TEMPLATE + " --fail 'model not found'",
                        },
                    },
                ],
            },
        ),
        "utf-8",
    )
    return catalog_path
