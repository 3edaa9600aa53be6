"""Shared test configuration."""

from __future__ import annotations

import pytest

from locomotive_simulator.sinks.proxy import PROXY_ENV_VARS


@pytest.fixture(autouse=True)
def _no_proxy_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep a developer's proxy settings out of the sink and auth tests."""
    for var in PROXY_ENV_VARS:
        monkeypatch.delenv(var, raising=False)
