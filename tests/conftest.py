"""Shared test fixtures."""

from __future__ import annotations

import os

import pytest
from fakes import SleepRecorder

from llm_relay.orchestrator.secrets import BACKEND_CREDENTIAL_KEYS


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch):
    """Drop relay settings and credentials inherited from the developer shell."""

    for name in list(os.environ):
        if name.startswith("LLM_RELAY_"):
            monkeypatch.delenv(name, raising=False)
    for key_name in BACKEND_CREDENTIAL_KEYS.values():
        if key_name is not None:
            monkeypatch.delenv(key_name, raising=False)


@pytest.fixture()
def sleep_recorder() -> SleepRecorder:
    return SleepRecorder()
