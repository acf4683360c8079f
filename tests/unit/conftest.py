"""
Unit test configuration for ccremote.

Every unit test gets its own state directory and a clean CCREMOTE_*
environment so nothing touches ~/.ccremote or the user's Discord settings.
"""

import os

import pytest


@pytest.fixture(autouse=True)
def isolated_state_dir(tmp_path, monkeypatch):
    """Point CCREMOTE_STATE_DIR at a temp dir and clear other CCREMOTE_* vars."""
    for name in list(os.environ):
        if name.startswith("CCREMOTE_"):
            monkeypatch.delenv(name, raising=False)
    state_dir = tmp_path / "ccremote-state"
    monkeypatch.setenv("CCREMOTE_STATE_DIR", str(state_dir))

    from ccremote import config
    monkeypatch.setattr(config, "CONFIG_PATH", None)
    return state_dir
