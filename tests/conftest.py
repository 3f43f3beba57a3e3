from __future__ import annotations

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

from pdf_takeover_mcp_server import server


@pytest.fixture(autouse=True)
def reset_server_state(tmp_path, monkeypatch):
    """
    Give every test a private settings file and a fresh server state.
    """
    monkeypatch.setenv("PDF_TAKEOVER_SETTINGS_PATH", str(tmp_path / "settings.json"))
    monkeypatch.setattr(server, "_STATE", None)
    yield
