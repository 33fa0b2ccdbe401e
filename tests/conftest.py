"""
Pytest configuration and fixtures.

Blanks out collaborator credentials before the package is imported so every
collaborator runs in demo mode and no test reaches the network.
"""

import os

for _name in (
    "PINATA_JWT", "PINATA_API_KEY", "PINATA_SECRET_KEY",
    "OPENAI_API_KEY", "RECAPTCHA_SECRET_KEY",
    "ALCHEMY_KEY", "RPC_URL", "PRIVATE_KEY", "MASTER_KEY",
):
    os.environ[_name] = ""
os.environ["ALLOW_DEMO_FALLBACK"] = "true"

import pytest
from unittest.mock import patch
from fastapi.testclient import TestClient

from did_onboarding import session_store
from did_onboarding.config import config
from did_onboarding.database import init_database
from did_onboarding.state_machine import DIDSession, SessionState, Step


@pytest.fixture(autouse=True)
def isolated_storage(tmp_path):
    """Fresh SQLite file and empty session registry for every test."""
    with patch.object(config, "DB_PATH", str(tmp_path / "dids.db")):
        init_database()
        session_store.reset()
        yield
        session_store.reset()


@pytest.fixture
def client():
    from did_onboarding.main import app

    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def session_at():
    """Build a session parked on a given step with some collected data."""
    def _make(step: Step, skipped: bool = False, **did_data) -> DIDSession:
        data = {"captchaCompleted": True}
        data.update(did_data)
        return DIDSession(SessionState(
            current_step=step,
            did_data=data,
            skipped_identity_verification=skipped
        ))
    return _make
