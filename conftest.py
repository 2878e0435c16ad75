"""
Root-level shared test fixtures.

The CRM client is never pointed at a real ``cv``: tests either mock
``CiviCRMClient.api4`` or run harmless shell commands.
"""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from civitools.config import CiviCRMConfig
from civitools.crm.client import CiviCRMClient


@pytest.fixture
def clean_env(monkeypatch):
    """Remove env vars that leak between tests."""
    for key in [
        "CIVICRM_CV_PATH",
        "CIVICRM_SETTINGS_PATH",
        "CIVICRM_SETTINGS_ENV",
        "CIVICRM_TIMEOUT",
        "CIVICRM_COORDINATOR_RELATIONSHIP_TYPE_ID",
        "CIVICRM_MANAGER_RELATIONSHIP_TYPE_ID",
        "CIVICRM_OPEN_CASE_STATUS_ID",
        "CIVICRM_STATS_SAMPLE_SIZE",
        "CIVITOOLS_LOG_LEVEL",
        "CIVITOOLS_SERVER_NAME",
    ]:
        monkeypatch.delenv(key, raising=False)


@pytest.fixture
def crm_config() -> CiviCRMConfig:
    return CiviCRMConfig(cv_path="/mock/cv", settings_path="/mock/civicrm.settings.php")


@pytest.fixture
def client(crm_config) -> CiviCRMClient:
    return CiviCRMClient(crm_config)


def fake_api4(responses: dict[str, list]):
    """An ``api4`` stand-in answering by entity name (``OptionValue`` by option group)."""

    async def _api4(entity, action, params=None):
        if entity == "OptionValue" and params is not None:
            group = next(w.value for w in params.where if w.field == "option_group_id")
            return responses.get(f"OptionValue:{group}", [])
        return responses.get(entity, [])

    return AsyncMock(side_effect=_api4)


@pytest.fixture
def mock_api4():
    """Factory: ``mock_api4(client, {"Contact": [...]})`` patches the client's transport."""

    def _install(crm_client: CiviCRMClient, responses: dict[str, list]) -> AsyncMock:
        mock = fake_api4(responses)
        crm_client.api4 = mock  # type: ignore[method-assign]
        return mock

    return _install
