"""
Centralized configuration for civitools.

All configuration is loaded from environment variables with sensible defaults.
The CRM client never reads the environment itself: entry points build a
Config once and hand ``config.civicrm`` to ``CiviCRMClient``.

Usage:
    from civitools.config import get_config
    cfg = get_config()
    print(cfg.civicrm.cv_path)        # "cv" or $CIVICRM_CV_PATH
    print(cfg.civicrm.settings_path)  # $CIVICRM_SETTINGS_PATH
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field


@dataclass(frozen=True)
class CiviCRMConfig:
    """How to reach the CiviCRM query engine (``cv``) and how to read it."""

    cv_path: str = "cv"
    settings_path: str = ""
    settings_env: str = "CIVICRM_SETTINGS"
    timeout_seconds: float = 60.0

    # Relationship-type ids of the case roles. These match a stock CiviCase
    # install but are not looked up from the CRM; override per site.
    coordinator_relationship_type_id: int = 9
    manager_relationship_type_id: int = 10

    open_case_status_id: int = 1
    stats_sample_size: int = 1000
    all_rows_limit: int = 999999
    role_lookup_limit: int = 25

    def relationship_type_for(self, role: str) -> int:
        """Return the relationship-type id for a case role."""
        if role == "case_coordinator":
            return self.coordinator_relationship_type_id
        if role == "case_manager":
            return self.manager_relationship_type_id
        raise ValueError(f"No relationship type for role: {role!r}")


@dataclass(frozen=True)
class Config:
    """Top-level civitools configuration."""

    civicrm: CiviCRMConfig = field(default_factory=CiviCRMConfig)
    log_level: str = "INFO"
    server_name: str = "civicrm-mcp-server"


# Singleton
_config: Config | None = None


def get_config() -> Config:
    """Get or create the singleton config from environment variables."""
    global _config
    if _config is not None:
        return _config
    _config = load_config()
    return _config


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got: {raw!r}") from None


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got: {raw!r}") from None


def load_config() -> Config:
    """Load configuration from environment variables."""
    civicrm = CiviCRMConfig(
        cv_path=os.environ.get("CIVICRM_CV_PATH", "cv"),
        settings_path=os.environ.get("CIVICRM_SETTINGS_PATH", ""),
        settings_env=os.environ.get("CIVICRM_SETTINGS_ENV", "CIVICRM_SETTINGS"),
        timeout_seconds=_env_float("CIVICRM_TIMEOUT", 60.0),
        coordinator_relationship_type_id=_env_int(
            "CIVICRM_COORDINATOR_RELATIONSHIP_TYPE_ID", 9
        ),
        manager_relationship_type_id=_env_int("CIVICRM_MANAGER_RELATIONSHIP_TYPE_ID", 10),
        open_case_status_id=_env_int("CIVICRM_OPEN_CASE_STATUS_ID", 1),
        stats_sample_size=_env_int("CIVICRM_STATS_SAMPLE_SIZE", 1000),
    )

    return Config(
        civicrm=civicrm,
        log_level=os.environ.get("CIVITOOLS_LOG_LEVEL", "INFO").upper(),
        server_name=os.environ.get("CIVITOOLS_SERVER_NAME", "civicrm-mcp-server"),
    )


def reset_config() -> None:
    """Reset the singleton config (for testing)."""
    global _config
    _config = None
