"""Configuration from environment."""

import os


def _int_env(name: str, default: int) -> int:
    raw = (os.environ.get(name) or "").strip()
    return int(raw) if raw else default


def _float_env(name: str, default: float) -> float:
    raw = (os.environ.get(name) or "").strip()
    return float(raw) if raw else default


REDIS_URL = os.environ.get("REDIS_URL", "redis://localhost:6379/0")
LEDGER_KEY = os.environ.get("LEDGER_KEY", "lar:assignments")

# CRM entity routed by this process: "deal" (STAGE_ID) or "lead" (STATUS_ID)
CRM_ENTITY_TYPE = os.environ.get("CRM_ENTITY_TYPE", "deal").strip().lower()
CRM_NEW_STAGE = os.environ.get("CRM_NEW_STAGE", "NEW")
CRM_MAX_RETRIES = _int_env("CRM_MAX_RETRIES", 3)
CRM_TIMEOUT = _float_env("CRM_TIMEOUT", 30.0)
UNASSIGNED_OWNER_ID = "0"

STAGE_FIELDS = {
    "deal": "STAGE_ID",
    "lead": "STATUS_ID",
}

# Polling cadence (seconds)
AGENT_STATS_INTERVAL = _int_env("AGENT_STATS_INTERVAL", 60)
ASSIGNMENT_INTERVAL = _int_env("ASSIGNMENT_INTERVAL", 60)
NEW_RECORD_WINDOW = _int_env("NEW_RECORD_WINDOW", 60)

WEBHOOK_DEAL_ADD_EVENT = "ONCRMDEALADD"


def get_crm_base_url() -> str:
    return (os.environ.get("BITRIX24_WEBHOOK_URL") or "").strip().rstrip("/")


def stage_field(entity: str) -> str:
    """CRM field holding the pipeline stage for the given entity type."""
    try:
        return STAGE_FIELDS[entity]
    except KeyError:
        raise ValueError(f"Unsupported CRM entity type: {entity!r}") from None
