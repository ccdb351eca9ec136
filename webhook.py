"""Inbound CRM webhook: route a newly added deal synchronously."""

import logging
import time
from typing import Any, Dict, Tuple

from config import WEBHOOK_DEAL_ADD_EVENT
from engine import AssignmentEngine
from gateway import GatewayError
from models import AssignmentOutcome, WorkRecord

logger = logging.getLogger(__name__)

WebhookReply = Tuple[int, Dict[str, Any]]

_OUTCOME_REPLIES = {
    AssignmentOutcome.NO_AGENTS: (400, "No agents available"),
    AssignmentOutcome.NO_SELECTION: (400, "Could not determine least loaded agent"),
    AssignmentOutcome.ALREADY_ASSIGNED: (409, "Deal already assigned"),
    AssignmentOutcome.REMOTE_FAILURE: (500, "Failed to assign deal"),
}


def parse_deal_add(payload: Any) -> WorkRecord:
    """Extract the deal from an ONCRMDEALADD body. Raises ValueError if malformed."""
    try:
        fields = payload["data"]["FIELDS"]
        deal_id = fields["ID"]
    except (KeyError, TypeError):
        raise ValueError("missing data.FIELDS.ID") from None
    if deal_id in (None, ""):
        raise ValueError("empty data.FIELDS.ID")
    return WorkRecord(id=str(deal_id), title=fields.get("TITLE") or "")


async def assign_record_now(engine: AssignmentEngine, record: WorkRecord) -> WebhookReply:
    """Agents snapshot -> least loaded -> assign, mapped to an HTTP status and body."""
    try:
        # route() rejects a guarded record before looking at agents
        agents = [] if engine.executor.is_assigned(record.id) else await engine.directory.snapshot()
        result = await engine.route(record, agents)
    except GatewayError as e:
        logger.error("Webhook assignment of deal %s failed: %s", record.id, e)
        return 500, {"error": "Internal server error"}

    if result.succeeded:
        return 200, {"success": True, "dealId": record.id, "assignedTo": result.agent_id}

    status, message = _OUTCOME_REPLIES[result.outcome]
    body: Dict[str, Any] = {"error": message}
    if result.outcome is AssignmentOutcome.ALREADY_ASSIGNED:
        body["dealId"] = record.id
    return status, body


async def handle_crm_webhook(engine: AssignmentEngine, payload: Any) -> WebhookReply:
    event = payload.get("event") if isinstance(payload, dict) else None
    if event != WEBHOOK_DEAL_ADD_EVENT:
        logger.info("Ignoring unsupported webhook event %r", event)
        return 400, {"error": "Unsupported webhook event"}
    try:
        record = parse_deal_add(payload)
    except ValueError as e:
        logger.warning("Malformed %s webhook: %s", WEBHOOK_DEAL_ADD_EVENT, e)
        return 400, {"error": "Malformed webhook payload"}
    logger.info("Webhook %s for deal %s", event, record.id)
    return await assign_record_now(engine, record)


async def handle_manual_trigger(engine: AssignmentEngine) -> WebhookReply:
    """Smoke test: push a dummy deal through the same pipeline."""
    record = WorkRecord(id=f"TEST_{int(time.time() * 1000)}", title="Test Deal")
    logger.info("Manual trigger with dummy deal %s", record.id)
    return await assign_record_now(engine, record)
