"""Owner-field write against the CRM, guarded so a record is assigned at most once per process."""

import logging
from typing import AbstractSet, Set

from config import CRM_ENTITY_TYPE
from gateway import CrmGateway, GatewayError
from models import AssignmentOutcome

logger = logging.getLogger(__name__)


class AssignmentExecutor:
    """
    Performs the single mutation this service makes on a CRM record.

    The guard lives in memory and is lost on restart; it does not replace
    idempotency on the CRM side.
    """

    def __init__(self, gateway: CrmGateway, entity: str = CRM_ENTITY_TYPE):
        self.gateway = gateway
        self.entity = entity
        self._assigned: Set[str] = set()
        self._in_flight: Set[str] = set()

    @property
    def assigned_ids(self) -> AbstractSet[str]:
        return frozenset(self._assigned)

    def is_assigned(self, record_id: str) -> bool:
        return record_id in self._assigned or record_id in self._in_flight

    async def assign(self, record_id: str, agent_id: str) -> AssignmentOutcome:
        if self.is_assigned(record_id):
            logger.info("%s %s has already been assigned, skipping", self.entity.capitalize(), record_id)
            return AssignmentOutcome.ALREADY_ASSIGNED

        # Marked before the first await so a concurrent caller sees it
        self._in_flight.add(record_id)
        try:
            logger.info("Assigning %s %s to agent %s", self.entity, record_id, agent_id)
            try:
                body = await self.gateway.call(
                    f"crm.{self.entity}.update",
                    "POST",
                    {"id": record_id, "fields": {"ASSIGNED_BY_ID": agent_id}},
                )
            except GatewayError as e:
                logger.warning("Assigning %s %s failed: %s", self.entity, record_id, e)
                return AssignmentOutcome.REMOTE_FAILURE

            if not body.get("result"):
                logger.warning("CRM rejected assignment of %s %s: %s", self.entity, record_id, body)
                return AssignmentOutcome.REMOTE_FAILURE

            self._assigned.add(record_id)
            return AssignmentOutcome.ASSIGNED
        finally:
            self._in_flight.discard(record_id)
