"""
Assignment engine: routes one work record to the least-loaded agent.

Shared by the polling orchestrator and the inbound webhook, so both paths go
through one executor and one dedup guard.
"""

import inspect
import logging
from typing import Any, Callable, Iterable, List, Optional

from redis.exceptions import RedisError

from agents import AgentDirectory
from balancer import select_least_loaded
from executor import AssignmentExecutor
from gateway import CrmGateway
from ledger import AssignmentLedger
from models import Agent, AssignmentOutcome, AssignmentResult, WorkRecord
from records import WorkRecordSource

logger = logging.getLogger(__name__)

Observer = Callable[[AssignmentResult], Any]


class AssignmentEngine:
    def __init__(
        self,
        gateway: CrmGateway,
        directory: AgentDirectory,
        records: WorkRecordSource,
        executor: AssignmentExecutor,
        ledger: AssignmentLedger,
        observers: Iterable[Observer] = (),
    ):
        self.gateway = gateway
        self.directory = directory
        self.records = records
        self.executor = executor
        self.ledger = ledger
        self._observers: List[Observer] = list(observers)

    def add_observer(self, callback: Observer) -> None:
        """Register a sync or async callable invoked with each successful assignment."""
        self._observers.append(callback)

    async def route(self, record: WorkRecord, agents: List[Agent]) -> AssignmentResult:
        """
        Assign ``record`` to the least-loaded agent in ``agents``.

        On success the chosen agent's open_work_count is bumped in place, so the
        next record routed against the same list sees the new load before the
        CRM count does.
        """
        if self.executor.is_assigned(record.id):
            logger.info("Record %s already assigned in this process, skipping", record.id)
            return AssignmentResult(record_id=record.id, outcome=AssignmentOutcome.ALREADY_ASSIGNED)
        if not agents:
            logger.warning("No agents available for record %s", record.id)
            return AssignmentResult(record_id=record.id, outcome=AssignmentOutcome.NO_AGENTS)

        agent = select_least_loaded(agents)
        if agent is None:
            logger.warning("Could not determine least loaded agent for record %s", record.id)
            return AssignmentResult(record_id=record.id, outcome=AssignmentOutcome.NO_SELECTION)

        outcome = await self.executor.assign(record.id, agent.id)
        result = AssignmentResult(
            record_id=record.id,
            agent_id=agent.id,
            agent_name=agent.display_name,
            outcome=outcome,
        )
        if not result.succeeded:
            return result

        agent.open_work_count = (agent.open_work_count or 0) + 1
        logger.info("Assigned record %s to %s (%s)", record.id, agent.display_name, agent.id)
        await self._publish(result, record)
        return result

    async def _publish(self, result: AssignmentResult, record: WorkRecord) -> None:
        try:
            await self.ledger.record(result, record.title)
        except RedisError as e:
            logger.warning("Ledger append failed for record %s: %s", record.id, e)
        for observer in self._observers:
            try:
                ret = observer(result)
                if inspect.isawaitable(ret):
                    await ret
            except Exception:
                logger.exception("Assignment observer failed for record %s", record.id)


def build_engine(
    gateway: Optional[CrmGateway] = None,
    ledger: Optional[AssignmentLedger] = None,
) -> AssignmentEngine:
    """Wire an engine from config defaults."""
    gateway = gateway or CrmGateway()
    return AssignmentEngine(
        gateway=gateway,
        directory=AgentDirectory(gateway),
        records=WorkRecordSource(gateway),
        executor=AssignmentExecutor(gateway),
        ledger=ledger or AssignmentLedger(),
    )
