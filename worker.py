"""
Polling orchestrator: agent-stats and assignment cycles on independent timers.
Run: python worker.py
"""

import asyncio
import logging
import os
from typing import List, Optional

# Load .env from project root (same dir as this file) before any config imports
from dotenv import load_dotenv

_env_path = os.path.join(os.path.dirname(os.path.abspath(__file__)), ".env")
load_dotenv(_env_path)

from config import AGENT_STATS_INTERVAL, ASSIGNMENT_INTERVAL, NEW_RECORD_WINDOW
from engine import AssignmentEngine
from gateway import GatewayError
from models import Agent, CycleReport, WorkRecord

logger = logging.getLogger(__name__)


class PollingOrchestrator:
    """
    Owns the published agent snapshot and drives the assignment cycle.

    Only the assignment cycle mutates optimistic counts (on its own copy of the
    agents); the stats cycle replaces the published snapshot wholesale.
    """

    def __init__(
        self,
        engine: AssignmentEngine,
        agent_stats_interval: float = AGENT_STATS_INTERVAL,
        assignment_interval: float = ASSIGNMENT_INTERVAL,
        record_window: int = NEW_RECORD_WINDOW,
    ):
        self.engine = engine
        self.agent_stats_interval = agent_stats_interval
        self.assignment_interval = assignment_interval
        self.record_window = record_window

        self.agent_snapshot: List[Agent] = []
        self.pending_records: List[WorkRecord] = []
        self.last_report: Optional[CycleReport] = None

        self._assignment_lock = asyncio.Lock()
        self._tasks: List[asyncio.Task] = []
        # bumped by every completed stats refresh
        self._snapshot_generation = 0

    async def refresh_agent_stats(self) -> List[Agent]:
        agents = await self.engine.directory.snapshot()
        self.agent_snapshot = agents
        self._snapshot_generation += 1
        return agents

    async def run_assignment_cycle(self) -> Optional[CycleReport]:
        """One assignment pass. Returns None if a pass is already running."""
        if self._assignment_lock.locked():
            logger.info("Assignment cycle still running, skipping this tick")
            return None
        async with self._assignment_lock:
            report = await self._assign_new_records()
            self.last_report = report
            return report

    async def _assign_new_records(self) -> CycleReport:
        report = CycleReport()
        try:
            records = await self.engine.records.list_new_records(self.record_window)
        except GatewayError as e:
            logger.exception("Assignment cycle aborted, could not list new records: %s", e)
            report.aborted, report.error = True, str(e)
            return report

        self.pending_records = records
        report.records_seen = len(records)
        if not records:
            return report

        try:
            agents = await self.engine.directory.snapshot()
        except GatewayError as e:
            logger.exception("Assignment cycle aborted, could not load agents: %s", e)
            report.aborted, report.error = True, str(e)
            return report
        generation = self._snapshot_generation

        for record in records:
            result = await self.engine.route(record, agents)
            report.results.append(result)

        if agents and generation == self._snapshot_generation:
            self.agent_snapshot = agents
        elif agents:
            logger.debug("Agent stats refreshed during the cycle, keeping the newer snapshot")
        assigned_ids = {r.record_id for r in report.results if r.succeeded}
        self.pending_records = [r for r in records if r.id not in assigned_ids]
        logger.info("Assignment cycle done: %d/%d records assigned", report.assigned, len(records))
        return report

    async def _every(self, name: str, interval: float, fn) -> None:
        logger.info("%s cycle started (every %ss)", name, interval)
        while True:
            try:
                await fn()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.exception("%s cycle error: %s", name, e)
            await asyncio.sleep(interval)

    def start(self) -> None:
        if self._tasks:
            logger.warning("Orchestrator already running")
            return
        loop = asyncio.get_running_loop()
        self._tasks = [
            loop.create_task(self._every("Agent stats", self.agent_stats_interval, self.refresh_agent_stats)),
            loop.create_task(self._every("Assignment", self.assignment_interval, self.run_assignment_cycle)),
        ]

    async def stop(self) -> None:
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("Orchestrator stopped")


def main() -> None:
    import uvicorn

    from app import create_app

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
    from config import get_crm_base_url
    if get_crm_base_url():
        logger.info("CRM webhook URL: configured")
    else:
        logger.warning("CRM webhook URL: not set (set BITRIX24_WEBHOOK_URL in .env)")
    uvicorn.run(
        create_app(),
        host=os.environ.get("HOST", "0.0.0.0"),
        port=int(os.environ.get("PORT", "8000")),
    )


if __name__ == "__main__":
    main()
