# agents.py

import asyncio
import logging
from typing import List, Sequence

from config import CRM_ENTITY_TYPE, CRM_NEW_STAGE, stage_field
from gateway import CrmGateway, GatewayError
from models import Agent

logger = logging.getLogger(__name__)


class AgentDirectory:
    """Online agents and their open-work counts, read fresh from the CRM on every call."""

    def __init__(self, gateway: CrmGateway, entity: str = CRM_ENTITY_TYPE, new_stage: str = CRM_NEW_STAGE):
        self.gateway = gateway
        self.entity = entity
        self.new_stage = new_stage
        self._stage_field = stage_field(entity)

    async def list_active_agents(self) -> List[Agent]:
        """Active users currently marked online. Gateway errors propagate."""
        body = await self.gateway.call("user.get", "POST", {"FILTER": {"ACTIVE": True}})
        agents = [Agent.from_crm(u) for u in body.get("result") or []]
        online = [a for a in agents if a.is_online]
        logger.info("Found %d online agents (%d active users)", len(online), len(agents))
        return online

    async def _open_work_count(self, agent: Agent) -> Agent:
        try:
            body = await self.gateway.call(
                f"crm.{self.entity}.list",
                "POST",
                {
                    "filter": {"ASSIGNED_BY_ID": agent.id, self._stage_field: self.new_stage},
                    "select": ["ID"],
                },
            )
            total = body.get("total")
            count = int(total) if total is not None else len(body.get("result") or [])
        except GatewayError as e:
            logger.warning("Count query failed for agent %s, using 0: %s", agent.id, e)
            count = 0
        return agent.model_copy(update={"open_work_count": count})

    async def with_open_work_counts(self, agents: Sequence[Agent]) -> List[Agent]:
        """Return copies of ``agents`` (same order) carrying their current open-work count."""
        if not agents:
            return []
        counted = await asyncio.gather(*(self._open_work_count(a) for a in agents))
        for a in counted:
            logger.debug("Agent %s has %d open %ss", a.display_name, a.open_work_count, self.entity)
        return list(counted)

    async def snapshot(self) -> List[Agent]:
        return await self.with_open_work_counts(await self.list_active_agents())
