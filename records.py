"""Unassigned work records from the CRM."""

import logging
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from config import CRM_ENTITY_TYPE, CRM_NEW_STAGE, UNASSIGNED_OWNER_ID, stage_field
from gateway import CrmGateway
from models import WorkRecord

logger = logging.getLogger(__name__)

# Bitrix list methods return at most 50 rows per page
MAX_PAGES = 20


class WorkRecordSource:
    def __init__(self, gateway: CrmGateway, entity: str = CRM_ENTITY_TYPE, new_stage: str = CRM_NEW_STAGE):
        self.gateway = gateway
        self.entity = entity
        self.new_stage = new_stage
        self._stage_field = stage_field(entity)

    async def list_new_records(self, window_seconds: int, now: Optional[datetime] = None) -> List[WorkRecord]:
        """NEW, unassigned records created within the trailing window, oldest page first."""
        now = now or datetime.now(timezone.utc)
        created_after = (now - timedelta(seconds=window_seconds)).isoformat()
        params = {
            "filter": {
                self._stage_field: self.new_stage,
                "ASSIGNED_BY_ID": UNASSIGNED_OWNER_ID,
                ">DATE_CREATE": created_after,
            },
            "select": ["ID", "TITLE", "ASSIGNED_BY_ID", "DATE_CREATE", self._stage_field],
        }
        records: List[WorkRecord] = []
        start = 0
        for _ in range(MAX_PAGES):
            body = await self.gateway.call(f"crm.{self.entity}.list", "POST", {**params, "start": start})
            records.extend(WorkRecord.from_crm(item, self._stage_field) for item in body.get("result") or [])
            nxt = body.get("next")
            if nxt is None:
                break
            start = int(nxt)
        else:
            logger.warning("Stopped paging %s list after %d pages", self.entity, MAX_PAGES)

        # The CRM filter is authoritative, but never route a record that already has an owner
        records = [r for r in records if r.is_unassigned]
        logger.info("Found %d new %ss since %s", len(records), self.entity, created_after)
        return records
