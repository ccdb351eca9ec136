"""Shared fixtures: a fake CRM behind httpx.MockTransport and an in-memory Redis double."""

import asyncio
import json
from typing import Any, Dict, List, Optional, Set, Tuple

import httpx
import pytest

from engine import build_engine
from gateway import CrmGateway
from ledger import AssignmentLedger

BASE_URL = "https://crm.test/rest/1/token"


def crm_user(user_id: str, name: str, last_name: str = "", online: bool = True) -> Dict[str, Any]:
    return {"ID": user_id, "NAME": name, "LAST_NAME": last_name, "IS_ONLINE": "Y" if online else "N"}


def crm_deal(deal_id: str, title: str = "", owner: str = "0") -> Dict[str, Any]:
    return {
        "ID": deal_id,
        "TITLE": title or f"Deal {deal_id}",
        "ASSIGNED_BY_ID": owner,
        "DATE_CREATE": "2026-10-17T10:00:00+00:00",
        "STAGE_ID": "NEW",
    }


class FakeCrm:
    """Answers user.get / crm.deal.list / crm.deal.update like a small Bitrix24 portal."""

    def __init__(self, users: Optional[List[dict]] = None, counts: Optional[Dict[str, int]] = None,
                 deals: Optional[List[dict]] = None, page_size: int = 50):
        self.users = users or []
        self.counts = counts or {}
        self.deals = deals or []
        self.page_size = page_size
        self.failing_counts: Set[str] = set()
        self.failing_updates: Set[str] = set()
        self.rejected_updates: Set[str] = set()
        self.fail_users = False
        self.fail_deal_list = False
        self.calls: List[Tuple[str, dict]] = []

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def handle(self, request: httpx.Request) -> httpx.Response:
        operation = request.url.path.rsplit("/", 1)[-1]
        params = json.loads(request.content or b"{}")
        self.calls.append((operation, params))

        if operation == "user.get":
            if self.fail_users:
                return httpx.Response(503, text="Service Unavailable")
            return httpx.Response(200, json={"result": self.users, "total": len(self.users)})

        if operation == "crm.deal.list":
            flt = params.get("filter", {})
            if ">DATE_CREATE" in flt:
                if self.fail_deal_list:
                    return httpx.Response(500, json={"error": "INTERNAL", "error_description": "boom"})
                start = params.get("start", 0)
                page = self.deals[start:start + self.page_size]
                body: Dict[str, Any] = {"result": page, "total": len(self.deals)}
                if start + self.page_size < len(self.deals):
                    body["next"] = start + self.page_size
                return httpx.Response(200, json=body)
            agent_id = flt["ASSIGNED_BY_ID"]
            if agent_id in self.failing_counts:
                return httpx.Response(503, text="Service Unavailable")
            n = self.counts.get(agent_id, 0)
            return httpx.Response(200, json={"result": [{"ID": str(i)} for i in range(min(n, 50))], "total": n})

        if operation == "crm.deal.update":
            record_id = params["id"]
            if record_id in self.failing_updates:
                return httpx.Response(500, text="Internal Server Error")
            if record_id in self.rejected_updates:
                return httpx.Response(200, json={"result": False})
            return httpx.Response(200, json={"result": True})

        return httpx.Response(404, json={"error": "ERROR_METHOD_NOT_FOUND", "error_description": "Method not found!"})

    def writes(self) -> List[dict]:
        return [p for op, p in self.calls if op == "crm.deal.update"]

    def count_queries(self) -> int:
        return sum(1 for op, p in self.calls if op == "crm.deal.list" and ">DATE_CREATE" not in p.get("filter", {}))


class FakeRedis:
    """The subset of redis.asyncio.Redis the ledger uses. Every command yields once, like a network round trip."""

    def __init__(self):
        self.lists: Dict[str, List[str]] = {}

    async def rpush(self, key: str, *values: str) -> int:
        await asyncio.sleep(0)
        items = self.lists.setdefault(key, [])
        items.extend(values)
        return len(items)

    async def lrange(self, key: str, start: int, end: int) -> List[str]:
        await asyncio.sleep(0)
        items = self.lists.get(key, [])
        if start < 0:
            start = max(len(items) + start, 0)
        if end < 0:
            end = len(items) + end
        return list(items[start:end + 1])


@pytest.fixture
def crm():
    return FakeCrm(
        users=[
            crm_user("1", "Ann", "Archer"),
            crm_user("2", "Ben", "Baker"),
            crm_user("3", "Cat", "Cole"),
            crm_user("4", "Dan", "Dorsey", online=False),
        ],
        counts={"1": 2, "2": 0, "3": 5, "4": 0},
    )


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def gateway(crm, sleeps):
    async def fake_sleep(delay):
        sleeps.append(delay)

    return CrmGateway(base_url=BASE_URL, transport=crm.transport(), sleep=fake_sleep)


@pytest.fixture
def redis_client():
    return FakeRedis()


@pytest.fixture
def ledger(redis_client):
    return AssignmentLedger(redis_client, key="test:assignments")


@pytest.fixture
def engine(gateway, ledger):
    return build_engine(gateway=gateway, ledger=ledger)
