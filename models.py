"""Pydantic models for agents, CRM work records, assignments and API responses."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from config import UNASSIGNED_OWNER_ID


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Agent(BaseModel):
    """A CRM user eligible to receive work records."""

    id: str
    first_name: str = ""
    last_name: str = ""
    is_online: bool = False
    open_work_count: Optional[int] = None  # None = not measured this cycle

    @field_validator("open_work_count")
    @classmethod
    def non_negative_count(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and v < 0:
            raise ValueError("open_work_count must be >= 0")
        return v

    @property
    def display_name(self) -> str:
        name = f"{self.first_name} {self.last_name}".strip()
        return name or self.id

    @classmethod
    def from_crm(cls, user: Dict[str, Any]) -> "Agent":
        return cls(
            id=str(user["ID"]),
            first_name=user.get("NAME") or "",
            last_name=user.get("LAST_NAME") or "",
            is_online=user.get("IS_ONLINE") == "Y",
        )


class WorkRecord(BaseModel):
    """A CRM lead or deal awaiting routing."""

    id: str
    title: str = ""
    created_at: Optional[str] = None
    owner_id: Optional[str] = None
    stage: Optional[str] = None

    @property
    def is_unassigned(self) -> bool:
        return not self.owner_id or self.owner_id == UNASSIGNED_OWNER_ID

    @classmethod
    def from_crm(cls, item: Dict[str, Any], stage_field: str) -> "WorkRecord":
        owner = item.get("ASSIGNED_BY_ID")
        return cls(
            id=str(item["ID"]),
            title=item.get("TITLE") or "",
            created_at=item.get("DATE_CREATE"),
            owner_id=str(owner) if owner is not None else None,
            stage=item.get(stage_field),
        )


class AssignmentOutcome(str, Enum):
    """Result of routing one record."""

    ASSIGNED = "assigned"
    ALREADY_ASSIGNED = "already_assigned"
    REMOTE_FAILURE = "remote_failure"
    NO_AGENTS = "no_agents"
    NO_SELECTION = "no_selection"


class AssignmentResult(BaseModel):
    """Outcome of one assignment attempt. Immutable."""

    model_config = ConfigDict(frozen=True)

    record_id: str
    agent_id: Optional[str] = None
    agent_name: Optional[str] = None
    outcome: AssignmentOutcome
    timestamp: datetime = Field(default_factory=utcnow)

    @property
    def succeeded(self) -> bool:
        return self.outcome is AssignmentOutcome.ASSIGNED


class LedgerEntry(BaseModel):
    """Persisted projection of a successful assignment (display/audit only)."""

    id: str
    record_id: str
    record_title: str = ""
    agent_id: str
    agent_name: str
    assigned_at: str = Field(description="ISO-8601 UTC timestamp")


class CycleReport(BaseModel):
    """Summary of one assignment-cycle iteration."""

    started_at: datetime = Field(default_factory=utcnow)
    records_seen: int = 0
    results: List[AssignmentResult] = Field(default_factory=list)
    aborted: bool = False
    error: Optional[str] = None

    @property
    def assigned(self) -> int:
        return sum(1 for r in self.results if r.succeeded)


class AgentStats(BaseModel):
    """An agent as shown on the dashboard."""

    id: str
    name: str
    open_work_count: int = 0

    @classmethod
    def from_agent(cls, agent: Agent) -> "AgentStats":
        return cls(id=agent.id, name=agent.display_name, open_work_count=agent.open_work_count or 0)


class DashboardStats(BaseModel):
    """Aggregate view for GET /stats."""

    active_agents: int
    assigned_today: int
    pending_records: int
    agents: List[AgentStats]
    recent_assignments: List[LedgerEntry]
