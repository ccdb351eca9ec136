"""Least-loaded agent selection."""

from typing import Optional, Sequence

from models import Agent


def select_least_loaded(agents: Sequence[Agent]) -> Optional[Agent]:
    """
    Return the agent with the fewest open records, or None.

    Ties go to the earliest agent in input order. Agents without a measured
    count are skipped; if none has one, there is no selection.
    """
    best_agent = None
    best_count = None

    for agent in agents:
        count = agent.open_work_count
        if count is None:
            continue
        if best_count is None or count < best_count:
            best_count = count
            best_agent = agent

    return best_agent
