"""AI Agents package."""

from src.agents.ai_agents import (
    ADVICE_FALLBACK,
    AdvisorAgent,
    AssistantBusyError,
    AssistantError,
    MalformedDraftError,
    TableDraftAgent,
    extract_json,
)

__all__ = [
    "ADVICE_FALLBACK",
    "AdvisorAgent",
    "AssistantBusyError",
    "AssistantError",
    "MalformedDraftError",
    "TableDraftAgent",
    "extract_json",
]
