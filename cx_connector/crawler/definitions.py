# /cx_connector/crawler/definitions.py

"""
Fixed vocabulary of the crawler, kept as pure data.

- SENTINEL_PAGES: reserved page ids that end a branch without a fetch
- DEFAULT_WELCOME_INTENT_ID: id of the agent's built-in welcome intent
- TerminationReason: why a branch stopped, and whether its conversation
  is worth keeping as a candidate
"""

from enum import Enum
from typing import Dict, Optional

# Page id (last path segment) -> display label
SENTINEL_PAGES: Dict[str, str] = {
    "END_SESSION": "End Session",
    "PREVIOUS_PAGE": "Previous Page",
    "CURRENT_PAGE": "Current Page",
    "START_PAGE": "Start Page",
    "END_FLOW": "End Flow",
    "END_FLOW_WITH_CANCELLATION": "End Flow With Cancellation",
    "END_FLOW_WITH_HUMAN_ESCALATION": "End Flow With Human Escalation",
    "END_FLOW_WITH_FAILURE": "End Flow With Failure",
}

DEFAULT_WELCOME_INTENT_ID = "00000000-0000-0000-0000-000000000000"

TRUE_CONDITION = "true"


def sentinel_label(page_path: str) -> Optional[str]:
    """Returns the label of a sentinel page path, None for real pages."""
    if "/pages/" not in page_path:
        return None
    return SENTINEL_PAGES.get(page_path.rsplit("/", 1)[-1])


def is_default_welcome_intent(intent_path: str) -> bool:
    return intent_path.endswith(f"/intents/{DEFAULT_WELCOME_INTENT_ID}")


class TerminationReason(Enum):
    ROUTE_ALREADY_USED = ("route already used", True)
    MAX_LENGTH_REACHED = ("max length reached", True)
    INTENT_WITHOUT_EXAMPLES = ("intent without examples", False)
    LONGER_THAN_SHORTEST_PATH = ("longer than shortest path to target flow", False)
    UNHANDLED_CONDITION = ("unhandled condition", True)
    NO_TARGET = ("route without target", True)
    SENTINEL_PAGE = ("sentinel page reached", True)
    PAGE_ALREADY_VISITED = ("page already visited", True)
    FLOW_ALREADY_VISITED = ("flow already visited", True)
    MAX_FLOWS_REACHED = ("max flows after entry flow reached", True)
    NO_ROUTES = ("node without transition routes", True)
    END_OF_ROUTES = ("continuation without further routes", True)

    def __init__(self, label: str, keeps_conversation: bool):
        self.label = label
        self.keeps_conversation = keeps_conversation
