# /cx_connector/crawler/validator.py

"""
Pure validation functions for crawl and export inputs.

All functions are side-effect free and return a ValidationResult instead
of raising, so callers decide whether a problem is fatal.
"""

from typing import List, Optional, TypedDict


class ValidationResult(TypedDict):
    """Result of a validation check."""
    is_valid: bool
    error_code: Optional[str]
    message: Optional[str]


def _valid() -> ValidationResult:
    return {"is_valid": True, "error_code": None, "message": None}


def validate_flow_path(agent_path: str, flow_path: Optional[str]) -> ValidationResult:
    """
    Validate that a flow path designated for focused crawling belongs to the agent.

    Args:
        agent_path: projects/<p>/locations/<l>/agents/<a>
        flow_path: full resource name of the flow

    Returns:
        ValidationResult with is_valid=True if the flow is one of the agent's flows
    """
    if not flow_path:
        return {
            "is_valid": False,
            "error_code": "EMPTY_FLOW",
            "message": "Flow to crawl cannot be empty"
        }

    prefix = f"{agent_path}/flows/"
    if not flow_path.startswith(prefix) or "/" in flow_path[len(prefix):]:
        return {
            "is_valid": False,
            "error_code": "FOREIGN_FLOW",
            "message": f"Flow '{flow_path}' is not a flow of agent '{agent_path}'"
        }

    return _valid()


def validate_utterance_record(name: str, utterances: List[str]) -> ValidationResult:
    """
    Validate an utterance list before it is written back as intent training phrases.

    Args:
        name: intent display name
        utterances: training phrases to write

    Returns:
        ValidationResult with is_valid=True if the record can be exported
    """
    if not name or not name.strip():
        return {
            "is_valid": False,
            "error_code": "EMPTY_INTENT_NAME",
            "message": "Intent name cannot be empty"
        }

    if not [u for u in utterances if u and u.strip()]:
        return {
            "is_valid": False,
            "error_code": "NO_UTTERANCES",
            "message": f"There are no user examples to write for intent '{name}'"
        }

    return _valid()
