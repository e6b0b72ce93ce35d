# /cx_connector/errors.py

from typing import Optional

# Exceptions raised across the connector. Everything derives from
# ConnectorError so callers can catch the whole family at once.


class ConnectorError(Exception):
    """Base class for all connector errors."""


class ConfigurationError(ConnectorError):
    """Raised when required connection settings are missing or inconsistent."""


class GraphFetchError(ConnectorError):
    """A remote lookup for an agent, flow, page, intent or test case failed."""

    def __init__(self, kind: str, path: str, reason: str, status_code: Optional[int] = None):
        self.kind = kind
        self.path = path
        self.reason = reason
        self.status_code = status_code
        super().__init__(f"Failed to get {kind} {path}: {reason}")


class StructuralInvariantViolation(ConnectorError):
    """Graph data breaks a structural rule, e.g. a route with two targets."""


class ExportError(ConnectorError):
    """Writing harvested utterances back to the agent failed."""


class SessionError(ConnectorError):
    """The live conversation session could not talk to the agent."""


class CircuitOpenError(ConnectorError):
    """The circuit breaker is open and blocks calls to the remote API."""
