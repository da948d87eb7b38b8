from __future__ import annotations


class TrustEngineError(Exception):
    """Base error for the trust & safety engine."""


class ConfigurationError(TrustEngineError):
    """Raised when a metric, rule or table definition is malformed."""


class MissingSubjectError(TrustEngineError):
    """Raised when a subject is wholly unknown to the repository."""

    def __init__(self, subject_id: str) -> None:
        super().__init__(f"unknown subject: {subject_id}")
        self.subject_id = subject_id


class InvalidTransition(TrustEngineError):
    """Raised when a state machine has no transition for (status, event)."""

    def __init__(self, machine: str, status: str, event: str) -> None:
        super().__init__(f"{machine}: no transition from {status!r} on {event!r}")
        self.machine = machine
        self.status = status
        self.event = event


class EvaluationError(TrustEngineError):
    """Raised when a single rule condition cannot be evaluated."""


class StaleRecordError(TrustEngineError):
    """Raised by writers when the stored version no longer matches."""

    def __init__(self, kind: str, key: str, expected: int, actual: int) -> None:
        super().__init__(f"{kind} {key}: expected version {expected}, found {actual}")
        self.kind = kind
        self.key = key
        self.expected = expected
        self.actual = actual


__all__ = [
    "TrustEngineError",
    "ConfigurationError",
    "MissingSubjectError",
    "InvalidTransition",
    "EvaluationError",
    "StaleRecordError",
]
