"""Trust scoring, risk assessment and content moderation for a marketplace."""

from __future__ import annotations

from .errors import (
    ConfigurationError,
    EvaluationError,
    InvalidTransition,
    MissingSubjectError,
    StaleRecordError,
    TrustEngineError,
)
from .service import TrustEngine

__all__ = [
    "TrustEngine",
    "TrustEngineError",
    "ConfigurationError",
    "EvaluationError",
    "InvalidTransition",
    "MissingSubjectError",
    "StaleRecordError",
]
