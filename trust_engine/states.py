"""Lifecycle state machines for moderation, dispute and verification records."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, Mapping, Optional

from .errors import InvalidTransition
from .types import AnyStatus, DisputeStatus, EntityKind, ModerationStatus, VerificationStatus

Guard = Callable[[Optional[datetime], Optional[datetime]], bool]


@dataclass(slots=True, frozen=True)
class StateMachine:
    name: str
    status_type: type[Enum]
    transitions: Mapping[tuple[Enum, str], Enum]
    guards: Mapping[tuple[Enum, str], Guard]

    def coerce(self, status: AnyStatus | str) -> Enum:
        if isinstance(status, self.status_type):
            return status
        if isinstance(status, Enum):
            raise InvalidTransition(self.name, str(status.value), "<coerce>")
        try:
            return self.status_type(status)
        except ValueError:
            raise InvalidTransition(self.name, str(status), "<coerce>") from None

    def events_from(self, status: AnyStatus | str) -> list[str]:
        current = self.coerce(status)
        return [event for (state, event) in self.transitions if state is current]

    def next_status(
        self,
        status: AnyStatus | str,
        event: str,
        *,
        now: Optional[datetime] = None,
        expires_at: Optional[datetime] = None,
    ) -> Enum:
        current = self.coerce(status)
        key = (current, event)
        target = self.transitions.get(key)
        if target is None:
            raise InvalidTransition(self.name, current.value, event)
        guard = self.guards.get(key)
        if guard is not None and not guard(now, expires_at):
            raise InvalidTransition(self.name, current.value, event)
        return target


def _expiry_reached(now: Optional[datetime], expires_at: Optional[datetime]) -> bool:
    return now is not None and expires_at is not None and now >= expires_at


_M = ModerationStatus
MODERATION = StateMachine(
    name="moderation",
    status_type=ModerationStatus,
    transitions={
        (_M.PENDING, "auto_approve"): _M.AUTO_APPROVED,
        (_M.PENDING, "queue_for_review"): _M.UNDER_REVIEW,
        (_M.PENDING, "auto_reject"): _M.REJECTED,
        (_M.PENDING, "flag"): _M.UNDER_REVIEW,
        (_M.AUTO_APPROVED, "flag"): _M.UNDER_REVIEW,
        (_M.AUTO_APPROVED, "approve"): _M.APPROVED,
        (_M.AUTO_APPROVED, "reject"): _M.REJECTED,
        (_M.AUTO_APPROVED, "escalate"): _M.ESCALATED,
        (_M.UNDER_REVIEW, "approve"): _M.APPROVED,
        (_M.UNDER_REVIEW, "reject"): _M.REJECTED,
        (_M.UNDER_REVIEW, "escalate"): _M.ESCALATED,
        (_M.ESCALATED, "approve"): _M.APPROVED,
        (_M.ESCALATED, "reject"): _M.REJECTED,
        # only explicit way out of a human decision
        (_M.APPROVED, "reopen"): _M.UNDER_REVIEW,
    },
    guards={},
)

_D = DisputeStatus
DISPUTE = StateMachine(
    name="dispute",
    status_type=DisputeStatus,
    transitions={
        (_D.SUBMITTED, "assign"): _D.UNDER_REVIEW,
        (_D.UNDER_REVIEW, "investigate"): _D.INVESTIGATION,
        (_D.UNDER_REVIEW, "mediate"): _D.MEDIATION,
        (_D.UNDER_REVIEW, "escalate"): _D.ESCALATED,
        (_D.INVESTIGATION, "resolve"): _D.RESOLVED,
        (_D.INVESTIGATION, "escalate"): _D.ESCALATED,
        (_D.MEDIATION, "resolve"): _D.RESOLVED,
        (_D.MEDIATION, "escalate"): _D.ESCALATED,
        (_D.RESOLVED, "close"): _D.CLOSED,
        (_D.RESOLVED, "appeal"): _D.APPEALED,
        (_D.ESCALATED, "close"): _D.CLOSED,
        (_D.ESCALATED, "appeal"): _D.APPEALED,
        (_D.ESCALATED, "assign"): _D.UNDER_REVIEW,
        (_D.APPEALED, "reopen"): _D.UNDER_REVIEW,
    },
    guards={},
)

_V = VerificationStatus
VERIFICATION = StateMachine(
    name="verification",
    status_type=VerificationStatus,
    transitions={
        (_V.PENDING, "start_review"): _V.UNDER_REVIEW,
        (_V.UNDER_REVIEW, "approve"): _V.APPROVED,
        (_V.UNDER_REVIEW, "reject"): _V.REJECTED,
        (_V.APPROVED, "expire"): _V.EXPIRED,
    },
    guards={(_V.APPROVED, "expire"): _expiry_reached},
)

MACHINES: dict[EntityKind, StateMachine] = {
    EntityKind.MODERATION: MODERATION,
    EntityKind.DISPUTE: DISPUTE,
    EntityKind.VERIFICATION: VERIFICATION,
}


def machine_for(kind: EntityKind | str) -> StateMachine:
    return MACHINES[EntityKind(kind)]


def next_status(
    kind: EntityKind | str,
    status: AnyStatus | str,
    event: str,
    *,
    now: Optional[datetime] = None,
    expires_at: Optional[datetime] = None,
) -> Enum:
    """Apply ``event`` to ``status``; undefined pairs raise :class:`InvalidTransition`."""

    return machine_for(kind).next_status(status, event, now=now, expires_at=expires_at)


def require(kind: EntityKind | str, status: AnyStatus | str, target: AnyStatus | str) -> str:
    """Return the event that moves ``status`` to ``target``, or raise InvalidTransition."""

    machine = machine_for(kind)
    current = machine.coerce(status)
    wanted = machine.coerce(target)
    for (state, event), result in machine.transitions.items():
        if state is current and result is wanted:
            return event
    raise InvalidTransition(machine.name, current.value, f"-> {wanted.value}")


__all__ = [
    "StateMachine",
    "MODERATION",
    "DISPUTE",
    "VERIFICATION",
    "MACHINES",
    "machine_for",
    "next_status",
    "require",
]
