"""
Issuance Engine - Call Phase State Machine.

============================================================
PURPOSE
============================================================
Tracks the phase of a single issuance or redemption call.

ISSUANCE:

    IDLE
      │
      ▼
    PRE_HOOKS_RUNNING ──► FLOWS_COMPUTED ──► EQUITY_COLLECTED
                                                   │
                                                   ▼
    IDLE ◄── SUPPLY_MINTED ◄─────────── MODULE_HOOKS_POSTING

REDEMPTION:

    IDLE
      │
      ▼
    PRE_HOOKS_RUNNING ──► SUPPLY_BURNED ──► FLOWS_COMPUTED
                                                 │
                                                 ▼
    IDLE ◄── SUPPLY_MINTED ◄── EQUITY_RETURNED ◄── MODULE_HOOKS_POSTING

    Any non-idle phase can transition to REVERTED, and REVERTED
    returns to IDLE once the call has unwound.

INVARIANTS:
- A machine handles one call at a time
- Each transition is checked against its direction's table
- All transitions are logged

============================================================
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from .errors import build_error
from .types import FlowDirection, IssuancePhase


logger = logging.getLogger(__name__)


# ============================================================
# STATE TRANSITION RULES
# ============================================================

_REVERTIBLE = {IssuancePhase.REVERTED}

ISSUANCE_TRANSITIONS: Dict[IssuancePhase, Set[IssuancePhase]] = {
    IssuancePhase.IDLE: {IssuancePhase.PRE_HOOKS_RUNNING},
    IssuancePhase.PRE_HOOKS_RUNNING: {IssuancePhase.FLOWS_COMPUTED} | _REVERTIBLE,
    IssuancePhase.FLOWS_COMPUTED: {IssuancePhase.EQUITY_COLLECTED} | _REVERTIBLE,
    IssuancePhase.EQUITY_COLLECTED: {IssuancePhase.MODULE_HOOKS_POSTING} | _REVERTIBLE,
    IssuancePhase.MODULE_HOOKS_POSTING: {IssuancePhase.SUPPLY_MINTED} | _REVERTIBLE,
    IssuancePhase.SUPPLY_MINTED: {IssuancePhase.IDLE} | _REVERTIBLE,
    IssuancePhase.REVERTED: {IssuancePhase.IDLE},
}

REDEMPTION_TRANSITIONS: Dict[IssuancePhase, Set[IssuancePhase]] = {
    IssuancePhase.IDLE: {IssuancePhase.PRE_HOOKS_RUNNING},
    IssuancePhase.PRE_HOOKS_RUNNING: {IssuancePhase.SUPPLY_BURNED} | _REVERTIBLE,
    IssuancePhase.SUPPLY_BURNED: {IssuancePhase.FLOWS_COMPUTED} | _REVERTIBLE,
    IssuancePhase.FLOWS_COMPUTED: {IssuancePhase.MODULE_HOOKS_POSTING} | _REVERTIBLE,
    IssuancePhase.MODULE_HOOKS_POSTING: {IssuancePhase.EQUITY_RETURNED} | _REVERTIBLE,
    IssuancePhase.EQUITY_RETURNED: {IssuancePhase.SUPPLY_MINTED} | _REVERTIBLE,
    IssuancePhase.SUPPLY_MINTED: {IssuancePhase.IDLE} | _REVERTIBLE,
    IssuancePhase.REVERTED: {IssuancePhase.IDLE},
}

TRANSITIONS_BY_DIRECTION: Dict[FlowDirection, Dict[IssuancePhase, Set[IssuancePhase]]] = {
    FlowDirection.ISSUE: ISSUANCE_TRANSITIONS,
    FlowDirection.REDEEM: REDEMPTION_TRANSITIONS,
}


# ============================================================
# STATE TRANSITION EVENT
# ============================================================

@dataclass
class PhaseTransitionEvent:
    """Event representing a phase transition."""

    basket_token: str
    """Basket token the call operates on."""

    direction: FlowDirection
    """Issuance or redemption."""

    from_phase: IssuancePhase
    """Previous phase."""

    to_phase: IssuancePhase
    """New phase."""

    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    """When the transition occurred."""

    reason: str = ""
    """Reason for transition."""

    details: Dict[str, Any] = field(default_factory=dict)
    """Additional details."""


# ============================================================
# STATE TRANSITION GUARD
# ============================================================

class TransitionGuard:
    """Checks transitions against a direction's table."""

    @staticmethod
    def can_transition(
        direction: FlowDirection,
        from_phase: IssuancePhase,
        to_phase: IssuancePhase,
    ) -> Tuple[bool, str]:
        """
        Check if transition is allowed.

        Args:
            direction: Issuance or redemption
            from_phase: Current phase
            to_phase: Target phase

        Returns:
            Tuple of (allowed, reason)
        """
        valid_targets = TRANSITIONS_BY_DIRECTION[direction].get(from_phase, set())
        if to_phase in valid_targets:
            return True, "Valid transition"
        return False, (
            f"Invalid {direction.value.lower()} transition: "
            f"{from_phase.value} -> {to_phase.value}"
        )


# ============================================================
# CALL STATE MACHINE
# ============================================================

class IssuanceStateMachine:
    """
    Phase tracker for the calls of one engine instance.

    Manages:
    - Transition checks
    - Reentry detection (a second call while one is in flight)
    - History and listeners
    """

    def __init__(self, max_history: int = 1000):
        self._phase = IssuancePhase.IDLE
        self._direction: Optional[FlowDirection] = None
        self._basket_token: Optional[str] = None
        self._history: List[PhaseTransitionEvent] = []
        self._max_history = max_history
        self._listeners: List[Callable[[PhaseTransitionEvent], None]] = []

    @property
    def phase(self) -> IssuancePhase:
        return self._phase

    @property
    def direction(self) -> Optional[FlowDirection]:
        return self._direction

    @property
    def history(self) -> List[PhaseTransitionEvent]:
        """Get transition history."""
        return list(self._history)

    def is_idle(self) -> bool:
        return self._phase is IssuancePhase.IDLE

    def add_listener(self, listener: Callable[[PhaseTransitionEvent], None]) -> None:
        """Add a transition listener."""
        self._listeners.append(listener)

    # --------------------------------------------------------
    # LIFECYCLE
    # --------------------------------------------------------

    def begin(self, basket_token: str, direction: FlowDirection) -> PhaseTransitionEvent:
        """
        Start a call.

        Raises:
            ReentrancyError: If a call is already in flight
        """
        if not self.is_idle():
            raise build_error(
                "REENTRANT_CALL",
                basket_token=basket_token,
                phase=self._phase.value,
            )
        self._direction = direction
        self._basket_token = basket_token
        return self.transition_to(IssuancePhase.PRE_HOOKS_RUNNING, "Call started")

    def complete(self) -> PhaseTransitionEvent:
        """Finish a call that reached SUPPLY_MINTED."""
        event = self.transition_to(IssuancePhase.IDLE, "Call completed")
        self._reset()
        return event

    def abort(self, error: BaseException) -> None:
        """Mark the in-flight call as reverted and return to IDLE."""
        if self._direction is None:
            return
        if self._phase is not IssuancePhase.REVERTED:
            self.transition_to(
                IssuancePhase.REVERTED,
                "Call reverted",
                details={"error": str(error), "error_type": type(error).__name__},
            )
        self.transition_to(IssuancePhase.IDLE, "Reverted call unwound")
        self._reset()

    def transition_to(
        self,
        target: IssuancePhase,
        reason: str = "",
        details: Optional[Dict[str, Any]] = None,
    ) -> PhaseTransitionEvent:
        """
        Transition to a new phase.

        Raises:
            ValueError: If no call is in flight or the transition is not allowed
        """
        if self._direction is None:
            raise ValueError(f"No call in flight; cannot enter {target.value}")

        allowed, validation_reason = TransitionGuard.can_transition(
            self._direction, self._phase, target,
        )
        if not allowed:
            raise ValueError(validation_reason)

        event = PhaseTransitionEvent(
            basket_token=self._basket_token,
            direction=self._direction,
            from_phase=self._phase,
            to_phase=target,
            reason=reason,
            details=details or {},
        )
        self._phase = target

        self._history.append(event)
        if len(self._history) > self._max_history:
            self._history = self._history[-self._max_history:]

        for listener in self._listeners:
            try:
                listener(event)
            except Exception as e:
                logger.error(f"Phase listener error: {e}")

        log = logger.warning if target is IssuancePhase.REVERTED else logger.info
        log(
            f"{event.direction.value} {event.basket_token}: "
            f"{event.from_phase.value} -> {event.to_phase.value} ({reason})"
        )
        return event

    def _reset(self) -> None:
        self._direction = None
        self._basket_token = None
