"""
Error taxonomy for the turn-resolution engine.

Every failure the core can surface falls into one of five families:

- InputValidationError - malformed or out-of-range input to a core operation.
  Raised before any mutation happens.
- ConflictError - a commit raced with another writer, or an intervention was
  already applied. Callers reload and retry.
- NotFoundError - a referenced world, agent, faction or goal does not exist.
- ExternalUnavailableError - the narrative collaborator failed or timed out.
  The committed turn stays committed; only the narrative is pending.
- InvariantViolation - a logic defect (a bounded field left its range, a
  relationship pair was updated on one side only). Always fatal to the
  current turn and never clamped away.

Messages follow the orchestrator convention: a one-line summary, optional
detail lines, then remediation tips.
"""

from typing import Iterable, Optional, Sequence


class DemiurgeError(Exception):
    """Base class for all engine errors."""


def _compose(summary: str, details: Iterable[str] = (), tips: Sequence[str] = ()) -> str:
    lines = [summary]
    lines.extend(f"  - {detail}" for detail in details)
    if tips:
        lines.append("\nRemediation tips:")
        lines.extend(f"  - {tip}" for tip in tips)
    return "\n".join(lines)


class InputValidationError(DemiurgeError, ValueError):
    """Raised when a caller passes malformed or out-of-range input."""

    def __init__(self, message: str, *, field: Optional[str] = None) -> None:
        self.field = field
        summary = f"Invalid input for '{field}': {message}" if field else f"Invalid input: {message}"
        super().__init__(summary)


class ConflictError(DemiurgeError):
    """Raised when a commit targets a world whose turn has already moved on."""

    def __init__(
        self,
        *,
        world_id: str,
        expected_turn: Optional[int] = None,
        actual_turn: Optional[int] = None,
        reason: Optional[str] = None,
    ) -> None:
        self.world_id = world_id
        self.expected_turn = expected_turn
        self.actual_turn = actual_turn
        self.reason = reason
        details = []
        if expected_turn is not None or actual_turn is not None:
            details.append(f"expected turn {expected_turn}, stored turn {actual_turn}")
        if reason:
            details.append(reason)
        message = _compose(
            f"Conflict on world '{world_id}'.",
            details,
            ["Reload the world and retry the request"],
        )
        super().__init__(message)


class TurnInProgressError(ConflictError):
    """Raised when a turn is requested while another is in flight for the same world."""

    def __init__(self, *, world_id: str) -> None:
        super().__init__(world_id=world_id, reason="turn in progress")


class NotFoundError(DemiurgeError, LookupError):
    """Raised when a world, agent, faction or goal id is absent."""

    def __init__(self, *, kind: str, identifier: str, scope: Optional[str] = None) -> None:
        self.kind = kind
        self.identifier = identifier
        self.scope = scope
        where = f" in {scope}" if scope else ""
        super().__init__(f"{kind} '{identifier}' not found{where}")


class ExternalUnavailableError(DemiurgeError):
    """Raised when the narrative collaborator fails; the turn itself stays committed."""

    def __init__(self, *, world_id: str, turn: int, reason: str) -> None:
        self.world_id = world_id
        self.turn = turn
        self.reason = reason
        message = _compose(
            f"Narrative pending for world '{world_id}' turn {turn}: {reason}",
            tips=[
                "Simulation progress is saved; retry with TurnOrchestrator.retry_narrative()",
                "Verify LLM_PROVIDER, LLM_MODEL and the provider API key",
                "Raise NARRATIVE_TIMEOUT_SECONDS for slow providers",
            ],
        )
        super().__init__(message)


class InvariantViolation(DemiurgeError):
    """Raised when engine state breaks a declared invariant.

    Retrying the same inputs will fail again; the violation points at a defect
    in the update logic rather than at the caller.
    """

    def __init__(self, *, violations: Sequence[str], turn: Optional[int] = None) -> None:
        self.violations = list(violations)
        self.turn = turn
        where = f" at turn {turn}" if turn is not None else ""
        message = _compose(
            f"Invariant violation{where} ({len(self.violations)} issue(s)).",
            self.violations,
            [
                "The turn was aborted and nothing was committed",
                "Set DEMIURGE_STRICT=true to fail at the first bad precondition",
                "Report the world snapshot and the intervention that triggered this",
            ],
        )
        super().__init__(message)


class CapacityExceededError(DemiurgeError):
    """Raised by the memory subsystem when eviction is disabled and the store is full."""

    def __init__(self, *, agent_id: str, capacity: int) -> None:
        self.agent_id = agent_id
        self.capacity = capacity
        message = _compose(
            f"Memory store for agent '{agent_id}' is full ({capacity} records).",
            tips=["Enable eviction in MemoryPolicy or raise cognition.memory_capacity"],
        )
        super().__init__(message)
