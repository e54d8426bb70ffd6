"""
Canonical workflow types (``fleet_kernel.domain.workflow``).

Responsibility
--------------
Pure value objects for document state machines, and the static waybill
transition table.  The lifecycle service asks the table whether a status
change is allowed; it never encodes transitions inline.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``models/`` or ``services/``.

Invariants enforced
-------------------
* Transitions reference only states in ``Workflow.states``.
* ``initial_state`` is a member of ``states``.
* Terminal states have no outgoing transitions.
"""

from __future__ import annotations

from dataclasses import dataclass

from fleet_kernel.exceptions import StateTransitionError
from fleet_kernel.logging_config import get_logger

logger = get_logger("domain.workflow")


@dataclass(frozen=True)
class Guard:
    """A named precondition of a transition.

    The service that owns the transition maps ``name`` to its check and runs
    the guards in declaration order; an unknown name is a configuration
    error.
    """
    name: str
    description: str


@dataclass(frozen=True)
class Transition:
    """A valid state transition in a workflow.

    ``posts_stock=True`` marks the transition that applies stock depletion
    and consumes the reserved blank.
    """
    from_state: str
    to_state: str
    action: str
    guards: tuple[Guard, ...] = ()
    posts_stock: bool = False


@dataclass(frozen=True)
class Workflow:
    """A state machine definition for a document lifecycle."""
    name: str
    description: str
    initial_state: str
    states: tuple[str, ...]
    transitions: tuple[Transition, ...]
    terminal_states: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.initial_state not in self.states:
            raise ValueError(
                f"Workflow {self.name}: initial state {self.initial_state!r} "
                "is not a declared state"
            )
        for t in self.transitions:
            if t.from_state not in self.states or t.to_state not in self.states:
                raise ValueError(
                    f"Workflow {self.name}: transition {t.from_state}->{t.to_state} "
                    "references an undeclared state"
                )
            if t.from_state in self.terminal_states:
                raise ValueError(
                    f"Workflow {self.name}: terminal state {t.from_state!r} "
                    "has an outgoing transition"
                )

    def allowed_targets(self, from_state: str) -> frozenset[str]:
        """States reachable from ``from_state`` in one step."""
        return frozenset(
            t.to_state for t in self.transitions if t.from_state == from_state
        )

    def find_transition(self, from_state: str, to_state: str) -> Transition | None:
        for t in self.transitions:
            if t.from_state == from_state and t.to_state == to_state:
                return t
        return None

    def is_terminal(self, state: str) -> bool:
        return state in self.terminal_states

    def require_transition(
        self, entity_id: str, from_state: str, to_state: str,
    ) -> Transition:
        """Return the matching transition or raise StateTransitionError."""
        transition = self.find_transition(from_state, to_state)
        if transition is None:
            logger.warning(
                "workflow_transition_rejected",
                extra={
                    "workflow_name": self.name,
                    "entity_id": entity_id,
                    "from_state": from_state,
                    "to_state": to_state,
                },
            )
            raise StateTransitionError(entity_id, from_state, to_state)
        return transition


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

FUEL_BALANCED = Guard(
    name="fuel_balanced",
    description="Odometer ordering holds and every fuel line balances",
)

CHAIN_ORDERED = Guard(
    name="chain_ordered",
    description=(
        "Odometer start not below the vehicle's last posted end, and no earlier "
        "unposted waybill for the vehicle"
    ),
)

WITHIN_NORM = Guard(
    name="within_norm",
    description="Consumption within planned norm, or actor may override",
)


# -----------------------------------------------------------------------------
# Waybill Workflow
# -----------------------------------------------------------------------------

WAYBILL_WORKFLOW = Workflow(
    name="waybill",
    description="Waybill trip document lifecycle",
    initial_state="DRAFT",
    states=("DRAFT", "SUBMITTED", "POSTED", "CANCELLED"),
    transitions=(
        Transition("DRAFT", "SUBMITTED", action="submit", guards=(FUEL_BALANCED,)),
        Transition("DRAFT", "CANCELLED", action="cancel"),
        Transition(
            "SUBMITTED", "POSTED",
            action="post",
            guards=(FUEL_BALANCED, CHAIN_ORDERED, WITHIN_NORM),
            posts_stock=True,
        ),
        Transition("SUBMITTED", "CANCELLED", action="cancel"),
    ),
    terminal_states=("POSTED", "CANCELLED"),
)

logger.debug(
    "waybill_workflow_registered",
    extra={
        "workflow_name": WAYBILL_WORKFLOW.name,
        "state_count": len(WAYBILL_WORKFLOW.states),
        "transition_count": len(WAYBILL_WORKFLOW.transitions),
        "initial_state": WAYBILL_WORKFLOW.initial_state,
    },
)
