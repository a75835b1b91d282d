"""
Canonical workflow types (``pharmacy_kernel.domain.workflow``).

Responsibility
--------------
Pure value objects for workflow state machines, so that Guard, Transition
and Workflow are defined once and every lifecycle table (order status,
payment status) is expressed with them.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``services/``, or outer layers.

Invariants enforced
-------------------
* Transitions reference only states in ``Workflow.states``.
* ``initial_state`` is a member of ``states``.
* ``terminal_states`` have no outgoing transitions.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Guard:
    """A condition that must be satisfied before a transition fires.

    Contract: frozen, descriptive only.
    Non-goals: does not evaluate the condition -- the owning service does.
    """
    name: str
    description: str


@dataclass(frozen=True)
class Transition:
    """A valid state transition in a workflow.

    Contract: frozen.  ``restocks=True`` marks a transition that returns
    every reserved unit of the order to the inventory ledger.
    """
    from_state: str
    to_state: str
    action: str
    guard: Guard | None = None
    restocks: bool = False


@dataclass(frozen=True)
class Workflow:
    """A state machine definition for a document lifecycle.

    Contract: frozen; ``transitions`` reference only states in ``states``.
    Guarantees: ``initial_state`` is a member of ``states``;
    ``terminal_states`` have no outgoing transitions.
    """
    name: str
    description: str
    initial_state: str
    states: tuple[str, ...]
    transitions: tuple[Transition, ...]
    terminal_states: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        known = set(self.states)
        if self.initial_state not in known:
            raise ValueError(
                f"Workflow {self.name}: initial state {self.initial_state!r} "
                "is not a declared state"
            )
        for t in self.transitions:
            if t.from_state not in known or t.to_state not in known:
                raise ValueError(
                    f"Workflow {self.name}: transition {t.action!r} "
                    f"references an undeclared state"
                )
            if t.from_state in self.terminal_states:
                raise ValueError(
                    f"Workflow {self.name}: terminal state {t.from_state!r} "
                    "has an outgoing transition"
                )

    def find(self, from_state: str, to_state: str) -> Transition | None:
        """Return the transition between two states, if declared."""
        for t in self.transitions:
            if t.from_state == from_state and t.to_state == to_state:
                return t
        return None

    def targets(self, from_state: str) -> frozenset[str]:
        """All states reachable in one step from ``from_state``."""
        return frozenset(
            t.to_state for t in self.transitions if t.from_state == from_state
        )
