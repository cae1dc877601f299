"""
Canonical workflow types (``inventory_kernel.domain.workflow``).

Responsibility
--------------
Pure value objects for lifecycle state machines.  A ``Workflow`` declares
its states and the ``Transition`` each named action performs from a given
state; services ask the workflow whether an action is allowed instead of
hand-coding status checks.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants enforced
-------------------
* Transitions reference only states in ``Workflow.states``.
* ``initial_state`` is a member of ``states``.
* Terminal states have no outgoing transitions.
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
    """A valid state transition in a workflow."""
    from_state: str
    to_state: str
    action: str
    guard: Guard | None = None


@dataclass(frozen=True)
class Workflow:
    """A state machine definition for a document lifecycle.

    Contract: frozen; ``transitions`` reference only states in ``states``.
    """
    name: str
    description: str
    initial_state: str
    states: tuple[str, ...]
    transitions: tuple[Transition, ...]
    terminal_states: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.initial_state not in self.states:
            raise ValueError(
                f"Workflow {self.name}: initial state '{self.initial_state}' "
                "is not a declared state"
            )
        for t in self.transitions:
            if t.from_state not in self.states or t.to_state not in self.states:
                raise ValueError(
                    f"Workflow {self.name}: transition {t.action} "
                    f"{t.from_state}->{t.to_state} references an unknown state"
                )
            if t.from_state in self.terminal_states:
                raise ValueError(
                    f"Workflow {self.name}: terminal state '{t.from_state}' "
                    f"has outgoing transition {t.action}"
                )

    def transitions_for(self, state: str, action: str) -> tuple[Transition, ...]:
        """All transitions for ``action`` out of ``state`` (may be empty)."""
        return tuple(
            t for t in self.transitions
            if t.from_state == state and t.action == action
        )

    def allows(self, state: str, action: str) -> bool:
        return bool(self.transitions_for(state, action))

    def target_states(self, state: str, action: str) -> frozenset[str]:
        return frozenset(t.to_state for t in self.transitions_for(state, action))

    def actions_from(self, state: str) -> tuple[str, ...]:
        seen: dict[str, None] = {}
        for t in self.transitions:
            if t.from_state == state:
                seen.setdefault(t.action, None)
        return tuple(seen)

    def is_terminal(self, state: str) -> bool:
        return state in self.terminal_states
