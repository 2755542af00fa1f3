from __future__ import annotations
"""Finite state machine utility for enforcing allowed status transitions.

Usage:
    from marina.utils.fsm import TransitionValidator
    REPAIR_FSM = TransitionValidator({
        'pending': {'assigned'},
        'assigned': {'completed'},
        'completed': set(),
    })
    REPAIR_FSM.assert_can_transition(current_status, target_status)

States with no outgoing edges are terminal. Leaving one raises AlreadyTerminal;
an unknown target raises ValidationError, as does an edge missing from the graph.
"""
from typing import Dict, Set
from marina.errors import AlreadyTerminal, ValidationError

class TransitionValidator:
    def __init__(self, graph: Dict[str, Set[str]], field_name: str = 'status'):
        self.graph = graph
        self.field_name = field_name

    @property
    def states(self) -> Set[str]:
        return set(self.graph)

    def is_terminal(self, state: str) -> bool:
        return not self.graph.get(state)

    def assert_can_transition(self, current: str, target: str):
        if not isinstance(target, str) or target not in self.graph:
            raise ValidationError(f"{self.field_name} invalid: {target}")
        if self.is_terminal(current):
            raise AlreadyTerminal(f"{self.field_name} {current} is terminal")
        if target not in self.graph[current]:
            raise ValidationError(f"Invalid {self.field_name} transition {current} -> {target}")
        return True

__all__ = ['TransitionValidator']
