"""Per-document indexing state machine."""

from __future__ import annotations

from enum import Enum


class IndexState(str, Enum):
    """Lifecycle of a single document within the indexing pipeline."""

    PENDING = "pending"
    CHUNKING = "chunking"
    EMBEDDING = "embedding"
    PERSISTING = "persisting"
    INDEXED = "indexed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (IndexState.INDEXED, IndexState.FAILED)

    def can_transition_to(self, target: "IndexState") -> bool:
        return target in _TRANSITIONS[self]

    def transition(self, target: "IndexState") -> "IndexState":
        """Validate and return the next state.

        Raises:
            ValueError: If the transition is not allowed
        """
        if not self.can_transition_to(target):
            raise ValueError(f"Illegal index state transition: {self.value} -> {target.value}")
        return target


_TRANSITIONS: dict[IndexState, frozenset[IndexState]] = {
    IndexState.PENDING: frozenset({IndexState.CHUNKING, IndexState.INDEXED, IndexState.FAILED}),
    IndexState.CHUNKING: frozenset({IndexState.EMBEDDING, IndexState.PERSISTING, IndexState.FAILED}),
    IndexState.EMBEDDING: frozenset({IndexState.PERSISTING, IndexState.FAILED}),
    IndexState.PERSISTING: frozenset({IndexState.INDEXED, IndexState.FAILED}),
    # Terminal states may start a new run.
    IndexState.INDEXED: frozenset({IndexState.PENDING}),
    IndexState.FAILED: frozenset({IndexState.PENDING}),
}
