"""
MemoryStrategy interface for per-agent memory stores.

Memories live on the Agent record itself (`agent.memories`), so every
operation here is agent-local and synchronous: no cross-agent locking is
needed and an aborted turn discards memory changes along with the rest of the
world copy.

Two derived index sets are maintained alongside the raw records:

- working memory: the top-K most important memories formed within the
  recency window (K = `agent.cognition.attention_span`). This is the small,
  fast set the agent "attends" to.
- long-term memory: every memory at or above the importance floor,
  regardless of age. Relationship and goal lookups scan this set first.

Ordering everywhere is importance descending, then timestamp descending
(more recent wins ties), then id for full determinism.

Included implementation:
- ImportanceDecayMemory: linear importance decay, floor-based forgetting,
  capacity eviction of the least important memories (or a hard cap that
  raises CapacityExceededError when eviction is disabled).
"""

from abc import ABC, abstractmethod
from typing import Iterable, List, Optional

from .config import MemoryPolicy
from .errors import CapacityExceededError, InputValidationError
from .schemas import Agent, MemoryKind, MemoryRecord, Vector3


def _rank_key(memory: MemoryRecord):
    return (-memory.importance, -memory.timestamp, memory.id)


def _retention_key(memory: MemoryRecord):
    # Evict least important first; among equals, the older memory goes first
    return (memory.importance, memory.timestamp, memory.id)


class MemoryStrategy(ABC):
    """Abstract base class for agent memory systems."""

    @abstractmethod
    def record(self, agent: Agent, memory: MemoryRecord) -> List[MemoryRecord]:
        """Append `memory` to the agent's store.

        Returns:
            Memories evicted to make room (empty when under capacity)

        Raises:
            InputValidationError: If a memory with the same id already exists
            CapacityExceededError: If the store is full and eviction is disabled
        """

    @abstractmethod
    def decay_all(self, agent: Agent, elapsed_ticks: int, *, now: Optional[int] = None) -> List[MemoryRecord]:
        """Decay every memory by `decay_rate * elapsed_ticks` and rebuild the index sets.

        Returns:
            Memories forgotten or evicted by this call
        """

    @abstractmethod
    def recall(self, agent: Agent, query: str, limit: int = 5) -> List[MemoryRecord]:
        """Return the memories most relevant to `query`."""

    def involving(self, agent: Agent, other_id: str, limit: int = 5) -> List[MemoryRecord]:
        """Memories that list `other_id` as a participant, long-term ones first."""
        long_term = set(agent.long_term_memory)
        matches = [memory for memory in agent.memories if other_id in memory.participants]
        matches.sort(key=lambda m: (m.id not in long_term, _rank_key(m)))
        return matches[:limit]


class ImportanceDecayMemory(MemoryStrategy):
    """Importance-weighted forgetting with a working/long-term split.

    Memories lose importance linearly with elapsed ticks and are forgotten
    once they reach zero. When the store exceeds `memory_capacity`, the least
    important memories are evicted (older first on ties) unless the policy
    disables eviction, in which case `record` raises instead.
    """

    def __init__(self, policy: Optional[MemoryPolicy] = None):
        self.policy = policy or MemoryPolicy()

    def create(
        self,
        *,
        kind: MemoryKind,
        content: str,
        now: int,
        importance: float,
        participants: Iterable[str] = (),
        emotional_impact: float = 0.0,
        decay_rate: Optional[float] = None,
        location: Optional[Vector3] = None,
        tags: Iterable[str] = (),
        memory_id: Optional[str] = None,
    ) -> MemoryRecord:
        """Build a memory using the policy's default decay rate."""
        extra = {"id": memory_id} if memory_id else {}
        return MemoryRecord(
            **extra,
            timestamp=now,
            kind=kind,
            content=content,
            participants=list(participants),
            emotional_impact=max(-1.0, min(1.0, emotional_impact)),
            importance=max(0.0, importance),
            decay_rate=self.policy.default_decay_rate if decay_rate is None else decay_rate,
            location=location,
            tags=list(tags),
        )

    def record(self, agent: Agent, memory: MemoryRecord) -> List[MemoryRecord]:
        if agent.find_memory(memory.id) is not None:
            raise InputValidationError(f"memory '{memory.id}' already recorded", field="memory.id")

        capacity = agent.cognition.memory_capacity
        if len(agent.memories) >= capacity and not self.policy.eviction_enabled:
            raise CapacityExceededError(agent_id=agent.id, capacity=capacity)

        agent.memories.append(memory)
        evicted = self._evict_over_capacity(agent)
        self.reindex(agent, now=self._latest(agent, memory.timestamp))
        return evicted

    def decay_all(self, agent: Agent, elapsed_ticks: int, *, now: Optional[int] = None) -> List[MemoryRecord]:
        if elapsed_ticks < 0:
            raise InputValidationError("elapsed ticks cannot be negative", field="elapsed_ticks")

        for memory in agent.memories:
            memory.importance = max(0.0, memory.importance - memory.decay_rate * elapsed_ticks)

        forgotten = [memory for memory in agent.memories if memory.importance <= 0]
        agent.memories = [memory for memory in agent.memories if memory.importance > 0]
        forgotten.extend(self._evict_over_capacity(agent))

        self.reindex(agent, now=now if now is not None else self._latest(agent, 0))
        return forgotten

    def reindex(self, agent: Agent, *, now: int) -> None:
        """Rebuild the working and long-term index sets."""
        ranked = sorted(agent.memories, key=_rank_key)
        window = self.policy.recency_window
        recent = [memory.id for memory in ranked if now - memory.timestamp <= window]
        agent.working_memory = recent[: agent.cognition.attention_span]
        agent.long_term_memory = [
            memory.id for memory in ranked if memory.importance >= self.policy.long_term_floor
        ]

    def recall(self, agent: Agent, query: str, limit: int = 5) -> List[MemoryRecord]:
        """Keyword recall blended with importance and recency.

        Scoring per memory: +2 per query term found in content, +1 per term
        found in tags or participants, plus importance and a recency boost.
        Memories with no keyword hit are only returned when the query is empty.
        """
        if not agent.memories:
            return []

        terms = [term for term in query.lower().split() if term]
        latest = self._latest(agent, 0)
        scored = []
        for memory in agent.memories:
            content = memory.content.lower()
            labels = " ".join(memory.tags + memory.participants).lower()
            keyword = sum(2 for term in terms if term in content) + sum(1 for term in terms if term in labels)
            if terms and keyword == 0:
                continue
            recency = 1.0 / (1 + max(0, latest - memory.timestamp))
            scored.append((keyword + memory.importance + recency, memory))

        scored.sort(key=lambda pair: (-pair[0],) + _rank_key(pair[1]))
        return [memory for _, memory in scored[:limit]]

    def _evict_over_capacity(self, agent: Agent) -> List[MemoryRecord]:
        overflow = len(agent.memories) - agent.cognition.memory_capacity
        if overflow <= 0:
            return []
        victims = sorted(agent.memories, key=_retention_key)[:overflow]
        victim_ids = {memory.id for memory in victims}
        agent.memories = [memory for memory in agent.memories if memory.id not in victim_ids]
        return victims

    @staticmethod
    def _latest(agent: Agent, default: int) -> int:
        return max((memory.timestamp for memory in agent.memories), default=default)
