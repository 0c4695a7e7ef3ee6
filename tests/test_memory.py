"""Tests for ImportanceDecayMemory."""

import pytest

from demiurge.config import MemoryPolicy
from demiurge.errors import CapacityExceededError, InputValidationError
from demiurge.memory import ImportanceDecayMemory
from demiurge.schemas import Agent


def make_agent(capacity: int = 50, attention: int = 7) -> Agent:
    return Agent(
        id="ada",
        name="Ada",
        cognition={"memory_capacity": capacity, "attention_span": attention},
    )


def remember(memory: ImportanceDecayMemory, agent: Agent, memory_id: str, importance: float, now: int, **fields):
    record = memory.create(
        kind=fields.pop("kind", "observation"),
        content=fields.pop("content", f"memory {memory_id}"),
        now=now,
        importance=importance,
        memory_id=memory_id,
        **fields,
    )
    return memory.record(agent, record)


def test_decay_with_zero_elapsed_is_idempotent():
    memory = ImportanceDecayMemory()
    agent = make_agent()
    remember(memory, agent, "m1", 0.8, now=1)
    remember(memory, agent, "m2", 0.3, now=2)

    memory.decay_all(agent, 0, now=5)
    first = agent.model_dump()
    memory.decay_all(agent, 0, now=5)

    assert agent.model_dump() == first


def test_decay_lowers_importance_and_forgets_at_zero():
    memory = ImportanceDecayMemory(MemoryPolicy(default_decay_rate=0.1))
    agent = make_agent()
    remember(memory, agent, "strong", 0.9, now=0)
    remember(memory, agent, "faint", 0.25, now=0)

    forgotten = memory.decay_all(agent, 3, now=3)

    assert [m.id for m in forgotten] == ["faint"]
    assert [m.id for m in agent.memories] == ["strong"]
    assert agent.memories[0].importance == pytest.approx(0.6)


def test_eviction_removes_least_important_oldest_first():
    memory = ImportanceDecayMemory()
    agent = make_agent(capacity=3)
    remember(memory, agent, "a", 0.9, now=1)
    remember(memory, agent, "b", 0.2, now=2)
    remember(memory, agent, "c", 0.5, now=3)

    evicted = remember(memory, agent, "d", 0.2, now=4)

    assert [m.id for m in evicted] == ["b"]
    assert sorted(m.id for m in agent.memories) == ["a", "c", "d"]
    assert "b" not in agent.working_memory
    assert "b" not in agent.long_term_memory


def test_full_store_raises_when_eviction_is_disabled():
    memory = ImportanceDecayMemory(MemoryPolicy(eviction_enabled=False))
    agent = make_agent(capacity=2)
    remember(memory, agent, "a", 0.5, now=1)
    remember(memory, agent, "b", 0.5, now=1)

    with pytest.raises(CapacityExceededError):
        remember(memory, agent, "c", 0.5, now=2)

    assert len(agent.memories) == 2


def test_duplicate_memory_id_is_rejected():
    memory = ImportanceDecayMemory()
    agent = make_agent()
    remember(memory, agent, "a", 0.5, now=1)

    with pytest.raises(InputValidationError):
        remember(memory, agent, "a", 0.7, now=2)


def test_negative_elapsed_is_rejected():
    memory = ImportanceDecayMemory()

    with pytest.raises(InputValidationError):
        memory.decay_all(make_agent(), -1)


def test_working_memory_keeps_top_recent_and_long_term_keeps_important():
    memory = ImportanceDecayMemory(MemoryPolicy(recency_window=5, long_term_floor=0.6))
    agent = make_agent(attention=2)
    remember(memory, agent, "ancient", 0.95, now=0)
    remember(memory, agent, "low", 0.1, now=18)
    remember(memory, agent, "mid", 0.5, now=19)
    remember(memory, agent, "high", 0.8, now=20)

    memory.decay_all(agent, 0, now=20)

    assert agent.working_memory == ["high", "mid"]
    assert agent.long_term_memory == ["ancient", "high"]


def test_equal_importance_prefers_the_more_recent_memory():
    memory = ImportanceDecayMemory()
    agent = make_agent(attention=1)
    remember(memory, agent, "older", 0.5, now=1)
    remember(memory, agent, "newer", 0.5, now=2)

    memory.decay_all(agent, 0, now=2)

    assert agent.working_memory == ["newer"]


def test_recall_matches_keywords_and_participants():
    memory = ImportanceDecayMemory()
    agent = make_agent()
    remember(memory, agent, "flood", 0.5, now=1, kind="event", content="The river flooded the fields")
    remember(memory, agent, "talk", 0.5, now=2, kind="interaction", content="Talked about nets", participants=["bram"])
    remember(memory, agent, "other", 0.9, now=3, content="A quiet evening")

    assert [m.id for m in memory.recall(agent, "river")] == ["flood"]
    assert [m.id for m in memory.involving(agent, "bram")] == ["talk"]
    assert memory.recall(agent, "")[0].id == "other"
