"""Tests covering the turn orchestrator end to end with the in-memory backend."""

import asyncio

import pytest

from demiurge.config import SimulationTuning
from demiurge.decay import NeedDecayEngine
from demiurge.errors import (
    ConflictError,
    ExternalUnavailableError,
    InputValidationError,
    InvariantViolation,
    NotFoundError,
    TurnInProgressError,
)
from demiurge.narrative import FallbackNarrativeGenerator, NarrativeGenerator
from demiurge.orchestrator import TurnOrchestrator, TurnPhase, describe_result, merge_changes
from demiurge.persistence import InMemoryPersistence
from demiurge.schemas import (
    AdvancedFaction,
    Agent,
    Choice,
    FactionChange,
    Goal,
    GoalUpdate,
    InteractionEvent,
    Intervention,
    LegacyFaction,
    NarrativePayload,
    WorldState,
    WorldStateChanges,
)


def make_world(turn: int = 0, **overrides) -> WorldState:
    agents = overrides.pop(
        "agents",
        {
            "ada": Agent(id="ada", name="Ada", position={"x": 0, "y": 0}),
            "bram": Agent(id="bram", name="Bram", position={"x": 50, "y": 0}),
        },
    )
    return WorldState(
        id="valley",
        turn=turn,
        seed=11,
        agents=agents,
        factions=[
            LegacyFaction(name="Alpha", wealth=15, military=60, population=2000),
            AdvancedFaction(name="Beta", population=3000),
        ],
        **overrides,
    )


def make_orchestrator(**overrides) -> TurnOrchestrator:
    overrides.setdefault("persistence", InMemoryPersistence())
    overrides.setdefault("narrator", FallbackNarrativeGenerator())
    overrides.setdefault("tuning", SimulationTuning())
    return TurnOrchestrator(**overrides)


def wealth_cut(amount: float, **fields) -> Intervention:
    return Intervention(
        decision=f"Take {amount} wealth from Alpha",
        consequences=WorldStateChanges(faction_changes=[FactionChange(faction_name="Alpha", wealth_delta=-amount)]),
        **fields,
    )


class SlowCommitPersistence(InMemoryPersistence):
    """Yields inside commit so a second request can arrive mid-turn."""

    async def commit_world(self, world_id, world, *, expected_turn):
        await asyncio.sleep(0.01)
        await super().commit_world(world_id, world, expected_turn=expected_turn)


class CorruptingDecay(NeedDecayEngine):
    """Leaves a bounded need out of range after ticking."""

    def tick(self, agent, environment, *, now, elapsed=1):
        super().tick(agent, environment, now=now, elapsed=elapsed)
        if agent.id == "bram":
            agent.physical_needs.hunger = 1.5
        return agent


class FailingNarrator(NarrativeGenerator):
    def __init__(self):
        self.calls = 0

    async def generate(self, projection):
        self.calls += 1
        raise ExternalUnavailableError(world_id=projection.world_id, turn=projection.turn, reason="timed out")


class SuggestingNarrator(NarrativeGenerator):
    def __init__(self, changes: WorldStateChanges):
        self.changes = changes

    async def generate(self, projection):
        return NarrativePayload(
            narrative="The clans argue over the harvest.",
            choices=[Choice(id="observe", text="Watch")],
            world_state_changes=self.changes,
        )


@pytest.mark.asyncio
async def test_intervention_applies_once_and_needs_decay_one_tick():
    orchestrator = make_orchestrator()
    await orchestrator.create_world(make_world(turn=3))

    result = await orchestrator.advance_turn("valley", wealth_cut(20, expected_turn=3))

    stored = await orchestrator.persistence.load_world("valley")
    assert stored.turn == 4
    assert result.world.turn == 4
    assert stored.get_faction("Alpha").wealth == 0
    assert stored.get_faction("Alpha").military == 60

    ada = stored.agents["ada"]
    assert ada.physical_needs.hunger == pytest.approx(0.76)
    assert ada.physical_needs.thirst == pytest.approx(0.74)
    assert ada.physical_needs.fatigue == pytest.approx(0.77)
    assert ada.social_needs.companionship == pytest.approx(0.68)

    assert result.delta.turn_from == 3
    assert result.delta.turn_to == 4
    assert result.delta.faction_scores["Alpha"].change < 0
    assert result.delta.applied_interventions == [stored.intervention_log[4].intervention_id]
    assert orchestrator.phase("valley") is TurnPhase.IDLE


@pytest.mark.asyncio
async def test_concurrent_request_for_same_world_is_rejected():
    orchestrator = make_orchestrator(persistence=SlowCommitPersistence())
    await orchestrator.create_world(make_world(turn=3))

    outcomes = await asyncio.gather(
        orchestrator.advance_turn("valley"),
        orchestrator.advance_turn("valley"),
        return_exceptions=True,
    )

    rejected = [item for item in outcomes if isinstance(item, TurnInProgressError)]
    assert len(rejected) == 1
    assert isinstance(rejected[0], ConflictError)
    assert (await orchestrator.persistence.load_world("valley")).turn == 4


@pytest.mark.asyncio
async def test_stale_expected_turn_is_a_conflict():
    orchestrator = make_orchestrator()
    await orchestrator.create_world(make_world(turn=3))

    with pytest.raises(ConflictError):
        await orchestrator.advance_turn("valley", wealth_cut(5, expected_turn=2))

    assert (await orchestrator.persistence.load_world("valley")).turn == 3


@pytest.mark.asyncio
async def test_repeated_intervention_id_is_a_conflict():
    orchestrator = make_orchestrator()
    await orchestrator.create_world(make_world())

    await orchestrator.advance_turn("valley", wealth_cut(5, id="flood"))
    with pytest.raises(ConflictError):
        await orchestrator.advance_turn("valley", wealth_cut(5, id="flood"))

    stored = await orchestrator.persistence.load_world("valley")
    assert stored.turn == 1
    assert stored.get_faction("Alpha").wealth == 10


@pytest.mark.asyncio
async def test_failed_turn_leaves_storage_untouched():
    orchestrator = make_orchestrator()
    await orchestrator.create_world(make_world(turn=3))
    before = (await orchestrator.persistence.load_world("valley")).model_dump()

    intervention = Intervention(
        consequences=WorldStateChanges(faction_changes=[FactionChange(faction_name="Nobody", wealth_delta=5)])
    )
    with pytest.raises(NotFoundError):
        await orchestrator.advance_turn("valley", intervention)

    assert (await orchestrator.persistence.load_world("valley")).model_dump() == before
    assert await orchestrator.persistence.get_event("valley", 4) is None
    assert orchestrator.phase("valley") is TurnPhase.IDLE

    # The world is free for the next request
    result = await orchestrator.advance_turn("valley")
    assert result.world.turn == 4


@pytest.mark.asyncio
async def test_invariant_violation_while_advancing_aborts_the_turn():
    orchestrator = make_orchestrator(decay=CorruptingDecay(SimulationTuning()))
    await orchestrator.create_world(make_world(turn=3))
    before = (await orchestrator.persistence.load_world("valley")).model_dump()

    with pytest.raises(InvariantViolation) as exc_info:
        await orchestrator.advance_turn("valley", wealth_cut(5, id="tithe"))

    assert exc_info.value.turn == 4
    assert any("hunger" in violation for violation in exc_info.value.violations)
    assert (await orchestrator.persistence.load_world("valley")).model_dump() == before
    assert await orchestrator.persistence.get_event("valley", 4) is None
    assert await orchestrator.persistence.get_decision("valley", 3) is None
    assert orchestrator.phase("valley") is TurnPhase.IDLE


@pytest.mark.asyncio
async def test_same_world_and_intervention_replay_identically():
    def build_world() -> WorldState:
        return make_world(
            turn=2,
            agents={
                "cora": Agent(id="cora", name="Cora", position={"x": 2, "y": 0}),
                "ada": Agent(
                    id="ada",
                    name="Ada",
                    position={"x": 0, "y": 0},
                    goals=[Goal(id="weir", type="creative", description="Build a fish weir")],
                ),
                "bram": Agent(id="bram", name="Bram", position={"x": 1, "y": 1}),
            },
        )

    def build_intervention() -> Intervention:
        return Intervention(
            id="harvest",
            decision="Bless the harvest",
            consequences=WorldStateChanges(
                faction_changes=[FactionChange(faction_name="Beta", changes="strengthened by the harvest")],
                new_events=["The granaries filled"],
                goal_updates=[GoalUpdate(agent_id="ada", goal_id="weir", progress=0.4)],
                interactions=[InteractionEvent(id="feast", initiator_id="bram", recipient_id="ada", valence=0.9)],
            ),
        )

    outcomes = []
    for _ in range(2):
        orchestrator = make_orchestrator()
        await orchestrator.create_world(build_world())
        first = await orchestrator.advance_turn("valley", build_intervention())
        second = await orchestrator.advance_turn("valley")
        outcomes.append(
            (first.delta.model_dump(), second.delta.model_dump(), second.world.model_dump())
        )

    assert outcomes[0] == outcomes[1]


@pytest.mark.asyncio
async def test_stale_narrative_goal_updates_are_dropped_instead_of_blocking_the_world():
    agents = {
        "ada": Agent(
            id="ada",
            name="Ada",
            goals=[Goal(id="weir", type="creative", description="Build a fish weir", progress=0.5)],
        ),
    }
    queued = WorldStateChanges(
        goal_updates=[
            GoalUpdate(agent_id="ada", goal_id="weir", progress=0.2),
            GoalUpdate(agent_id="ada", goal_id="weir", progress=1.0),
            GoalUpdate(agent_id="ada", goal_id="weir", progress=1.0),
        ]
    )
    orchestrator = make_orchestrator()
    await orchestrator.create_world(make_world(agents=agents, pending_consequences=queued))

    result = await orchestrator.advance_turn("valley")

    assert result.world.agents["ada"].achievements == ["Build a fish weir"]
    assert result.world.pending_consequences is None
    assert result.world.intervention_log[1].consequences.goal_updates == [queued.goal_updates[1]]

    for _ in range(3):
        result = await orchestrator.advance_turn("valley")
    assert result.world.turn == 4


@pytest.mark.asyncio
async def test_narrator_cannot_queue_goal_updates_that_would_fail():
    agents = {
        "ada": Agent(
            id="ada",
            name="Ada",
            goals=[Goal(id="weir", type="creative", description="Build a fish weir", progress=0.5)],
        ),
    }
    suggestion = WorldStateChanges(
        goal_updates=[
            GoalUpdate(agent_id="ada", goal_id="weir", progress=0.2),
            GoalUpdate(agent_id="ada", goal_id="weir", progress=1.0),
            GoalUpdate(agent_id="ada", goal_id="weir", progress=1.0),
        ]
    )
    orchestrator = make_orchestrator(narrator=SuggestingNarrator(suggestion))
    await orchestrator.create_world(make_world(agents=agents))

    await orchestrator.advance_turn("valley")
    stored = await orchestrator.persistence.load_world("valley")
    assert [u.progress for u in stored.pending_consequences.goal_updates] == [1.0]

    for expected_turn in (2, 3, 4):
        result = await orchestrator.advance_turn("valley")
        assert result.world.turn == expected_turn
    assert result.world.agents["ada"].achievements == ["Build a fish weir"]


@pytest.mark.asyncio
async def test_intervention_goal_update_takes_precedence_over_queued_suggestion():
    agents = {
        "ada": Agent(
            id="ada",
            name="Ada",
            goals=[Goal(id="weir", type="creative", description="Build a fish weir", progress=0.5)],
        ),
    }
    queued = WorldStateChanges(goal_updates=[GoalUpdate(agent_id="ada", goal_id="weir", progress=1.0)])
    orchestrator = make_orchestrator()
    await orchestrator.create_world(make_world(agents=agents, pending_consequences=queued))

    result = await orchestrator.advance_turn(
        "valley",
        Intervention(
            consequences=WorldStateChanges(goal_updates=[GoalUpdate(agent_id="ada", goal_id="weir", progress=0.7)])
        ),
    )

    ada = result.world.agents["ada"]
    assert ada.achievements == []
    assert next(goal for goal in ada.goals + ada.dormant_goals if goal.id == "weir").progress == 0.7


@pytest.mark.asyncio
async def test_birth_colliding_with_a_queued_birth_is_rejected_up_front():
    queued = WorldStateChanges(births=[Agent(id="cora", name="Cora")])
    orchestrator = make_orchestrator()
    await orchestrator.create_world(make_world(pending_consequences=queued))

    intervention = Intervention(consequences=WorldStateChanges(births=[Agent(id="cora", name="Other Cora")]))
    with pytest.raises(InputValidationError, match="already queued"):
        await orchestrator.advance_turn("valley", intervention)

    stored = await orchestrator.persistence.load_world("valley")
    assert stored.turn == 0
    assert [newborn.id for newborn in stored.pending_consequences.births] == ["cora"]

    result = await orchestrator.advance_turn("valley")
    assert result.world.agents["cora"].name == "Cora"


def test_suggested_birth_yields_to_an_intervention_birth_with_the_same_id():
    world = make_world()
    suggestion = WorldStateChanges(births=[Agent(id="cora", name="Cora"), Agent(id="dara", name="Dara")])
    reserved = WorldStateChanges(births=[Agent(id="cora", name="Other Cora")])

    cleaned, dropped = TurnOrchestrator.sanitize_suggestion(world, suggestion, reserved=reserved)

    assert [newborn.id for newborn in cleaned.births] == ["dara"]
    assert dropped == ["birth 'cora'"]


@pytest.mark.asyncio
async def test_structurally_invalid_intervention_is_rejected_before_mutation():
    orchestrator = make_orchestrator()
    await orchestrator.create_world(make_world())

    intervention = Intervention(
        consequences=WorldStateChanges(interactions=[InteractionEvent(initiator_id="ada", recipient_id="ada")])
    )
    with pytest.raises(InputValidationError):
        await orchestrator.advance_turn("valley", intervention)

    assert (await orchestrator.persistence.load_world("valley")).turn == 0


@pytest.mark.asyncio
async def test_unknown_world_raises_not_found():
    orchestrator = make_orchestrator()

    with pytest.raises(NotFoundError):
        await orchestrator.advance_turn("nowhere")


@pytest.mark.asyncio
async def test_queued_interaction_updates_both_agents():
    orchestrator = make_orchestrator()
    await orchestrator.create_world(make_world())

    event = InteractionEvent(id="gift", initiator_id="ada", recipient_id="bram", kind="gift", valence=1.0, intensity=1.0)
    result = await orchestrator.advance_turn(
        "valley",
        Intervention(consequences=WorldStateChanges(interactions=[event])),
    )

    ada, bram = result.world.agents["ada"], result.world.agents["bram"]
    assert ada.relationships["bram"].last_interaction == 1
    assert bram.relationships["ada"].last_interaction == 1
    assert "gift" in ada.relationships["bram"].shared_experiences
    assert "gift" in bram.relationships["ada"].shared_experiences
    assert ada.find_memory("gift-ada") is not None
    assert bram.find_memory("gift-bram") is not None
    assert result.delta.interactions == ["gift"]


@pytest.mark.asyncio
async def test_nearby_agents_meet_without_an_intervention():
    agents = {
        "ada": Agent(id="ada", name="Ada", position={"x": 0, "y": 0}),
        "bram": Agent(id="bram", name="Bram", position={"x": 1, "y": 1}),
    }
    orchestrator = make_orchestrator()
    await orchestrator.create_world(make_world(agents=agents))

    result = await orchestrator.advance_turn("valley")

    assert result.delta.interactions == ["encounter-1-ada-bram"]
    assert result.world.agents["ada"].relationships["bram"].type == "acquaintance"


@pytest.mark.asyncio
async def test_goal_completion_and_new_events_are_remembered():
    agents = {
        "ada": Agent(
            id="ada",
            name="Ada",
            goals=[Goal(id="weir", type="creative", description="Build a fish weir")],
        ),
    }
    orchestrator = make_orchestrator()
    await orchestrator.create_world(make_world(agents=agents))

    result = await orchestrator.advance_turn(
        "valley",
        Intervention(
            consequences=WorldStateChanges(
                new_events=["The river rose"],
                goal_updates=[GoalUpdate(agent_id="ada", goal_id="weir", progress=1.0)],
            )
        ),
    )

    ada = result.world.agents["ada"]
    assert ada.achievements == ["Build a fish weir"]
    assert ada.find_memory("1-ada-event-0").content == "The river rose"
    assert ada.find_memory("1-ada-achievement-weir") is not None
    assert any(c.direction == "completed" for c in result.delta.agent_crossings)
    assert result.world.current_state.major_events == ["The river rose"]


@pytest.mark.asyncio
async def test_starvation_kills_and_survivors_remember():
    agents = {
        "ada": Agent(id="ada", name="Ada", physical_needs={"health": 0.01, "hunger": 0.0}),
        "bram": Agent(id="bram", name="Bram", position={"x": 50, "y": 0}),
    }
    orchestrator = make_orchestrator()
    await orchestrator.create_world(make_world(agents=agents))
    await orchestrator.advance_turn(
        "valley",
        Intervention(
            consequences=WorldStateChanges(
                interactions=[InteractionEvent(id="talk", initiator_id="ada", recipient_id="bram")]
            )
        ),
    )

    stored = await orchestrator.persistence.load_world("valley")
    ada = stored.agents["ada"]
    assert not ada.alive
    assert ada.died_at == 1
    assert ada.cause_of_death == "failing health"
    assert "ada" in stored.agents["bram"].relationships
    assert stored.agents["bram"].find_memory("1-bram-loss-ada") is not None


@pytest.mark.asyncio
async def test_births_join_the_world():
    orchestrator = make_orchestrator()
    await orchestrator.create_world(make_world(turn=2))

    result = await orchestrator.advance_turn(
        "valley",
        Intervention(consequences=WorldStateChanges(births=[Agent(id="cora", name="Cora")])),
    )

    cora = result.world.agents["cora"]
    assert cora.birth_turn == 3
    assert any(c.agent_id == "cora" and c.direction == "born" for c in result.delta.agent_crossings)


@pytest.mark.asyncio
async def test_decision_is_recorded_for_the_turn_it_was_made():
    orchestrator = make_orchestrator()
    await orchestrator.create_world(make_world(turn=3))

    await orchestrator.advance_turn("valley", wealth_cut(5, id="tax", choice_id="intervene"))

    decision = await orchestrator.persistence.get_decision("valley", 3)
    assert decision.intervention_id == "tax"
    assert decision.choice_id == "intervene"
    assert "Alpha" in decision.consequences


@pytest.mark.asyncio
async def test_narrative_failure_keeps_the_turn_and_can_be_retried():
    narrator = FailingNarrator()
    orchestrator = make_orchestrator(narrator=narrator)
    await orchestrator.create_world(make_world())

    result = await orchestrator.advance_turn("valley")

    assert result.narrative_pending
    assert result.narrative_error == "timed out"
    assert (await orchestrator.persistence.load_world("valley")).turn == 1
    pending = await orchestrator.persistence.get_event("valley", 1)
    assert pending.narrative_status == "pending"
    assert pending.narrative_error == "timed out"

    with pytest.raises(ExternalUnavailableError):
        await orchestrator.retry_narrative("valley")
    assert narrator.calls == 2

    orchestrator.narrator = FallbackNarrativeGenerator()
    event = await orchestrator.retry_narrative("valley", 1)

    assert event.narrative_status == "ready"
    assert len(event.choices) == 3
    assert (await orchestrator.persistence.get_event("valley", 1)).narrative_status == "ready"
    assert (await orchestrator.persistence.load_world("valley")).turn == 1


@pytest.mark.asyncio
async def test_retry_for_unknown_turn_raises_not_found():
    orchestrator = make_orchestrator()
    await orchestrator.create_world(make_world())

    with pytest.raises(NotFoundError):
        await orchestrator.retry_narrative("valley", 7)


@pytest.mark.asyncio
async def test_narrative_suggestions_apply_next_turn():
    suggestion = WorldStateChanges(
        faction_changes=[
            FactionChange(faction_name="Alpha", wealth_delta=5),
            FactionChange(faction_name="Ghost Kingdom", wealth_delta=50),
        ]
    )
    orchestrator = make_orchestrator(narrator=SuggestingNarrator(suggestion))
    await orchestrator.create_world(make_world())

    first = await orchestrator.advance_turn("valley")
    stored = await orchestrator.persistence.load_world("valley")

    assert first.event.narrative == "The clans argue over the harvest."
    assert stored.get_faction("Alpha").wealth == 15
    assert [c.faction_name for c in stored.pending_consequences.faction_changes] == ["Alpha"]

    orchestrator.narrator = FallbackNarrativeGenerator()
    second = await orchestrator.advance_turn("valley")

    assert second.world.get_faction("Alpha").wealth == 20
    assert second.world.pending_consequences is None
    assert second.world.intervention_log[2].intervention_id == "narrative-1"
    assert second.world.intervention_log[2].source == "narrative"


@pytest.mark.asyncio
async def test_tick_listener_receives_both_snapshots():
    seen = []

    def listener(turn, previous, world, delta):
        seen.append((turn, previous.turn, world.turn, delta.turn_to))

    orchestrator = make_orchestrator(tick_listeners=[listener])
    await orchestrator.create_world(make_world())

    await orchestrator.advance_turn("valley")
    await orchestrator.advance_turn("valley")

    assert seen == [(1, 0, 1, 1), (2, 1, 2, 2)]


@pytest.mark.asyncio
async def test_recent_events_feed_the_next_projection():
    captured = []

    class RecordingNarrator(FallbackNarrativeGenerator):
        async def generate(self, projection):
            captured.append([event.turn_number for event in projection.recent_events])
            return await super().generate(projection)

    orchestrator = make_orchestrator(narrator=RecordingNarrator())
    await orchestrator.create_world(make_world())

    for _ in range(5):
        await orchestrator.advance_turn("valley")

    assert captured == [[], [1], [2, 1], [3, 2, 1], [4, 3, 2]]


def test_merge_changes_sums_environment_and_keeps_order():
    first = WorldStateChanges(new_events=["a"], environment_changes={"temperatureDelta": 2, "description": "warm"})
    second = WorldStateChanges(new_events=["b"], environment_changes={"temperatureDelta": -5, "condition": "snow"})

    merged = merge_changes(first, second)

    assert merged.new_events == ["a", "b"]
    assert merged.environment_changes.temperature_delta == -3
    assert merged.environment_changes.condition == "snow"
    assert merge_changes(None, None).is_empty()


@pytest.mark.asyncio
async def test_describe_result_summarises_the_turn():
    orchestrator = make_orchestrator()
    await orchestrator.create_world(make_world())

    result = await orchestrator.advance_turn("valley", wealth_cut(5))
    summary = describe_result(result)

    assert summary.startswith("Turn 0 -> 1 for world 'valley'")
    assert "Alpha:" in summary
    assert "Narrative: ready" in summary
