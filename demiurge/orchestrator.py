"""
Turn orchestrator.

Fully decoupled from storage technology and from the narrative provider.
All collaborators are injected by the caller.

One turn moves a world through these phases:

    Idle -> Resolving -> Advancing -> AdvancingWorld -> Committed -> Idle

1. Resolving: validate the intervention, then apply its declared consequences
   (plus any consequences the previous narrative suggested) exactly once.
2. Advancing: decay, memory, relationship maintenance and goals for every
   living agent in ascending id order; then queued interactions and proximity
   encounters; then mortality.
3. AdvancingWorld: calendar, weather and ecosystem, once.
4. Committed: optimistic commit of the working copy, event and decision
   records, tick listeners.

Everything before the commit runs on a deep copy of the stored world, so an
exception in any phase leaves storage untouched. Narrative generation happens
only after the commit and can fail without rolling the turn back.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional, Set, Tuple

from .config import Config, SimulationTuning
from .decay import NeedDecayEngine
from .errors import (
    ConflictError,
    ExternalUnavailableError,
    InputValidationError,
    NotFoundError,
    TurnInProgressError,
)
from .factions import apply_faction_change, faction_kind, score_table
from .goals import GoalEngine
from .invariants import check_pair_updates, check_transition, check_world
from .lifecycle import check_mortality, spawn_agent
from .logging_utils import (
    LOG_TAG_DETERMINISTIC,
    LOG_TAG_ERROR,
    LOG_TAG_LLM,
    LOG_TAG_SUCCESS,
    Color,
    colored,
)
from .memory import ImportanceDecayMemory, MemoryStrategy
from .narrative import FallbackNarrativeGenerator, NarrativeGenerator
from .persistence import InMemoryPersistence, PersistenceStrategy
from .projection import build_narrative_projection
from .relationships import RelationshipGraph
from .environment import EnvironmentSummary
from .schemas import (
    Agent,
    AgentCrossing,
    AppliedIntervention,
    DecisionRecord,
    EnvironmentChange,
    EventRecord,
    FactionScoreDelta,
    InteractionEvent,
    Intervention,
    NarrativePayload,
    WorldDelta,
    WorldState,
    WorldStateChanges,
)
from .simulation_rules import DefaultSimulationRules, SimulationRules


TickListener = Callable[[int, WorldState, WorldState, WorldDelta], None]

# Needs whose threshold crossings are reported in the world delta
WATCHED_NEEDS: Tuple[Tuple[str, str], ...] = (
    ("physical_needs", "hunger"),
    ("physical_needs", "thirst"),
    ("physical_needs", "health"),
    ("social_needs", "companionship"),
)


class TurnPhase(str, Enum):
    IDLE = "idle"
    RESOLVING = "resolving"
    ADVANCING = "advancing"
    ADVANCING_WORLD = "advancing_world"
    COMMITTED = "committed"


@dataclass
class TurnResult:
    """What advance_turn hands back once the turn has committed."""

    world: WorldState
    delta: WorldDelta
    event: EventRecord
    narrative_pending: bool = False
    narrative_error: Optional[str] = None


def merge_changes(first: Optional[WorldStateChanges], second: Optional[WorldStateChanges]) -> WorldStateChanges:
    """Combine two consequence sets; list entries keep their order, environment deltas add up."""
    parts = [changes for changes in (first, second) if changes is not None]
    if not parts:
        return WorldStateChanges()
    if len(parts) == 1:
        return parts[0].model_copy(deep=True)

    a, b = parts
    environment = a.environment_changes
    if a.environment_changes and b.environment_changes:
        x, y = a.environment_changes, b.environment_changes
        resources = dict(x.resource_deltas)
        for name, delta in y.resource_deltas.items():
            resources[name] = resources.get(name, 0.0) + delta
        environment = EnvironmentChange(
            description=" ".join(text for text in (x.description, y.description) if text),
            temperature_delta=x.temperature_delta + y.temperature_delta,
            condition=y.condition or x.condition,
            pollution_delta=x.pollution_delta + y.pollution_delta,
            biodiversity_delta=x.biodiversity_delta + y.biodiversity_delta,
            resource_deltas=resources,
        )
    elif b.environment_changes:
        environment = b.environment_changes

    return WorldStateChanges(
        faction_changes=a.faction_changes + b.faction_changes,
        environment_changes=environment,
        new_events=a.new_events + b.new_events,
        goal_updates=a.goal_updates + b.goal_updates,
        interactions=a.interactions + b.interactions,
        births=a.births + b.births,
    ).model_copy(deep=True)


class TurnOrchestrator:
    """Drives turns for any number of worlds stored in one persistence backend."""

    def __init__(
        self,
        persistence: Optional[PersistenceStrategy] = None,
        rules: Optional[SimulationRules] = None,
        tuning: Optional[SimulationTuning] = None,
        decay: Optional[NeedDecayEngine] = None,
        memory: Optional[MemoryStrategy] = None,
        goals: Optional[GoalEngine] = None,
        relationships: Optional[RelationshipGraph] = None,
        narrator: Optional[NarrativeGenerator] = None,
        tick_listeners: Optional[List[TickListener]] = None,
    ):
        """Initialize the orchestrator with injected collaborators.

        Args:
            persistence: World storage (defaults to InMemoryPersistence)
            rules: World-level rules (defaults to DefaultSimulationRules)
            tuning: Numeric policy shared by the default engines
            decay: Need/emotion engine (built from tuning if omitted)
            memory: Memory strategy (ImportanceDecayMemory if omitted)
            goals: Goal engine (built from tuning if omitted)
            relationships: Relationship graph (built from tuning if omitted)
            narrator: Narrative collaborator (deterministic fallback if omitted)
            tick_listeners: Callables invoked after each commit with
                (turn, previous_world, new_world, delta)
        """
        self.persistence = persistence or InMemoryPersistence()
        self.rules = rules or DefaultSimulationRules()
        self.tuning = tuning or SimulationTuning.load()
        self.decay = decay or NeedDecayEngine(self.tuning)
        self.memory = memory or ImportanceDecayMemory(self.tuning.memory)
        self.goals = goals or GoalEngine(self.tuning.goals)
        self.relationships = relationships or RelationshipGraph(self.tuning.relationships)
        self.narrator = narrator or FallbackNarrativeGenerator()
        self.tick_listeners = tick_listeners or []

        self._in_flight: Set[str] = set()
        self._phases: Dict[str, TurnPhase] = {}

    def phase(self, world_id: str) -> TurnPhase:
        return self._phases.get(world_id, TurnPhase.IDLE)

    # ------------------------------------------------------------------
    # World creation
    # ------------------------------------------------------------------

    async def create_world(self, world: WorldState) -> WorldState:
        """Run the genesis hook, check invariants and store a new world."""
        genesis = self.rules.on_world_genesis(world.model_copy(deep=True))
        for agent in genesis.agents.values():
            self.memory.decay_all(agent, 0, now=genesis.turn)
        check_world(genesis, turn=genesis.turn)
        await self.persistence.create_world(genesis)
        print(colored(f"{LOG_TAG_SUCCESS} [Genesis] World '{genesis.id}' created with {len(genesis.agents)} agents", Color.GREEN))
        return genesis

    # ------------------------------------------------------------------
    # Turn
    # ------------------------------------------------------------------

    async def advance_turn(self, world_id: str, intervention: Optional[Intervention] = None) -> TurnResult:
        """Run one full turn for `world_id` and commit it.

        Raises:
            TurnInProgressError: Another turn for this world has not committed yet
            ConflictError: Stale expected_turn, repeated intervention id, or a
                concurrent commit
            InputValidationError: The intervention is structurally invalid
            NotFoundError: The world, or an agent/faction/goal it references, is absent
            InvariantViolation: Engine state broke a declared invariant
        """
        # Checked and claimed before the first await so concurrent callers see it
        if world_id in self._in_flight:
            raise TurnInProgressError(world_id=world_id)
        self._in_flight.add(world_id)

        try:
            before = await self.persistence.load_world(world_id)
            turn = before.turn + 1
            self._validate_intervention(before, intervention)

            print(colored(f"=== World '{world_id}': turn {before.turn} -> {turn} ===", Color.CYAN, bold=True))
            world = before.model_copy(deep=True)
            scores_before = score_table(before)

            self._phases[world_id] = TurnPhase.RESOLVING
            applied, crossings, abandoned, queued = self._resolve(world, intervention, turn)

            self._phases[world_id] = TurnPhase.ADVANCING
            self._advance_agents(world, turn)
            interaction_ids = self._run_interactions(world, queued, turn)
            crossings.extend(self._handle_mortality(world, turn))
            crossings.extend(self._need_crossings(before, world))

            self._phases[world_id] = TurnPhase.ADVANCING_WORLD
            print(colored(f"  {LOG_TAG_DETERMINISTIC} [World] Advancing calendar, weather and ecosystem", Color.BLUE))
            self.rules.advance_world(world, turn)
            world.turn = turn

            check_world(world, turn=turn)
            check_transition(before, world, turn=turn, abandoned_goals=abandoned)

            await self.persistence.commit_world(world_id, world, expected_turn=before.turn)
            self._phases[world_id] = TurnPhase.COMMITTED
        except Exception as exc:
            self._phases[world_id] = TurnPhase.IDLE
            print(colored(f"  {LOG_TAG_ERROR} [Turn] Aborted for world '{world_id}': {exc}", Color.RED))
            raise
        finally:
            self._in_flight.discard(world_id)

        print(colored(f"  {LOG_TAG_SUCCESS} [Turn] Committed turn {turn}", Color.GREEN))

        delta = WorldDelta(
            world_id=world_id,
            turn_from=before.turn,
            turn_to=turn,
            faction_scores=self._score_deltas(world, scores_before),
            agent_crossings=crossings,
            environment=EnvironmentSummary.of(world.environment),
            new_events=list(applied.consequences.new_events) if applied else [],
            interactions=interaction_ids,
            applied_interventions=[applied.intervention_id] if applied else [],
        )
        event = EventRecord(
            world_id=world_id,
            turn_number=turn,
            player_action=intervention.decision if intervention else None,
            delta=delta,
        )
        await self.persistence.append_event(world_id, turn, event)
        if intervention is not None:
            await self.persistence.record_decision(
                world_id,
                before.turn,
                DecisionRecord(
                    world_id=world_id,
                    turn_number=before.turn,
                    intervention_id=intervention.id,
                    decision=intervention.decision,
                    choice_id=intervention.choice_id,
                    is_custom_action=intervention.is_custom_action,
                    consequences=intervention.consequences.model_dump_json(by_alias=True, exclude_defaults=True),
                ),
            )

        for listener in self.tick_listeners:
            try:
                listener(turn, before, world, delta)
            except Exception as exc:  # pragma: no cover - diagnostic hook
                print(f"  [Analysis] Listener failed: {exc}")

        try:
            error = await self._narrate(world, event)
        finally:
            self._phases[world_id] = TurnPhase.IDLE

        return TurnResult(
            world=world,
            delta=delta,
            event=event,
            narrative_pending=error is not None,
            narrative_error=error,
        )

    async def retry_narrative(self, world_id: str, turn_number: Optional[int] = None) -> EventRecord:
        """Generate the narrative of a committed turn again. Simulation state is not touched.

        Raises:
            NotFoundError: No event exists for that turn
            ExternalUnavailableError: The narrator failed again
        """
        world = await self.persistence.load_world(world_id)
        turn = world.turn if turn_number is None else turn_number
        event = await self.persistence.get_event(world_id, turn)
        if event is None:
            raise NotFoundError(kind="Event", identifier=str(turn), scope=f"world '{world_id}'")
        if event.narrative_status == "ready":
            return event

        error = await self._narrate(world, event)
        if error is not None:
            raise ExternalUnavailableError(world_id=world_id, turn=turn, reason=error)
        return event

    # ------------------------------------------------------------------
    # Resolving
    # ------------------------------------------------------------------

    def _validate_intervention(self, world: WorldState, intervention: Optional[Intervention]) -> None:
        if intervention is None:
            return
        if intervention.expected_turn is not None and intervention.expected_turn != world.turn:
            raise ConflictError(
                world_id=world.id,
                expected_turn=intervention.expected_turn,
                actual_turn=world.turn,
                reason="intervention targets a stale turn",
            )
        if intervention.id in world.applied_intervention_ids():
            raise ConflictError(world_id=world.id, reason=f"intervention '{intervention.id}' was already applied")
        problems = self.rules.intervention_problems(intervention, world)
        if problems:
            raise InputValidationError("; ".join(problems), field="intervention")

    def _resolve(
        self,
        world: WorldState,
        intervention: Optional[Intervention],
        turn: int,
    ) -> Tuple[Optional[AppliedIntervention], List[AgentCrossing], List[str], List[InteractionEvent]]:
        """Apply declared consequences to the working copy, exactly once."""
        pending = world.pending_consequences
        world.pending_consequences = None
        if pending is not None:
            # The world may have changed since the suggestion was queued
            pending, dropped = self.sanitize_suggestion(
                world, pending, reserved=intervention.consequences if intervention else None
            )
            for reason in dropped:
                print(colored(f"  {LOG_TAG_ERROR} [Resolve] Skipping stale suggestion: {reason}", Color.RED))
            if pending.is_empty():
                pending = None
        if intervention is None and pending is None:
            return None, [], [], []

        if intervention is not None:
            consequences = merge_changes(pending, intervention.consequences)
            applied = AppliedIntervention(
                intervention_id=intervention.id,
                source=intervention.source,
                description=intervention.decision,
                turn=turn,
                consequences=consequences,
            )
        else:
            consequences = pending.model_copy(deep=True)
            applied = AppliedIntervention(
                intervention_id=f"narrative-{turn - 1}",
                source="narrative",
                description="Consequences suggested by the previous narrative",
                turn=turn,
                consequences=consequences,
            )
        print(colored(f"  {LOG_TAG_DETERMINISTIC} [Resolve] Applying {applied.source} intervention {applied.intervention_id}", Color.BLUE))

        for change in consequences.faction_changes:
            index = world.faction_index(change.faction_name)
            world.factions[index] = apply_faction_change(world.factions[index], change)

        if consequences.environment_changes is not None:
            self.rules.apply_environment_change(world, consequences.environment_changes)

        crossings: List[AgentCrossing] = []
        for newborn in consequences.births:
            spawned = spawn_agent(world, newborn, now=turn)
            crossings.append(AgentCrossing(agent_id=spawned.id, field="alive", direction="born", detail=spawned.name))

        if consequences.new_events:
            world.record_major_events(consequences.new_events)
            for agent_id in world.living_agent_ids():
                for index, text in enumerate(consequences.new_events):
                    self._remember(
                        world.agents[agent_id],
                        kind="event",
                        content=text,
                        now=turn,
                        importance=self.tuning.memory.event_importance,
                        memory_id=f"{turn}-{agent_id}-event-{index}",
                        tags=["world-event"],
                    )

        abandoned: List[str] = []
        for update in consequences.goal_updates:
            agent = world.get_agent(update.agent_id)
            if update.abandon:
                self.goals.abandon(agent, update.goal_id)
                abandoned.append(update.goal_id)
                continue
            goal = self.goals.resolve_progress(agent, update.goal_id, update.progress, now=turn)
            if goal.progress >= 1.0:
                crossings.append(
                    AgentCrossing(agent_id=agent.id, field="goal", direction="completed", value=1.0, detail=goal.description)
                )
                self._remember(
                    agent,
                    kind="achievement",
                    content=f"Achieved: {goal.description}",
                    now=turn,
                    importance=self.tuning.memory.achievement_importance,
                    emotional_impact=0.6,
                    memory_id=f"{turn}-{agent.id}-achievement-{goal.id}",
                )

        world.intervention_log[turn] = applied
        return applied, crossings, abandoned, list(consequences.interactions)

    # ------------------------------------------------------------------
    # Advancing
    # ------------------------------------------------------------------

    def _advance_agents(self, world: WorldState, turn: int) -> None:
        elapsed = world.ticks_per_turn
        living = world.living_agent_ids()
        print(colored(f"  {LOG_TAG_DETERMINISTIC} [Agents] Updating {len(living)} living agents ({elapsed} tick(s))", Color.BLUE))
        for agent_id in living:
            agent = world.agents[agent_id]
            self.decay.tick(agent, world.environment, now=turn, elapsed=elapsed)
            self.memory.decay_all(agent, elapsed, now=turn)
            self.relationships.maintain(world, agent, now=turn, elapsed=elapsed)
            self.goals.propose_goals(agent, now=turn)
            self.goals.step(agent, now=turn, elapsed=elapsed)

    def _run_interactions(self, world: WorldState, queued: List[InteractionEvent], turn: int) -> List[str]:
        events = list(queued) + self.relationships.encounters(world, now=turn)
        if not events:
            return []
        print(colored(f"  {LOG_TAG_DETERMINISTIC} [Relationships] Resolving {len(events)} interaction(s)", Color.BLUE))
        gain = self.tuning.relationships.mood_gain
        pairs: List[Tuple[str, str, str]] = []
        for event in events:
            self.relationships.interact(world, event, now=turn)
            pairs.append((event.initiator_id, event.recipient_id, event.id))
            for owner_id, other_id in (
                (event.initiator_id, event.recipient_id),
                (event.recipient_id, event.initiator_id),
            ):
                owner = world.agents[owner_id]
                other = world.agents[other_id]
                impact = event.valence * event.intensity
                self._remember(
                    owner,
                    kind="interaction",
                    content=event.description or f"{event.kind} with {other.name}",
                    now=turn,
                    importance=self.tuning.memory.interaction_importance,
                    participants=[other_id],
                    emotional_impact=impact,
                    memory_id=f"{event.id}-{owner_id}",
                    tags=[event.kind],
                )
                owner.emotions.happiness = max(0.0, min(1.0, owner.emotions.happiness + gain * impact))
        check_pair_updates(world, turn=turn, interactions=pairs)
        return [event.id for event in events]

    def _handle_mortality(self, world: WorldState, turn: int) -> List[AgentCrossing]:
        crossings: List[AgentCrossing] = []
        for agent_id in world.living_agent_ids():
            agent = world.agents[agent_id]
            cause = check_mortality(agent, now=turn, turns_per_year=world.turns_per_year)
            if cause is None:
                continue
            print(colored(f"  {LOG_TAG_DETERMINISTIC} [Lifecycle] {agent.name} died ({cause})", Color.BLUE))
            crossings.append(AgentCrossing(agent_id=agent_id, field="alive", direction="died", detail=cause))
            for survivor_id in self.relationships.on_death(world, agent_id):
                self._remember(
                    world.agents[survivor_id],
                    kind="trauma",
                    content=f"{agent.name} died of {cause}",
                    now=turn,
                    importance=self.tuning.memory.loss_importance,
                    participants=[agent_id],
                    emotional_impact=-0.8,
                    memory_id=f"{turn}-{survivor_id}-loss-{agent_id}",
                    tags=["loss"],
                )
        return crossings

    def _need_crossings(self, before: WorldState, after: WorldState) -> List[AgentCrossing]:
        threshold = self.tuning.goals.critical_need
        crossings: List[AgentCrossing] = []
        for agent_id in sorted(before.agents):
            old, new = before.agents[agent_id], after.agents[agent_id]
            if not old.alive:
                continue
            for section, name in WATCHED_NEEDS:
                previous = getattr(getattr(old, section), name)
                current = getattr(getattr(new, section), name)
                if previous >= threshold > current:
                    direction = "below"
                elif previous < threshold <= current:
                    direction = "above"
                else:
                    continue
                crossings.append(
                    AgentCrossing(agent_id=agent_id, field=f"{section}.{name}", direction=direction, value=round(current, 4), threshold=threshold)
                )
        return crossings

    def _remember(self, agent: Agent, **fields) -> None:
        self.memory.record(agent, self.memory.create(**fields))

    @staticmethod
    def _score_deltas(world: WorldState, scores_before: Dict[str, float]) -> Dict[str, FactionScoreDelta]:
        deltas: Dict[str, FactionScoreDelta] = {}
        scores_after = score_table(world)
        for faction in world.factions:
            after = scores_after[faction.name]
            previous = scores_before.get(faction.name)
            deltas[faction.name] = FactionScoreDelta(
                kind=faction_kind(faction),
                before=previous,
                after=after,
                change=after - (previous if previous is not None else after),
            )
        return deltas

    # ------------------------------------------------------------------
    # Narrative (outside the transactional boundary)
    # ------------------------------------------------------------------

    async def _narrate(self, world: WorldState, event: EventRecord) -> Optional[str]:
        """Fill in `event`'s narrative. Returns the failure reason, or None on success."""
        recent = await self.persistence.get_recent_events(world.id, Config.RECENT_EVENT_WINDOW + 1)
        recent = [record for record in recent if record.turn_number != event.turn_number]
        projection = build_narrative_projection(world, event.delta, recent, Config.RECENT_EVENT_WINDOW)

        print(colored(f"  {LOG_TAG_LLM} [Narrative] Generating narrative for turn {event.turn_number}", Color.YELLOW))
        try:
            payload = await self.narrator.generate(projection)
        except ExternalUnavailableError as exc:
            event.narrative_status = "pending"
            event.narrative_error = exc.reason
            await self.persistence.append_event(world.id, event.turn_number, event)
            print(colored(f"  {LOG_TAG_ERROR} [Narrative] Pending for turn {event.turn_number}: {exc.reason}", Color.RED))
            return exc.reason

        event.narrative = payload.narrative
        event.choices = list(payload.choices)
        event.world_state_changes = payload.world_state_changes
        event.narrative_status = "ready"
        event.narrative_error = None
        await self.persistence.append_event(world.id, event.turn_number, event)
        print(colored(f"  {LOG_TAG_SUCCESS} [Narrative] Ready with {len(event.choices)} choice(s)", Color.GREEN))

        await self._queue_suggestion(world, event.turn_number, payload)
        return None

    async def _queue_suggestion(self, world: WorldState, turn: int, payload: NarrativePayload) -> None:
        suggestion = payload.world_state_changes
        if suggestion is None or suggestion.is_empty() or world.turn != turn:
            return
        cleaned, dropped = self.sanitize_suggestion(world, suggestion)
        for reason in dropped:
            print(colored(f"  {LOG_TAG_ERROR} [Narrative] Dropped suggestion: {reason}", Color.RED))
        if cleaned.is_empty():
            return

        world.pending_consequences = merge_changes(world.pending_consequences, cleaned)
        try:
            await self.persistence.commit_world(world.id, world, expected_turn=turn)
        except ConflictError as exc:
            world.pending_consequences = None
            print(colored(f"  {LOG_TAG_ERROR} [Narrative] Suggestion not queued; world moved on: {exc.reason or exc}", Color.RED))

    @staticmethod
    def sanitize_suggestion(
        world: WorldState,
        changes: WorldStateChanges,
        *,
        reserved: Optional[WorldStateChanges] = None,
    ) -> Tuple[WorldStateChanges, List[str]]:
        """Drop suggested consequences that could not be applied to `world`.

        Suggestions referencing unknown factions, goals or agents are dropped,
        as are goal updates that would move progress backwards or touch a goal
        already updated earlier in the same batch. `reserved` holds the
        intervention applied alongside the suggestion; its goal updates and
        birth ids take precedence.
        """
        dropped: List[str] = []
        factions = {faction.name for faction in world.factions}
        living = set(world.living_agent_ids())

        faction_changes = []
        for change in changes.faction_changes:
            if change.faction_name in factions:
                faction_changes.append(change)
            else:
                dropped.append(f"unknown faction '{change.faction_name}'")

        goal_updates = []
        touched = {(update.agent_id, update.goal_id) for update in reserved.goal_updates} if reserved else set()
        for update in changes.goal_updates:
            label = f"goal update '{update.goal_id}' for '{update.agent_id}'"
            agent = world.agents.get(update.agent_id)
            goal = None
            if agent is not None:
                goal = next((g for g in agent.goals + agent.dormant_goals if g.id == update.goal_id), None)
            if goal is None or not (update.abandon or update.progress is not None):
                dropped.append(label)
            elif (update.agent_id, update.goal_id) in touched:
                dropped.append(f"{label} repeats an earlier update")
            elif not update.abandon and update.progress < goal.progress:
                dropped.append(f"{label} would lower progress {goal.progress} -> {update.progress}")
            else:
                touched.add((update.agent_id, update.goal_id))
                goal_updates.append(update)

        interactions = []
        for event in changes.interactions:
            if event.initiator_id != event.recipient_id and {event.initiator_id, event.recipient_id} <= living:
                interactions.append(event)
            else:
                dropped.append(f"interaction '{event.id}'")

        births = []
        taken = set(world.agents)
        if reserved is not None:
            taken.update(newborn.id for newborn in reserved.births)
        for newborn in changes.births:
            if newborn.id in taken or not newborn.alive:
                dropped.append(f"birth '{newborn.id}'")
                continue
            taken.add(newborn.id)
            births.append(newborn)

        cleaned = changes.model_copy(
            update={
                "faction_changes": faction_changes,
                "goal_updates": goal_updates,
                "interactions": interactions,
                "births": births,
            },
            deep=True,
        )
        return cleaned, dropped


def describe_result(result: TurnResult) -> str:
    """Short human-readable summary of a committed turn."""
    delta = result.delta
    lines = [f"Turn {delta.turn_from} -> {delta.turn_to} for world '{delta.world_id}'"]
    for name, score in sorted(delta.faction_scores.items()):
        lines.append(f"  {name}: {score.after:.3f} ({score.change:+.3f})")
    lines.append(f"  Crossings: {len(delta.agent_crossings)}, interactions: {len(delta.interactions)}")
    lines.append(f"  Narrative: {'pending' if result.narrative_pending else 'ready'}")
    return "\n".join(lines)
