"""
Relationship Graph.

Each agent owns a one-sided view of every agent it knows
(`agent.relationships[other_id]`). The graph never forces both views to hold
the same feelings, but an interaction always updates both views from the same
event: both new records are computed first and then written together while a
lock keyed by the sorted id pair is held, so no reader sees one side updated
and the other not.

Counterparts are resolved through `WorldState.agents` by id; relationship
records never hold references to other Agent objects.

Per-side deltas are personality-modulated: agreeable agents gain more trust
from warm events, neurotic agents lose more from hostile ones, extraverts
bond faster, and the power balance shifts toward the more dominant party.
"""

import math
import threading
from typing import Dict, List, Optional, Tuple

from .config import RelationshipPolicy
from .errors import InputValidationError
from .schemas import (
    PERSONALITY_TRAITS,
    Agent,
    EmotionalMoment,
    InteractionEvent,
    Personality,
    Relationship,
    WorldState,
)


PairKey = Tuple[str, str]

# Types that may be reclassified from interaction history; others (family,
# mentor, romantic, ...) are set explicitly and left alone.
FLUID_TYPES = frozenset({"acquaintance", "friend", "enemy", "neighbor", "colleague"})


def _clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def pair_key(a: str, b: str) -> PairKey:
    return (a, b) if a <= b else (b, a)


def compatibility(first: Personality, second: Personality) -> float:
    """1 minus the Euclidean personality distance normalised to [0, 1]."""
    distance = math.dist(first.as_vector(), second.as_vector())
    return _clamp(1.0 - distance / math.sqrt(len(PERSONALITY_TRAITS)))


class RelationshipGraph:
    """Pairwise relationship updates over the agents of one world."""

    def __init__(self, policy: Optional[RelationshipPolicy] = None):
        self.policy = policy or RelationshipPolicy()
        self._pair_locks: Dict[PairKey, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def pair_lock(self, a: str, b: str) -> threading.Lock:
        key = pair_key(a, b)
        with self._registry_lock:
            lock = self._pair_locks.get(key)
            if lock is None:
                lock = self._pair_locks[key] = threading.Lock()
            return lock

    # ------------------------------------------------------------------
    # Interaction
    # ------------------------------------------------------------------

    def interact(self, world: WorldState, event: InteractionEvent, *, now: int) -> Tuple[Relationship, Relationship]:
        """Apply `event` to both views of the pair and return (initiator view, recipient view).

        Raises:
            InputValidationError: Self-interaction or a deceased participant
            NotFoundError: Either agent id is absent from the world
        """
        if event.initiator_id == event.recipient_id:
            raise InputValidationError("an agent cannot interact with itself", field="recipient_id")

        initiator = world.get_agent(event.initiator_id)
        recipient = world.get_agent(event.recipient_id)
        for participant in (initiator, recipient):
            if not participant.alive:
                raise InputValidationError(f"agent '{participant.id}' is deceased", field="event")

        with self.pair_lock(initiator.id, recipient.id):
            forward = self._updated_view(initiator, recipient, event, now)
            backward = self._updated_view(recipient, initiator, event, now)
            initiator.relationships[recipient.id] = forward
            recipient.relationships[initiator.id] = backward
        return forward, backward

    def _updated_view(self, owner: Agent, other: Agent, event: InteractionEvent, now: int) -> Relationship:
        policy = self.policy
        current = owner.relationships.get(other.id)
        view = current.model_copy(deep=True) if current else Relationship(other_id=other.id)
        traits = owner.personality
        signed = event.valence * event.intensity

        if signed >= 0:
            trust_weight = 0.5 + traits.agreeableness
        else:
            trust_weight = 0.5 + traits.neuroticism
        view.trust = _clamp(view.trust + policy.trust_gain * signed * trust_weight)
        view.strength = _clamp(view.strength + policy.strength_gain * signed * (0.5 + traits.extraversion))
        view.respect = _clamp(
            view.respect + policy.respect_gain * signed * (0.5 + other.personality.conscientiousness)
        )
        view.attraction = _clamp(view.attraction + policy.attraction_gain * signed * (0.5 + traits.openness))
        view.power_dynamic = _clamp(
            view.power_dynamic
            + policy.power_shift * (traits.dominance - other.personality.dominance) * event.intensity,
            -1.0,
            1.0,
        )
        view.frequency = _clamp(view.frequency + (1.0 - view.frequency) * policy.frequency_gain)
        view.last_interaction = max(view.last_interaction, now)
        view.compatibility = compatibility(traits, other.personality)

        if event.id not in view.shared_experiences:
            view.shared_experiences.append(event.id)
        view.shared_experiences = view.shared_experiences[-policy.max_shared_experiences:]

        view.emotional_history.append(
            EmotionalMoment(
                emotion="warmth" if signed >= 0 else "hostility",
                intensity=_clamp(abs(signed)),
                turn=now,
                context=event.description or event.kind,
            )
        )
        view.emotional_history = view.emotional_history[-policy.max_emotional_history:]

        view.type = self._reclassify(view)
        return view

    @staticmethod
    def _reclassify(view: Relationship) -> str:
        if view.type not in FLUID_TYPES:
            return view.type
        if view.trust < 0.15 and view.strength < 0.2:
            return "enemy"
        if view.type in ("acquaintance", "enemy") and view.trust >= 0.6 and view.strength >= 0.5:
            return "friend"
        if view.type == "friend" and view.strength < 0.25:
            return "acquaintance"
        return view.type

    # ------------------------------------------------------------------
    # Maintenance and removal
    # ------------------------------------------------------------------

    def maintain(self, world: WorldState, agent: Agent, *, now: int, elapsed: int = 1) -> List[str]:
        """Age the owner's views. Views of deceased or missing agents are frozen history.

        Returns:
            Ids of counterparts whose relationship strength decayed from neglect
        """
        neglected: List[str] = []
        for other_id, view in agent.relationships.items():
            counterpart = world.agents.get(other_id)
            if counterpart is None or not counterpart.alive:
                continue
            view.frequency = _clamp(view.frequency * self.policy.frequency_decay ** elapsed)
            if now - view.last_interaction > self.policy.neglect_after:
                view.strength = _clamp(view.strength - self.policy.neglect_decay * elapsed)
                neglected.append(other_id)
        return neglected

    def sever(self, agent: Agent, other_id: str) -> Optional[Relationship]:
        """Remove only `agent`'s view of `other_id`; the counterpart keeps its own."""
        return agent.relationships.pop(other_id, None)

    def on_death(self, world: WorldState, agent_id: str) -> List[str]:
        """Drop the deceased agent's own views. Survivors keep theirs as history.

        Returns:
            Ids of survivors who still hold a view of the deceased
        """
        deceased = world.get_agent(agent_id)
        for other_id in list(deceased.relationships):
            self.sever(deceased, other_id)
        with self._registry_lock:
            for key in [key for key in self._pair_locks if agent_id in key]:
                del self._pair_locks[key]
        return sorted(
            other.id
            for other in world.agents.values()
            if other.alive and agent_id in other.relationships
        )

    def encounters(self, world: WorldState, *, now: int) -> List[InteractionEvent]:
        """Proximity encounters between living agents, in sorted pair order."""
        if not self.policy.encounters_enabled:
            return []
        living = world.living_agent_ids()
        events: List[InteractionEvent] = []
        for index, first_id in enumerate(living):
            first = world.agents[first_id]
            for second_id in living[index + 1:]:
                second = world.agents[second_id]
                if first.position.distance_to(second.position) > self.policy.encounter_distance:
                    continue
                affinity = compatibility(first.personality, second.personality)
                events.append(
                    InteractionEvent(
                        id=f"encounter-{now}-{first_id}-{second_id}",
                        initiator_id=first_id,
                        recipient_id=second_id,
                        kind="encounter",
                        valence=_clamp(2.0 * affinity - 1.0, -1.0, 1.0),
                        intensity=self.policy.encounter_intensity,
                        description=f"{first.name} crossed paths with {second.name}",
                    )
                )
        return events
