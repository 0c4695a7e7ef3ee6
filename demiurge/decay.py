"""
Need/Emotion Decay Engine.

Advances one agent by `elapsed` ticks:

1. Physical needs move by their signed rates (plus activity regeneration) and
   thermal comfort drifts toward what the current weather allows.
2. Social needs drain by their rates.
3. Ailments progress and health regenerates or decays.
4. Emotions relax toward a personality baseline, then the fixed
   cross-influence coefficients push them (hunger and fatigue raise stress,
   stress and pain lower happiness, ...).
5. Unused skills decay, the economic ledger settles, and the behavioural
   summary levels are refreshed.

Every write goes through `_clamp`, so bounded fields cannot overflow. Input
that is already out of range is a caller contract violation: strict mode
raises InvariantViolation, release mode clamps it before updating.
"""

from typing import Dict, Optional

from .config import Config, SimulationTuning
from .environment import EnvironmentState, thermal_comfort
from .errors import InvariantViolation
from .invariants import clamp_bounded_fields, find_violations
from .schemas import Agent, EmotionalState, Personality


def _clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def emotion_baseline(personality: Personality) -> Dict[str, float]:
    """Resting level of each emotion channel for a given personality."""
    return {
        "happiness": 0.4 + 0.2 * personality.optimism,
        "sadness": 0.1 + 0.1 * (1.0 - personality.optimism),
        "anger": 0.05 + 0.1 * personality.dominance,
        "fear": 0.05 + 0.1 * personality.neuroticism,
        "love": 0.1 + 0.2 * personality.empathy,
        "excitement": 0.1 + 0.2 * personality.extraversion,
        "curiosity": 0.2 + 0.4 * personality.openness,
        "contentment": 0.4 + 0.2 * (1.0 - personality.neuroticism),
        "stress": 0.1 + 0.2 * personality.neuroticism,
        "anxiety": 0.05 + 0.2 * personality.neuroticism,
    }


class NeedDecayEngine:
    """Per-agent, per-tick need and emotion update."""

    def __init__(self, tuning: Optional[SimulationTuning] = None, *, strict: Optional[bool] = None):
        self.tuning = tuning or SimulationTuning()
        self.strict = Config.STRICT_INVARIANTS if strict is None else strict

    def tick(
        self,
        agent: Agent,
        environment: EnvironmentState,
        *,
        now: int,
        elapsed: int = 1,
    ) -> Agent:
        """Advance `agent` in place and return it. Deceased agents are left untouched."""
        if not agent.alive or elapsed <= 0:
            return agent

        self._enforce_preconditions(agent)
        self._decay_physical(agent, environment, elapsed)
        self._decay_social(agent, elapsed)
        self._update_health(agent, elapsed)
        self._relax_emotions(agent, elapsed)
        self._apply_cross_influences(agent, elapsed)
        self._decay_skills(agent, now, elapsed)
        self._settle_ledger(agent, elapsed)
        self._refresh_behavior(agent)
        return agent

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def _enforce_preconditions(self, agent: Agent) -> None:
        if self.strict:
            problems = find_violations(agent, f"agents[{agent.id!r}]")
            if problems:
                raise InvariantViolation(violations=problems)
        else:
            clamp_bounded_fields(agent)

    def _decay_physical(self, agent: Agent, environment: EnvironmentState, elapsed: int) -> None:
        rates = self.tuning.decay
        needs = agent.physical_needs
        regen = rates.activity_regen.get(agent.behavior.current_activity, {})

        for need, rate in rates.physical.items():
            delta = (rate + regen.get(need, 0.0)) * elapsed
            setattr(needs, need, _clamp(getattr(needs, need) + delta))

        target = thermal_comfort(
            environment.weather.temperature,
            agent.preferred_temperature,
            rates.temperature_tolerance,
        )
        factor = min(1.0, rates.temperature_adaptation * elapsed)
        needs.temperature = _clamp(needs.temperature + (target - needs.temperature) * factor)

        untreated_injuries = [injury.severity for injury in agent.health.injuries if not injury.treated]
        if untreated_injuries:
            needs.pain = _clamp(max(needs.pain, max(untreated_injuries)))

    def _decay_social(self, agent: Agent, elapsed: int) -> None:
        needs = agent.social_needs
        for need, rate in self.tuning.decay.social.items():
            setattr(needs, need, _clamp(getattr(needs, need) + rate * elapsed))

    def _update_health(self, agent: Agent, elapsed: int) -> None:
        record = agent.health
        immunity = record.immune_strength

        for injury in record.injuries:
            speed = 2.0 if injury.treated else 1.0
            injury.severity = _clamp(injury.severity - injury.healing_rate * elapsed * speed * (0.5 + immunity / 2))
        record.injuries = [injury for injury in record.injuries if injury.severity > 0]

        for disease in record.diseases:
            if disease.treated:
                disease.severity = _clamp(disease.severity - disease.progression_rate * elapsed * (0.5 + immunity))
            else:
                disease.severity = _clamp(disease.severity + disease.progression_rate * elapsed * (1.0 - immunity))
        record.diseases = [disease for disease in record.diseases if disease.severity > 0]

        rates = self.tuning.decay
        needs = agent.physical_needs
        basics = (needs.hunger, needs.thirst, needs.fatigue)
        ailing = record.has_untreated_ailment()

        if all(level > rates.comfort_threshold for level in basics) and not ailing:
            needs.health = _clamp(needs.health + rates.health_regen * elapsed)
            return

        deficits = [1.0 - level for level in basics]
        deficits.extend(injury.severity for injury in record.injuries if not injury.treated)
        deficits.extend(disease.severity for disease in record.diseases if not disease.treated)
        needs.health = _clamp(needs.health - rates.health_decay * max(deficits) * elapsed)

    def _relax_emotions(self, agent: Agent, elapsed: int) -> None:
        factor = min(1.0, self.tuning.decay.emotion_relaxation * elapsed)
        emotions = agent.emotions
        for channel, resting in emotion_baseline(agent.personality).items():
            current = getattr(emotions, channel)
            setattr(emotions, channel, _clamp(current + (resting - current) * factor))

    def _apply_cross_influences(self, agent: Agent, elapsed: int) -> None:
        k = self.tuning.influence
        physical = agent.physical_needs
        social = agent.social_needs
        emotions: EmotionalState = agent.emotions
        # Neurotic agents feel negative pressure more strongly
        amplifier = 0.5 + agent.personality.neuroticism

        hunger_deficit = 1.0 - physical.hunger
        fatigue_deficit = 1.0 - physical.fatigue

        emotions.stress = _clamp(
            emotions.stress
            + (k.stress_from_hunger * hunger_deficit + k.stress_from_fatigue * fatigue_deficit) * amplifier * elapsed
        )
        emotions.anger = _clamp(emotions.anger + k.anger_from_hunger * hunger_deficit * elapsed)
        emotions.happiness = _clamp(
            emotions.happiness
            - (k.happiness_from_stress * emotions.stress + k.happiness_from_pain * physical.pain) * elapsed
        )
        if physical.health < k.health_alarm:
            alarm = (k.health_alarm - physical.health) / k.health_alarm
            emotions.fear = _clamp(emotions.fear + k.fear_from_poor_health * alarm * elapsed)
        emotions.sadness = _clamp(
            emotions.sadness + k.sadness_from_loneliness * (1.0 - social.companionship) * elapsed
        )
        emotions.anxiety = _clamp(
            emotions.anxiety + k.anxiety_from_insecurity * (1.0 - social.security) * amplifier * elapsed
        )
        emotions.contentment = _clamp(
            emotions.contentment + k.contentment_from_comfort * (physical.comfort - 0.5) * elapsed
        )

    def _decay_skills(self, agent: Agent, now: int, elapsed: int) -> None:
        grace = self.tuning.decay.skill_decay_grace
        for skill in agent.skills.values():
            if now - skill.last_used > grace:
                skill.level = max(0.0, skill.level - skill.decay_rate * elapsed)

    def _settle_ledger(self, agent: Agent, elapsed: int) -> None:
        economy = agent.economy
        net = sum(economy.income.values()) - sum(economy.expenses.values())
        economy.wealth = max(0.0, economy.wealth + net * elapsed)

    def _refresh_behavior(self, agent: Agent) -> None:
        behavior = agent.behavior
        behavior.stress_level = agent.emotions.stress
        behavior.energy_level = _clamp(0.7 * agent.physical_needs.fatigue + 0.3 * agent.physical_needs.health)
        behavior.motivation_level = _clamp(
            0.4 * agent.personality.ambition
            + 0.3 * agent.social_needs.purpose
            + 0.3 * (1.0 - agent.emotions.sadness)
        )
