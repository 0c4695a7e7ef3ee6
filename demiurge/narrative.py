"""
Narrative collaborator.

Narrative generation runs after a turn has committed and reads only the
NarrativeProjection of the committed snapshot. It never mutates world state;
any `worldStateChanges` it proposes are handed back to the orchestrator, which
queues them as the next turn's consequences.

Two generators are provided:
- LLMNarrativeGenerator: structured LLM call via Mirascope. Any failure
  (schema never validated, timeout, provider error) surfaces as
  ExternalUnavailableError so the caller can mark the narrative pending.
- FallbackNarrativeGenerator: deterministic prose built from the projection,
  with the observe/intervene/guide choices. Useful offline and in tests.
"""

import json
from abc import ABC, abstractmethod
from typing import List, Optional

from .config import Config
from .errors import ExternalUnavailableError
from .llm_utils import call_llm_with_retries
from .logging_utils import log_llm
from .projection import NarrativeProjection
from .schemas import Choice, NarrativePayload, StructuredNarrative


DEFAULT_SYSTEM_PROMPT = """
You narrate a living world for the supreme being who watches over it.
The simulation has already decided what happened; describe it faithfully.
Never invent deaths, births or faction changes that the world delta does not show.

Write choices for the divine observer, not for mortals: "Send visions to the
elders", not "Build a wall". Use the real faction and region names you are given.
Each choice should name both a possible benefit and a possible cost.

worldStateChanges is optional. When present, factionChanges may carry numeric
deltas (wealthDelta, militaryDelta, technologyDelta, stabilityDelta,
populationDelta) or a short text such as "weakened by famine".
""".strip()


FALLBACK_CHOICES = (
    ("observe", "Observe silently and let mortals solve their own problems", "👁️"),
    ("intervene", "Intervene directly in the affairs of {faction}", "⚡"),
    ("guide", "Send guiding visions to the people of {region}", "🌟"),
)


class NarrativeGenerator(ABC):
    """Turns a committed world projection into narrative, choices and suggested consequences."""

    @abstractmethod
    async def generate(self, projection: NarrativeProjection) -> NarrativePayload:
        """Produce the narrative payload.

        Raises:
            ExternalUnavailableError: If no narrative could be produced
        """


def build_user_prompt(projection: NarrativeProjection) -> str:
    overview = projection.model_dump(
        mode="json",
        exclude={"recent_events", "delta"},
        exclude_none=True,
    )
    if projection.recent_events:
        history = "\n".join(
            f"Turn {event.turn_number}: {event.narrative}" for event in projection.recent_events
        )
    else:
        history = "Nothing has been recorded yet."
    delta = projection.delta.model_dump_json(indent=2) if projection.delta else "{}"
    last_action = next(
        (event.player_action for event in projection.recent_events if event.player_action),
        None,
    )
    divine = f"Last divine action: {last_action}" if last_action else "The divine observer has watched silently."

    return f"""
World overview (turn {projection.turn}):

{json.dumps(overview, indent=2)}

What happened recently:
{history}

{divine}

What changed during the turn that just committed:

{delta}

Write what happens next. Output JSON matching the NarrativePayload schema:
a narrative (either prose or {{title, opening, situation, stakes, perspective}}),
three or four choices ({{id, text, icon}}), and optionally worldStateChanges.
"""


class LLMNarrativeGenerator(NarrativeGenerator):
    """Narrative from an LLM provider through call_llm_with_retries."""

    def __init__(
        self,
        *,
        llm_provider: Optional[str] = None,
        llm_model: Optional[str] = None,
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
        max_attempts: Optional[int] = None,
        timeout_seconds: Optional[float] = None,
    ):
        self.llm_provider = llm_provider or Config.LLM_PROVIDER
        self.llm_model = llm_model or Config.LLM_MODEL
        self.system_prompt = system_prompt
        self.max_attempts = max_attempts or Config.NARRATIVE_MAX_ATTEMPTS
        self.timeout_seconds = timeout_seconds or Config.NARRATIVE_TIMEOUT_SECONDS

    async def generate(self, projection: NarrativeProjection) -> NarrativePayload:
        log_llm(f"[Narrative] Requesting narrative for turn {projection.turn} ({self.llm_provider}/{self.llm_model})")
        try:
            return await call_llm_with_retries(
                system_prompt=self.system_prompt,
                user_prompt=build_user_prompt(projection),
                llm_provider=self.llm_provider,
                llm_model=self.llm_model,
                response_model=NarrativePayload,
                max_attempts=self.max_attempts,
                timeout_seconds=self.timeout_seconds,
            )
        except Exception as exc:
            # Everything past this boundary is the provider's problem, not the turn's
            reason = f"{type(exc).__name__}: {exc}" if str(exc) else type(exc).__name__
            raise ExternalUnavailableError(
                world_id=projection.world_id,
                turn=projection.turn,
                reason=reason,
            ) from exc


class FallbackNarrativeGenerator(NarrativeGenerator):
    """Deterministic narrative built from the projection alone."""

    def __init__(self, *, structured: bool = True):
        self.structured = structured

    async def generate(self, projection: NarrativeProjection) -> NarrativePayload:
        being = projection.setup.supreme_being.name if projection.setup else "The creator"
        faction = projection.factions[0].status.name if projection.factions else "your people"
        region = projection.regions[0] if projection.regions else "the central lands"
        state = projection.current_state

        situation = self._situation(projection)
        stakes = (
            f"The balance of power reads: {state.balance_of_power or 'unsettled'}. "
            "How the coming seasons unfold will shape generations."
        )
        opening = (
            f"Year {state.year}, {state.season}. {being} watches from the divine plane "
            f"as {state.weather} skies settle over {region}."
        )
        perspective = f"From above, {faction} draws your attention. A single act could tip the scales."

        if self.structured:
            narrative = StructuredNarrative(
                title=f"Turn {projection.turn}",
                opening=opening,
                situation=situation,
                stakes=stakes,
                perspective=perspective,
            )
        else:
            narrative = "\n\n".join((opening, situation, stakes))

        choices = [
            Choice(id=choice_id, text=text.format(faction=faction, region=region), icon=icon)
            for choice_id, text, icon in FALLBACK_CHOICES
        ]
        return NarrativePayload(narrative=narrative, choices=choices)

    @staticmethod
    def _situation(projection: NarrativeProjection) -> str:
        lines: List[str] = []
        delta = projection.delta
        if delta is not None:
            for name, score in sorted(delta.faction_scores.items()):
                if abs(score.change) >= 0.001:
                    trend = "gains ground" if score.change > 0 else "loses ground"
                    lines.append(f"{name} {trend} ({score.after:.3f}).")
            deaths = [c.agent_id for c in delta.agent_crossings if c.direction == "died"]
            births = [c.agent_id for c in delta.agent_crossings if c.direction == "born"]
            if births:
                lines.append(f"New life arrives: {', '.join(births)}.")
            if deaths:
                lines.append(f"The world mourns {', '.join(deaths)}.")
            lines.extend(delta.new_events)
        if not lines:
            lines.append("Daily life continues; farmers tend their fields and elders speak of omens.")
        return " ".join(lines)
