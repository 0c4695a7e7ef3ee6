"""Structured LLM calls with schema-aware retries for the narrative collaborator."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Callable, Sequence, TypeVar

from mirascope import llm
from pydantic import BaseModel, ValidationError
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt

from .config import Config
from .logging_utils import log_error, log_llm


ModelT = TypeVar("ModelT", bound=BaseModel)


@dataclass(slots=True)
class ValidationFeedback:
    """What the model is told after its output failed validation."""

    llm_text: str
    issues: Sequence[str]


def _preview(value: Any, *, limit: int = 80) -> str:
    if value is None:
        return "null"
    text = repr(value)
    return text if len(text) <= limit else text[: limit - 3] + "..."


def inject_validation_feedback(error: ValidationError) -> ValidationFeedback:
    """Turn a pydantic ValidationError into correction instructions.

    Each issue reads `path: message [type=...] | received=...`, with the path
    in dot notation (e.g. `worldStateChanges.factionChanges.0.factionName`).
    """

    issues: list[str] = []
    for err in error.errors(include_url=False):
        loc = ".".join(str(part) for part in err.get("loc", [])) or "root"
        details = f"{loc}: {err.get('msg', 'validation error')}"
        if err.get("type"):
            details += f" [type={err['type']}]"
        if "input" in err:
            details += f" | received={_preview(err['input'])}"
        issues.append(details)

    if not issues:
        issues.append("root: response did not match the expected schema")

    lines = [
        "Your previous JSON response failed to validate against the required schema.",
        "Produce a corrected response that strictly matches the schema.",
        "Return only valid JSON, without explanations or code fences.",
        "Issues detected:",
    ]
    lines.extend(f"- {issue}" for issue in issues)
    return ValidationFeedback(llm_text="\n".join(lines), issues=issues)


async def call_llm_with_retries(
    *,
    system_prompt: str,
    user_prompt: str,
    llm_provider: str,
    llm_model: str,
    response_model: type[ModelT],
    max_attempts: int = 3,
    timeout_seconds: float | None = None,
    feedback_builder: Callable[[ValidationError], ValidationFeedback] = inject_validation_feedback,
) -> ModelT:
    """Invoke a structured LLM call, retrying only on schema validation failures.

    Validation feedback is appended to the original prompt so the model keeps
    its full context. Timeouts and provider errors are not retried here; they
    propagate to the caller, which decides whether the result can be deferred.
    """

    timeout = timeout_seconds if timeout_seconds is not None else Config.NARRATIVE_TIMEOUT_SECONDS
    base_sections = [section for section in (system_prompt.strip(), user_prompt.strip()) if section]
    feedback: ValidationFeedback | None = None

    @llm.call(provider=llm_provider, model=llm_model, response_model=response_model)
    async def _invoke(prompt: str) -> str:
        return prompt

    attempt_number = 0
    async for attempt in AsyncRetrying(
        retry=retry_if_exception_type(ValidationError),
        stop=stop_after_attempt(max_attempts),
        reraise=True,
    ):
        with attempt:
            attempt_number += 1
            if attempt_number > 1:
                log_llm(
                    f"Retry {attempt_number}/{max_attempts} for {response_model.__name__}; "
                    "asking for a schema correction"
                )
            sections = list(base_sections)
            if feedback is not None:
                sections.append(feedback.llm_text)
            try:
                return await asyncio.wait_for(_invoke("\n\n".join(sections)), timeout=timeout)
            except ValidationError as exc:
                feedback = feedback_builder(exc)
                log_error(
                    f"Schema validation failed for {response_model.__name__} "
                    f"(attempt {attempt_number}/{max_attempts})"
                )
                for issue in feedback.issues:
                    print(f"    - {issue}")
                raise
            except asyncio.TimeoutError:
                log_error(f"LLM call timed out after {timeout:g}s for {response_model.__name__}")
                raise

    raise RuntimeError("LLM retry mechanism exited unexpectedly")
