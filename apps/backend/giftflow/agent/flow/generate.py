from __future__ import annotations

import asyncio
import logging
import os

from giftflow.agent.llm import complete
from giftflow.services.errors import GenerationFailedError, InvalidInputError

from .graph import build_generation_graph
from .schema import FlowSpec

logger = logging.getLogger(__name__)

MIN_PROMPT_CHARS = 10
MAX_PROMPT_CHARS = 2000
DEFAULT_MAX_ATTEMPTS = 3


def _get_int_env(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except Exception:
        return default


def _get_float_env(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, str(default)))
    except Exception:
        return default


def validate_prompt(prompt: str | None) -> str:
    text = (prompt or "").strip()
    if len(text) < MIN_PROMPT_CHARS:
        raise InvalidInputError("Please provide a more detailed description of your gift experience.")
    if len(text) > MAX_PROMPT_CHARS:
        raise InvalidInputError(f"Description is too long. Please keep it under {MAX_PROMPT_CHARS} characters.")
    return text


async def _backoff_sleep(delay: float) -> None:
    await asyncio.sleep(delay)


async def generate_flow(prompt: str, *, max_attempts: int | None = None) -> FlowSpec:
    text = validate_prompt(prompt)
    attempts = max(1, max_attempts or _get_int_env("GENERATION_MAX_ATTEMPTS", DEFAULT_MAX_ATTEMPTS))

    graph = build_generation_graph(
        complete_fn=complete,
        sleep_fn=_backoff_sleep,
        backoff_base=_get_float_env("GENERATION_BACKOFF_BASE_SECONDS", 1.0),
        attempt_timeout=_get_float_env("GENERATION_ATTEMPT_TIMEOUT_SECONDS", 60.0),
    )
    final = await graph.ainvoke(
        {"prompt": text, "attempt": 0, "max_attempts": attempts, "phase": "requesting", "delays": []},
        config={"recursion_limit": attempts * 4 + 5},
    )

    flow = final.get("flow")
    if flow is None:
        used = int(final.get("attempt") or attempts)
        logger.error("Flow generation exhausted after %s attempt(s): %s", used, final.get("error"))
        raise GenerationFailedError(final.get("error") or "unknown error", attempts=used)

    logger.info("Flow generated: %r (%s nodes)", flow.title, len(flow.nodes))
    return flow
