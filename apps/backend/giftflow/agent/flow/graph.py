from __future__ import annotations

import asyncio
import json
import logging
import re
from typing import Any, Awaitable, Callable, Literal

from langgraph.graph import END, START, StateGraph

from giftflow.services.errors import ContentValidationError

from .prompts import SYSTEM_PROMPT, build_user_prompt
from .schema import validate_flow
from .state import GenerationState
from .validate import bookend_errors, check_flow_structure

logger = logging.getLogger(__name__)

CompleteFn = Callable[[str, str], Awaitable[str]]
SleepFn = Callable[[float], Awaitable[Any]]

_FENCE_OPEN = re.compile(r"^```(?:json)?\s*", re.IGNORECASE)
_FENCE_CLOSE = re.compile(r"\s*```$")


def strip_code_fences(text: str) -> str:
    cleaned = (text or "").strip()
    cleaned = _FENCE_OPEN.sub("", cleaned)
    cleaned = _FENCE_CLOSE.sub("", cleaned)
    return cleaned.strip()


async def _with_timeout(call: Awaitable[str], timeout_s: float) -> str:
    if timeout_s > 0:
        async with asyncio.timeout(timeout_s):
            return await call
    return await call


def _route_after_step(state: GenerationState) -> Literal["next", "backoff", "exhausted"]:
    if state.get("phase") != "failed":
        return "next"
    if int(state.get("attempt") or 0) < int(state.get("max_attempts") or 1):
        return "backoff"
    return "exhausted"


def build_generation_graph(
    *,
    complete_fn: CompleteFn,
    sleep_fn: SleepFn,
    backoff_base: float = 1.0,
    attempt_timeout: float = 0.0,
):
    """Compile the request -> parse -> validate loop with backoff between failed attempts."""

    async def request(state: GenerationState) -> dict[str, Any]:
        attempt = int(state.get("attempt") or 0) + 1
        logger.info("Flow generation attempt %s/%s", attempt, state.get("max_attempts"))
        try:
            raw = await _with_timeout(
                complete_fn(SYSTEM_PROMPT, build_user_prompt(state["prompt"])),
                attempt_timeout,
            )
        except TimeoutError:
            return {"attempt": attempt, "phase": "failed", "error": f"model call timed out after {attempt_timeout}s"}
        except Exception as exc:
            return {"attempt": attempt, "phase": "failed", "error": f"model call failed: {exc}"}
        return {"attempt": attempt, "phase": "parsing", "raw_text": raw, "error": None}

    async def parse(state: GenerationState) -> dict[str, Any]:
        text = strip_code_fences(state.get("raw_text") or "")
        try:
            payload = json.loads(text)
        except json.JSONDecodeError as exc:
            return {"phase": "failed", "error": f"response is not valid JSON: {exc}"}
        return {"phase": "validating", "payload": payload}

    async def validate(state: GenerationState) -> dict[str, Any]:
        try:
            flow = validate_flow(state.get("payload"))
        except ContentValidationError as exc:
            return {"phase": "failed", "error": "flow schema invalid: " + "; ".join(exc.errors)}
        errors = bookend_errors(flow)
        if errors:
            return {"phase": "failed", "error": "; ".join(errors)}
        ok, warnings = check_flow_structure(flow)
        if not ok:
            logger.warning("Generated flow bends structure rules: %s", "; ".join(warnings))
        return {"phase": "done", "flow": flow}

    async def backoff(state: GenerationState) -> dict[str, Any]:
        attempt = int(state.get("attempt") or 1)
        delay = backoff_base * (2 ** (attempt - 1))
        logger.warning("Flow generation attempt %s failed: %s. Retrying in %.1fs", attempt, state.get("error"), delay)
        await sleep_fn(delay)
        return {"phase": "requesting", "delays": [delay]}

    builder = StateGraph(GenerationState)
    builder.add_node("request", request)
    builder.add_node("parse", parse)
    builder.add_node("validate", validate)
    builder.add_node("backoff", backoff)

    builder.add_edge(START, "request")
    builder.add_conditional_edges(
        "request", _route_after_step, {"next": "parse", "backoff": "backoff", "exhausted": END}
    )
    builder.add_conditional_edges(
        "parse", _route_after_step, {"next": "validate", "backoff": "backoff", "exhausted": END}
    )
    builder.add_conditional_edges(
        "validate", _route_after_step, {"next": END, "backoff": "backoff", "exhausted": END}
    )
    builder.add_edge("backoff", "request")
    return builder.compile()
