from __future__ import annotations

import asyncio
import logging

import sentry_sdk

from giftflow.agent.flow import generate
from giftflow.media.resolve import resolve_media
from giftflow.media.unsplash import PhotoSearchProvider
from giftflow.schemas.flows import FlowResponse
from giftflow.services.errors import GenerationFailedError, StoreFailureError
from giftflow.storage import RowStore, get_store

from .projects import create_project

logger = logging.getLogger(__name__)


def _report(exc: BaseException, user_id: str, stage: str) -> None:
    with sentry_sdk.new_scope() as scope:
        scope.set_tag("stage", stage)
        scope.set_user({"id": str(user_id)})
        sentry_sdk.capture_exception(exc)


async def generate_flow_for_user(
    user_id: str,
    prompt: str,
    *,
    store: RowStore | None = None,
    provider: PhotoSearchProvider | None = None,
) -> FlowResponse:
    """Prompt to persisted project: validate, generate, resolve media, store."""
    text = generate.validate_prompt(prompt)
    store = store or get_store()

    try:
        flow = await generate.generate_flow(text)
    except GenerationFailedError as exc:
        _report(exc, user_id, "generate")
        raise

    flow = await resolve_media(flow, provider)

    try:
        project, nodes = await asyncio.to_thread(create_project, user_id, flow, store=store)
    except StoreFailureError as exc:
        _report(exc, user_id, "persist")
        raise

    logger.info("User %s generated project %s", user_id, project.id)
    return FlowResponse(project=project, nodes=nodes)

