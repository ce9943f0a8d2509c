from __future__ import annotations

import asyncio
import logging
from typing import Optional

from giftflow.agent.flow.schema import DeferredImage, FlowSpec, ResolvedImage

from .unsplash import PhotoSearchProvider, get_photo_provider

logger = logging.getLogger(__name__)

BACKGROUND_IMAGE_TYPES = ("hero", "reveal")
TRACK_DOWNLOAD_TIMEOUT_SECONDS = 2.0


async def _track_quietly(provider: PhotoSearchProvider, tracking_ref: str) -> None:
    try:
        async with asyncio.timeout(TRACK_DOWNLOAD_TIMEOUT_SECONDS):
            await provider.track_download(tracking_ref)
    except TimeoutError:
        logger.warning("Photo download tracking timed out after %ss", TRACK_DOWNLOAD_TIMEOUT_SECONDS)
    except Exception as exc:
        logger.warning("Failed to track photo download: %s", exc)


async def _lookup(
    image: DeferredImage, provider: PhotoSearchProvider, orientation: str
) -> Optional[ResolvedImage]:
    try:
        photo = await provider.search(image.query, orientation)
        if photo is None:
            return None
        resolved = ResolvedImage(
            url=photo.url,
            alt=photo.alt or image.alt or image.query,
            attribution=photo.attribution,
            attribution_url=photo.attribution_url,
            photographer_name=photo.photographer_name,
            photographer_url=photo.photographer_url,
            source="unsplash",
        )
    except Exception as exc:
        logger.warning("Photo search failed for %r: %s", image.query, exc)
        return None
    if photo.tracking_ref:
        await _track_quietly(provider, photo.tracking_ref)
    return resolved


async def _resolve_node(node, provider: PhotoSearchProvider, orientation: str):
    if node.type in BACKGROUND_IMAGE_TYPES and isinstance(node.content.background_image, DeferredImage):
        resolved = await _lookup(node.content.background_image, provider, orientation)
        if resolved is None:
            logger.info("Dropping unresolved background image on %s node %s", node.type, node.id)
        content = node.content.model_copy(update={"background_image": resolved})
        return node.model_copy(update={"content": content})

    if node.type == "media" and isinstance(node.content.image, DeferredImage):
        resolved = await _lookup(node.content.image, provider, orientation)
        if resolved is None:
            # required field: keep the placeholder so renderers can skip the screen
            logger.info("Keeping image placeholder on media node %s", node.id)
            return node
        content = node.content.model_copy(update={"image": resolved})
        return node.model_copy(update={"content": content})

    return node


async def resolve_media(
    flow: FlowSpec,
    provider: PhotoSearchProvider | None = None,
    *,
    orientation: str = "landscape",
) -> FlowSpec:
    provider = provider or get_photo_provider()
    nodes = await asyncio.gather(*(_resolve_node(node, provider, orientation) for node in flow.nodes))
    return flow.model_copy(update={"nodes": list(nodes)})
