import asyncio
import logging

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from giftflow.auth.deps import user_id_from_token
from giftflow.services import ordering
from giftflow.services import projects as project_service
from giftflow.services.debounce import ReorderDebouncer
from giftflow.services.errors import ServiceError, error_payload
from giftflow.storage import RowStore, get_store

logger = logging.getLogger(__name__)

editor_router = APIRouter(prefix="/projects", tags=["editor"])


def _token_from(websocket: WebSocket) -> str | None:
    token = websocket.query_params.get("token")
    if token:
        return token
    auth_header = websocket.headers.get("authorization") or ""
    if auth_header.lower().startswith("bearer "):
        return auth_header.split(" ", 1)[1].strip()
    return None


async def _send(websocket: WebSocket, message: dict) -> None:
    try:
        await websocket.send_json(message)
    except (WebSocketDisconnect, RuntimeError):
        logger.debug("Editor socket closed before %s could be sent", message.get("type"))


@editor_router.websocket("/{project_id}/editor")
async def editor_channel(websocket: WebSocket, project_id: str, store: RowStore = Depends(get_store)):
    """Drag-and-drop channel: reorders are debounced and applied once the user settles."""
    await websocket.accept()
    try:
        user_id = user_id_from_token(_token_from(websocket))
        await asyncio.to_thread(project_service.get_project, project_id, user_id, store=store)
    except ServiceError as exc:
        await websocket.close(code=1008, reason=exc.message)
        return

    async def apply(pid: str, node_ids: list[str]) -> None:
        try:
            await asyncio.to_thread(ordering.reorder_nodes, pid, user_id, node_ids, store=store)
        except ServiceError as exc:
            logger.warning("Editor reorder for project %s rejected: %s", pid, exc.message)
            await _send(websocket, {"type": "error", **error_payload(exc)})
            return
        await _send(websocket, {"type": "reordered", "ok": True, "nodeIds": node_ids})

    debouncer = ReorderDebouncer(apply)
    try:
        while True:
            message = await websocket.receive_json()
            kind = message.get("type") if isinstance(message, dict) else None
            if kind == "reorder":
                node_ids = message.get("nodeIds")
                if not isinstance(node_ids, list) or not all(isinstance(i, str) for i in node_ids):
                    await _send(websocket, {"type": "error", "error": "nodeIds must be a list of ids"})
                    continue
                debouncer.submit(project_id, node_ids)
                await _send(websocket, {"type": "queued"})
            elif kind == "flush":
                await debouncer.flush(project_id)
            elif kind == "ping":
                await _send(websocket, {"type": "pong"})
            else:
                await _send(websocket, {"type": "error", "error": f"Unknown message type: {kind}"})
    except WebSocketDisconnect:
        logger.debug("Editor socket for project %s disconnected", project_id)
    finally:
        await debouncer.aclose()
