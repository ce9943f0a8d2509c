"""
Positional integrity for the screens of a flow.

The store keeps ``(project_id, order_index)`` unique and only updates one row
at a time, so moving several screens is done in two phases: every screen that
has to move is first parked on a negative position no other screen can hold,
and only once all of them are parked is each written to its final position.

Target layouts are derived from the stored order rather than the stored
values, so gaps left by deletes and screens left parked by an interrupted
shift are absorbed by the next insert or reorder.
"""
from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Iterator, NamedTuple, Optional

from giftflow.agent.flow.schema import MAX_FLOW_NODES, validate_content
from giftflow.schemas.flows import Node
from giftflow.services.errors import (
    ConcurrentEditError,
    InvalidInputError,
    NodeNotFoundError,
    StaleStateError,
    StoreFailureError,
)
from giftflow.services.projects import node_from_row, require_project_row, select_nodes
from giftflow.storage import RowStore, StoreError, get_store

logger = logging.getLogger(__name__)

STALE_MESSAGE = "Some screens no longer exist. Please refresh the page."
PARTIAL_MESSAGE = "Failed to reorder screens. Please refresh and try again."


class Move(NamedTuple):
    node_id: str
    current: int
    target: int


_EDITING: set[str] = set()
_EDITING_GUARD = threading.Lock()


@contextmanager
def exclusive_edit(project_id: str) -> Iterator[None]:
    """Reject a positional operation while another one runs for the same project.

    Only projects with an edit in flight are tracked.
    """
    with _EDITING_GUARD:
        if project_id in _EDITING:
            raise ConcurrentEditError("Another change to this flow is still being saved. Please try again.")
        _EDITING.add(project_id)
    try:
        yield
    finally:
        with _EDITING_GUARD:
            _EDITING.discard(project_id)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def parking_positions(moves: list[Move], lowest: int) -> list[int]:
    if lowest >= 0:
        return [-(m.current + 1) for m in moves]
    # something is already parked below zero: go below it
    return [lowest - 1 - k for k in range(len(moves))]


def _write_position(store: RowStore, project_id: str, node_id: str, position: int) -> None:
    try:
        rows = store.update(
            "nodes",
            {"order_index": position, "updated_at": _now_iso()},
            where={"id": node_id, "project_id": project_id},
        )
    except StoreError as exc:
        logger.error("Writing position %s for node %s failed: %s", position, node_id, exc)
        raise StoreFailureError(PARTIAL_MESSAGE, needs_refresh=True) from exc
    if not rows:
        logger.error("Node %s vanished while shifting project %s", node_id, project_id)
        raise StaleStateError(STALE_MESSAGE)


def apply_moves(store: RowStore, project_id: str, moves: list[Move], *, lowest: int) -> None:
    """Two-phase shift: park every moving node, then write final positions."""
    if not moves:
        return
    parked = parking_positions(moves, lowest)
    logger.debug("Parking %s node(s) of project %s", len(moves), project_id)
    for move, position in zip(moves, parked):
        _write_position(store, project_id, move.node_id, position)
    logger.debug("Placing %s node(s) of project %s", len(moves), project_id)
    for move in moves:
        _write_position(store, project_id, move.node_id, move.target)


def _layout_moves(ordered: list[Node], targets: list[int]) -> list[Move]:
    return [
        Move(node.id, node.order_index, target)
        for node, target in zip(ordered, targets)
        if node.order_index != target
    ]


def _lowest(nodes: list[Node]) -> int:
    return min((n.order_index for n in nodes), default=0)


def insert_node(
    project_id: str,
    owner_id: str,
    node_type: str,
    content: dict[str, Any],
    at_index: Optional[int] = None,
    *,
    store: RowStore | None = None,
) -> Node:
    store = store or get_store()
    require_project_row(project_id, owner_id, store)
    canonical = validate_content(node_type, content)

    with exclusive_edit(project_id):
        current = select_nodes(project_id, store)
        count = len(current)
        if count >= MAX_FLOW_NODES:
            raise InvalidInputError(f"A flow can have at most {MAX_FLOW_NODES} screens.")
        index = count if at_index is None else at_index
        if not 0 <= index <= count:
            raise InvalidInputError(f"Position must be between 0 and {count}.")

        targets = [k if k < index else k + 1 for k in range(count)]
        moves = _layout_moves(current, targets)
        logger.info("Inserting %s screen at %s in project %s (%s to shift)", node_type, index, project_id, len(moves))
        apply_moves(store, project_id, moves, lowest=_lowest(current))

        try:
            row = store.insert(
                "nodes",
                {"project_id": project_id, "type": node_type, "order_index": index, "content": canonical},
            )
        except StoreError as exc:
            logger.error("Inserting node into project %s failed after shifting: %s", project_id, exc)
            raise StoreFailureError("Failed to add screen. Please refresh and try again.", needs_refresh=True) from exc
    return node_from_row(row)


def reorder_nodes(
    project_id: str,
    owner_id: str,
    ordered_ids: list[str],
    *,
    store: RowStore | None = None,
) -> None:
    store = store or get_store()
    require_project_row(project_id, owner_id, store)

    with exclusive_edit(project_id):
        current = select_nodes(project_id, store)
        by_id = {n.id: n for n in current}
        unknown = [i for i in ordered_ids if i not in by_id]
        if unknown or len(set(ordered_ids)) != len(ordered_ids) or len(ordered_ids) != len(current):
            logger.warning(
                "Stale reorder for project %s: unknown=%s, sent %s ids for %s nodes",
                project_id, unknown, len(ordered_ids), len(current),
            )
            raise StaleStateError(STALE_MESSAGE)

        ordered = [by_id[i] for i in ordered_ids]
        moves = _layout_moves(ordered, list(range(len(ordered))))
        logger.info("Reordering project %s (%s of %s nodes move)", project_id, len(moves), len(ordered))
        apply_moves(store, project_id, moves, lowest=_lowest(current))


def delete_node(project_id: str, node_id: str, owner_id: str, *, store: RowStore | None = None) -> None:
    """Delete one screen. Remaining positions are left as stored; the gap closes on the next insert or reorder."""
    store = store or get_store()
    require_project_row(project_id, owner_id, store)
    with exclusive_edit(project_id):
        try:
            deleted = store.delete("nodes", where={"id": node_id, "project_id": project_id})
        except StoreError as exc:
            raise StoreFailureError("Failed to delete screen.", needs_refresh=True) from exc
    if not deleted:
        raise NodeNotFoundError("Screen not found")
    logger.info("Deleted node %s from project %s", node_id, project_id)
