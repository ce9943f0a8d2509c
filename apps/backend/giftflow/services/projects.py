from __future__ import annotations

import logging
import secrets
from datetime import datetime, timezone
from typing import Any, Optional

from giftflow.agent.flow.schema import FlowSpec, dump_content, validate_content
from giftflow.agent.flow.themes import is_theme
from giftflow.schemas.flows import Node, Project
from giftflow.services.errors import (
    InvalidInputError,
    NodeNotFoundError,
    ProjectNotFoundError,
    StoreFailureError,
)
from giftflow.storage import RowStore, StoreError, UniqueViolationError, get_store

logger = logging.getLogger(__name__)

SHARE_SLUG_BYTES = 12
_SLUG_ATTEMPTS = 5


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def project_from_row(row: dict[str, Any]) -> Project:
    return Project(
        id=str(row["id"]),
        owner_id=str(row["user_id"]),
        title=row["title"],
        description=row.get("description"),
        theme=row["theme"],
        published=bool(row.get("published")),
        share_slug=row.get("share_slug") if row.get("published") else None,
        created_at=row.get("created_at"),
        updated_at=row.get("updated_at"),
    )


def node_from_row(row: dict[str, Any]) -> Node:
    return Node(
        id=str(row["id"]),
        project_id=str(row["project_id"]),
        type=row["type"],
        order_index=int(row["order_index"]),
        content=row.get("content") or {},
        updated_at=row.get("updated_at"),
    )


def node_rows_for(project_id: str, flow: FlowSpec) -> list[dict[str, Any]]:
    return [
        {
            "project_id": project_id,
            "type": node.type,
            "order_index": position,
            "content": dump_content(node.content),
        }
        for position, node in enumerate(flow.nodes)
    ]


def create_project(owner_id: str, flow: FlowSpec, *, store: RowStore | None = None) -> tuple[Project, list[Node]]:
    store = store or get_store()
    try:
        row = store.insert(
            "projects",
            {
                "user_id": owner_id,
                "title": flow.title,
                "description": flow.description,
                "theme": flow.theme,
                "published": False,
            },
        )
    except StoreError as exc:
        logger.error("Project creation failed: %s", exc)
        raise StoreFailureError("Failed to create project. Please try again.") from exc

    project_id = str(row["id"])
    try:
        node_rows = store.insert_many("nodes", node_rows_for(project_id, flow))
    except StoreError as exc:
        logger.error("Node insertion failed for project %s, rolling back: %s", project_id, exc)
        try:
            store.delete("projects", where={"id": project_id})
        except StoreError:
            logger.exception("Rollback of project %s failed", project_id)
        raise StoreFailureError("Failed to create flow nodes. Please try again.") from exc

    logger.info("Project %s created with %s nodes", project_id, len(node_rows))
    nodes = sorted((node_from_row(r) for r in node_rows), key=lambda n: n.order_index)
    return project_from_row(row), nodes


def require_project_row(project_id: str, owner_id: str, store: RowStore) -> dict[str, Any]:
    try:
        row = store.select_one("projects", where={"id": project_id, "user_id": owner_id})
    except StoreError as exc:
        raise StoreFailureError("Failed to load project.") from exc
    if not row:
        raise ProjectNotFoundError("Project not found")
    return row


def get_project(project_id: str, owner_id: str, *, store: RowStore | None = None) -> Project:
    return project_from_row(require_project_row(project_id, owner_id, store or get_store()))


def list_projects(owner_id: str, *, store: RowStore | None = None) -> list[Project]:
    store = store or get_store()
    try:
        rows = store.select("projects", where={"user_id": owner_id}, order_by="created_at", descending=True)
    except StoreError as exc:
        raise StoreFailureError("Failed to load projects.") from exc
    return [project_from_row(r) for r in rows]


def _update_project(project_id: str, owner_id: str, values: dict[str, Any], store: RowStore) -> Project:
    values = {**values, "updated_at": _now_iso()}
    try:
        rows = store.update("projects", values, where={"id": project_id, "user_id": owner_id})
    except StoreError as exc:
        raise StoreFailureError("Failed to update project.") from exc
    if not rows:
        raise ProjectNotFoundError("Project not found")
    return project_from_row(rows[0])


def update_project(
    project_id: str,
    owner_id: str,
    *,
    title: Optional[str] = None,
    description: Optional[str] = None,
    store: RowStore | None = None,
) -> Project:
    values: dict[str, Any] = {}
    if title is not None:
        title = title.strip()
        if not title:
            raise InvalidInputError("Title cannot be empty.")
        values["title"] = title
    if description is not None:
        values["description"] = description.strip() or None
    if not values:
        return get_project(project_id, owner_id, store=store)
    return _update_project(project_id, owner_id, values, store or get_store())


def update_theme(project_id: str, owner_id: str, theme: str, *, store: RowStore | None = None) -> Project:
    if not is_theme(theme):
        raise InvalidInputError(f"Unknown theme '{theme}'.")
    return _update_project(project_id, owner_id, {"theme": theme}, store or get_store())


def publish_project(project_id: str, owner_id: str, *, store: RowStore | None = None) -> Project:
    store = store or get_store()
    row = require_project_row(project_id, owner_id, store)
    if row.get("published") and row.get("share_slug"):
        return project_from_row(row)
    for _ in range(_SLUG_ATTEMPTS):
        slug = secrets.token_urlsafe(SHARE_SLUG_BYTES)
        try:
            return _update_project(project_id, owner_id, {"published": True, "share_slug": slug}, store)
        except StoreFailureError as exc:
            if not isinstance(exc.__cause__, UniqueViolationError):
                raise
            logger.warning("Share slug collision for project %s, regenerating", project_id)
    raise StoreFailureError("Failed to publish project.")


def unpublish_project(project_id: str, owner_id: str, *, store: RowStore | None = None) -> Project:
    return _update_project(project_id, owner_id, {"published": False, "share_slug": None}, store or get_store())


def delete_project(project_id: str, owner_id: str, *, store: RowStore | None = None) -> None:
    store = store or get_store()
    try:
        deleted = store.delete("projects", where={"id": project_id, "user_id": owner_id})
    except StoreError as exc:
        raise StoreFailureError("Failed to delete project.") from exc
    if not deleted:
        raise ProjectNotFoundError("Project not found")
    logger.info("Project %s deleted", project_id)


def select_nodes(project_id: str, store: RowStore) -> list[Node]:
    try:
        rows = store.select("nodes", where={"project_id": project_id}, order_by="order_index")
    except StoreError as exc:
        raise StoreFailureError("Failed to load screens.", needs_refresh=True) from exc
    return [node_from_row(r) for r in rows]


def list_nodes(project_id: str, owner_id: str, *, store: RowStore | None = None) -> list[Node]:
    store = store or get_store()
    require_project_row(project_id, owner_id, store)
    return select_nodes(project_id, store)


def update_node_content(
    project_id: str,
    node_id: str,
    owner_id: str,
    content: dict[str, Any],
    *,
    store: RowStore | None = None,
) -> Node:
    store = store or get_store()
    require_project_row(project_id, owner_id, store)
    try:
        row = store.select_one("nodes", where={"id": node_id, "project_id": project_id})
    except StoreError as exc:
        raise StoreFailureError("Failed to load screen.") from exc
    if not row:
        raise NodeNotFoundError("Screen not found")
    canonical = validate_content(row["type"], content)
    try:
        rows = store.update(
            "nodes",
            {"content": canonical, "updated_at": _now_iso()},
            where={"id": node_id, "project_id": project_id},
        )
    except StoreError as exc:
        raise StoreFailureError("Failed to update screen.") from exc
    if not rows:
        raise NodeNotFoundError("Screen not found")
    return node_from_row(rows[0])


def get_published_flow(share_slug: str, *, store: RowStore | None = None) -> tuple[Project, list[Node]]:
    store = store or get_store()
    try:
        row = store.select_one("projects", where={"share_slug": share_slug, "published": True})
    except StoreError as exc:
        raise StoreFailureError("Failed to load gift.") from exc
    if not row:
        raise ProjectNotFoundError("Gift not found")
    return project_from_row(row), select_nodes(str(row["id"]), store)
