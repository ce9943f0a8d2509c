from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Iterable

from giftflow.schemas.flows import AnswerIn, Session, SessionAnswer
from giftflow.services.errors import (
    ConcurrentEditError,
    InvalidInputError,
    SessionNotFoundError,
    StoreFailureError,
)
from giftflow.storage import RowStore, StoreError, get_store

from .projects import get_published_flow

logger = logging.getLogger(__name__)

ANSWER_WRITE_ATTEMPTS = 3


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def session_from_row(row: dict[str, Any]) -> Session:
    return Session(
        id=str(row["id"]),
        project_id=str(row["project_id"]),
        answers=[SessionAnswer.model_validate(a) for a in row.get("answers") or []],
        completed=bool(row.get("completed")),
        started_at=row.get("started_at"),
        completed_at=row.get("completed_at"),
    )


def create_session(share_slug: str, *, store: RowStore | None = None) -> Session:
    """Open an anonymous playback session on a published flow."""
    store = store or get_store()
    project, _ = get_published_flow(share_slug, store=store)
    try:
        row = store.insert("sessions", {"project_id": project.id})
    except StoreError as exc:
        raise StoreFailureError("Failed to start session.") from exc
    logger.info("Session %s started for project %s", row["id"], project.id)
    return session_from_row(row)


def _load_session(session_id: str, store: RowStore) -> dict[str, Any]:
    try:
        row = store.select_one("sessions", where={"id": session_id})
    except StoreError as exc:
        raise StoreFailureError("Failed to load session.") from exc
    if not row:
        raise SessionNotFoundError("Session not found")
    return row


def _screen_ids(project_id: str, store: RowStore) -> set[str]:
    try:
        project = store.select_one("projects", where={"id": project_id, "published": True})
        if not project:
            # unpublished after the session started
            raise SessionNotFoundError("Session not found")
        return {str(n["id"]) for n in store.select("nodes", where={"project_id": project_id})}
    except StoreError as exc:
        raise StoreFailureError("Failed to load gift.") from exc


def record_answers(
    session_id: str,
    answers: Iterable[AnswerIn],
    completed: bool = False,
    *,
    store: RowStore | None = None,
) -> Session:
    """Append ``answers`` to the session log.

    The write is conditional on the ``updated_at`` that was read, so an
    overlapping append makes this one reload and retry instead of dropping
    the other's entries.
    """
    store = store or get_store()
    row = _load_session(session_id, store)
    node_ids = _screen_ids(str(row["project_id"]), store)

    now = _now_iso()
    new_entries: list[dict[str, Any]] = []
    for answer in answers:
        if answer.node_id not in node_ids:
            raise InvalidInputError(f"Unknown screen '{answer.node_id}'.")
        entry = SessionAnswer(node_id=answer.node_id, answer=answer.answer, timestamp=now)
        new_entries.append(entry.model_dump(by_alias=True))

    for attempt in range(1, ANSWER_WRITE_ATTEMPTS + 1):
        values: dict[str, Any] = {"answers": list(row.get("answers") or []) + new_entries, "updated_at": _now_iso()}
        if completed and not row.get("completed"):
            values["completed"] = True
            values["completed_at"] = values["updated_at"]
        try:
            updated = store.update("sessions", values, where={"id": session_id, "updated_at": row["updated_at"]})
        except StoreError as exc:
            raise StoreFailureError("Failed to save answers.") from exc
        if updated:
            logger.debug("Session %s: %s answer(s) recorded, completed=%s", session_id, len(new_entries), completed)
            return session_from_row(updated[0])
        logger.info("Session %s changed while saving answers (attempt %s), reloading", session_id, attempt)
        row = _load_session(session_id, store)
    raise ConcurrentEditError("Answers are being saved from elsewhere. Try again.")
