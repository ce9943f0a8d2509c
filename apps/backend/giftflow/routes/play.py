from fastapi import APIRouter, Depends, status

from giftflow.schemas.flows import PublishedFlow, SessionAnswersRequest, SessionResponse
from giftflow.services import projects as project_service
from giftflow.services import sessions as session_service
from giftflow.storage import RowStore, get_store

# Anonymous playback of published flows; no auth on these routes.
play_router = APIRouter(prefix="/play", tags=["play"])
sessions_router = APIRouter(prefix="/sessions", tags=["play"])


@play_router.get("/{share_slug}", response_model=PublishedFlow)
def get_published_flow(share_slug: str, store: RowStore = Depends(get_store)):
    project, nodes = project_service.get_published_flow(share_slug, store=store)
    return PublishedFlow(
        title=project.title,
        description=project.description,
        theme=project.theme,
        share_slug=share_slug,
        nodes=nodes,
    )


@play_router.post("/{share_slug}/sessions", status_code=status.HTTP_201_CREATED, response_model=SessionResponse)
def start_session(share_slug: str, store: RowStore = Depends(get_store)):
    return SessionResponse(session=session_service.create_session(share_slug, store=store))


@sessions_router.post("/{session_id}/answers", response_model=SessionResponse)
def record_answers(session_id: str, payload: SessionAnswersRequest, store: RowStore = Depends(get_store)):
    session = session_service.record_answers(session_id, payload.answers, payload.completed, store=store)
    return SessionResponse(session=session)
