from fastapi import APIRouter, Depends

from giftflow.auth.deps import require_user_id
from giftflow.schemas.flows import (
    FlowResponse,
    OkResponse,
    Project,
    ProjectListResponse,
    ProjectUpdateRequest,
    ThemeUpdateRequest,
)
from giftflow.services import projects as project_service
from giftflow.storage import RowStore, get_store

projects_router = APIRouter(prefix="/projects", tags=["projects"])


@projects_router.get("", response_model=ProjectListResponse)
def list_projects(user_id: str = Depends(require_user_id), store: RowStore = Depends(get_store)):
    return ProjectListResponse(projects=project_service.list_projects(user_id, store=store))


@projects_router.get("/{project_id}", response_model=FlowResponse)
def get_project(project_id: str, user_id: str = Depends(require_user_id), store: RowStore = Depends(get_store)):
    project = project_service.get_project(project_id, user_id, store=store)
    nodes = project_service.list_nodes(project_id, user_id, store=store)
    return FlowResponse(project=project, nodes=nodes)


@projects_router.patch("/{project_id}", response_model=Project)
def update_project(
    project_id: str,
    payload: ProjectUpdateRequest,
    user_id: str = Depends(require_user_id),
    store: RowStore = Depends(get_store),
):
    return project_service.update_project(
        project_id, user_id, title=payload.title, description=payload.description, store=store
    )


@projects_router.put("/{project_id}/theme", response_model=Project)
def update_theme(
    project_id: str,
    payload: ThemeUpdateRequest,
    user_id: str = Depends(require_user_id),
    store: RowStore = Depends(get_store),
):
    return project_service.update_theme(project_id, user_id, payload.theme, store=store)


@projects_router.post("/{project_id}/publish", response_model=Project)
def publish_project(project_id: str, user_id: str = Depends(require_user_id), store: RowStore = Depends(get_store)):
    return project_service.publish_project(project_id, user_id, store=store)


@projects_router.post("/{project_id}/unpublish", response_model=Project)
def unpublish_project(project_id: str, user_id: str = Depends(require_user_id), store: RowStore = Depends(get_store)):
    return project_service.unpublish_project(project_id, user_id, store=store)


@projects_router.delete("/{project_id}", response_model=OkResponse)
def delete_project(project_id: str, user_id: str = Depends(require_user_id), store: RowStore = Depends(get_store)):
    project_service.delete_project(project_id, user_id, store=store)
    return OkResponse()
