from fastapi import APIRouter, Depends, status

from giftflow.auth.deps import require_user_id
from giftflow.schemas.flows import (
    NodeContentUpdateRequest,
    NodeCreateRequest,
    NodeResponse,
    OkResponse,
    ReorderRequest,
)
from giftflow.services import ordering
from giftflow.services import projects as project_service
from giftflow.storage import RowStore, get_store

nodes_router = APIRouter(prefix="/projects/{project_id}/nodes", tags=["nodes"])


@nodes_router.post("", status_code=status.HTTP_201_CREATED, response_model=NodeResponse)
def add_node(
    project_id: str,
    payload: NodeCreateRequest,
    user_id: str = Depends(require_user_id),
    store: RowStore = Depends(get_store),
):
    node = ordering.insert_node(project_id, user_id, payload.type, payload.content, payload.at_index, store=store)
    return NodeResponse(node=node)


@nodes_router.put("/order", response_model=OkResponse)
def reorder_nodes(
    project_id: str,
    payload: ReorderRequest,
    user_id: str = Depends(require_user_id),
    store: RowStore = Depends(get_store),
):
    ordering.reorder_nodes(project_id, user_id, payload.node_ids, store=store)
    return OkResponse()


@nodes_router.patch("/{node_id}", response_model=NodeResponse)
def update_node(
    project_id: str,
    node_id: str,
    payload: NodeContentUpdateRequest,
    user_id: str = Depends(require_user_id),
    store: RowStore = Depends(get_store),
):
    node = project_service.update_node_content(project_id, node_id, user_id, payload.content, store=store)
    return NodeResponse(node=node)


@nodes_router.delete("/{node_id}", response_model=OkResponse)
def delete_node(
    project_id: str,
    node_id: str,
    user_id: str = Depends(require_user_id),
    store: RowStore = Depends(get_store),
):
    ordering.delete_node(project_id, node_id, user_id, store=store)
    return OkResponse()
