from fastapi import APIRouter, Depends, status

from giftflow.auth.deps import require_user_id
from giftflow.schemas.flows import FlowResponse, GenerateFlowRequest
from giftflow.services import flows as flow_service
from giftflow.storage import RowStore, get_store

flows_router = APIRouter(prefix="/flows", tags=["flows"])


@flows_router.post("", status_code=status.HTTP_201_CREATED, response_model=FlowResponse)
async def create_flow(
    payload: GenerateFlowRequest,
    user_id: str = Depends(require_user_id),
    store: RowStore = Depends(get_store),
):
    return await flow_service.generate_flow_for_user(user_id, payload.prompt, store=store)
