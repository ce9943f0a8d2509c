from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile, status

from giftflow.auth.deps import require_user_id
from giftflow.schemas.flows import AssetResponse, OkResponse
from giftflow.services import assets as asset_service
from giftflow.storage import RowStore, get_store

assets_router = APIRouter(prefix="/assets", tags=["assets"])


@assets_router.post("", status_code=status.HTTP_201_CREATED, response_model=AssetResponse)
def upload_asset(
    file: UploadFile = File(...),
    project_id: Optional[str] = Form(None, alias="projectId"),
    alt_text: Optional[str] = Form(None, alias="altText"),
    user_id: str = Depends(require_user_id),
    store: RowStore = Depends(get_store),
    storage: asset_service.ObjectStorage = Depends(asset_service.get_object_storage),
):
    data = file.file.read(asset_service.MAX_ASSET_BYTES + 1)
    asset = asset_service.upload_asset(
        user_id,
        file.filename or "upload",
        data,
        file.content_type or "",
        project_id=project_id,
        alt_text=alt_text,
        store=store,
        storage=storage,
    )
    return AssetResponse(asset=asset)


@assets_router.delete("/{asset_id}", response_model=OkResponse)
def delete_asset(
    asset_id: str,
    user_id: str = Depends(require_user_id),
    store: RowStore = Depends(get_store),
    storage: asset_service.ObjectStorage = Depends(asset_service.get_object_storage),
):
    asset_service.delete_asset(user_id, asset_id, store=store, storage=storage)
    return OkResponse()
