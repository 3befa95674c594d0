"""
Business onboarding / delete and competitor sync.
"""
from fastapi import APIRouter, Depends

from ..auth import get_store
from ..review_models import ConnectBusinessRequest
from ..services.businesses import connect_business, remove_business
from ..services.competitors import sync_competitor
from ..store import Store

router = APIRouter(tags=["business"])


@router.post("/business/connect")
def business_connect(body: ConnectBusinessRequest, store: Store = Depends(get_store)):
    """Look the Place ID up on Places and create the business."""
    business = connect_business(store, body.placeId)
    return {"success": True, "business": business.model_dump(mode="json")}


@router.delete("/business/{business_id}")
def business_delete(business_id: str, store: Store = Depends(get_store)):
    remove_business(store, business_id)
    return {"success": True}


@router.post("/competitors/{competitor_id}/sync")
def competitor_sync(competitor_id: str, store: Store = Depends(get_store)):
    return sync_competitor(store, competitor_id)
