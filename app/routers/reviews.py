"""
ReplyMate review routes: sync, reply, list, draft generation.
All routes need a session (Authorization: Bearer <jwt> or the access_token cookie).
"""
from typing import Optional

from fastapi import APIRouter, Body, Depends, Query

from ..auth import get_store
from ..errors import ValidationError
from ..review_models import (
    GenerateReplyRequest,
    ReplyRequest,
    ReplyResponse,
    SyncRequest,
    SyncResponse,
)
from ..services.review_responder import generate_reply_draft
from ..services.review_sync import post_business_reply, sync_business_reviews
from ..store import Store

router = APIRouter(tags=["reviews"])

REVIEW_FILTERS = {"replied": True, "not_replied": False}
MAX_PAGE_SIZE = 200


@router.post("/sync", response_model=SyncResponse)
def sync_reviews(body: SyncRequest, store: Store = Depends(get_store)):
    """Sync one business: Business Profile when connected, else Places (max 5 reviews)."""
    return sync_business_reviews(store, body.businessId)


@router.post("/reply", response_model=ReplyResponse)
def reply_to_review(body: ReplyRequest, store: Store = Depends(get_store)):
    return post_business_reply(store, body.businessId, body.reviewId, body.replyText)


@router.get("/reviews")
def list_reviews(
    businessId: Optional[str] = Query(None),
    limit: int = Query(50),
    offset: int = Query(0),
    filter: Optional[str] = Query(None),
    store: Store = Depends(get_store),
):
    if not businessId:
        raise ValidationError("Business ID is required")
    if limit < 1 or limit > MAX_PAGE_SIZE or offset < 0:
        raise ValidationError(f"limit must be 1-{MAX_PAGE_SIZE} and offset >= 0")
    if filter and filter not in REVIEW_FILTERS:
        raise ValidationError("filter must be 'replied' or 'not_replied'")
    reviews, total = store.list_reviews(businessId, limit=limit, offset=offset, has_reply=REVIEW_FILTERS.get(filter))
    return {
        "success": True,
        "reviews": [r.model_dump(mode="json") for r in reviews],
        "total": total,
        "limit": limit,
        "offset": offset,
    }


@router.post("/reviews/{review_id}/generate")
def generate_reply(
    review_id: str,
    body: Optional[GenerateReplyRequest] = Body(None),
    store: Store = Depends(get_store),
):
    """Draft a reply with the LLM. The draft is returned, not posted."""
    body = body or GenerateReplyRequest()
    draft = generate_reply_draft(store, review_id, tone=body.tone, language=body.language)
    return {"success": True, **draft}
