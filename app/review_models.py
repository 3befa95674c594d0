"""
Pydantic models for ReplyMate: stored rows, provider payloads, and request/response schemas.
"""
from datetime import datetime
from enum import Enum
from typing import List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


# ----- Stored rows -----

class Business(BaseModel):
    id: str
    user_id: str
    place_id: str
    name: Optional[str] = None
    address: Optional[str] = None
    phone: Optional[str] = None
    website: Optional[str] = None
    category: Optional[str] = None
    rating: Optional[float] = None
    total_reviews: int = 0
    last_sync_at: Optional[datetime] = None
    default_language: Optional[str] = None
    default_tone: Optional[str] = None
    custom_instructions: Optional[str] = None
    is_active: bool = True


class GoogleConnection(BaseModel):
    """One OAuth credential per user."""
    id: str
    user_id: str
    access_token: str
    refresh_token: Optional[str] = None
    token_type: Optional[str] = None
    scope: Optional[str] = None
    expires_at: Optional[datetime] = None


class ReviewRecord(BaseModel):
    """A review normalized from either provider, ready to be written."""
    google_review_id: str
    author_name: str
    author_photo_url: Optional[str] = None
    rating: int = Field(ge=1, le=5)
    text: Optional[str] = None
    language: Optional[str] = None
    has_reply: bool = False
    reply_text: Optional[str] = None
    reply_author: Optional[str] = None
    replied_at: Optional[datetime] = None
    review_created_at: datetime


class StoredReview(ReviewRecord):
    id: str
    business_id: Optional[str] = None
    fetched_at: Optional[datetime] = None


class Competitor(BaseModel):
    id: str
    business_id: str
    competitor_place_id: str
    name: Optional[str] = None
    rating: Optional[float] = None
    total_reviews: int = 0
    last_sync_at: Optional[datetime] = None


class Template(BaseModel):
    """A tone template (read-only here; managed elsewhere)."""
    instructions: Optional[str] = None
    example_response: Optional[str] = None


# ----- Provider payloads (wire field names) -----

class GoogleReviewer(BaseModel):
    model_config = ConfigDict(extra="ignore")
    displayName: Optional[str] = None
    profilePhotoUrl: Optional[str] = None
    isAnonymous: Optional[bool] = None


class GoogleReviewReply(BaseModel):
    model_config = ConfigDict(extra="ignore")
    comment: Optional[str] = None
    updateTime: Optional[str] = None


class GoogleReviewPayload(BaseModel):
    """Review as returned by the Business Profile v4 reviews.list call."""
    model_config = ConfigDict(extra="ignore")
    source: Literal["google_business"] = "google_business"
    name: Optional[str] = None
    reviewId: Optional[str] = None
    starRating: Optional[str] = None
    comment: Optional[str] = None
    createTime: Optional[str] = None
    updateTime: Optional[str] = None
    reviewerLanguage: Optional[str] = None
    reviewer: Optional[GoogleReviewer] = None
    reviewReply: Optional[GoogleReviewReply] = None


class PlacesReviewPayload(BaseModel):
    """Review as returned by Places API place details (max 5, no reply data)."""
    model_config = ConfigDict(extra="ignore")
    source: Literal["places"] = "places"
    author_name: Optional[str] = None
    author_url: Optional[str] = None
    language: Optional[str] = None
    profile_photo_url: Optional[str] = None
    rating: Optional[float] = None
    relative_time_description: Optional[str] = None
    text: Optional[str] = None
    time: int = 0


ProviderReview = Union[GoogleReviewPayload, PlacesReviewPayload]


class ReviewSource(str, Enum):
    GOOGLE_BUSINESS = "google_business"
    PLACES = "places"


class FetchResult(BaseModel):
    source: ReviewSource
    reviews: List[ProviderReview] = Field(default_factory=list)
    average_rating: Optional[float] = None
    total_review_count: Optional[int] = None

    @property
    def used_fallback(self) -> bool:
        return self.source == ReviewSource.PLACES


class LocationHandle(BaseModel):
    """Business Profile location, e.g. accounts/123/locations/456."""
    account_name: str
    location_name: str


class ReconcileResult(BaseModel):
    inserted: int = 0
    updated: int = 0


class ReplyResult(BaseModel):
    review_id: str
    comment: str
    replied_at: datetime


# ----- Requests -----

class SyncRequest(BaseModel):
    businessId: Optional[str] = None


class ReplyRequest(BaseModel):
    businessId: Optional[str] = None
    reviewId: Optional[str] = None
    replyText: Optional[str] = None


class ConnectBusinessRequest(BaseModel):
    placeId: Optional[str] = None


class GenerateReplyRequest(BaseModel):
    tone: Optional[str] = None
    language: Optional[str] = None


# ----- Responses -----

class BusinessSummary(BaseModel):
    id: str
    rating: Optional[float] = None
    total_reviews: Optional[int] = None
    last_sync_at: Optional[datetime] = None


class SyncResponse(BaseModel):
    """Result of POST /sync"""
    inserted: int
    updated: int
    reviewCount: int
    usedPlacesAPI: bool
    reauthRequired: bool = False
    message: str
    business: BusinessSummary


class ReplyResponse(BaseModel):
    success: bool = True
    message: str = "Reply posted successfully"
    replied_at: datetime
