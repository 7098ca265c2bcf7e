"""
Pydantic schemas for request/response validation.

This module contains:
- Request models for incoming data validation
- Response models for API responses
"""

from typing import Optional

from pydantic import BaseModel, Field, field_validator

from sparks.models import Coordinates


# =============================================================================
# Pydantic Request Models
# =============================================================================

class CreateGroupRequest(BaseModel):
    """
    Request body for POST /groups.

    latitude/longitude are optional; when either is missing the
    service falls back to the configured reference point.
    """
    name: Optional[str] = Field(
        None,
        max_length=120,
        description="Display name; blank uses the default name"
    )
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    anonymous_allowed: bool = Field(
        True,
        description="Whether anonymous posts are accepted"
    )
    icebreaker: Optional[str] = Field(
        None,
        max_length=280,
        description="Optional opening prompt"
    )

    def coordinates(self) -> Optional[Coordinates]:
        if self.latitude is None or self.longitude is None:
            return None
        return Coordinates(latitude=self.latitude, longitude=self.longitude)

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "name": "Study grind room",
                    "latitude": 14.676,
                    "longitude": 121.0437,
                    "anonymous_allowed": False,
                    "icebreaker": "What's your go-to comfort food?"
                }
            ]
        }
    }


class PostMessageRequest(BaseModel):
    """Request body for POST /groups/{group_id}/messages."""
    text: str = Field(..., max_length=4096, description="Message text; blank is ignored")
    anonymous: bool = Field(False, description="Post under the anonymous label")
    handle: Optional[str] = Field(
        None,
        max_length=64,
        description="Poster's handle; blank uses the guest label"
    )

    @field_validator("handle")
    @classmethod
    def strip_handle(cls, v: Optional[str]) -> Optional[str]:
        return v.strip() if v is not None else v


# =============================================================================
# Pydantic Response Models
# =============================================================================

class GroupResponse(BaseModel):
    """A spark as returned by the API."""
    id: str
    name: str
    created_at: int = Field(..., description="Creation time, ms since epoch")
    expires_at: int = Field(..., description="Expiry time, ms since epoch")
    lat: float
    lng: float
    anonymous_allowed: bool
    icebreaker: Optional[str] = None
    time_left: str = Field(..., description="Remaining lifetime, e.g. '23h 59m 59s'")

    model_config = {"from_attributes": True}


class NearbyGroupResponse(GroupResponse):
    distance: str = Field(..., description="Distance label, e.g. '3 km away'")


class NearbyGroupsResponse(BaseModel):
    """Response model for GET /groups/nearby."""
    data: list[NearbyGroupResponse] = Field(default_factory=list)
    latitude: float
    longitude: float
    radius_km: float


class MessageResponse(BaseModel):
    id: str
    group_id: str
    text: str
    created_at: int
    display_name: str
    anonymous: bool

    model_config = {"from_attributes": True}


class MessagesListResponse(BaseModel):
    """Response model for GET /groups/{group_id}/messages."""
    data: list[MessageResponse] = Field(default_factory=list)
    total: int = Field(..., ge=0)


class PostMessageResponse(BaseModel):
    """
    Response for a post.

    status is "created" with the stored message, or "ignored" when the
    text was blank and nothing was stored.
    """
    status: str
    message: Optional[MessageResponse] = None


class IcebreakersResponse(BaseModel):
    prompts: list[str]
    suggestion: str


class ErrorResponse(BaseModel):
    """Response model for error responses."""
    detail: str = Field(..., description="Error description")


class HealthResponse(BaseModel):
    """Response model for health check endpoints."""
    status: str = Field(..., description="Health status")
    reason: Optional[str] = Field(None, description="Reason if not ready")
    live_groups: Optional[int] = None
