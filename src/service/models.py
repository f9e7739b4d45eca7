"""
Models for the matchmaking service API.

This module defines Pydantic models for API requests and responses.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, model_validator

from matchmaking.models import RecommendationResult, RelationStatus, ResponseAction


class RecommendationRequest(BaseModel):
    """Recommendation request model."""

    user_id: str = Field(description="User ID for recommendations")

    @model_validator(mode="before")
    @classmethod
    def ensure_user_id(cls, data):
        """Ensure user_id is always present and non-empty."""
        if isinstance(data, dict):
            if not str(data.get("user_id") or "").strip():
                raise ValueError("user_id is required and cannot be null or empty")
        return data


class RespondRequest(BaseModel):
    """What the user did with a recommended candidate."""

    user_id: str = Field(description="User acting on the recommendation")
    candidate_id: str = Field(description="Recommended user that was acted on")
    action: ResponseAction = Field(description="connected, skipped or hidden")


class RelationRequest(BaseModel):
    """Connection request between two users."""

    sender_id: str = Field(description="User who sent the request")
    receiver_id: str = Field(description="User who received the request")


class WeeklyBatchRequest(BaseModel):
    """Weekly drop batch request model."""

    user_ids: Optional[List[str]] = Field(
        default=None, description="Users to process (all users with a profile if omitted)"
    )


class RecommendationResponse(BaseModel):
    """Recommendation response model."""

    mode: str = Field(default="suggestion", description="suggestion or weekly_drop")
    candidates: List[Dict[str, Any]] = Field(
        default_factory=list, description="Recommended users with reasons"
    )
    week_start: Optional[str] = Field(default=None, description="Monday of the drop week")
    drop_status: Optional[str] = Field(default=None, description="Status of this week's drop")
    processing_time_ms: float = Field(default=0.0, description="Processing time in milliseconds")
    error: str = Field(default="", description="Error message (empty string for success)")


class RelationResponse(BaseModel):
    """Relation response model."""

    sender_id: str
    receiver_id: str
    status: RelationStatus


def create_safe_response(
    result: Optional[RecommendationResult] = None,
    processing_time_ms: Optional[float] = None,
    error: Optional[str] = None,
) -> dict:
    """Create a response dictionary that is always well-formed, even on failure."""
    if result is None:
        payload = {"mode": "suggestion", "candidates": [], "week_start": None, "drop_status": None}
    else:
        payload = result.model_dump(mode="json")
    payload["processing_time_ms"] = processing_time_ms if processing_time_ms is not None else 0.0
    payload["error"] = error or ""
    return payload


def validate_and_sanitize_response(response_data: dict) -> dict:
    """Validate and sanitize response data to prevent null fields the client can't handle."""
    try:
        if not isinstance(response_data.get("candidates"), list):
            response_data["candidates"] = []
        else:
            response_data["candidates"] = [
                c for c in response_data["candidates"] if isinstance(c, dict) and c.get("id")
            ]

        if not response_data.get("mode"):
            response_data["mode"] = "suggestion"

        processing_time = response_data.get("processing_time_ms")
        if not isinstance(processing_time, (int, float)) or processing_time < 0:
            response_data["processing_time_ms"] = 0.0

        if response_data.get("error") is None:
            response_data["error"] = ""

        return RecommendationResponse(**response_data).model_dump()
    except Exception as e:
        return create_safe_response(error=f"Response validation failed: {e}")
