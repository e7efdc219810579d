"""
Pydantic schemas for usage endpoints.
"""
from typing import Literal, Optional
from pydantic import AliasChoices, BaseModel, Field


class ActionUsage(BaseModel):
    """Usage of one metered action for today."""
    used: int = Field(..., description="Used today")
    limit: int = Field(..., description="Daily limit for the plan")
    remaining: int = Field(..., description="Remaining today, never negative")


class UsageBreakdown(BaseModel):
    searches: ActionUsage
    deepSearches: ActionUsage


class PlanLimits(BaseModel):
    searchesPerDay: int
    deepSearchesPerDay: int


class UsageResponse(BaseModel):
    """Response schema for GET /me/usage."""
    plan: str = Field(..., description="Current plan type (free, pro)")
    date: str = Field(..., description="UTC day the counters belong to (YYYY-MM-DD)")
    limits: PlanLimits
    usage: UsageBreakdown

    class Config:
        json_schema_extra = {
            "example": {
                "plan": "free",
                "date": "2026-01-15",
                "limits": {"searchesPerDay": 10, "deepSearchesPerDay": 2},
                "usage": {
                    "searches": {"used": 3, "limit": 10, "remaining": 7},
                    "deepSearches": {"used": 0, "limit": 2, "remaining": 2},
                },
            }
        }


class UsageActionRequest(BaseModel):
    """Request schema for POST /usage/check and POST /usage/track."""
    searchMode: Literal["search", "deep-search"] = Field(
        ..., validation_alias=AliasChoices("searchMode", "search_mode")
    )


class UsageCheckResponse(BaseModel):
    """Response schema for POST /usage/check."""
    canPerform: bool
    userType: Literal["guest", "free", "pro"]
    limits: PlanLimits
    usage: UsageBreakdown
    reason: Optional[str] = None
    message: Optional[str] = None
    requiresLogin: Optional[bool] = None
    requiresUpgrade: Optional[bool] = None
    requiresContact: Optional[bool] = None


class UsageTrackResponse(BaseModel):
    success: bool = True
    message: str
    usage: Optional[UsageBreakdown] = None
