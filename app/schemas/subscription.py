"""
Pydantic schemas for subscription endpoints.
"""
from typing import Optional
from datetime import datetime
from pydantic import BaseModel, Field

from app.schemas.usage import UsageBreakdown, PlanLimits


class SubscriptionInfo(BaseModel):
    planType: str = Field(..., description="free or pro")
    status: str
    billingPeriod: Optional[str] = None
    currentPeriodStart: Optional[datetime] = None
    currentPeriodEnd: Optional[datetime] = None
    cancelAtPeriodEnd: bool = False


class SubscriptionStatusResponse(BaseModel):
    """Response schema for GET /subscription/status."""
    subscription: SubscriptionInfo
    limits: PlanLimits
    usage: UsageBreakdown


class CancelSubscriptionRequest(BaseModel):
    cancelAtPeriodEnd: bool = Field(True, description="Keep the plan until the current period ends")

    class Config:
        json_schema_extra = {"example": {"cancelAtPeriodEnd": True}}


class CancelSubscriptionResponse(BaseModel):
    success: bool = True
    message: str
    subscription: SubscriptionInfo
