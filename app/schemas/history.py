"""
Pydantic schemas for chat history endpoints.
"""
from typing import List
from pydantic import BaseModel, Field

from app.schemas.chat import ChatSummary


class HistoryListResponse(BaseModel):
    """Schema for paginated chat history."""
    chats: List[ChatSummary] = Field(..., description="Chats of the user, newest first")
    total: int = Field(..., description="Total number of chats")
    page: int = Field(..., description="Current page number")
    page_size: int = Field(..., description="Number of items per page")
    hasMore: bool = Field(..., description="Whether another page exists")

    class Config:
        json_schema_extra = {
            "example": {
                "chats": [
                    {
                        "id": "0f8fad5b-d9cb-469f-a165-70867728950e",
                        "title": "Weather in Berlin",
                        "visibility": "private",
                        "createdAt": "2026-01-15T10:30:00Z",
                    }
                ],
                "total": 1,
                "page": 1,
                "page_size": 20,
                "hasMore": False,
            }
        }
