"""
Pydantic schemas for chat endpoints.
"""
from typing import Any, Dict, List, Literal, Optional
from datetime import datetime
from uuid import UUID
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator


class TextPart(BaseModel):
    type: Literal["text"] = "text"
    text: str = Field(..., min_length=1, max_length=2000)


class Attachment(BaseModel):
    url: str
    name: str = Field(..., min_length=1, max_length=2000)
    contentType: Literal["image/png", "image/jpg", "image/jpeg"]


class ChatMessageIn(BaseModel):
    """The user's new message."""
    id: UUID
    role: Literal["user"] = "user"
    content: Optional[str] = Field(None, max_length=2000)
    parts: List[TextPart] = Field(default_factory=list)
    attachments: List[Attachment] = Field(
        default_factory=list,
        validation_alias=AliasChoices("attachments", "experimental_attachments"),
    )

    @model_validator(mode="after")
    def require_text(self):
        if not self.parts:
            if not self.content:
                raise ValueError("message must carry content or parts")
            self.parts = [TextPart(text=self.content)]
        return self


class ChatRequest(BaseModel):
    """Request schema for POST /chat."""
    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "id": "0f8fad5b-d9cb-469f-a165-70867728950e",
                "message": {
                    "id": "7c9e6679-7425-40de-944b-e07fc1f90ae7",
                    "role": "user",
                    "content": "What is the weather in Berlin?",
                },
                "selectedChatModel": "chat-model",
                "selectedVisibilityType": "private",
                "selectedSearchMode": "search",
            }
        },
    )

    id: UUID = Field(..., validation_alias=AliasChoices("id", "conversationId"))
    message: ChatMessageIn
    selectedChatModel: str = Field(
        "chat-model",
        validation_alias=AliasChoices("selectedChatModel", "modelSelection"),
        max_length=64,
    )
    selectedVisibilityType: Literal["public", "private"] = Field(
        "private",
        validation_alias=AliasChoices("selectedVisibilityType", "visibility"),
    )
    selectedSearchMode: Literal["search", "deep-search"] = Field(
        "search",
        validation_alias=AliasChoices("selectedSearchMode", "searchMode"),
    )


class MessageResponse(BaseModel):
    """Schema for a stored message."""
    id: str
    chatId: str = Field(..., validation_alias=AliasChoices("chatId", "chat_id"))
    role: str
    parts: List[Dict[str, Any]]
    attachments: List[Dict[str, Any]]
    createdAt: datetime = Field(..., validation_alias=AliasChoices("createdAt", "created_at"))

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)


class ChatSummary(BaseModel):
    """Schema for a chat in listings."""
    id: str
    title: str
    visibility: str
    createdAt: datetime = Field(..., validation_alias=AliasChoices("createdAt", "created_at"))

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)


class VisibilityUpdateRequest(BaseModel):
    visibility: Literal["public", "private"]
