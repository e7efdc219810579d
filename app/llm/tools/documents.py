"""
Document tools: the model writes longer content into stored documents.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Literal
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel, Field

from app.db.models.document import Document
from app.llm.prompts import DOCUMENT_PROMPTS, update_document_prompt
from app.llm.tools.base import Tool, ToolContext

logger = logging.getLogger(__name__)


class CreateDocumentArgs(BaseModel):
    title: str = Field(..., min_length=1)
    kind: Literal["text", "code", "sheet"] = "text"


class UpdateDocumentArgs(BaseModel):
    id: int = Field(..., description="The ID of the document to update")
    description: str = Field(..., description="The description of changes that need to be made")


class CreateDocumentTool(Tool):
    name = "createDocument"
    description = "Create a document for writing or content creation activities. The content is generated from the title and kind."
    Args = CreateDocumentArgs

    def __init__(self, context: ToolContext):
        self.context = context

    def _save(self, args: CreateDocumentArgs, content: str) -> Document:
        db = self.context.session_factory()
        try:
            document = Document(
                user_id=self.context.user_id,
                chat_id=self.context.chat_id,
                title=args.title,
                kind=args.kind,
                content=content,
            )
            db.add(document)
            db.commit()
            db.refresh(document)
            return document
        finally:
            db.close()

    async def execute(self, args: CreateDocumentArgs) -> Dict[str, Any]:
        response = await self.context.provider.chat(
            messages=[
                {"role": "system", "content": DOCUMENT_PROMPTS[args.kind]},
                {"role": "user", "content": args.title},
            ],
            model=self.context.model,
        )
        document = await run_in_threadpool(self._save, args, response.content)
        logger.info(f"Document created: document_id={document.id}, chat_id={self.context.chat_id}, kind={args.kind}")
        return {
            "id": document.id,
            "title": document.title,
            "kind": document.kind,
            "content": "A document was created and is now visible to the user.",
        }


class UpdateDocumentTool(Tool):
    name = "updateDocument"
    description = "Update a document with the given description."
    Args = UpdateDocumentArgs

    def __init__(self, context: ToolContext):
        self.context = context

    def _load(self, document_id: int):
        db = self.context.session_factory()
        try:
            return db.query(Document).filter(
                Document.id == document_id,
                Document.user_id == self.context.user_id,
            ).first()
        finally:
            db.close()

    def _store(self, document_id: int, content: str) -> None:
        db = self.context.session_factory()
        try:
            document = db.query(Document).filter(Document.id == document_id).first()
            document.content = content
            document.updated_at = datetime.now(timezone.utc)
            db.commit()
        finally:
            db.close()

    async def execute(self, args: UpdateDocumentArgs) -> Dict[str, Any]:
        document = await run_in_threadpool(self._load, args.id)
        if document is None:
            return {"error": "Document not found"}

        response = await self.context.provider.chat(
            messages=[
                {"role": "system", "content": update_document_prompt(document.content, document.kind)},
                {"role": "user", "content": args.description},
            ],
            model=self.context.model,
        )
        await run_in_threadpool(self._store, document.id, response.content)
        logger.info(f"Document updated: document_id={document.id}, chat_id={self.context.chat_id}")
        return {
            "id": document.id,
            "title": document.title,
            "kind": document.kind,
            "content": "The document has been updated successfully.",
        }
