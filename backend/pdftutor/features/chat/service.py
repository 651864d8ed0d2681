"""
Chat feature: conversation persistence (``chats`` and ``messages`` tables).
"""

import logging

from supabase import Client

from pdftutor.features.chat.schemas import ChatMessage, Conversation

logger = logging.getLogger(__name__)


class ConversationStore:
    """Owner-scoped access to chats and their messages."""

    def __init__(self, db: Client, owner_id: str):
        self.db = db
        self.owner_id = owner_id

    def create_chat(self, document_id: int | None = None) -> Conversation:
        result = self.db.table("chats").insert({
            "owner_id": self.owner_id,
            "document_id": document_id,
        }).execute()
        return Conversation.model_validate(result.data[0])

    def get_chat(self, chat_id: int) -> Conversation | None:
        """The chat if it exists and belongs to the owner."""
        result = (
            self.db.table("chats")
            .select("id, owner_id, document_id, created_at")
            .eq("id", chat_id)
            .eq("owner_id", self.owner_id)
            .limit(1)
            .execute()
        )
        if not result.data:
            return None
        return Conversation.model_validate(result.data[0])

    def add_message(self, chat_id: int, role: str, content: str) -> None:
        self.db.table("messages").insert({
            "chat_id": chat_id,
            "role": role,
            "content": content,
        }).execute()

    def list_chats(self) -> list[Conversation]:
        result = (
            self.db.table("chats")
            .select("id, owner_id, document_id, created_at")
            .eq("owner_id", self.owner_id)
            .order("created_at", desc=True)
            .execute()
        )
        return [Conversation.model_validate(row) for row in result.data or []]

    def list_messages(self, chat_id: int) -> list[ChatMessage]:
        """Messages of an owned chat, oldest first."""
        result = (
            self.db.table("messages")
            .select("id, chat_id, role, content, created_at")
            .eq("chat_id", chat_id)
            .order("created_at", desc=False)
            .execute()
        )
        return [ChatMessage.model_validate(row) for row in result.data or []]
