"""
Chat feature: streamed tutoring answers and conversation history.
"""

import logging
from contextlib import aclosing

from fastapi import APIRouter, Depends, HTTPException
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import StreamingResponse
from langchain_core.language_models import BaseChatModel
from supabase import Client

from pdftutor.config import get_settings
from pdftutor.core.dependencies import get_current_user_id, get_db, get_rate_limiter
from pdftutor.core.exceptions import (
    AppBaseError,
    CapabilityNotConfiguredError,
    RateLimitedError,
    app_error_to_http,
)
from pdftutor.core.llm_provider import create_llm
from pdftutor.core.rate_limit import RateLimiter
from pdftutor.features.chat.schemas import ChatMessage, ChatRequest, Conversation
from pdftutor.features.chat.service import ConversationStore
from pdftutor.features.chat.streamer import AnswerStreamer
from pdftutor.features.documents.dependencies import get_document_repository
from pdftutor.features.documents.repository import DocumentRepository
from pdftutor.features.knowledge.dependencies import get_optional_retriever
from pdftutor.features.knowledge.prompts import build_grounded_prompt, build_ungrounded_prompt
from pdftutor.features.knowledge.retriever import Retriever
from pdftutor.features.knowledge.schemas import AssembledPrompt

logger = logging.getLogger(__name__)

router = APIRouter()

JSONL_MEDIA_TYPE = "application/jsonl; charset=utf-8"


def get_chat_llm() -> BaseChatModel:
    """Dependency: generation model (500 if not configured)."""
    try:
        return create_llm()
    except CapabilityNotConfiguredError as e:
        raise app_error_to_http(e, status_code=500)


def get_conversation_store(
    user_id: str = Depends(get_current_user_id),
    db: Client = Depends(get_db),
) -> ConversationStore:
    return ConversationStore(db, user_id)


def _open_conversation(
    conversations: ConversationStore,
    chat_id: int | None,
    document_id: int | None,
    message: str,
) -> Conversation:
    # A chat_id the caller does not own starts a new chat
    conversation = conversations.get_chat(chat_id) if chat_id is not None else None
    if conversation is None:
        conversation = conversations.create_chat(document_id)
    conversations.add_message(conversation.id, "user", message)
    return conversation


async def generate_chat_stream(streamer: AnswerStreamer, conversation_id: int, prompt: AssembledPrompt):
    """Frames as JSON lines; closing this generator closes the answer stream with it."""
    async with aclosing(streamer.stream(conversation_id, prompt)) as frames:
        async for frame in frames:
            yield frame.to_line()


@router.post("/")
async def chat(
    data: ChatRequest,
    user_id: str = Depends(get_current_user_id),
    documents: DocumentRepository = Depends(get_document_repository),
    limiter: RateLimiter = Depends(get_rate_limiter),
    llm: BaseChatModel = Depends(get_chat_llm),
    retriever: Retriever | None = Depends(get_optional_retriever),
    conversations: ConversationStore = Depends(get_conversation_store),
):
    """Answer a message as a JSON-lines stream.

    The document is only used for grounding when the caller owns it and it
    is ``ready`` or ``partial``; otherwise the answer is ungrounded.
    """
    if not limiter.allow(user_id):
        raise app_error_to_http(RateLimitedError(), status_code=429)

    message = data.message.strip()
    if not message:
        raise HTTPException(status_code=400, detail="Message must not be empty")

    settings = get_settings()

    # 1. Decide grounding
    document_id = None
    if data.document_id is not None:
        document = await run_in_threadpool(documents.get, data.document_id)
        if document and document.owner_id == user_id and document.status.is_queryable:
            document_id = document.id
        else:
            logger.info(f"ℹ️ Document {data.document_id} not usable for grounding; answering ungrounded")

    # 2. Retrieve + assemble
    if document_id is not None and retriever is not None:
        try:
            chunks = await retriever.retrieve(
                document_id,
                message,
                k=settings.RETRIEVAL_TOP_K,
                probes=settings.RETRIEVAL_PROBES,
            )
        except AppBaseError as e:
            raise app_error_to_http(e, status_code=500)
        prompt = build_grounded_prompt(
            message,
            chunks,
            max_chunks=settings.PROMPT_MAX_CHUNKS,
            excerpt_chars=settings.CITATION_EXCERPT_CHARS,
        )
    else:
        prompt = build_ungrounded_prompt(message)

    # 3. Ensure chat row + persist user message
    try:
        conversation = await run_in_threadpool(
            _open_conversation, conversations, data.chat_id, document_id, message
        )
    except Exception as e:
        logger.error(f"❌ Could not store chat message: {e}")
        raise HTTPException(status_code=500, detail=f"Chat failed: {e}")

    # 4. Stream
    streamer = AnswerStreamer(llm, conversations)
    return StreamingResponse(
        generate_chat_stream(streamer, conversation.id, prompt),
        media_type=JSONL_MEDIA_TYPE,
        headers={"Cache-Control": "no-store"},
    )


@router.get("/chats", response_model=list[Conversation])
async def list_chats(conversations: ConversationStore = Depends(get_conversation_store)):
    """List the caller's chats, newest first."""
    return conversations.list_chats()


@router.get("/chats/{chat_id}/messages", response_model=list[ChatMessage])
async def get_chat_messages(
    chat_id: int,
    conversations: ConversationStore = Depends(get_conversation_store),
):
    """Load all messages of one chat, oldest first."""
    if conversations.get_chat(chat_id) is None:
        raise HTTPException(status_code=404, detail="Chat not found")
    return conversations.list_messages(chat_id)
