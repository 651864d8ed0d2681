"""
Chat feature: stream a generated answer as typed frames.

The assistant message is written only after generation finished cleanly.
A generation error ends the stream with an ``error`` frame and the partial
text is dropped; a cancelled stream writes nothing.
"""

import asyncio
import logging
from contextlib import aclosing
from typing import AsyncIterator

from fastapi.concurrency import run_in_threadpool
from langchain_core.language_models import BaseChatModel
from langchain_core.messages import HumanMessage, SystemMessage

from pdftutor.core.llm_provider import content_to_text
from pdftutor.features.chat.schemas import (
    ChatFrame,
    ChatFrameData,
    CitationsFrame,
    DeltaFrame,
    DoneFrame,
    ErrorFrame,
    Frame,
)
from pdftutor.features.chat.service import ConversationStore
from pdftutor.features.knowledge.schemas import AssembledPrompt

logger = logging.getLogger(__name__)


class AnswerStreamer:
    def __init__(self, llm: BaseChatModel, conversations: ConversationStore):
        self.llm = llm
        self.conversations = conversations

    async def stream(self, conversation_id: int, prompt: AssembledPrompt) -> AsyncIterator[Frame]:
        """Yield chat -> citations -> delta* -> done | error."""
        yield ChatFrame(data=ChatFrameData(conversation_id=conversation_id))
        yield CitationsFrame(data=prompt.citations)

        messages = [SystemMessage(content=prompt.system), HumanMessage(content=prompt.user)]
        parts: list[str] = []
        try:
            async with aclosing(self.llm.astream(messages)) as tokens:
                async for chunk in tokens:
                    text = content_to_text(chunk.content)
                    if text:
                        parts.append(text)
                        yield DeltaFrame(data=text)
        except (asyncio.CancelledError, GeneratorExit):
            logger.info(f"🔌 Chat stream cancelled for conversation {conversation_id}; nothing persisted")
            raise
        except Exception as e:
            logger.error(f"❌ Generation failed for conversation {conversation_id}: {e}")
            yield ErrorFrame(data=str(e) or "Chat failed")
            return

        try:
            await run_in_threadpool(self.conversations.add_message, conversation_id, "assistant", "".join(parts))
        except Exception as e:
            logger.error(f"❌ Could not persist answer for conversation {conversation_id}: {e}")
            yield ErrorFrame(data="Failed to save the answer")
            return

        yield DoneFrame()
