"""
Provider-agnostic LLM factory.

Switch LLM provider by changing env vars, no code changes needed:
  LLM_PROVIDER=gemini | openai | groq
  LLM_MODEL=gemini-2.5-flash | gpt-4o-mini | llama-3.1-70b-versatile
  LLM_API_KEY=your-key
"""

from langchain_core.language_models import BaseChatModel

from pdftutor.config import get_settings
from pdftutor.core.exceptions import CapabilityNotConfiguredError


def create_llm(model: str | None = None, temperature: float | None = None) -> BaseChatModel:
    """Create an LLM instance based on env configuration.

    Args:
        model: Override for LLM_MODEL (e.g. a cheaper model for quizzes).
        temperature: Override for LLM_TEMPERATURE.

    Returns:
        BaseChatModel: A LangChain-compatible chat model.

    Raises:
        CapabilityNotConfiguredError: If no API key is set.
        ValueError: If provider is not supported.
    """
    settings = get_settings()
    if not settings.LLM_API_KEY:
        raise CapabilityNotConfiguredError("Generation model (LLM_API_KEY)")

    model = model or settings.LLM_MODEL
    temperature = settings.LLM_TEMPERATURE if temperature is None else temperature

    match settings.LLM_PROVIDER:
        case "gemini":
            from langchain_google_genai import ChatGoogleGenerativeAI

            return ChatGoogleGenerativeAI(
                model=model,
                google_api_key=settings.LLM_API_KEY,
                temperature=temperature,
            )

        case "openai":
            from langchain_openai import ChatOpenAI

            return ChatOpenAI(
                model=model,
                api_key=settings.LLM_API_KEY,
                temperature=temperature,
            )

        case "groq":
            from langchain_groq import ChatGroq

            return ChatGroq(
                model=model,
                api_key=settings.LLM_API_KEY,
                temperature=temperature,
            )

        case _:
            raise ValueError(
                f"Unknown LLM provider: '{settings.LLM_PROVIDER}'. "
                f"Supported: gemini, openai, groq"
            )


def create_embeddings():
    """Create an embedding model based on env configuration.

    Returns:
        Embeddings instance for vector generation.
    """
    settings = get_settings()
    if not settings.LLM_API_KEY:
        raise CapabilityNotConfiguredError("Embedding model (LLM_API_KEY)")

    match settings.EMBEDDING_PROVIDER:
        case "gemini":
            from langchain_google_genai import GoogleGenerativeAIEmbeddings

            return GoogleGenerativeAIEmbeddings(
                model=f"models/{settings.EMBEDDING_MODEL}",
                google_api_key=settings.LLM_API_KEY,
            )

        case "openai":
            from langchain_openai import OpenAIEmbeddings

            return OpenAIEmbeddings(
                model=settings.EMBEDDING_MODEL,
                api_key=settings.LLM_API_KEY,
            )

        case _:
            raise ValueError(
                f"Unknown embedding provider: '{settings.EMBEDDING_PROVIDER}'. "
                f"Supported: gemini, openai"
            )


def content_to_text(content) -> str:
    """Flatten a chat-model message/chunk content into plain text.

    Gemini returns a list of typed parts (text, thinking, ...); other
    providers return a plain string. Thinking parts are dropped.
    """
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for part in content:
            if isinstance(part, dict):
                if part.get("type") == "text":
                    parts.append(part.get("text", ""))
            elif isinstance(part, str):
                parts.append(part)
        return "".join(parts)
    return "" if content is None else str(content)
