import logging
import secrets
import string
import time

import regex
from langchain_core.language_models import BaseChatModel
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage

from src.shared.constants import INVALID_UNICODE_CLEANUP_REGEX
from src.shared.exceptions import GenerationError
from src.shared.schemas import ConversationMessage
from src.shared.utils.history import get_langchain_history

logger = logging.getLogger(__name__)

_SESSION_ID_ALPHABET = string.ascii_lowercase + string.digits


def generate_session_id() -> str:
    """Returns an id of the form `voice_<epoch millis>_<9 random chars>`."""
    suffix = "".join(secrets.choice(_SESSION_ID_ALPHABET) for _ in range(9))
    return f"voice_{int(time.time() * 1000)}_{suffix}"


def clean_transcript(text: str) -> str:
    """Strips invisible and symbol code points that speech models sometimes emit."""
    return regex.sub(INVALID_UNICODE_CLEANUP_REGEX, "", text or "").strip()


async def generate_response_text(
    history_messages: list[ConversationMessage],
    model: BaseChatModel,
    system_prompt: str,
    user_message: str | None = None,
) -> tuple[str, int]:
    """
    Generate a response text without any tool calls.

    Args:
        history_messages: The conversation history
        model: The LangChain chat model
        system_prompt: The system prompt
        user_message: Optional new user message appended after the history

    Returns:
        The generated response text and the total tokens reported by the model

    Raises:
        GenerationError: If the model call fails or returns no text
    """
    langchain_messages = [
        SystemMessage(content=system_prompt)
    ] + get_langchain_history(history_messages)
    if user_message:
        langchain_messages.append(HumanMessage(content=user_message))

    try:
        response = await model.ainvoke(langchain_messages)
    except Exception as e:
        logger.error(f"Error in generate_response_text: {e}")
        raise GenerationError(f"Model call failed: {e!s}") from e

    text = response.content if isinstance(response.content, str) else ""
    if not text.strip():
        raise GenerationError("Model returned no text content")

    tokens_used = 0
    if isinstance(response, AIMessage) and response.usage_metadata:
        tokens_used = response.usage_metadata.get("total_tokens", 0)

    return text.strip(), tokens_used
