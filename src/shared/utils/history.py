from langchain_core.messages import AIMessage, BaseMessage, HumanMessage

from src.shared.enums import InteractionType
from src.shared.schemas import ConversationMessage


def get_langchain_history(
    history_messages: list[ConversationMessage],
) -> list[BaseMessage]:
    """
    Converts the application's internal message history format to the
    message objects expected by LangChain chat models.

    Args:
        history_messages: A list of messages in the application's format.

    Returns:
        A list of `HumanMessage`/`AIMessage` objects in conversation order.
    """
    langchain_history: list[BaseMessage] = []
    for msg in history_messages:
        if msg.role == InteractionType.USER:
            langchain_history.append(HumanMessage(content=msg.content))
        else:
            langchain_history.append(AIMessage(content=msg.content))
    return langchain_history


def format_transcript(history_messages: list[ConversationMessage]) -> str:
    """Renders the history as `ROLE: text` lines, one per message."""
    return "\n".join(
        f"{msg.role.value.upper()}: {msg.content}" for msg in history_messages
    )
