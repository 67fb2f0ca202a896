import json
import logging
from typing import Optional, Type, TypeVar

import regex
from langchain_core.language_models import BaseChatModel
from pydantic import BaseModel, ValidationError

from .prompts import (
    CONVERSATION_SUMMARY_PROMPT,
    PRODUCT_RECOMMENDATIONS_PROMPT,
    SHOPPING_ASSISTANT_SYSTEM_PROMPT,
)
from src.shared.constants import DEFAULT_LANGUAGE
from src.shared.exceptions import GenerationError
from src.shared.schemas import (
    AssistantContext,
    AssistantReply,
    ConversationMessage,
    ConversationSummary,
    CustomerCart,
    CustomerPreferences,
    ProductRecommendations,
    VoiceSession,
)
from src.shared.utils.functions import generate_response_text
from src.shared.utils.history import format_transcript
from src.shared.utils.intents import classify_intent, extract_actions

logger = logging.getLogger(__name__)

_JSON_OBJECT_PATTERN = regex.compile(r"\{[\s\S]*\}")

ModelT = TypeVar("ModelT", bound=BaseModel)


def parse_json_reply(text: str, model_cls: Type[ModelT]) -> ModelT:
    """Validates the first JSON object embedded in a model reply."""
    match = _JSON_OBJECT_PATTERN.search(text)
    if not match:
        raise GenerationError("Model reply did not contain a JSON object")
    try:
        return model_cls.model_validate(json.loads(match.group(0)))
    except (json.JSONDecodeError, ValidationError) as e:
        raise GenerationError(f"Unparseable model reply: {e}") from e


def assemble_context(session: VoiceSession, cart: Optional[CustomerCart]) -> AssistantContext:
    """
    Merges the session's persisted context with freshly fetched commerce data.
    Fresh values win; the persisted snapshot itself is left untouched.
    """
    context = session.context.model_copy(deep=True)
    context.customerId = context.customerId or session.customerId
    context.language = context.language or session.language
    if cart is not None:
        if cart.customerName:
            context.customerName = cart.customerName
        context.cartItems = list(cart.cartItems)
    return context


def build_system_prompt(context: AssistantContext) -> str:
    customer_greeting = (
        f"You're helping {context.customerName}, a valued customer"
        if context.customerName
        else "You're helping a customer"
    )

    context_lines = [
        f"- Customer: {context.customerName or 'Guest'}",
        f"- Cart items: {len(context.cartItems)}",
    ]
    if context.funnelStage:
        context_lines.append(f"- Funnel stage: {context.funnelStage}")
    if context.currentProducts:
        titles = ", ".join(p.title for p in context.currentProducts)
        context_lines.append(f"- Currently viewing: {titles}")

    return SHOPPING_ASSISTANT_SYSTEM_PROMPT.format(
        customer_greeting=customer_greeting,
        language=context.language or DEFAULT_LANGUAGE,
        context_lines="\n".join(context_lines),
    )


class AssistantEngine:
    """
    Turns an utterance plus conversational context into a reply.

    The model only writes the reply text; intent and suggested actions are
    derived deterministically so they can be reproduced without a network.
    """

    def __init__(self, model: BaseChatModel):
        self.model = model

    async def generate(
        self,
        history: list[ConversationMessage],
        context: AssistantContext,
        utterance: str,
    ) -> AssistantReply:
        text, tokens_used = await generate_response_text(
            history,
            self.model,
            system_prompt=build_system_prompt(context),
            user_message=utterance,
        )
        intent = classify_intent(utterance)
        actions = extract_actions(text, utterance, intent, context)
        logger.debug(f"Generated reply with intent '{intent.value}' and {len(actions)} suggested action(s)")
        return AssistantReply(text=text, intent=intent, actions=actions, tokensUsed=tokens_used)

    async def summarize(self, history: list[ConversationMessage]) -> ConversationSummary:
        prompt = CONVERSATION_SUMMARY_PROMPT.format(conversation=format_transcript(history))
        text, _ = await generate_response_text([], self.model, system_prompt=prompt)
        return parse_json_reply(text, ConversationSummary)

    async def recommend(
        self, preferences: CustomerPreferences, max_recommendations: int = 5
    ) -> ProductRecommendations:
        """
        Suggests product types or categories for a shopper profile. Never
        fails: a model or parsing error yields an empty recommendation list.
        """
        prompt = PRODUCT_RECOMMENDATIONS_PROMPT.format(
            style=preferences.style or "Not specified",
            price_range=preferences.priceRange or "Not specified",
            previous_purchases=", ".join(preferences.previousPurchases) or "None",
            browsing_history=", ".join(preferences.browsingHistory) or "None",
            max_recommendations=max_recommendations,
        )
        try:
            text, _ = await generate_response_text([], self.model, system_prompt=prompt)
            result = parse_json_reply(text, ProductRecommendations)
        except GenerationError as e:
            logger.warning(f"Could not generate recommendations: {e}")
            return ProductRecommendations(reasoning="Unable to generate recommendations")

        result.recommendations = result.recommendations[:max_recommendations]
        return result
