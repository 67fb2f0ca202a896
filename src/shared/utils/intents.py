import unicodedata
from typing import Optional

import regex

from src.shared.constants import FUNNEL_STAGES
from src.shared.enums import ActionType, Intent
from src.shared.schemas import AssistantContext, SuggestedAction


def _normalize_text(text: str) -> str:
    """Normalizes a string by removing accents, converting to lowercase, and stripping whitespace."""
    s = "".join(
        c
        for c in unicodedata.normalize("NFD", text)
        if unicodedata.category(c) != "Mn"
    )
    return s.lower().strip()


def _keyword_pattern(keywords: set[str]) -> regex.Pattern:
    # Longest first so multi-word phrases win over their prefixes.
    alternatives = "|".join(regex.escape(k) for k in sorted(keywords, key=len, reverse=True))
    return regex.compile(rf"\b(?:{alternatives})\b")


SEARCH_VERBS = {"find", "search", "looking for", "show me", "need"}
PRODUCT_NOUNS = {
    "product", "products", "item", "items", "clothing", "shoe", "shoes",
    "dress", "dresses", "shirt", "shirts",
}
CART_VERBS = {"add", "put", "place"}
CART_NOUNS = {"cart", "bag", "basket"}
CHECKOUT_KEYWORDS = {"checkout", "buy", "purchase", "pay", "order"}
ORDER_SUBJECTS = {"order", "tracking", "delivery", "shipping", "status"}
ORDER_QUESTIONS = {"where", "when", "track", "status"}
FUNNEL_KEYWORDS = {"next", "continue", "proceed", "back"}
FUNNEL_BACKWARD_KEYWORDS = {"back", "previous"}

# Evaluated in order; the first rule whose keyword groups all match wins.
# Overlapping utterances ("show me my order status") therefore resolve to the
# earlier rule.
INTENT_RULES: list[tuple[Intent, tuple[regex.Pattern, ...]]] = [
    (Intent.PRODUCT_SEARCH, (_keyword_pattern(SEARCH_VERBS), _keyword_pattern(PRODUCT_NOUNS))),
    (Intent.ADD_TO_CART, (_keyword_pattern(CART_VERBS), _keyword_pattern(CART_NOUNS))),
    (Intent.CHECKOUT, (_keyword_pattern(CHECKOUT_KEYWORDS),)),
    (Intent.ORDER_STATUS, (_keyword_pattern(ORDER_SUBJECTS), _keyword_pattern(ORDER_QUESTIONS))),
    (Intent.FUNNEL_NAVIGATION, (_keyword_pattern(FUNNEL_KEYWORDS),)),
]

_BACKWARD_PATTERN = _keyword_pattern(FUNNEL_BACKWARD_KEYWORDS)
_QUOTED_SEARCH_PATTERN = regex.compile(
    r"""search(?:ing)?\s+for\s+["'“‘]([^"'”’]+)["'”’]""",
    regex.IGNORECASE,
)


def classify_intent(utterance: str) -> Intent:
    """
    Classifies what the shopper is trying to do from their words alone.

    Deterministic and model-independent: the same utterance always yields
    the same intent. Falls back to `general_help`.
    """
    text = _normalize_text(utterance)
    for intent, patterns in INTENT_RULES:
        if all(pattern.search(text) for pattern in patterns):
            return intent
    return Intent.GENERAL_HELP


def extract_search_query(reply_text: str, utterance: str) -> Optional[str]:
    match = _QUOTED_SEARCH_PATTERN.search(reply_text or "")
    if match:
        return match.group(1).strip()
    return utterance.strip() or None


def next_funnel_stage(current_stage: Optional[str], backward: bool = False) -> str:
    """Steps one stage along `FUNNEL_STAGES`, clamping at either end."""
    if current_stage not in FUNNEL_STAGES:
        return FUNNEL_STAGES[0]
    index = FUNNEL_STAGES.index(current_stage)
    index = max(index - 1, 0) if backward else min(index + 1, len(FUNNEL_STAGES) - 1)
    return FUNNEL_STAGES[index]


def extract_actions(
    reply_text: str,
    utterance: str,
    intent: Intent,
    context: AssistantContext,
) -> list[SuggestedAction]:
    """
    Derives the side effects implied by a reply. Best-effort: an intent with
    nothing extractable simply yields no action.
    """
    if intent == Intent.PRODUCT_SEARCH:
        query = extract_search_query(reply_text, utterance)
        return [SuggestedAction.of(ActionType.SEARCH_PRODUCTS, query=query)] if query else []

    if intent == Intent.ADD_TO_CART:
        if context.currentProducts:
            return [SuggestedAction.of(ActionType.ADD_TO_CART, productId=context.currentProducts[0].id)]
        return []

    if intent == Intent.CHECKOUT:
        return [SuggestedAction.of(ActionType.NAVIGATE_TO_CHECKOUT)]

    if intent == Intent.FUNNEL_NAVIGATION:
        backward = bool(_BACKWARD_PATTERN.search(_normalize_text(utterance)))
        return [
            SuggestedAction.of(
                ActionType.NAVIGATE_FUNNEL,
                stage=next_funnel_stage(context.funnelStage, backward=backward),
                direction="back" if backward else "next",
            )
        ]

    if intent == Intent.ORDER_STATUS:
        return [SuggestedAction.of(ActionType.SHOW_ORDERS, customerId=context.customerId)]

    return []
