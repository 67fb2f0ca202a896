"""Tests for the deterministic intent classifier and action extraction."""

import pytest

from src.shared.enums import ActionType, Intent
from src.shared.schemas import AssistantContext, ProductContext
from src.shared.utils.intents import (
    classify_intent,
    extract_actions,
    extract_search_query,
    next_funnel_stage,
)


class TestClassifyIntent:
    @pytest.mark.parametrize(
        "utterance,expected",
        [
            ("find me a red dress", Intent.PRODUCT_SEARCH),
            ("I'm LOOKING FOR running shoes", Intent.PRODUCT_SEARCH),
            ("add this to my cart", Intent.ADD_TO_CART),
            ("put it in the basket please", Intent.ADD_TO_CART),
            ("I want to checkout", Intent.CHECKOUT),
            ("let me pay now", Intent.CHECKOUT),
            ("where is my delivery", Intent.ORDER_STATUS),
            ("what's the shipping status", Intent.ORDER_STATUS),
            ("let's continue", Intent.FUNNEL_NAVIGATION),
            ("go back", Intent.FUNNEL_NAVIGATION),
            ("hello there", Intent.GENERAL_HELP),
            ("", Intent.GENERAL_HELP),
        ],
    )
    def test_classifies_utterances(self, utterance, expected):
        assert classify_intent(utterance) == expected

    def test_keywords_match_whole_words_only(self):
        # "addition" and "cartoon" must not trigger the cart rule.
        assert classify_intent("an addition to the cartoon") == Intent.GENERAL_HELP

    def test_overlapping_utterance_follows_rule_order(self):
        # "order" is a checkout keyword and checkout is evaluated before
        # order status.
        assert classify_intent("show me my order status and track it") == Intent.CHECKOUT

    def test_search_takes_precedence_over_cart(self):
        assert classify_intent("find a shirt and add it to my cart") == Intent.PRODUCT_SEARCH

    def test_accents_are_ignored(self):
        assert classify_intent("ÁDD it to my CÁRT") == Intent.ADD_TO_CART


class TestExtractActions:
    def test_search_uses_quoted_phrase_from_reply(self):
        actions = extract_actions(
            'Sure, searching for "red summer dress" now.',
            "find me a red dress",
            Intent.PRODUCT_SEARCH,
            AssistantContext(),
        )
        assert [a.model_dump() for a in actions] == [
            {"type": "search_products", "data": {"query": "red summer dress"}}
        ]

    def test_search_falls_back_to_utterance(self):
        assert extract_search_query("Let me look.", "find me a red dress") == "find me a red dress"

    def test_add_to_cart_uses_first_current_product(self):
        context = AssistantContext(
            currentProducts=[
                ProductContext(id="gid://product/1", title="Red Dress", price="49.00"),
                ProductContext(id="gid://product/2", title="Blue Dress", price="59.00"),
            ]
        )
        actions = extract_actions("Added!", "add this to my cart", Intent.ADD_TO_CART, context)
        assert len(actions) == 1
        assert actions[0].type == ActionType.ADD_TO_CART.value
        assert actions[0].data == {"productId": "gid://product/1"}

    def test_add_to_cart_without_products_yields_nothing(self):
        assert extract_actions("Which one?", "add it to my cart", Intent.ADD_TO_CART, AssistantContext()) == []

    def test_checkout_and_order_status(self):
        context = AssistantContext(customerId="cust-1")
        checkout = extract_actions("Taking you there.", "checkout", Intent.CHECKOUT, context)
        orders = extract_actions("Here they are.", "where is my order", Intent.ORDER_STATUS, context)
        assert checkout[0].type == ActionType.NAVIGATE_TO_CHECKOUT.value
        assert orders[0].data == {"customerId": "cust-1"}

    def test_funnel_navigation_moves_forward_and_back(self):
        context = AssistantContext(funnelStage="consideration")
        forward = extract_actions("Okay.", "continue", Intent.FUNNEL_NAVIGATION, context)
        backward = extract_actions("Okay.", "go back", Intent.FUNNEL_NAVIGATION, context)
        assert forward[0].data == {"stage": "cart", "direction": "next"}
        assert backward[0].data == {"stage": "browsing", "direction": "back"}

    def test_general_help_has_no_actions(self):
        assert extract_actions("Hi!", "hello", Intent.GENERAL_HELP, AssistantContext()) == []


class TestFunnelStages:
    def test_unknown_stage_starts_at_beginning(self):
        assert next_funnel_stage(None) == "discovery"
        assert next_funnel_stage("somewhere") == "discovery"

    def test_clamps_at_both_ends(self):
        assert next_funnel_stage("checkout") == "checkout"
        assert next_funnel_stage("discovery", backward=True) == "discovery"
