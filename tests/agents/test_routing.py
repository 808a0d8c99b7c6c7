"""Tests for the keyword intent router"""

from dialdesk.agents.registry import AgentIdentity
from dialdesk.agents.routing import KeywordRouter, RoutingReason


class TestFromRouter:

    def setup_method(self):
        self.router = KeywordRouter()

    def test_denied_claim_goes_to_insurance(self):
        decision = self.router.route("My claim was denied", AgentIdentity.ROUTER)
        assert decision.agent == AgentIdentity.INSURANCE
        assert decision.reason == RoutingReason.KEYWORD_MATCH
        assert decision.confidence == 1.0

    def test_bill_goes_to_financial(self):
        decision = self.router.route("Can you help me lower my phone bill?", AgentIdentity.ROUTER)
        assert decision.agent == AgentIdentity.FINANCIAL

    def test_wifi_goes_to_support(self):
        decision = self.router.route("my wifi is broken again", AgentIdentity.ROUTER)
        assert decision.agent == AgentIdentity.SUPPORT

    def test_greeting_stays_with_router(self):
        decision = self.router.route("hello there", AgentIdentity.ROUTER)
        assert decision.agent == AgentIdentity.ROUTER
        assert decision.reason == RoutingReason.DEFAULT_ROUTER

    def test_empty_text(self):
        decision = self.router.route("", AgentIdentity.ROUTER)
        assert decision.agent == AgentIdentity.ROUTER


class TestReset:

    def test_start_over_returns_to_router(self):
        decision = KeywordRouter().route("let's start over", AgentIdentity.FINANCIAL)
        assert decision.agent == AgentIdentity.ROUTER
        assert decision.reason == RoutingReason.RESET

    def test_cancelling_a_subscription_is_not_a_reset(self):
        decision = KeywordRouter().route("cancel my subscription", AgentIdentity.ROUTER)
        assert decision.reason != RoutingReason.RESET
        assert decision.agent == AgentIdentity.FINANCIAL


class TestFromSpecialist:

    def test_casual_message_stays(self):
        decision = KeywordRouter().route("thanks!", AgentIdentity.INSURANCE)
        assert decision.agent == AgentIdentity.INSURANCE
        assert decision.reason == RoutingReason.STAY_CASUAL

    def test_weak_signal_stays(self):
        decision = KeywordRouter().route("I owe them money", AgentIdentity.INSURANCE)
        assert decision.agent == AgentIdentity.INSURANCE
        assert decision.reason == RoutingReason.STAY_LOW_CONFIDENCE

    def test_strong_signal_switches(self):
        decision = KeywordRouter().route("I need to book an appointment", AgentIdentity.INSURANCE)
        assert decision.agent == AgentIdentity.BOOKING

    def test_tie_prefers_current(self):
        text = "refund on my insurance premium"
        assert KeywordRouter().route(text, AgentIdentity.INSURANCE).agent == AgentIdentity.INSURANCE
        assert KeywordRouter().route(text, AgentIdentity.FINANCIAL).agent == AgentIdentity.FINANCIAL


class TestScore:

    def test_billing_words_down_rank_support(self):
        scores = KeywordRouter().score("my bill payment is not working")
        assert scores[AgentIdentity.SUPPORT] == 0
        assert scores[AgentIdentity.FINANCIAL] >= 3
