"""
Keyword intent router.

Scores the latest user message against weighted keyword patterns per
specialist and proposes the agent that should handle the turn. It is
deliberately sticky: once a specialist owns the conversation, only a
confident signal for a different domain moves it.
"""

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Pattern, Tuple

from .registry import SPECIALISTS, AgentIdentity

logger = logging.getLogger(__name__)


class RoutingReason(str, Enum):
    """Reason codes for routing decisions."""
    RESET = "reset"
    KEYWORD_MATCH = "keyword_match"
    STAY_CASUAL = "stay_casual"
    STAY_LOW_CONFIDENCE = "stay_low_confidence"
    DEFAULT_ROUTER = "default_router"


@dataclass
class RoutingDecision:
    """
    Outcome of scoring one user message.

    Attributes:
        agent: The agent that should handle the turn
        confidence: min(best score / 3, 1)
        reason: Why this agent was chosen
        scores: Raw score per agent, for logging
    """
    agent: AgentIdentity
    confidence: float
    reason: RoutingReason
    scores: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, object]:
        return {
            "agent": self.agent.value,
            "confidence": self.confidence,
            "reason": self.reason.value,
            "scores": dict(self.scores),
        }


def _rx(pattern: str) -> Pattern[str]:
    return re.compile(pattern, re.IGNORECASE)


_RESET = _rx(r"\b(start over|new topic|different issue|change topic|never ?mind|cancel|exit|reset)\b")
_CANCEL_SOMETHING = _rx(r"\bcancel\w*\b.*\b(service|account|subscription|plan|membership|policy)\b")
_BILLING = _rx(r"\b(bill|billing|pay|payment|cost|price)\b")

# (agent, weight, pattern); negative weights down-rank overlapping domains
_RULES: List[Tuple[AgentIdentity, int, Pattern[str]]] = [
    (AgentIdentity.FINANCIAL, 3, _rx(
        r"\b(bills?|billing|fees?|refunds?|subscriptions?|charged?|charges|payments?|"
        r"costs?|prices?|expensive|lower|negotiate|cheaper)\b")),
    (AgentIdentity.FINANCIAL, 1, _rx(r"\b(money|dollars?|pay|paid|owe)\b")),
    (AgentIdentity.INSURANCE, 3, _rx(
        r"\b(insurance|insurer|claims?|premiums?|coverage|compensat\w*|polic(y|ies)|deductible)\b")),
    (AgentIdentity.INSURANCE, 2, _rx(
        r"\b(medical.*bill|flight.*delay|flight.*cancel\w*|denied|appeal)\b")),
    (AgentIdentity.BOOKING, 3, _rx(r"\b(appointments?|book(ing)?|schedul\w*|reserv\w*)\b")),
    (AgentIdentity.BOOKING, 2, _rx(
        r"\b(doctor|dentist|salon|spa|restaurant|hotel|table|visit)\b")),
    (AgentIdentity.ACCOUNT, 3, _rx(
        r"\b(cancel.*service|cancel.*account|close.*account|activat\w*|reactivat\w*|set ?up.*account)\b")),
    (AgentIdentity.ACCOUNT, 1, _rx(
        r"\b(account|update.*info|change.*address|change.*email|equipment)\b")),
    (AgentIdentity.SUPPORT, 3, _rx(
        r"\b(wifi|wi-fi|connection|not.*connect\w*|can'?t.*connect\w*|slow.*internet)\b")),
    (AgentIdentity.SUPPORT, 2, _rx(
        r"\b(broken|not.*work\w*|isn'?t.*work\w*|won'?t.*work\w*|fix|tech.*issue|"
        r"tech.*support|outage)\b")),
]

_PRIORITY: Tuple[AgentIdentity, ...] = SPECIALISTS

SWITCH_CONFIDENCE = 0.7
MIN_CONFIDENCE = 0.3


class KeywordRouter:
    """
    Propose the agent for a user message.

    Example:
        router = KeywordRouter()
        decision = router.route("My claim was denied", AgentIdentity.ROUTER)
        decision.agent  # AgentIdentity.INSURANCE
    """

    def __init__(
        self,
        switch_confidence: float = SWITCH_CONFIDENCE,
        min_confidence: float = MIN_CONFIDENCE,
    ):
        self.switch_confidence = switch_confidence
        self.min_confidence = min_confidence

    def score(self, text: str) -> Dict[AgentIdentity, int]:
        scores = {agent: 0 for agent in AgentIdentity}
        for agent, weight, pattern in _RULES:
            if pattern.search(text):
                scores[agent] += weight
        if _BILLING.search(text):
            scores[AgentIdentity.SUPPORT] -= 2
        return scores

    def route(self, text: Optional[str], current: AgentIdentity) -> RoutingDecision:
        text = (text or "").lower()
        if not text.strip():
            return RoutingDecision(current, 1.0, RoutingReason.STAY_CASUAL)

        if _RESET.search(text) and not _CANCEL_SOMETHING.search(text):
            return RoutingDecision(AgentIdentity.ROUTER, 1.0, RoutingReason.RESET)

        scores = self.score(text)
        raw_scores = {agent.value: value for agent, value in scores.items()}

        best_agent, best_score = current, 0
        for agent in _PRIORITY:
            value = scores[agent]
            if value > best_score:
                best_agent, best_score = agent, value
            elif value == best_score and value > 0 and agent == current:
                best_agent = agent

        confidence = min(best_score / 3.0, 1.0)

        if current != AgentIdentity.ROUTER:
            if best_score <= 0:
                return RoutingDecision(current, 0.8, RoutingReason.STAY_CASUAL, raw_scores)
            if best_agent != current and confidence < self.switch_confidence:
                logger.debug(
                    f"[Router] staying with {current.value}; "
                    f"{best_agent.value} only at {confidence:.2f}"
                )
                return RoutingDecision(current, SWITCH_CONFIDENCE, RoutingReason.STAY_LOW_CONFIDENCE, raw_scores)
            return RoutingDecision(best_agent, confidence, RoutingReason.KEYWORD_MATCH, raw_scores)

        if best_score <= 0 or confidence < self.min_confidence:
            return RoutingDecision(
                AgentIdentity.ROUTER, max(confidence, 0.5), RoutingReason.DEFAULT_ROUTER, raw_scores
            )
        return RoutingDecision(best_agent, confidence, RoutingReason.KEYWORD_MATCH, raw_scores)
