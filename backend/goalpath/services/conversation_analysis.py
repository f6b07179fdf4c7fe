"""Keyword heuristics that summarise the goal-setting conversation."""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Protocol, Sequence

from goalpath.services.plan_schema import ChatInsights

ChatHistory = Sequence[Mapping[str, Any]]

MAX_DEPTH = 5
DEFAULT_MOTIVATION = "Grow through pursuing this goal"

MOTIVATION_KEYWORDS = ["i want", "i'd like", "i would like", "i wish", "i hope", "my dream", "become", "aim to", "aspire"]
PLAN_KEYWORDS = ["plan", "schedule", "deadline", "by the end", "timeline", "milestone", "step by step"]
SKILL_KEYWORDS = ["experience", "i know", "i have done", "i've done", "years of", "background", "studied", "skill"]
RESOURCE_KEYWORDS = ["budget", "savings", "money", "hours", "mentor", "tools", "course", "support", "time per"]
CONSTRAINT_KEYWORDS = ["can't", "cannot", "limited", "only", "busy", "full-time", "difficult", "hard to", "struggle"]
VALUE_KEYWORDS = ["important", "value", "family", "freedom", "health", "meaning", "care about", "matters"]

DEPTH_ASPECTS = [
    (2, "Concrete reasons and background for the goal"),
    (3, "Relevant experience and current abilities"),
    (4, "Obstacles and challenges"),
    (5, "A detailed action plan"),
]


@dataclass
class ConversationAnalysis:
    motivation: str
    key_insights: List[str] = field(default_factory=list)
    readiness_level: int = 3
    recommended_actions: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "motivation": self.motivation,
            "key_insights": self.key_insights,
            "readiness_level": self.readiness_level,
            "recommended_actions": self.recommended_actions,
        }


@dataclass
class ConversationDepth:
    current_depth: int
    is_complete: bool
    completion_percentage: float
    missing_aspects: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "current_depth": self.current_depth,
            "is_complete": self.is_complete,
            "completion_percentage": self.completion_percentage,
            "missing_aspects": self.missing_aspects,
        }


class ConversationAnalyzer(Protocol):
    def analyze(self, chat_history: ChatHistory) -> ConversationAnalysis:
        ...


class HeuristicConversationAnalyzer:
    """Default analyzer: keyword matches over the user's side of the chat."""

    def analyze(self, chat_history: ChatHistory) -> ConversationAnalysis:
        return analyze_chat_history(chat_history)


def analyze_chat_history(chat_history: ChatHistory) -> ConversationAnalysis:
    """Gauge motivation and readiness from what the user said."""
    user_text = _user_messages(chat_history)
    lowered = [message.lower() for message in user_text]
    sentences = _split_sentences(" ".join(user_text))

    has_motivation = any(_contains_any(message, MOTIVATION_KEYWORDS) for message in lowered)
    has_plan = any(_contains_any(message, PLAN_KEYWORDS) for message in lowered)
    readiness = 7 if has_motivation and has_plan else 5 if has_motivation else 3

    insights: List[str] = []
    if has_motivation:
        insights.append("Shows a clear sense of purpose")
    if has_plan:
        insights.append("Is already thinking about a schedule")
    if _first_match(sentences, RESOURCE_KEYWORDS):
        insights.append("Understands the resources the goal needs")
    if _first_match(sentences, CONSTRAINT_KEYWORDS):
        insights.append("Is aware of constraints that could slow progress")

    actions = ["Set a concrete schedule", "Build the skills the goal requires", "Review progress regularly"]
    if not has_plan:
        actions.insert(0, "Break the goal into yearly and quarterly steps")
    if readiness < 7:
        actions.append("Find a mentor or supporter")

    motivation = _first_match(sentences, MOTIVATION_KEYWORDS) or DEFAULT_MOTIVATION
    return ConversationAnalysis(
        motivation=motivation,
        key_insights=insights,
        readiness_level=readiness,
        recommended_actions=actions,
    )


def analyze_goal_depth(chat_history: ChatHistory) -> ConversationDepth:
    """How far the conversation got, on a five-step depth scale."""
    depth = min(len(chat_history), MAX_DEPTH)
    missing = [aspect for threshold, aspect in DEPTH_ASPECTS if depth < threshold]
    return ConversationDepth(
        current_depth=depth,
        is_complete=depth >= MAX_DEPTH,
        completion_percentage=min(depth / MAX_DEPTH * 100, 100.0),
        missing_aspects=missing,
    )


def extract_chat_insights(chat_history: ChatHistory, analysis: Optional[ConversationAnalysis] = None) -> ChatInsights:
    sentences = _split_sentences(" ".join(_user_messages(chat_history)))
    motivation = analysis.motivation if analysis else _first_match(sentences, MOTIVATION_KEYWORDS)
    return ChatInsights(
        motivation=motivation,
        current_skills=_joined_matches(sentences, SKILL_KEYWORDS),
        available_resources=_joined_matches(sentences, RESOURCE_KEYWORDS),
        constraints=_joined_matches(sentences, CONSTRAINT_KEYWORDS),
        values=_joined_matches(sentences, VALUE_KEYWORDS),
    )


def _user_messages(chat_history: ChatHistory) -> List[str]:
    messages: List[str] = []
    for entry in chat_history or []:
        if entry.get("role") != "user":
            continue
        content = entry.get("content")
        if isinstance(content, str) and content.strip():
            messages.append(content.strip())
    return messages


def _split_sentences(text: str) -> List[str]:
    parts = re.split(r"[.!?\n]+", text)
    return [p.strip() for p in parts if p.strip()]


def _contains_any(text: str, keywords: Iterable[str]) -> bool:
    return any(keyword in text for keyword in keywords)


def _first_match(sentences: List[str], keywords: List[str]) -> Optional[str]:
    for sentence in sentences:
        if _contains_any(sentence.lower(), keywords):
            return sentence
    return None


def _joined_matches(sentences: List[str], keywords: List[str], limit: int = 2) -> Optional[str]:
    matches = [sentence for sentence in sentences if _contains_any(sentence.lower(), keywords)]
    if not matches:
        return None
    return ". ".join(matches[:limit])
