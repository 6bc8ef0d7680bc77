# src/companion_memory/services/memory/extractor.py
"""Lexical insight extraction.

Each utterance is run through an ordered table of :class:`ExtractionRule`
entries. Every rule that matches yields one candidate; deduplication happens
later, in the resolver.
"""
import re
from dataclasses import dataclass
from typing import List, Optional, Tuple

from ...core.exceptions import ExtractionError
from ...models.schemas.memory import (
    EmotionalContext,
    EmotionalWeight,
    Frequency,
    InsightCandidate,
    MemoryDetails,
    MemoryKind,
    MemorySource,
    PrivacyLevel,
    Recency,
    TemporalInfo,
    Timeframe,
    TurnContext,
)

# A captured phrase ends at sentence punctuation or a clause joiner
_END = r"(?=\s*(?:[.,!?;]|\band\b|\bbut\b|\bbecause\b|$))"
_PHRASE = r"(.+?)" + _END

MAX_CAPTURE_LENGTH = 200
RULE_CONFIDENCE = 0.8

EMOTION_KEYWORDS = ['happy', 'sad', 'angry', 'excited', 'nervous', 'anxious', 'confident', 'frustrated']
TOPIC_KEYWORDS = ['work', 'family', 'relationship', 'health', 'hobby', 'travel', 'money', 'education']
ACTIVITY_KEYWORDS = ['exercise', 'reading', 'music', 'cooking', 'sports', 'gaming', 'art', 'technology']

SENSITIVE_KINDS = {
    MemoryKind.RELATIONSHIP,
    MemoryKind.CONCERN,
    MemoryKind.EMOTIONAL_PATTERN,
    MemoryKind.TRIGGER,
}
SENSITIVE_KEYWORDS = ['depression', 'anxiety', 'trauma', 'abuse', 'addiction', 'suicide']

EMOTION_SENTIMENT = {
    'happy': 0.8,
    'excited': 0.9,
    'content': 0.6,
    'sad': -0.7,
    'angry': -0.8,
    'frustrated': -0.6,
    'anxious': -0.5,
    'nervous': -0.4,
    'neutral': 0.0,
}


@dataclass(frozen=True)
class ExtractionRule:
    """One row of the extraction table.

    ``template``, ``slot`` and ``tags`` are formatted with the regex groups.
    """
    name: str
    pattern: str
    kind: MemoryKind
    importance: int
    template: str
    sentiment: float = 0.0
    category: Optional[str] = None
    slot: Optional[str] = None
    tags: Tuple[str, ...] = ()
    timeframe: Timeframe = Timeframe.PRESENT
    recency: Recency = Recency.RECENT
    frequency: Frequency = Frequency.ONE_TIME
    emotional_weight: EmotionalWeight = EmotionalWeight.MODERATE

    @property
    def regex(self) -> "re.Pattern[str]":
        return _compile(self.pattern)


_COMPILED = {}


def _compile(pattern: str) -> "re.Pattern[str]":
    compiled = _COMPILED.get(pattern)
    if compiled is None:
        compiled = _COMPILED[pattern] = re.compile(pattern, re.IGNORECASE)
    return compiled


EXTRACTION_RULES: Tuple[ExtractionRule, ...] = (
    # Personal facts
    ExtractionRule(
        name="name",
        pattern=r"\bmy name is\s+([a-z][a-z'\-]*)",
        kind=MemoryKind.PERSONAL_FACT,
        importance=9,
        template="User's name is {0}",
        category="identity",
        slot="name",
        emotional_weight=EmotionalWeight.HIGH,
    ),
    ExtractionRule(
        name="nickname",
        # "call me back" and "call me tomorrow" are requests, not names
        pattern=r"\bcall me\s+((?-i:[A-Z])[a-z'\-]*)(?=\s*(?:[.,!?;]|$))",
        kind=MemoryKind.PERSONAL_FACT,
        importance=9,
        template="User goes by {0}",
        category="identity",
        slot="name",
        emotional_weight=EmotionalWeight.HIGH,
    ),
    ExtractionRule(
        name="age",
        pattern=r"\b(?:i am|i'm|im)\s+(\d{1,3})(?:\s+years?\s+old)?\b",
        kind=MemoryKind.PERSONAL_FACT,
        importance=7,
        template="User is {0} years old",
        category="demographics",
        slot="age",
    ),
    ExtractionRule(
        name="profession",
        pattern=(
            r"\b(?:(?:i work as|my job is)\s+(?:an?\s+)?|(?:i'm|i am)\s+an?\s+)"
            r"(?!bit\b|little\b|lot\b)" + _PHRASE
        ),
        kind=MemoryKind.PERSONAL_FACT,
        importance=8,
        template="User works as {0}",
        category="profession",
        slot="profession",
        tags=("work",),
    ),
    ExtractionRule(
        name="location",
        pattern=r"\b(?:i live in|i moved to|i'm living in|i am living in)\s+" + _PHRASE,
        kind=MemoryKind.PERSONAL_FACT,
        importance=7,
        template="User lives in {0}",
        category="location",
        slot="location",
    ),
    ExtractionRule(
        name="hometown",
        pattern=r"\b(?:i'm from|i am from|i grew up in)\s+" + _PHRASE,
        kind=MemoryKind.PERSONAL_FACT,
        importance=7,
        template="User is from {0}",
        category="location",
        slot="hometown",
        timeframe=Timeframe.PAST,
    ),
    ExtractionRule(
        name="education",
        pattern=r"\bi (?:study|studied|am studying|go to school|went to school)\s+at\s+" + _PHRASE,
        kind=MemoryKind.PERSONAL_FACT,
        importance=8,
        template="User studies at {0}",
        category="education",
        slot="education",
        tags=("education",),
    ),
    ExtractionRule(
        name="favorite",
        pattern=r"\bmy favou?rite\s+([a-z]+(?:\s+[a-z]+)?)\s+is\s+" + _PHRASE,
        kind=MemoryKind.PERSONAL_FACT,
        importance=7,
        template="User's favorite {0} is {1}",
        sentiment=0.6,
        category="favorites",
        slot="favorite_{0}",
        tags=("favorite", "{0}"),
    ),
    # Preferences
    ExtractionRule(
        name="likes",
        pattern=r"\b(?:i love|i really like|i enjoy|i adore|i'm passionate about|i am passionate about)\s+" + _PHRASE,
        kind=MemoryKind.PREFERENCE,
        importance=7,
        template="User loves {0}",
        sentiment=0.8,
        category="likes",
    ),
    ExtractionRule(
        name="dislikes",
        pattern=r"\b(?:i hate|i can't stand|i cannot stand|i dislike|i don't like|i do not like)\s+" + _PHRASE,
        kind=MemoryKind.PREFERENCE,
        importance=7,
        template="User dislikes {0}",
        sentiment=-0.8,
        category="dislikes",
    ),
    ExtractionRule(
        name="prefers",
        pattern=r"\bi prefer\s+" + _PHRASE,
        kind=MemoryKind.PREFERENCE,
        importance=6,
        template="User prefers {0}",
        sentiment=0.6,
        category="likes",
    ),
    # Emotions and relationships
    ExtractionRule(
        name="feeling",
        pattern=r"\b(?:i feel|i'm feeling|i am feeling|i've been feeling|i have been feeling)\s+" + _PHRASE,
        kind=MemoryKind.EMOTIONAL_PATTERN,
        importance=8,
        template="User feels {0}",
        category="current_emotion",
    ),
    ExtractionRule(
        name="concern",
        pattern=r"\b(?:i'm|i am)\s+(?:worried|concerned|anxious|stressed|scared)\s+about\s+" + _PHRASE,
        kind=MemoryKind.CONCERN,
        importance=9,
        template="User is worried about {0}",
        sentiment=-0.5,
        category="worries",
        emotional_weight=EmotionalWeight.HIGH,
    ),
    ExtractionRule(
        name="trigger",
        pattern=r"\b(?:it upsets me when|i get upset when|please don't mention|don't bring up)\s+" + _PHRASE,
        kind=MemoryKind.TRIGGER,
        importance=8,
        template="Avoid bringing up: {0}",
        sentiment=-0.6,
        category="triggers",
        emotional_weight=EmotionalWeight.HIGH,
    ),
    ExtractionRule(
        name="relationship",
        pattern=(
            r"\bmy\s+(best friend|partner|boyfriend|girlfriend|husband|wife|friend|mom|mother|dad|father"
            r"|sister|brother|son|daughter)\s+" + _PHRASE
        ),
        kind=MemoryKind.RELATIONSHIP,
        importance=8,
        template="User's {0} {1}",
        category="interpersonal",
        tags=("{0}",),
    ),
    # Goals
    ExtractionRule(
        name="aspiration",
        pattern=r"\b(?:i want to|i hope to|i plan to|i'd like to|my goal is to|my goal is|i'm trying to|i am trying to)\s+" + _PHRASE,
        kind=MemoryKind.GOAL,
        importance=8,
        template="User wants to {0}",
        category="aspirations",
        timeframe=Timeframe.FUTURE,
    ),
    ExtractionRule(
        name="obligation",
        pattern=r"\b(?:i need to|i have to|i must)\s+" + _PHRASE,
        kind=MemoryKind.GOAL,
        importance=7,
        template="User needs to {0}",
        category="obligations",
    ),
    # Events
    ExtractionRule(
        name="recent_event",
        pattern=r"\b(?:yesterday|last night|last week|last month|recently),?\s+" + _PHRASE,
        kind=MemoryKind.SIGNIFICANT_EVENT,
        importance=7,
        template="Recent event: {0}",
        category="life_events",
        timeframe=Timeframe.PAST,
    ),
    ExtractionRule(
        name="childhood",
        pattern=r"\b(?:when i was (?:a kid|a child|young|little)|growing up|as a child),?\s+" + _PHRASE,
        kind=MemoryKind.SIGNIFICANT_EVENT,
        importance=6,
        template="Childhood memory: {0}",
        category="life_events",
        timeframe=Timeframe.PAST,
        recency=Recency.YEARS_AGO,
    ),
    ExtractionRule(
        name="achievement",
        pattern=r"\bi (?:finally\s+|just\s+)?((?:got promoted|graduated|won|passed|finished|completed)(?:\s+.+?)?)" + _END,
        kind=MemoryKind.ACHIEVEMENT,
        importance=7,
        template="User {0}",
        sentiment=0.7,
        category="accomplishments",
        timeframe=Timeframe.PAST,
    ),
    # Habits and values
    ExtractionRule(
        name="routine",
        pattern=r"\b(?:every\s+(?:morning|day|night|evening|week|weekend)|on weekends),?\s+i\s+" + _PHRASE,
        kind=MemoryKind.ROUTINE,
        importance=6,
        template="User regularly {0}",
        category="habits",
        frequency=Frequency.REGULAR,
    ),
    ExtractionRule(
        name="coping",
        pattern=r"\bwhen i(?:'m| am| get| feel)\s+(?:stressed|anxious|sad|upset|overwhelmed),?\s+i\s+" + _PHRASE,
        kind=MemoryKind.COPING_MECHANISM,
        importance=7,
        template="When stressed, user {0}",
        category="coping",
        frequency=Frequency.REGULAR,
    ),
    ExtractionRule(
        name="value",
        pattern=r"\b(?:i value|i really value|what matters most to me is)\s+" + _PHRASE,
        kind=MemoryKind.VALUE,
        importance=7,
        template="User values {0}",
        category="beliefs",
        frequency=Frequency.CONSTANT,
    ),
    ExtractionRule(
        name="communication",
        pattern=r"\b(?:please be more|i like it when you(?:'re| are)|i prefer when you(?:'re| are))\s+" + _PHRASE,
        kind=MemoryKind.COMMUNICATION_STYLE,
        importance=6,
        template="User wants replies to be {0}",
        category="communication",
        frequency=Frequency.CONSTANT,
    ),
)


def emotion_to_sentiment(emotion: Optional[str]) -> float:
    """Convert emotion to sentiment score"""
    if not emotion:
        return 0.0
    return EMOTION_SENTIMENT.get(emotion.lower(), 0.0)


def _keyword_regex(keyword: str) -> "re.Pattern[str]":
    return _compile(r"\b" + re.escape(keyword) + r"\b")


def extract_tags(text: str, kind: MemoryKind) -> List[str]:
    """Extract relevant tags from content; keywords match whole words only"""
    lowered = text.lower()
    tags = [kind.value]

    for keyword in EMOTION_KEYWORDS + TOPIC_KEYWORDS + ACTIVITY_KEYWORDS:
        if _keyword_regex(keyword).search(lowered) and keyword not in tags:
            tags.append(keyword)

    return tags


def determine_privacy_level(kind: MemoryKind, text: str) -> PrivacyLevel:
    """Determine privacy level based on kind and content"""
    if kind in SENSITIVE_KINDS:
        return PrivacyLevel.SENSITIVE

    lowered = text.lower()
    if any(keyword in lowered for keyword in SENSITIVE_KEYWORDS):
        return PrivacyLevel.SENSITIVE

    return PrivacyLevel.PRIVATE


def _clean_capture(value: Optional[str]) -> str:
    if not value:
        return ""
    value = re.sub(r"\s+", " ", value).strip()
    return value.strip("\"'` ")


def _merge_tags(*groups) -> List[str]:
    merged = []
    for group in groups:
        for tag in group:
            tag = tag.strip().lower()
            if tag and tag not in merged:
                merged.append(tag)
    return merged


class InsightExtractor:
    """Turns one utterance into zero or more insight candidates"""

    def __init__(self, rules: Tuple[ExtractionRule, ...] = EXTRACTION_RULES):
        self.rules = rules

    def extract(self, utterance, turn_context: Optional[TurnContext] = None) -> List[InsightCandidate]:
        if not isinstance(utterance, str):
            raise ExtractionError(
                "Utterance must be text",
                {"received_type": type(utterance).__name__}
            )

        turn_context = turn_context or TurnContext()
        emotion = (turn_context.emotion or "").strip().lower() or None
        # Curly apostrophes would defeat the contraction patterns
        text = utterance.replace("’", "'").strip()

        insights = []
        for rule in self.rules:
            candidate = self._apply_rule(rule, text, emotion)
            if candidate is not None:
                insights.append(candidate)

        if emotion and emotion != "neutral":
            insights.append(self._emotion_candidate(emotion, text))

        return insights

    def _apply_rule(self, rule: ExtractionRule, text: str, emotion: Optional[str]) -> Optional[InsightCandidate]:
        match = rule.regex.search(text)
        if not match:
            return None

        groups = [_clean_capture(group) for group in match.groups()]
        if not groups or not all(groups) or any(len(g) > MAX_CAPTURE_LENGTH for g in groups):
            return None

        content = rule.template.format(*groups)
        slot = rule.slot.format(*groups).lower().replace(" ", "_") if rule.slot else None
        rule_tags = [tag.format(*groups) for tag in rule.tags]
        captured = " ".join(groups)

        return InsightCandidate(
            kind=rule.kind,
            content=content,
            emotional_context=EmotionalContext(
                importance=rule.importance,
                sentiment=rule.sentiment,
                emotion_when_captured=emotion,
            ),
            temporal_info=TemporalInfo(
                timeframe=rule.timeframe,
                recency=rule.recency,
                frequency=rule.frequency,
            ),
            tags=_merge_tags(extract_tags(captured, rule.kind), rule_tags),
            details=MemoryDetails(
                category=rule.category,
                slot=slot,
                source=MemorySource.EXPLICIT,
                confidence=RULE_CONFIDENCE,
                emotional_weight=rule.emotional_weight,
                privacy_level=determine_privacy_level(rule.kind, captured),
                extracted_from=text[:500],
            ),
        )

    def _emotion_candidate(self, emotion: str, text: str) -> InsightCandidate:
        return InsightCandidate(
            kind=MemoryKind.EMOTIONAL_PATTERN,
            content=f"User expressed {emotion} emotion in conversation",
            emotional_context=EmotionalContext(
                importance=6,
                sentiment=emotion_to_sentiment(emotion),
                emotion_when_captured=emotion,
            ),
            tags=[emotion, MemoryKind.EMOTIONAL_PATTERN.value],
            details=MemoryDetails(
                category="emotional_state",
                source=MemorySource.INFERRED,
                confidence=RULE_CONFIDENCE,
                privacy_level=PrivacyLevel.SENSITIVE,
                extracted_from=text[:500] or None,
            ),
        )
