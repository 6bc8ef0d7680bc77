"""Tests for lexical insight extraction.

These tests verify that:
- each rule yields a candidate with its kind and default scores
- captured phrases stop at punctuation and clause joiners
- several rules can fire on one utterance
- the turn emotion adds an emotional_pattern candidate
- bad input raises ExtractionError
"""

import pytest

from companion_memory.core.exceptions import ExtractionError
from companion_memory.models.schemas.memory import MemoryKind, PrivacyLevel, Timeframe, TurnContext
from companion_memory.services.memory.extractor import (
    EXTRACTION_RULES,
    InsightExtractor,
    emotion_to_sentiment,
    extract_tags,
)


@pytest.fixture()
def extractor():
    return InsightExtractor()


def _by_kind(candidates, kind):
    return [c for c in candidates if c.kind == kind]


# ── Personal facts ───────────────────────────────────────────────────────────


def test_name_is_an_identity_fact(extractor):
    [candidate] = extractor.extract("Hi! My name is Dana.")
    assert candidate.kind == MemoryKind.PERSONAL_FACT
    assert candidate.content == "User's name is Dana"
    assert candidate.emotional_context.importance == 9
    assert candidate.details.slot == "name"
    assert candidate.details.category == "identity"


def test_call_me_with_a_name_sets_the_name_slot(extractor):
    [candidate] = extractor.extract("Please call me Sam.")
    assert candidate.content == "User goes by Sam"
    assert candidate.details.slot == "name"


@pytest.mark.parametrize(
    "utterance",
    ["Can you call me tomorrow?", "call me back when you can", "Call me later.", "call me sam"],
)
def test_call_me_requests_are_not_names(extractor, utterance):
    assert _by_kind(extractor.extract(utterance), MemoryKind.PERSONAL_FACT) == []


def test_age_is_captured_with_a_slot(extractor):
    [candidate] = extractor.extract("Actually, I'm 30")
    assert candidate.content == "User is 30 years old"
    assert candidate.details.slot == "age"
    assert 7 <= candidate.emotional_context.importance <= 9


def test_curly_apostrophes_are_understood(extractor):
    [candidate] = extractor.extract("I’m 25 years old")
    assert candidate.content == "User is 25 years old"


def test_profession_requires_an_article(extractor):
    [candidate] = extractor.extract("I work as a nurse at the city hospital")
    assert candidate.content == "User works as nurse at the city hospital"
    assert candidate.emotional_context.importance == 8
    assert "work" in candidate.tags

    assert extractor.extract("I'm a bit tired") == []


def test_favorite_and_school_in_one_sentence(extractor):
    candidates = extractor.extract("My favorite color is blue and I study at MIT")
    contents = sorted(c.content for c in candidates)

    assert contents == ["User studies at MIT", "User's favorite color is blue"]
    assert all(c.kind == MemoryKind.PERSONAL_FACT for c in candidates)

    favorite = next(c for c in candidates if "blue" in c.content)
    assert favorite.details.slot == "favorite_color"
    assert "color" in favorite.tags


def test_question_about_facts_extracts_nothing(extractor):
    assert extractor.extract("What's my favorite color and where do I study?") == []


# ── Preferences, concerns, goals ─────────────────────────────────────────────


def test_likes_and_dislikes_split_on_but(extractor):
    candidates = extractor.extract("I love jazz music but I hate traffic")
    [likes, dislikes] = _by_kind(candidates, MemoryKind.PREFERENCE)

    assert likes.content == "User loves jazz music"
    assert likes.emotional_context.sentiment == pytest.approx(0.8)
    assert "music" in likes.tags

    assert dislikes.content == "User dislikes traffic"
    assert dislikes.emotional_context.sentiment == pytest.approx(-0.8)


def test_concern_is_high_importance_and_sensitive(extractor):
    [concern] = extractor.extract("I'm worried about my exam.")
    assert concern.kind == MemoryKind.CONCERN
    assert concern.content == "User is worried about my exam"
    assert concern.emotional_context.importance == 9
    assert concern.details.privacy_level == PrivacyLevel.SENSITIVE


def test_goal_is_future_facing(extractor):
    [goal] = extractor.extract("My goal is to run a marathon")
    assert goal.kind == MemoryKind.GOAL
    assert goal.content == "User wants to run a marathon"
    assert goal.temporal_info.timeframe == Timeframe.FUTURE
    assert 7 <= goal.emotional_context.importance <= 8


def test_multiple_rules_can_fire(extractor):
    candidates = extractor.extract("Yesterday I got promoted")
    kinds = {c.kind for c in candidates}
    assert kinds == {MemoryKind.SIGNIFICANT_EVENT, MemoryKind.ACHIEVEMENT}

    event = _by_kind(candidates, MemoryKind.SIGNIFICANT_EVENT)[0]
    assert event.temporal_info.timeframe == Timeframe.PAST
    assert 6 <= event.emotional_context.importance <= 7


def test_relationship_uses_the_person_as_tag(extractor):
    [candidate] = extractor.extract("My sister lives in Boston")
    assert candidate.kind == MemoryKind.RELATIONSHIP
    assert candidate.content == "User's sister lives in Boston"
    assert "sister" in candidate.tags


# ── Turn context ─────────────────────────────────────────────────────────────


def test_emotion_adds_an_emotional_pattern(extractor):
    candidates = extractor.extract("Hello there", TurnContext(emotion="sad"))
    [candidate] = candidates

    assert candidate.kind == MemoryKind.EMOTIONAL_PATTERN
    assert candidate.content == "User expressed sad emotion in conversation"
    assert candidate.emotional_context.sentiment == pytest.approx(-0.7)
    assert candidate.emotional_context.emotion_when_captured == "sad"
    assert candidate.tags == ["sad", "emotional_pattern"]


def test_neutral_emotion_adds_nothing(extractor):
    assert extractor.extract("Hello there", TurnContext(emotion="neutral")) == []


def test_turn_emotion_is_stamped_on_every_candidate(extractor):
    candidates = extractor.extract("I love cooking", TurnContext(emotion="happy"))
    assert len(candidates) == 2
    assert {c.emotional_context.emotion_when_captured for c in candidates} == {"happy"}


# ── Input handling and helpers ───────────────────────────────────────────────


@pytest.mark.parametrize("bad_input", [None, 42, b"my name is Dana", ["hi"]])
def test_non_text_raises(extractor, bad_input):
    with pytest.raises(ExtractionError):
        extractor.extract(bad_input)


def test_small_talk_yields_nothing(extractor):
    assert extractor.extract("") == []
    assert extractor.extract("Tell me a joke") == []


def test_extraction_never_produces_synthetic(extractor):
    utterances = [
        "My name is Dana and I live in Lisbon",
        "I feel lonely today",
        "Every morning I go for a run",
        "When I'm stressed, I listen to podcasts",
        "I value honesty",
    ]
    for utterance in utterances:
        for candidate in extractor.extract(utterance, TurnContext(emotion="anxious")):
            assert candidate.kind != MemoryKind.SYNTHETIC


def test_rule_table_stays_in_range():
    for rule in EXTRACTION_RULES:
        assert 1 <= rule.importance <= 10
        assert -1.0 <= rule.sentiment <= 1.0
        assert rule.kind != MemoryKind.SYNTHETIC


def test_extract_tags_finds_keywords():
    assert extract_tags("stress at work and family", MemoryKind.CONCERN) == ["concern", "work", "family"]


def test_emotion_to_sentiment_defaults_to_zero():
    assert emotion_to_sentiment("excited") == pytest.approx(0.9)
    assert emotion_to_sentiment("bewildered") == 0.0
    assert emotion_to_sentiment(None) == 0.0


def test_extract_tags_matches_whole_words():
    assert extract_tags("start a bakery", MemoryKind.GOAL) == ["goal"]
    assert extract_tags("visit my grandma at the party", MemoryKind.GOAL) == ["goal"]
    assert extract_tags("take art classes", MemoryKind.GOAL) == ["goal", "art"]
