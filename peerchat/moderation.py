"""
Keyword-based content moderation for peer room messages.

Matching is case-insensitive substring containment, so this is a heuristic
filter: "class" contains "ass" and will be flagged as profanity in minor-safe
rooms, while misspellings slip through. Reviewers see every flag anyway.
"""

from enum import Enum
from typing import Dict, List, Tuple

from .models import ModerationResult


class Category(str, Enum):
    SELF_HARM = "self-harm"
    VIOLENCE = "violence"
    SUBSTANCE_USE = "substance-use"
    PROFANITY = "profanity"


SELF_HARM_KEYWORDS = (
    "self-harm",
    "self harm",
    "cut myself",
    "cutting myself",
    "hurt myself",
    "hurting myself",
    "kill myself",
    "killing myself",
    "suicide",
    "suicidal",
    "end my life",
    "want to die",
    "better off dead",
    "no reason to live",
)

VIOLENCE_KEYWORDS = (
    "want to hurt",
    "going to hurt",
    "kill someone",
    "attack someone",
    "bring a weapon",
    "shoot up",
)

SUBSTANCE_KEYWORDS = (
    "getting high",
    "doing drugs",
    "buy drugs",
    "sell drugs",
    "overdose",
    "getting drunk",
)

PROFANITY_KEYWORDS = (
    "fuck",
    "shit",
    "bitch",
    "ass",
    "damn",
    "crap",
    "hell",
    "bastard",
)

# Checked for every room, in flag order
ALWAYS_CHECKED: Tuple[Tuple[Category, Tuple[str, ...]], ...] = (
    (Category.SELF_HARM, SELF_HARM_KEYWORDS),
    (Category.VIOLENCE, VIOLENCE_KEYWORDS),
    (Category.SUBSTANCE_USE, SUBSTANCE_KEYWORDS),
)

KEYWORDS_BY_CATEGORY: Dict[Category, Tuple[str, ...]] = dict(
    ALWAYS_CHECKED + ((Category.PROFANITY, PROFANITY_KEYWORDS),)
)


def _matches(text: str, keywords: Tuple[str, ...]) -> bool:
    return any(keyword in text for keyword in keywords)


def moderate(text: str, minor_safe_room: bool = False) -> ModerationResult:
    """
    Classify message text into content-risk categories

    Args:
        text: Message body
        minor_safe_room: Whether the room also filters profanity

    Returns:
        ModerationResult with the matched categories in category order
    """
    lowered = (text or "").lower()
    flags: List[str] = []

    for category, keywords in ALWAYS_CHECKED:
        if _matches(lowered, keywords):
            flags.append(category.value)

    if minor_safe_room and _matches(lowered, PROFANITY_KEYWORDS):
        flags.append(Category.PROFANITY.value)

    # dict.fromkeys keeps first-seen order
    unique_flags = list(dict.fromkeys(flags))
    return ModerationResult(flagged=bool(unique_flags), flags=unique_flags)
