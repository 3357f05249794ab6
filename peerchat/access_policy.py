"""
Room access rules based on age bracket and parental consent
"""

from typing import Optional

from .constants import AGE_MINOR
from .models import AccessDecision

REASON_ADULTS_ONLY = "This room is not available for users under 18."
REASON_CONSENT_REQUIRED = "Parental consent required for minors to access peer rooms."


def can_access(age_bracket: Optional[str], consent_given: bool, room_is_minor_safe: bool) -> AccessDecision:
    """
    Decide whether a user may enter a room

    Args:
        age_bracket: "MINOR", "ADULT" or None when unknown
        consent_given: Parental consent recorded for the user
        room_is_minor_safe: Room safety flag

    Returns:
        AccessDecision; reason is set only when access is denied
    """
    is_minor = age_bracket == AGE_MINOR

    if is_minor and not room_is_minor_safe:
        return AccessDecision(allowed=False, reason=REASON_ADULTS_ONLY)

    if is_minor and not consent_given:
        return AccessDecision(allowed=False, reason=REASON_CONSENT_REQUIRED)

    return AccessDecision(allowed=True)
