"""
app/flow/handlers/welcome.py

Handles: first contact

- Prepends the welcome text to the very first reply
- Flips seen_onboarding exactly once
"""

from typing import Any, Dict, Optional

from app.services.user_service import mark_onboarded
from utils.constants import WELCOME_MESSAGE


async def welcome_prefix(user: Dict[str, Any]) -> Optional[str]:
    """
    Returns the welcome text for a user who has not seen it yet.

    The conditional update means two concurrent first messages
    produce a single welcome.
    """
    if user.get("seen_onboarding"):
        return None

    if not await mark_onboarded(user["phone"]):
        return None

    return WELCOME_MESSAGE
