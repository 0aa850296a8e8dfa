"""
Device trust model.

Trust starts from a verification-dependent base and loses points for
risky history and for being shared between many identities.
"""

from __future__ import annotations

from typing import Sequence

from ..config import Settings
from ..risk.levels import clamp_risk


def history_penalty(risk_scores: Sequence[int], settings: Settings) -> float:
    """Penalty from the device's last N signal events.

    The mean is taken over a fixed window of N slots with empty slots
    counting as zero risk, so a short clean history is not penalised like
    a full window of the same scores, and appending an event never lowers
    the mean unless it displaces a riskier one from the window.
    """
    window = list(risk_scores)[: settings.trust_history_size]
    mean_risk = sum(window) / settings.trust_history_size
    return mean_risk * settings.trust_history_weight


def shared_device_penalty(user_count: int, settings: Settings) -> int:
    extra = max(0, user_count - settings.shared_device_user_threshold)
    return extra * settings.shared_device_penalty


def compute_trust(
    is_verified: bool,
    is_blocked: bool,
    recent_risk_scores: Sequence[int],
    user_count: int,
    settings: Settings,
    penalty_floor: float = 0.0,
) -> int:
    """Trust score in [0, 100]; always 0 for a blocked device.

    ``penalty_floor`` is the lowest history penalty the caller will accept,
    so a device cannot regain trust by trading one risky event for another
    while the window still holds the event that set the floor.
    """
    if is_blocked:
        return 0
    base = settings.trust_base_verified if is_verified else settings.trust_base_unverified
    score = (
        base
        - max(history_penalty(recent_risk_scores, settings), penalty_floor)
        - shared_device_penalty(user_count, settings)
    )
    return clamp_risk(score)
