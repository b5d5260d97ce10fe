from dataclasses import dataclass
from enum import Enum
from typing import Optional, Any

from config import APY_EPSILON, TVL_EPSILON_USD


class ChangeDecision(Enum):
    CHANGED = "changed"
    UNCHANGED = "unchanged"


@dataclass(frozen=True)
class ChangeThresholds:
    apy_epsilon: float = APY_EPSILON
    tvl_epsilon: float = TVL_EPSILON_USD


DEFAULT_THRESHOLDS = ChangeThresholds()


def _numeric_changed(previous: Optional[Any], current: Optional[Any], epsilon: float) -> bool:
    if previous is None and current is None:
        return False
    if previous is None or current is None:
        return True
    return abs(float(current) - float(previous)) > epsilon


def detect_change(previous, current, thresholds: ChangeThresholds = DEFAULT_THRESHOLDS) -> ChangeDecision:
    """
    Decide whether `current` is worth persisting over `previous`.

    Both arguments only need `apy` and `tvl` attributes, so a persisted Pool
    row can be compared directly against a CanonicalPoolData. Payload
    differences are ignored; only the tracked numeric fields drive the decision.
    """
    if previous is None:
        return ChangeDecision.CHANGED
    if _numeric_changed(previous.apy, current.apy, thresholds.apy_epsilon):
        return ChangeDecision.CHANGED
    if _numeric_changed(previous.tvl, current.tvl, thresholds.tvl_epsilon):
        return ChangeDecision.CHANGED
    return ChangeDecision.UNCHANGED
