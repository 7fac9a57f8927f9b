from __future__ import annotations

from fractions import Fraction
from typing import Iterable

from .models import CheckResult

PRIORITY_WEIGHTS = {"high": 3, "medium": 2, "low": 1}
DEFAULT_WEIGHT = PRIORITY_WEIGHTS["medium"]


def _round_half_up(value: Fraction) -> int:
    return int((value + Fraction(1, 2)) // 1)


def score_checks(checks: Iterable[CheckResult]) -> int:
    """Weighted share of passed checks, 0-100.

    A failed high-priority check costs three times a failed low-priority one.
    """
    total = 0
    passed = 0
    for check in checks:
        weight = PRIORITY_WEIGHTS.get(check.priority, DEFAULT_WEIGHT)
        total += weight
        if check.passed:
            passed += weight
    if not total:
        return 0
    return _round_half_up(Fraction(100 * passed, total))
