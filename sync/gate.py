"""Decides whether a delta upload is worth it compared to a full upload."""

from common.constants import DEFAULT_SAVINGS_THRESHOLD_PERCENT
from common.types import DeltaPlan


def is_worthwhile(plan: DeltaPlan, threshold_percent: float = DEFAULT_SAVINGS_THRESHOLD_PERCENT) -> bool:
    """
    True iff the plan saves at least `threshold_percent` of the blocks.

    The boundary is inclusive: savings exactly equal to the threshold pass.
    """
    return plan.stats.savings_percent >= threshold_percent
