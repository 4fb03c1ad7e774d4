"""
Year-over-year earnings categorisation.

Bursa coverage groups stocks by how revenue and profit moved against the
prior year:

    1  revenue up,   profit up
    2  revenue down, profit down
    3  revenue up,   profit down
    4  revenue down, profit up
    5  turnaround     (prior-year loss → profit)
    6  decline        (prior-year profit → loss)

Missing data falls into category 2 so unknown names are never promoted.
"""

from __future__ import annotations

from typing import Optional

YOY_CATEGORY_LABELS: dict[int, str] = {
    1: "Revenue UP, Profit UP",
    2: "Revenue DOWN, Profit DOWN",
    3: "Revenue UP, Profit DOWN",
    4: "Revenue DOWN, Profit UP",
    5: "Turnaround (loss to profit)",
    6: "Decline (profit to loss)",
}

UNKNOWN_CATEGORY = 2


def categorize_yoy(
    revenue: Optional[float],
    revenue_prev: Optional[float],
    profit: Optional[float],
    profit_prev: Optional[float],
) -> int:
    """Return the YoY category (1-6) for a pair of annual results."""
    if profit is None or profit_prev is None:
        return UNKNOWN_CATEGORY

    if profit_prev < 0 < profit:
        return 5
    if profit_prev > 0 > profit:
        return 6

    profit_up = profit > profit_prev
    revenue_up = (
        revenue is not None and revenue_prev is not None and revenue > revenue_prev
    )

    if revenue_up and profit_up:
        return 1
    if revenue_up:
        return 3
    if profit_up:
        return 4
    return 2
