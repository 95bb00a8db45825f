"""
Progressive Tax Calculations

Marginal-bracket integration over an ordered tax schedule. Used for
capital gains estimates in the projection engine and by the lifetime
tax planner.
"""

from typing import List, Optional, Sequence
from dataclasses import dataclass


@dataclass(frozen=True)
class TaxBracket:
    """A single marginal bracket."""

    upper_bound: Optional[float]  # Inclusive; None for the unbounded top bracket
    rate: float  # Marginal rate as decimal (e.g., 0.2005 for 20.05%)

    @property
    def label(self) -> str:
        if self.upper_bound is None:
            return f"{self.rate * 100:.2f}% (top bracket)"
        return f"{self.rate * 100:.2f}% (income up to ${self.upper_bound:,.0f})"


# Combined federal + Ontario rates on ordinary income, 2024
ONTARIO_TAX_BRACKETS_2024 = [
    TaxBracket(51446, 0.2005),
    TaxBracket(55867, 0.2415),
    TaxBracket(102894, 0.2965),
    TaxBracket(111733, 0.3148),
    TaxBracket(150000, 0.3389),
    TaxBracket(173205, 0.3791),
    TaxBracket(220000, 0.4341),
    TaxBracket(246752, 0.4497),
    TaxBracket(None, 0.4829),
]


def validate_brackets(brackets: Sequence[TaxBracket]) -> None:
    """
    Check that a schedule is well formed.

    Raises:
        ValueError: If bounds are not strictly increasing, a rate is outside
            [0, 1], or an unbounded bracket is not the last one
    """
    previous = 0.0
    for index, bracket in enumerate(brackets):
        if not 0 <= bracket.rate <= 1:
            raise ValueError(f"Bracket {index + 1}: rate must be between 0 and 1")

        if bracket.upper_bound is None:
            if index != len(brackets) - 1:
                raise ValueError("Only the last bracket may be unbounded")
            continue

        if bracket.upper_bound <= previous:
            raise ValueError(
                f"Bracket {index + 1}: upper bounds must be strictly increasing"
            )
        previous = bracket.upper_bound


def calculate_progressive_tax(
    brackets: Sequence[TaxBracket], taxable_income: float
) -> float:
    """
    Calculate total tax owed on taxable income.

    Only the income falling inside each bracket is taxed at that bracket's
    rate. An empty schedule yields zero tax so that incomplete settings stay
    usable while they are being entered.

    Args:
        brackets: Brackets in ascending order
        taxable_income: Taxable income

    Returns:
        Total tax owed
    """
    if taxable_income <= 0:
        return 0.0

    total_tax = 0.0
    previous_threshold = 0.0

    for bracket in brackets:
        upper = (
            float("inf") if bracket.upper_bound is None else bracket.upper_bound
        )
        income_in_bracket = max(0.0, min(taxable_income, upper) - previous_threshold)
        total_tax += income_in_bracket * bracket.rate

        if taxable_income <= upper:
            break
        previous_threshold = upper

    return total_tax


def marginal_rate(brackets: Sequence[TaxBracket], taxable_income: float) -> float:
    """
    Rate applied to the last dollar of taxable income.

    Income above the last bound of a schedule without an unbounded bracket
    is untaxed, so its marginal rate is 0.
    """
    for bracket in brackets:
        if bracket.upper_bound is None or taxable_income <= bracket.upper_bound:
            return bracket.rate
    return 0.0


def incremental_tax(
    brackets: Sequence[TaxBracket], amount: float, base_income: float = 0.0
) -> float:
    """Tax on `amount` stacked on top of `base_income`."""
    if amount <= 0:
        return 0.0
    return calculate_progressive_tax(
        brackets, base_income + amount
    ) - calculate_progressive_tax(brackets, base_income)


def brackets_from_dicts(rows: List[dict]) -> List[TaxBracket]:
    """Build brackets from stored `{"upper_bound": ..., "rate": ...}` rows."""
    return [
        TaxBracket(
            upper_bound=None if row.get("upper_bound") is None else float(row["upper_bound"]),
            rate=float(row.get("rate") or 0.0),
        )
        for row in rows
    ]


def brackets_to_dicts(brackets: Sequence[TaxBracket]) -> List[dict]:
    return [{"upper_bound": b.upper_bound, "rate": b.rate} for b in brackets]
