"""
Indexation

Annual compounding of monetary amounts (property values, rents, expenses,
spending targets, benefits). Every calculator compounds through these
functions so that they agree on the convention.
"""


def index_amount(base: float, annual_rate: float, periods: int) -> float:
    """
    Compound a base amount by a fixed annual rate.

    Args:
        base: Amount at the indexation start point
        annual_rate: Annual rate as decimal (e.g., 0.025 for 2.5%)
        periods: Whole periods elapsed since the indexation start point

    Returns:
        base * (1 + annual_rate) ** periods
    """
    if periods < 0:
        raise ValueError("Elapsed periods cannot be negative")
    return base * (1 + annual_rate) ** periods


def escalate(amount: float, annual_rate: float) -> float:
    """Compound an amount by one period."""
    return index_amount(amount, annual_rate, 1)
