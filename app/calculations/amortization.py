"""
Loan Amortization Calculations

Level-payment loan math shared by the projection engine and the debt
comparison calculator. Payments match Excel's PMT() function.
"""

import logging
from dataclasses import dataclass
from typing import List, Dict, Optional, Tuple
from datetime import date
from dateutil.relativedelta import relativedelta

logger = logging.getLogger(__name__)

# Balances below half a cent are treated as paid off
BALANCE_TOLERANCE = 0.005

# Payoff loops stop after this multiple of the nominal term
SAFETY_CAP_MULTIPLE = 2


@dataclass
class AmortizationSummary:
    """Result of a payoff simulation."""

    level_payment: float
    total_payment: float  # level payment + extra payment
    total_interest: float
    total_paid: float
    months: int
    converged: bool

    @property
    def payoff_years(self) -> int:
        return self.months // 12

    @property
    def payoff_months(self) -> int:
        return self.months % 12

    def to_dict(self) -> Dict:
        return {
            "level_payment": round(self.level_payment, 2),
            "total_payment": round(self.total_payment, 2),
            "total_interest": round(self.total_interest, 2),
            "total_paid": round(self.total_paid, 2),
            "months": self.months,
            "payoff_years": self.payoff_years,
            "payoff_months": self.payoff_months,
            "converged": self.converged,
        }


def calculate_payment(
    principal: float, annual_rate: float, amortization_months: int
) -> float:
    """
    Calculate monthly loan payment.

    Matches Excel's PMT() function.

    Args:
        principal: Loan principal amount
        annual_rate: Annual interest rate as decimal (e.g., 0.05 for 5%)
        amortization_months: Total amortization period in months

    Returns:
        Monthly payment amount (positive number)
    """
    if principal <= 0:
        return 0.0
    if amortization_months <= 0:
        return 0.0

    monthly_rate = annual_rate / 12

    if monthly_rate == 0:
        return principal / amortization_months

    growth = (1 + monthly_rate) ** amortization_months
    return principal * monthly_rate * growth / (growth - 1)


def amortize(
    balance: float, annual_rate: float, payment: float, months: int
) -> Tuple[float, float, float, int]:
    """
    Advance a loan balance by up to `months` monthly payments.

    Interest is charged on the running balance each month. The principal
    portion never exceeds the balance and never goes below zero, so a
    payment that does not cover interest leaves the balance unchanged.

    Returns:
        (ending_balance, interest_paid, principal_paid, months_elapsed)
    """
    monthly_rate = annual_rate / 12
    interest_paid = 0.0
    principal_paid = 0.0
    elapsed = 0

    while elapsed < months and balance > BALANCE_TOLERANCE:
        interest = balance * monthly_rate
        principal_pmt = min(balance, max(0.0, payment - interest))

        balance -= principal_pmt
        interest_paid += interest
        principal_paid += principal_pmt
        elapsed += 1

    if balance <= BALANCE_TOLERANCE:
        balance = 0.0

    return balance, interest_paid, principal_paid, elapsed


def simulate_payoff(
    principal: float,
    annual_rate: float,
    amortization_months: int,
    extra_payment: float = 0.0,
) -> Optional[AmortizationSummary]:
    """
    Simulate a loan month by month until it is paid off.

    Args:
        principal: Loan principal amount
        annual_rate: Annual interest rate as decimal
        amortization_months: Nominal amortization period in months
        extra_payment: Additional amount paid every month

    Returns:
        AmortizationSummary, or None when there is no debt to model

    Raises:
        ValueError: If the amortization period is not positive
    """
    if principal <= 0:
        return None
    if amortization_months <= 0:
        raise ValueError("Amortization period must be at least one month")

    level_payment = calculate_payment(principal, annual_rate, amortization_months)
    total_payment = level_payment + max(0.0, extra_payment)
    cap = amortization_months * SAFETY_CAP_MULTIPLE

    balance, interest, principal_paid, months = amortize(
        principal, annual_rate, total_payment, cap
    )
    converged = balance == 0

    if not converged:
        logger.warning(
            "Loan of %.2f at %.4f did not amortize within %d months "
            "(remaining balance %.2f)",
            principal,
            annual_rate,
            cap,
            balance,
        )

    return AmortizationSummary(
        level_payment=level_payment,
        total_payment=total_payment,
        total_interest=interest,
        total_paid=principal_paid + interest,
        months=months,
        converged=converged,
    )


def generate_amortization_schedule(
    principal: float,
    annual_rate: float,
    amortization_months: int,
    extra_payment: float = 0.0,
    start_date: Optional[date] = None,
) -> List[Dict]:
    """
    Generate a month-by-month amortization schedule.

    Args:
        principal: Loan principal amount
        annual_rate: Annual interest rate as decimal
        amortization_months: Amortization period in months
        extra_payment: Additional amount paid every month
        start_date: Date of first payment

    Returns:
        List of amortization rows
    """
    schedule = []
    if principal <= 0 or amortization_months <= 0:
        return schedule

    payment = calculate_payment(principal, annual_rate, amortization_months)
    payment += max(0.0, extra_payment)
    balance = principal

    if start_date is None:
        start_date = date.today()

    for period in range(1, amortization_months * SAFETY_CAP_MULTIPLE + 1):
        period_date = start_date + relativedelta(months=period - 1)

        ending_balance, interest, principal_pmt, _ = amortize(
            balance, annual_rate, payment, 1
        )

        schedule.append(
            {
                "period": period,
                "date": period_date.isoformat(),
                "beginning_balance": round(balance, 2),
                "payment": round(principal_pmt + interest, 2),
                "interest": round(interest, 2),
                "principal": round(principal_pmt, 2),
                "ending_balance": round(ending_balance, 2),
            }
        )

        balance = ending_balance

        # Stop if balance is paid off
        if balance == 0:
            break

    return schedule
