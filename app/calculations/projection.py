"""
Portfolio Projection

Year-by-year simulation of a portfolio of holdings: value growth, indexed
income and expenses, mortgage paydown, accrued and realized capital gains,
and the cash flow from dispositions.

Period 0 is the first projection year and every row reflects the end of
its period. All monetary values on a row are prorated by ownership.
"""

import logging
from dataclasses import dataclass, field, asdict
from typing import Dict, List, Optional, Sequence

from app.calculations.amortization import SAFETY_CAP_MULTIPLE, amortize
from app.calculations.indexation import escalate
from app.calculations.lifecycle import (
    Asset,
    AssetLifecycleManager,
    Disposition,
    LifecycleEvent,
)
from app.calculations.tax import TaxBracket, incremental_tax

logger = logging.getLogger(__name__)


@dataclass
class ProjectionConfig:
    """Run-wide assumptions."""

    horizon_years: int = 30
    base_year: int = 2025
    marginal_tax_rate: float = 0.40
    capital_gains_inclusion_rate: float = 0.50
    tax_brackets: Optional[List[TaxBracket]] = None  # Overrides the flat rate unless empty
    base_taxable_income: float = 0.0  # Income the gains are stacked on
    current_age_1: Optional[int] = None
    current_age_2: Optional[int] = None


@dataclass
class AssetPeriod:
    """One asset's results for one period."""

    asset_id: str
    name: str
    period: int
    year: int
    age_1: Optional[int]
    age_2: Optional[int]
    opening_value: float
    closing_value: float
    cost_basis: float
    liability_balance: float
    gross_income: float
    expense: float
    net_income: float
    net_operating_cash_flow: float
    mortgage_payment: float
    accrued_gain: float
    taxable_gain: float
    estimated_tax: float
    sale_proceeds: float
    total_cash_flow: float
    equity: float
    cap_rate: float  # Net income over closing value, 0 on a disposal row
    disposed: bool = False
    sale_price: Optional[float] = None
    realized_gain: Optional[float] = None


@dataclass
class PortfolioPeriod:
    """Portfolio totals for one period."""

    period: int
    year: int
    age_1: Optional[int]
    age_2: Optional[int]
    holdings: int = 0  # Still held at the end of the period
    dispositions: int = 0  # Sold during the period
    opening_value: float = 0.0
    closing_value: float = 0.0
    cost_basis: float = 0.0
    liability_balance: float = 0.0
    gross_income: float = 0.0
    expense: float = 0.0
    net_income: float = 0.0
    net_operating_cash_flow: float = 0.0
    mortgage_payment: float = 0.0
    accrued_gain: float = 0.0
    taxable_gain: float = 0.0
    estimated_tax: float = 0.0
    realized_gain: float = 0.0
    sale_proceeds: float = 0.0
    total_cash_flow: float = 0.0
    equity: float = 0.0


@dataclass
class ProjectionResult:
    periods: List[PortfolioPeriod]
    asset_rows: Dict[str, List[AssetPeriod]]
    warnings: List[str] = field(default_factory=list)

    def summary(self) -> Dict:
        """Totals over the whole horizon."""
        disposal_rows = [
            row
            for rows in self.asset_rows.values()
            for row in rows
            if row.disposed
        ]
        first = self.periods[0] if self.periods else None
        last = self.periods[-1] if self.periods else None

        annualized_growth = None
        if first and last and first.opening_value > 0 and last.closing_value > 0:
            annualized_growth = (last.closing_value / first.opening_value) ** (
                1 / len(self.periods)
            ) - 1

        return {
            "total_operating_cash_flow": sum(
                p.net_operating_cash_flow for p in self.periods
            ),
            "total_sale_proceeds": sum(p.sale_proceeds for p in self.periods),
            "total_realized_gain": sum(row.realized_gain for row in disposal_rows),
            "total_disposition_tax": sum(row.estimated_tax for row in disposal_rows),
            "final_value": last.closing_value if last else 0.0,
            "final_liability": last.liability_balance if last else 0.0,
            "final_equity": last.equity if last else 0.0,
            "annualized_value_growth": annualized_growth,
        }

    def to_dict(self) -> Dict:
        """Plain, rounded representation for JSON responses and storage."""
        return {
            "periods": [_rounded(asdict(p)) for p in self.periods],
            "assets": {
                asset_id: [_rounded(asdict(row)) for row in rows]
                for asset_id, rows in self.asset_rows.items()
            },
            "summary": _rounded(self.summary()),
            "warnings": list(self.warnings),
        }


# Fractions rather than money, kept to six places
RATE_FIELDS = {"cap_rate", "annualized_value_growth"}


def _rounded(row: Dict) -> Dict:
    rounded = {}
    for key, value in row.items():
        if isinstance(value, float):
            value = round(value, 6 if key in RATE_FIELDS else 2)
        rounded[key] = value
    return rounded


@dataclass
class _Holding:
    """Private working state for one asset during a run."""

    asset: Asset
    joined_period: int
    value: float
    balance: float
    payment: float  # Monthly, including any extra payment
    income: float
    expense: float

    @classmethod
    def start(cls, asset: Asset, period: int) -> "_Holding":
        liability = asset.liability
        payment = 0.0
        if liability.balance > 0:
            payment = liability.payment + max(0.0, liability.extra_payment)
        return cls(
            asset=asset,
            joined_period=period,
            value=asset.starting_value,
            balance=liability.balance,
            payment=payment,
            income=asset.income.base_amount,
            expense=asset.expense.base_amount,
        )


class PortfolioProjector:
    """
    Drives the period loop over a fixed horizon.

    Caller records are never modified; each run builds its own working
    state, so one projector may be run repeatedly or from several threads.
    """

    def __init__(
        self,
        initial_assets: Sequence[Asset],
        events: Sequence[LifecycleEvent] = (),
        config: Optional[ProjectionConfig] = None,
    ):
        self.config = config or ProjectionConfig()
        if self.config.horizon_years < 0:
            raise ValueError("Projection horizon cannot be negative")
        self.lifecycle = AssetLifecycleManager(
            initial_assets, events, horizon=self.config.horizon_years
        )

    def run(self) -> ProjectionResult:
        config = self.config
        warnings: List[str] = []
        asset_rows: Dict[str, List[AssetPeriod]] = {}
        periods: List[PortfolioPeriod] = []

        active: List[_Holding] = []
        for asset in self.lifecycle.initial_assets:
            active.append(self._join(asset, 0, asset_rows, warnings))

        for period in range(config.horizon_years + 1):
            for asset in self.lifecycle.acquisitions_for(period):
                active.append(self._join(asset, period, asset_rows, warnings))

            summary = PortfolioPeriod(
                period=period,
                year=config.base_year + period,
                age_1=_age(config.current_age_1, period),
                age_2=_age(config.current_age_2, period),
            )
            still_held = []

            for holding in active:
                disposition = self.lifecycle.disposition_for(
                    holding.asset.asset_id, period
                )
                row = self._advance(holding, period, disposition)
                asset_rows[holding.asset.asset_id].append(row)
                _accumulate(summary, row)
                if disposition is None:
                    still_held.append(holding)

            if config.tax_brackets:
                # Gains stack on each other under a progressive schedule
                summary.estimated_tax = self._estimate_tax(summary.taxable_gain)

            active = still_held
            periods.append(summary)

        return ProjectionResult(periods=periods, asset_rows=asset_rows, warnings=warnings)

    def _join(
        self,
        asset: Asset,
        period: int,
        asset_rows: Dict[str, List[AssetPeriod]],
        warnings: List[str],
    ) -> _Holding:
        holding = _Holding.start(asset, period)
        asset_rows[asset.asset_id] = []

        if holding.balance > 0:
            liability = asset.liability
            cap = max(liability.amortization_months, 1) * SAFETY_CAP_MULTIPLE
            remaining, _, _, _ = amortize(
                holding.balance, liability.annual_rate, holding.payment, cap
            )
            if remaining > 0:
                message = (
                    f"Liability on '{asset.asset_id}' does not amortize: "
                    f"{remaining:,.2f} remains after {cap} months"
                )
                logger.warning(message)
                warnings.append(message)

        return holding

    def _advance(
        self, holding: _Holding, period: int, disposition: Optional[Disposition]
    ) -> AssetPeriod:
        config = self.config
        asset = holding.asset
        ownership = asset.ownership

        # Indexation of income and expenses, one step per period
        if period - holding.joined_period >= asset.indexation_start:
            holding.income = escalate(holding.income, asset.income.annual_rate)
            holding.expense = escalate(holding.expense, asset.expense.annual_rate)

        opening_value = holding.value
        holding.value = escalate(holding.value, asset.growth_rate)

        # Twelve monthly payments on the running balance
        holding.balance, interest, principal, _ = amortize(
            holding.balance, asset.liability.annual_rate, holding.payment, 12
        )
        mortgage_payment = (interest + principal) * ownership

        gross_income = holding.income * ownership
        expense = holding.expense * ownership
        net_income = gross_income - expense
        operating_cash_flow = net_income - mortgage_payment

        cap_rate = 0.0
        if holding.value > 0:
            cap_rate = (holding.income - holding.expense) / holding.value

        row = AssetPeriod(
            asset_id=asset.asset_id,
            name=asset.name,
            period=period,
            year=config.base_year + period,
            age_1=_age(config.current_age_1, period),
            age_2=_age(config.current_age_2, period),
            opening_value=opening_value * ownership,
            closing_value=holding.value * ownership,
            cost_basis=asset.acquisition_cost * ownership,
            liability_balance=holding.balance * ownership,
            gross_income=gross_income,
            expense=expense,
            net_income=net_income,
            net_operating_cash_flow=operating_cash_flow,
            mortgage_payment=mortgage_payment,
            accrued_gain=0.0,
            taxable_gain=0.0,
            estimated_tax=0.0,
            sale_proceeds=0.0,
            total_cash_flow=operating_cash_flow,
            equity=(holding.value - holding.balance) * ownership,
            cap_rate=cap_rate,
        )

        if disposition is None:
            gain = (holding.value - asset.acquisition_cost) * ownership
            row.accrued_gain = gain
        else:
            gain = (disposition.sale_price - asset.acquisition_cost) * ownership
            sale_proceeds = (
                disposition.sale_price
                - disposition.disposal_costs
                - holding.balance
            ) * ownership

            row.disposed = True
            row.sale_price = disposition.sale_price * ownership
            row.realized_gain = gain
            row.closing_value = disposition.sale_price * ownership
            row.sale_proceeds = sale_proceeds
            row.total_cash_flow = operating_cash_flow + sale_proceeds
            row.liability_balance = 0.0
            row.equity = 0.0
            row.cap_rate = 0.0

        row.taxable_gain = max(gain, 0.0) * config.capital_gains_inclusion_rate
        row.estimated_tax = self._estimate_tax(row.taxable_gain)
        return row

    def _estimate_tax(self, taxable_gain: float) -> float:
        config = self.config
        if config.tax_brackets:
            return incremental_tax(
                config.tax_brackets, taxable_gain, config.base_taxable_income
            )
        return taxable_gain * config.marginal_tax_rate


def _age(current_age: Optional[int], period: int) -> Optional[int]:
    return None if current_age is None else current_age + period


def _accumulate(summary: PortfolioPeriod, row: AssetPeriod) -> None:
    if row.disposed:
        summary.dispositions += 1
        summary.realized_gain += row.realized_gain
    else:
        summary.holdings += 1
    summary.opening_value += row.opening_value
    summary.closing_value += row.closing_value
    summary.cost_basis += row.cost_basis
    summary.liability_balance += row.liability_balance
    summary.gross_income += row.gross_income
    summary.expense += row.expense
    summary.net_income += row.net_income
    summary.net_operating_cash_flow += row.net_operating_cash_flow
    summary.mortgage_payment += row.mortgage_payment
    summary.accrued_gain += row.accrued_gain
    summary.taxable_gain += row.taxable_gain
    summary.estimated_tax += row.estimated_tax
    summary.sale_proceeds += row.sale_proceeds
    summary.total_cash_flow += row.total_cash_flow
    summary.equity += row.equity


def run_projection(
    initial_assets: Sequence[Asset],
    events: Sequence[LifecycleEvent] = (),
    config: Optional[ProjectionConfig] = None,
) -> ProjectionResult:
    """Validate the inputs and run a full projection."""
    return PortfolioProjector(initial_assets, events, config).run()
