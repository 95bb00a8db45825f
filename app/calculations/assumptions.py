"""
Projection Assumptions

The flat assumption set a calculator form submits, and the shape of the
`inputs` half of a stored calculator state. Numeric fields are lenient:
missing or unparseable values count as zero so that half-filled forms
still produce a projection.
"""

import math
import re
import uuid
from datetime import date
from typing import Annotated, Any, List, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator

from app.calculations.lifecycle import (
    Acquisition,
    Asset,
    AssetLifecycleManager,
    Disposition,
    IndexedStream,
    Liability,
)
from app.calculations.projection import (
    PortfolioProjector,
    ProjectionConfig,
    ProjectionResult,
)
from app.calculations.tax import TaxBracket, validate_brackets

_CURRENCY_FORMATTING = re.compile(r"[\s,$€£¥]+")


def coerce_number(value: Any) -> float:
    """Parse form input such as "$1,250.00" into a float, 0.0 if it can't be."""
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else 0.0
    if isinstance(value, str):
        try:
            number = float(value)
        except ValueError:
            try:
                number = float(_CURRENCY_FORMATTING.sub("", value))
            except ValueError:
                return 0.0
        return number if math.isfinite(number) else 0.0
    return 0.0


def _whole_number(value: Any) -> int:
    return int(round(coerce_number(value)))


def _optional_number(value: Any) -> Optional[float]:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    return coerce_number(value)


class LiabilityInput(BaseModel):
    principal: float = 0.0
    annual_rate: float = 0.0
    amortization_months: int = 0
    outstanding_balance: Optional[float] = None
    extra_payment: float = 0.0

    @field_validator("principal", "annual_rate", "extra_payment", mode="before")
    @classmethod
    def _number(cls, value):
        return coerce_number(value)

    @field_validator("amortization_months", mode="before")
    @classmethod
    def _months(cls, value):
        return _whole_number(value)

    @field_validator("outstanding_balance", mode="before")
    @classmethod
    def _balance(cls, value):
        return _optional_number(value)

    def to_liability(self) -> Liability:
        return Liability(
            principal=self.principal,
            annual_rate=self.annual_rate,
            amortization_months=self.amortization_months,
            outstanding_balance=self.outstanding_balance,
            extra_payment=self.extra_payment,
        )


class StreamInput(BaseModel):
    base_amount: float = 0.0
    annual_rate: float = 0.0

    @field_validator("base_amount", "annual_rate", mode="before")
    @classmethod
    def _number(cls, value):
        return coerce_number(value)


class AssetInput(BaseModel):
    """A holding as entered on the form."""

    asset_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str = ""
    owner: Optional[str] = None
    acquisition_cost: float = 0.0
    current_value: Optional[float] = None
    growth_rate: float = 0.0
    ownership: float = 1.0
    liability: LiabilityInput = Field(default_factory=LiabilityInput)
    income: StreamInput = Field(default_factory=StreamInput)
    expense: StreamInput = Field(default_factory=StreamInput)
    indexation_start: int = 1

    @field_validator("acquisition_cost", "growth_rate", mode="before")
    @classmethod
    def _number(cls, value):
        return coerce_number(value)

    @field_validator("current_value", mode="before")
    @classmethod
    def _current_value(cls, value):
        return _optional_number(value)

    @field_validator("ownership", mode="before")
    @classmethod
    def _ownership(cls, value):
        # A blank ownership field means the asset is held outright
        return coerce_number(value) or 1.0

    @field_validator("indexation_start", mode="before")
    @classmethod
    def _indexation_start(cls, value):
        if value is None or value == "":
            return 1
        return _whole_number(value)

    def to_asset(self) -> Asset:
        return Asset(
            asset_id=self.asset_id,
            name=self.name,
            owner=self.owner,
            acquisition_cost=self.acquisition_cost,
            current_value=self.current_value,
            growth_rate=self.growth_rate,
            ownership=self.ownership,
            liability=self.liability.to_liability(),
            income=IndexedStream(self.income.base_amount, self.income.annual_rate),
            expense=IndexedStream(self.expense.base_amount, self.expense.annual_rate),
            indexation_start=self.indexation_start,
        )


class AcquisitionInput(BaseModel):
    event_type: Literal["acquisition"] = "acquisition"
    period: int = 0
    asset: AssetInput

    @field_validator("period", mode="before")
    @classmethod
    def _period(cls, value):
        return _whole_number(value)


class DispositionInput(BaseModel):
    event_type: Literal["disposition"] = "disposition"
    period: int = 0
    asset_id: str
    sale_price: float = 0.0
    disposal_costs: float = 0.0

    @field_validator("period", mode="before")
    @classmethod
    def _period(cls, value):
        return _whole_number(value)

    @field_validator("sale_price", "disposal_costs", mode="before")
    @classmethod
    def _number(cls, value):
        return coerce_number(value)


EventInput = Annotated[
    Union[AcquisitionInput, DispositionInput], Field(discriminator="event_type")
]


class TaxBracketInput(BaseModel):
    upper_bound: Optional[float] = None  # None for the top bracket
    rate: float = 0.0

    @field_validator("upper_bound", mode="before")
    @classmethod
    def _upper_bound(cls, value):
        return _optional_number(value)

    @field_validator("rate", mode="before")
    @classmethod
    def _rate(cls, value):
        return coerce_number(value)


def to_brackets(rows: Optional[List[TaxBracketInput]]) -> Optional[List[TaxBracket]]:
    """Convert and validate a bracket schedule. Raises ValueError if malformed."""
    if rows is None:
        return None
    brackets = [TaxBracket(row.upper_bound, row.rate) for row in rows]
    validate_brackets(brackets)
    return brackets


class ProjectionAssumptions(BaseModel):
    """Everything a projection run needs."""

    current_age_1: Optional[int] = None
    current_age_2: Optional[int] = None
    base_year: Optional[int] = None  # Defaults to the current calendar year
    horizon_years: int = Field(default=30, ge=0, le=100)
    marginal_tax_rate: float = 0.40
    capital_gains_inclusion_rate: float = 0.50
    tax_brackets: Optional[List[TaxBracketInput]] = None
    base_taxable_income: float = 0.0
    assets: List[AssetInput] = []
    events: List[EventInput] = []

    @field_validator(
        "marginal_tax_rate",
        "capital_gains_inclusion_rate",
        "base_taxable_income",
        mode="before",
    )
    @classmethod
    def _number(cls, value):
        return coerce_number(value)

    @field_validator("horizon_years", mode="before")
    @classmethod
    def _horizon(cls, value):
        # Bounds are checked after coercion
        return _whole_number(value)

    @field_validator("current_age_1", "current_age_2", mode="before")
    @classmethod
    def _age(cls, value):
        number = _optional_number(value)
        return None if number is None else int(number)

    def to_config(self) -> ProjectionConfig:
        return ProjectionConfig(
            horizon_years=self.horizon_years,
            base_year=self.base_year or date.today().year,
            marginal_tax_rate=self.marginal_tax_rate,
            capital_gains_inclusion_rate=self.capital_gains_inclusion_rate,
            tax_brackets=to_brackets(self.tax_brackets),
            base_taxable_income=self.base_taxable_income,
            current_age_1=self.current_age_1,
            current_age_2=self.current_age_2,
        )

    def to_events(self) -> List[Union[Acquisition, Disposition]]:
        events = []
        for event in self.events:
            if isinstance(event, AcquisitionInput):
                events.append(Acquisition(event.period, event.asset.to_asset()))
            else:
                events.append(
                    Disposition(
                        period=event.period,
                        asset_id=event.asset_id,
                        sale_price=event.sale_price,
                        disposal_costs=event.disposal_costs,
                    )
                )
        return events

    def lifecycle(self) -> AssetLifecycleManager:
        """Validated lifecycle manager for these holdings and events."""
        return AssetLifecycleManager(
            [a.to_asset() for a in self.assets],
            self.to_events(),
            horizon=self.horizon_years,
        )

    def run(self) -> ProjectionResult:
        """
        Validate and run the projection.

        Raises:
            ValueError: For malformed tax brackets or inconsistent lifecycle
                events (LifecycleValidationError)
        """
        projector = PortfolioProjector(
            [a.to_asset() for a in self.assets],
            self.to_events(),
            self.to_config(),
        )
        return projector.run()
