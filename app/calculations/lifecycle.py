"""
Asset Lifecycle

Holdings, acquisition/disposition events, and the replay that determines
which assets are held at any point of a projection.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Union

from app.calculations.amortization import calculate_payment

logger = logging.getLogger(__name__)


class LifecycleValidationError(ValueError):
    """Raised when holdings or events are inconsistent."""


@dataclass(frozen=True)
class Liability:
    """Mortgage or other amortizing debt secured by an asset."""

    principal: float = 0.0
    annual_rate: float = 0.0
    amortization_months: int = 0
    outstanding_balance: Optional[float] = None  # Defaults to principal
    extra_payment: float = 0.0  # Additional monthly payment

    @property
    def balance(self) -> float:
        if self.outstanding_balance is None:
            return max(0.0, self.principal)
        return max(0.0, self.outstanding_balance)

    @property
    def payment(self) -> float:
        """Level monthly payment on the original principal."""
        principal = self.principal if self.principal > 0 else self.balance
        return calculate_payment(
            principal, self.annual_rate, self.amortization_months
        )


@dataclass(frozen=True)
class IndexedStream:
    """An annual income or expense amount that grows at a fixed rate."""

    base_amount: float = 0.0
    annual_rate: float = 0.0


@dataclass(frozen=True)
class Asset:
    """A holding such as a rental property."""

    asset_id: str
    acquisition_cost: float
    name: str = ""
    owner: Optional[str] = None
    current_value: Optional[float] = None  # Defaults to acquisition cost
    growth_rate: float = 0.0
    ownership: float = 1.0
    liability: Liability = field(default_factory=Liability)
    income: IndexedStream = field(default_factory=IndexedStream)
    expense: IndexedStream = field(default_factory=IndexedStream)
    indexation_start: int = 1  # Periods held before streams start indexing

    @property
    def starting_value(self) -> float:
        if self.current_value is None:
            return self.acquisition_cost
        return self.current_value


@dataclass(frozen=True)
class Acquisition:
    """A new asset joining the portfolio at the start of `period`."""

    period: int
    asset: Asset


@dataclass(frozen=True)
class Disposition:
    """Sale of a held asset during `period`."""

    period: int
    asset_id: str
    sale_price: float
    disposal_costs: float = 0.0


LifecycleEvent = Union[Acquisition, Disposition]


class AssetLifecycleManager:
    """
    Tracks which assets are held in each period.

    Holdings and events are validated on construction, so a projection never
    discovers a bad disposition half way through a run.
    """

    def __init__(
        self,
        initial_assets: Sequence[Asset],
        events: Sequence[LifecycleEvent] = (),
        horizon: Optional[int] = None,
    ):
        self.initial_assets = list(initial_assets)
        self.events = list(events)
        self.horizon = horizon
        self.validate()

    @property
    def acquisitions(self) -> List[Acquisition]:
        return [e for e in self.events if isinstance(e, Acquisition)]

    @property
    def dispositions(self) -> List[Disposition]:
        return [e for e in self.events if isinstance(e, Disposition)]

    def validate(self) -> None:
        """
        Check ownership fractions, id uniqueness and disposition targets.

        Raises:
            LifecycleValidationError: On the first inconsistency found
        """
        seen_ids = set()
        all_assets = self.initial_assets + [a.asset for a in self.acquisitions]
        for asset in all_assets:
            if not asset.asset_id:
                raise LifecycleValidationError("Every asset needs an identifier")
            if asset.asset_id in seen_ids:
                raise LifecycleValidationError(
                    f"Duplicate asset id '{asset.asset_id}'"
                )
            seen_ids.add(asset.asset_id)

            if not 0 < asset.ownership <= 1:
                raise LifecycleValidationError(
                    f"Asset '{asset.asset_id}': ownership must be in (0, 1]"
                )
            if asset.indexation_start < 0:
                raise LifecycleValidationError(
                    f"Asset '{asset.asset_id}': indexation start cannot be negative"
                )

        disposed = set()
        for event in self.events:
            if event.period < 0:
                raise LifecycleValidationError("Event periods cannot be negative")
            if self.horizon is not None and event.period > self.horizon:
                logger.debug(
                    "Event in period %d is beyond the %d-period horizon",
                    event.period,
                    self.horizon,
                )
            if not isinstance(event, Disposition):
                continue

            if event.asset_id in disposed:
                raise LifecycleValidationError(
                    f"Asset '{event.asset_id}' is disposed more than once"
                )
            active_ids = {a.asset_id for a in self.active_as_of(event.period)}
            if event.asset_id not in active_ids:
                raise LifecycleValidationError(
                    f"Asset '{event.asset_id}' is not held before period {event.period}"
                )
            disposed.add(event.asset_id)

    def acquisitions_for(self, period: int) -> List[Asset]:
        """Assets that join the portfolio at the start of `period`."""
        return [a.asset for a in self.acquisitions if a.period == period]

    def disposition_for(self, asset_id: str, period: int) -> Optional[Disposition]:
        for event in self.dispositions:
            if event.asset_id == asset_id and event.period == period:
                return event
        return None

    def active_as_of(self, period: int) -> List[Asset]:
        """
        Assets held going into `period`.

        Replays every event scheduled strictly before `period` against the
        initial holdings, in period order.
        """
        holdings: Dict[str, Asset] = {a.asset_id: a for a in self.initial_assets}

        for event in sorted(self.events, key=lambda e: e.period):
            if event.period >= period:
                continue
            if isinstance(event, Acquisition):
                holdings[event.asset.asset_id] = event.asset
            else:
                holdings.pop(event.asset_id, None)

        return list(holdings.values())
