"""
Tests for the asset lifecycle and the portfolio projector.
"""

import pytest
from pydantic import ValidationError

from app.calculations.amortization import calculate_payment
from app.calculations.assumptions import ProjectionAssumptions, coerce_number
from app.calculations.lifecycle import (
    Acquisition,
    Asset,
    AssetLifecycleManager,
    Disposition,
    IndexedStream,
    Liability,
    LifecycleValidationError,
)
from app.calculations.projection import ProjectionConfig, run_projection
from app.calculations.tax import TaxBracket


def make_asset(asset_id="house", cost=100.0, **kwargs):
    return Asset(asset_id=asset_id, acquisition_cost=cost, name=asset_id.title(), **kwargs)


def config(horizon=5, **kwargs):
    return ProjectionConfig(horizon_years=horizon, base_year=2025, **kwargs)


class TestLifecycle:
    """Test the active-holdings replay and event validation."""

    def test_active_as_of_replays_prior_events(self):
        """Test acquisitions and sales before a period shape its holdings."""
        manager = AssetLifecycleManager(
            [make_asset("a"), make_asset("b")],
            [
                Acquisition(2, make_asset("c")),
                Disposition(3, "a", sale_price=150),
            ],
        )
        assert {a.asset_id for a in manager.active_as_of(0)} == {"a", "b"}
        assert {a.asset_id for a in manager.active_as_of(2)} == {"a", "b"}
        assert {a.asset_id for a in manager.active_as_of(3)} == {"a", "b", "c"}
        assert {a.asset_id for a in manager.active_as_of(4)} == {"b", "c"}

    def test_events_replay_in_period_order(self):
        """Test out-of-order input still replays chronologically."""
        manager = AssetLifecycleManager(
            [],
            [
                Disposition(5, "c", sale_price=200),
                Acquisition(2, make_asset("c")),
            ],
        )
        assert [a.asset_id for a in manager.active_as_of(4)] == ["c"]
        assert manager.active_as_of(6) == []

    def test_disposition_of_unknown_asset_is_rejected(self):
        with pytest.raises(LifecycleValidationError):
            AssetLifecycleManager([make_asset("a")], [Disposition(1, "ghost", 100)])

    def test_disposition_before_acquisition_is_rejected(self):
        """Test an asset cannot be sold before (or as) it is bought."""
        with pytest.raises(LifecycleValidationError):
            AssetLifecycleManager(
                [],
                [Acquisition(3, make_asset("c")), Disposition(2, "c", 100)],
            )
        with pytest.raises(LifecycleValidationError):
            AssetLifecycleManager(
                [],
                [Acquisition(3, make_asset("c")), Disposition(3, "c", 100)],
            )

    def test_asset_disposed_at_most_once(self):
        with pytest.raises(LifecycleValidationError):
            AssetLifecycleManager(
                [make_asset("a")],
                [Disposition(2, "a", 100), Disposition(2, "a", 120)],
            )

    def test_duplicate_ids_are_rejected(self):
        with pytest.raises(LifecycleValidationError):
            AssetLifecycleManager([make_asset("a")], [Acquisition(1, make_asset("a"))])

    def test_ownership_must_be_a_fraction(self):
        with pytest.raises(LifecycleValidationError):
            AssetLifecycleManager([make_asset("a", ownership=1.5)])
        with pytest.raises(LifecycleValidationError):
            AssetLifecycleManager([make_asset("a", ownership=0)])

    def test_validation_error_is_a_value_error(self):
        with pytest.raises(ValueError):
            AssetLifecycleManager([], [Disposition(-1, "a", 100)])


class TestProjector:
    """Test the period loop."""

    def test_flat_asset_keeps_its_value(self):
        """Test a $100 asset with no growth, income or expense."""
        result = run_projection([make_asset("a", 100.0)], config=config(horizon=1))
        first = result.asset_rows["a"][0]
        assert first.closing_value == 100.0
        assert first.accrued_gain == 0.0
        assert first.estimated_tax == 0.0
        assert len(result.periods) == 2

    def test_rows_cover_every_period(self):
        """Test one aggregate row per period 0..N with calendar years and ages."""
        result = run_projection(
            [make_asset()], config=config(horizon=3, current_age_1=60, current_age_2=58)
        )
        assert [p.period for p in result.periods] == [0, 1, 2, 3]
        assert [p.year for p in result.periods] == [2025, 2026, 2027, 2028]
        assert result.periods[2].age_1 == 62
        assert result.periods[2].age_2 == 60

    def test_value_growth_compounds_each_period(self):
        result = run_projection(
            [make_asset("a", 1000.0, growth_rate=0.10)], config=config(horizon=2)
        )
        closing = [row.closing_value for row in result.asset_rows["a"]]
        assert closing == pytest.approx([1100.0, 1210.0, 1331.0])
        assert result.asset_rows["a"][1].opening_value == pytest.approx(1100.0)

    def test_current_value_differs_from_cost(self):
        """Test accrued gain is measured against cost, not starting value."""
        asset = make_asset("a", 200000.0, current_value=300000.0)
        result = run_projection(
            [asset],
            config=config(horizon=0, marginal_tax_rate=0.4, capital_gains_inclusion_rate=0.5),
        )
        row = result.asset_rows["a"][0]
        assert row.accrued_gain == pytest.approx(100000)
        assert row.taxable_gain == pytest.approx(50000)
        assert row.estimated_tax == pytest.approx(20000)

    def test_indexation_starts_after_offset(self):
        """Test streams only compound once the indexation start is reached."""
        asset = make_asset(
            "a",
            income=IndexedStream(1000.0, 0.10),
            expense=IndexedStream(500.0, 0.10),
            indexation_start=2,
        )
        result = run_projection([asset], config=config(horizon=3))
        income = [row.gross_income for row in result.asset_rows["a"]]
        expense = [row.expense for row in result.asset_rows["a"]]
        assert income == pytest.approx([1000.0, 1000.0, 1100.0, 1210.0])
        assert expense == pytest.approx([500.0, 500.0, 550.0, 605.0])

    def test_indexation_offset_counts_from_acquisition(self):
        """Test an asset bought mid-horizon gets its own grace period."""
        acquired = make_asset("b", income=IndexedStream(1000.0, 0.10), indexation_start=1)
        result = run_projection(
            [], [Acquisition(2, acquired)], config=config(horizon=4)
        )
        income = [row.gross_income for row in result.asset_rows["b"]]
        assert income == pytest.approx([1000.0, 1100.0, 1210.0])

    def test_ownership_prorates_every_amount(self):
        """Test a half-owned asset reports half of each amount."""
        liability = Liability(principal=50000, annual_rate=0.05, amortization_months=300)
        whole = make_asset(
            "a", 100000.0, growth_rate=0.03, liability=liability,
            income=IndexedStream(12000.0, 0.02), expense=IndexedStream(4000.0, 0.02),
        )
        half = make_asset(
            "b", 100000.0, growth_rate=0.03, liability=liability,
            income=IndexedStream(12000.0, 0.02), expense=IndexedStream(4000.0, 0.02),
            ownership=0.5,
        )
        result = run_projection([whole, half], config=config(horizon=3))
        for full_row, half_row in zip(result.asset_rows["a"], result.asset_rows["b"]):
            assert half_row.closing_value == pytest.approx(full_row.closing_value / 2)
            assert half_row.liability_balance == pytest.approx(full_row.liability_balance / 2)
            assert half_row.mortgage_payment == pytest.approx(full_row.mortgage_payment / 2)
            assert half_row.net_operating_cash_flow == pytest.approx(
                full_row.net_operating_cash_flow / 2
            )
            assert half_row.equity == pytest.approx(full_row.equity / 2)

    def test_mortgage_balance_declines_to_zero(self):
        """Test the liability never increases and is retired on schedule."""
        liability = Liability(principal=120000, annual_rate=0.06, amortization_months=120)
        asset = make_asset("a", 200000.0, liability=liability)
        result = run_projection([asset], config=config(horizon=12))
        balances = [row.liability_balance for row in result.asset_rows["a"]]
        assert balances[0] < 120000
        for previous, current in zip(balances, balances[1:]):
            assert 0 <= current <= previous
        assert balances[9] == 0
        assert result.asset_rows["a"][11].mortgage_payment == 0

    def test_mortgage_payment_is_twelve_level_payments(self):
        liability = Liability(principal=400000, annual_rate=0.05, amortization_months=300)
        asset = make_asset("a", 500000.0, liability=liability)
        result = run_projection([asset], config=config(horizon=0))
        row = result.asset_rows["a"][0]
        assert row.mortgage_payment == pytest.approx(
            calculate_payment(400000, 0.05, 300) * 12
        )
        assert row.net_operating_cash_flow == pytest.approx(-row.mortgage_payment)

    def test_zero_rate_mortgage(self):
        """Test a zero-rate liability pays down linearly."""
        liability = Liability(principal=12000, annual_rate=0.0, amortization_months=24)
        result = run_projection([make_asset("a", 50000.0, liability=liability)], config=config(horizon=2))
        balances = [row.liability_balance for row in result.asset_rows["a"]]
        assert balances == pytest.approx([6000.0, 0.0, 0.0])

    def test_acquired_asset_has_no_earlier_rows(self):
        """Test an asset bought in period p first appears at p."""
        result = run_projection(
            [make_asset("a")],
            [Acquisition(3, make_asset("b", 250.0))],
            config=config(horizon=5),
        )
        rows = result.asset_rows["b"]
        assert [row.period for row in rows] == [3, 4, 5]
        assert rows[0].opening_value == 250.0
        assert result.periods[2].holdings == 1
        assert result.periods[3].holdings == 2

    def test_disposed_asset_has_one_disposal_row(self):
        """Test a sale produces exactly one realized row and nothing after."""
        liability = Liability(principal=60000, annual_rate=0.05, amortization_months=300)
        asset = make_asset("a", 100000.0, growth_rate=0.05, liability=liability)
        result = run_projection(
            [asset],
            [Disposition(2, "a", sale_price=130000, disposal_costs=5000)],
            config=config(horizon=5, marginal_tax_rate=0.4, capital_gains_inclusion_rate=0.5),
        )
        rows = result.asset_rows["a"]
        assert [row.period for row in rows] == [0, 1, 2]

        sale_row = rows[-1]
        assert sale_row.disposed
        assert sale_row.sale_price == 130000
        assert sale_row.realized_gain == pytest.approx(30000)
        assert sale_row.accrued_gain == 0.0
        assert sale_row.taxable_gain == pytest.approx(15000)
        assert sale_row.estimated_tax == pytest.approx(6000)
        assert sale_row.equity == 0.0
        assert sale_row.liability_balance == 0.0
        assert not any(row.disposed for row in rows[:-1])

        balance_before_sale = rows[1].liability_balance
        assert sale_row.sale_proceeds < 130000 - 5000 - 0
        assert sale_row.sale_proceeds > 130000 - 5000 - balance_before_sale
        assert sale_row.total_cash_flow == pytest.approx(
            sale_row.net_operating_cash_flow + sale_row.sale_proceeds
        )

        assert result.periods[2].dispositions == 1
        assert result.periods[2].holdings == 0
        assert result.periods[3].closing_value == 0

    def test_sale_proceeds_are_prorated(self):
        asset = make_asset("a", 100000.0, ownership=0.5)
        result = run_projection(
            [asset], [Disposition(1, "a", sale_price=120000, disposal_costs=2000)],
            config=config(horizon=2),
        )
        sale_row = result.asset_rows["a"][-1]
        assert sale_row.sale_proceeds == pytest.approx(59000)
        assert sale_row.realized_gain == pytest.approx(10000)

    def test_loss_on_sale_has_no_tax(self):
        result = run_projection(
            [make_asset("a", 100000.0)],
            [Disposition(1, "a", sale_price=80000)],
            config=config(horizon=1),
        )
        sale_row = result.asset_rows["a"][-1]
        assert sale_row.realized_gain == pytest.approx(-20000)
        assert sale_row.taxable_gain == 0
        assert sale_row.estimated_tax == 0

    def test_progressive_brackets_replace_flat_rate(self):
        """Test gains are taxed through the schedule on top of other income."""
        brackets = [TaxBracket(50000, 0.20), TaxBracket(None, 0.30)]
        asset = make_asset("a", 100000.0, current_value=180000.0)
        result = run_projection(
            [asset],
            config=config(
                horizon=0,
                capital_gains_inclusion_rate=0.5,
                tax_brackets=brackets,
                base_taxable_income=30000,
            ),
        )
        # 40,000 taxable on top of 30,000: 20,000 at 20% and 20,000 at 30%
        assert result.asset_rows["a"][0].estimated_tax == pytest.approx(10000)
        assert result.periods[0].estimated_tax == pytest.approx(10000)

    def test_empty_bracket_list_uses_flat_rate(self):
        """Test an empty schedule falls back to the marginal rate instead of zero tax."""
        asset = make_asset("a", 100000.0, current_value=180000.0)
        result = run_projection(
            [asset],
            config=config(
                horizon=0,
                marginal_tax_rate=0.4,
                capital_gains_inclusion_rate=0.5,
                tax_brackets=[],
            ),
        )
        assert result.asset_rows["a"][0].estimated_tax == pytest.approx(16000)
        assert result.periods[0].estimated_tax == pytest.approx(16000)

    def test_aggregate_rows_sum_asset_rows(self):
        assets = [
            make_asset("a", 100000.0, growth_rate=0.02, income=IndexedStream(9000.0, 0.02)),
            make_asset("b", 250000.0, growth_rate=0.04, expense=IndexedStream(3000.0, 0.03)),
        ]
        result = run_projection(assets, config=config(horizon=4))
        for index, period in enumerate(result.periods):
            rows = [result.asset_rows[key][index] for key in ("a", "b")]
            assert period.closing_value == pytest.approx(sum(r.closing_value for r in rows))
            assert period.net_operating_cash_flow == pytest.approx(
                sum(r.net_operating_cash_flow for r in rows)
            )
            assert period.equity == pytest.approx(sum(r.equity for r in rows))

    def test_caller_records_are_not_mutated(self):
        """Test the projector works on private copies."""
        asset = make_asset(
            "a", 1000.0, growth_rate=0.1, income=IndexedStream(100.0, 0.05),
            liability=Liability(principal=500, annual_rate=0.05, amortization_months=60),
        )
        assets = [asset]
        events = [Acquisition(1, make_asset("b"))]
        first = run_projection(assets, events, config=config(horizon=3)).to_dict()
        second = run_projection(assets, events, config=config(horizon=3)).to_dict()
        assert first == second
        assert asset.current_value is None
        assert asset.income.base_amount == 100.0
        assert asset.liability.balance == 500
        assert len(assets) == 1 and len(events) == 1

    def test_non_amortizing_liability_is_flagged(self):
        """Test a loan with no amortization term is reported as degenerate."""
        liability = Liability(principal=0, outstanding_balance=50000, annual_rate=0.05)
        result = run_projection([make_asset("a", 100000.0, liability=liability)], config=config(horizon=1))
        assert len(result.warnings) == 1
        assert "'a'" in result.warnings[0]
        balances = [row.liability_balance for row in result.asset_rows["a"]]
        assert balances == [50000, 50000]

    def test_empty_portfolio(self):
        result = run_projection([], config=config(horizon=2))
        assert len(result.periods) == 3
        assert result.periods[0].closing_value == 0
        assert result.summary()["annualized_value_growth"] is None

    def test_summary_totals(self):
        result = run_projection(
            [make_asset("a", 100000.0, income=IndexedStream(5000.0, 0.0))],
            [Disposition(2, "a", sale_price=150000)],
            config=config(horizon=3, marginal_tax_rate=0.4, capital_gains_inclusion_rate=0.5),
        )
        summary = result.summary()
        assert summary["total_operating_cash_flow"] == pytest.approx(15000)
        assert summary["total_sale_proceeds"] == pytest.approx(150000)
        assert summary["total_realized_gain"] == pytest.approx(50000)
        assert summary["total_disposition_tax"] == pytest.approx(10000)
        assert summary["final_value"] == 0

    def test_to_dict_rounds_to_cents(self):
        asset = make_asset("a", 1000.0, growth_rate=0.0333)
        data = run_projection([asset], config=config(horizon=1)).to_dict()
        assert data["assets"]["a"][0]["closing_value"] == 1033.3
        assert data["periods"][1]["closing_value"] == round(1000 * 1.0333 ** 2, 2)
        assert set(data) == {"periods", "assets", "summary", "warnings"}

    def test_to_dict_keeps_rate_precision(self):
        """Test growth and cap rates are not rounded to cents."""
        asset = make_asset(
            "a", 1000.0, growth_rate=0.0312, income=IndexedStream(45.0, 0.0)
        )
        result = run_projection([asset], config=config(horizon=9))
        assert result.summary()["annualized_value_growth"] == pytest.approx(0.0312)

        data = result.to_dict()
        assert data["summary"]["annualized_value_growth"] == pytest.approx(0.0312, abs=1e-6)
        assert data["assets"]["a"][0]["cap_rate"] == pytest.approx(45.0 / 1031.2, abs=1e-6)

    def test_net_income_and_cap_rate(self):
        """Test net income is prorated and cap rate is a fraction of value."""
        asset = make_asset(
            "a", 200000.0, ownership=0.5,
            income=IndexedStream(20000.0, 0.0), expense=IndexedStream(5000.0, 0.0),
        )
        result = run_projection(
            [asset], [Disposition(2, "a", sale_price=220000)], config=config(horizon=3)
        )
        rows = result.asset_rows["a"]
        assert rows[0].net_income == pytest.approx(7500)
        assert rows[0].cap_rate == pytest.approx(0.075)
        assert rows[1].cap_rate == pytest.approx(0.075)

        sale_row = rows[-1]
        assert sale_row.disposed
        assert sale_row.net_income == pytest.approx(7500)
        assert sale_row.cap_rate == 0.0

        assert [p.net_income for p in result.periods] == pytest.approx([7500, 7500, 7500, 0])

    def test_cap_rate_without_value(self):
        asset = make_asset("a", 0.0, income=IndexedStream(1000.0, 0.0))
        row = run_projection([asset], config=config(horizon=0)).asset_rows["a"][0]
        assert row.cap_rate == 0.0
        assert row.net_income == 1000.0

    def test_holdings_and_dispositions_count_every_row(self):
        """Test a sold asset moves from holdings to dispositions in its sale period."""
        result = run_projection(
            [make_asset("a"), make_asset("b")],
            [Disposition(1, "a", sale_price=120)],
            config=config(horizon=2),
        )
        counts = [(p.holdings, p.dispositions) for p in result.periods]
        assert counts == [(2, 0), (1, 1), (1, 0)]
        for index, period in enumerate(result.periods):
            rows = [
                row for rows in result.asset_rows.values()
                for row in rows if row.period == index
            ]
            assert period.holdings + period.dispositions == len(rows)

    def test_negative_horizon_is_rejected(self):
        with pytest.raises(ValueError):
            run_projection([], config=config(horizon=-1))


class TestAssumptions:
    """Test the form boundary."""

    def test_coerce_number(self):
        assert coerce_number("$1,250.50") == 1250.5
        assert coerce_number("") == 0.0
        assert coerce_number(None) == 0.0
        assert coerce_number("abc") == 0.0
        assert coerce_number(float("nan")) == 0.0
        assert coerce_number(7) == 7.0
        assert coerce_number("1e5") == 100000.0
        assert coerce_number("2.5E-2") == 0.025
        assert coerce_number(" -$1,200 ") == -1200.0
        assert coerce_number("nan") == 0.0

    def test_bad_numeric_fields_default_to_zero(self):
        assumptions = ProjectionAssumptions.model_validate(
            {
                "horizon_years": 2,
                "base_year": 2025,
                "assets": [
                    {
                        "asset_id": "a",
                        "acquisition_cost": "$200,000",
                        "growth_rate": "not a number",
                        "ownership": "",
                        "income": {"base_amount": None, "annual_rate": "0.02"},
                        "liability": {"principal": "", "amortization_months": "300"},
                    }
                ],
            }
        )
        asset = assumptions.assets[0]
        assert asset.acquisition_cost == 200000
        assert asset.growth_rate == 0
        assert asset.ownership == 1.0
        assert asset.income.base_amount == 0
        assert asset.liability.amortization_months == 300

        result = assumptions.run()
        assert result.asset_rows["a"][-1].closing_value == 200000

    def test_whole_number_fields_are_lenient(self):
        """Test blank or formatted horizons and event periods coerce instead of failing."""
        assumptions = ProjectionAssumptions.model_validate(
            {
                "horizon_years": "",
                "base_year": 2025,
                "events": [
                    {"event_type": "acquisition", "period": "", "asset": {"asset_id": "b"}},
                    {"event_type": "disposition", "period": "3", "asset_id": "b"},
                ],
            }
        )
        assert assumptions.horizon_years == 0
        assert assumptions.events[0].period == 0
        assert assumptions.events[1].period == 3
        assert ProjectionAssumptions.model_validate({"horizon_years": "12"}).horizon_years == 12

        missing = ProjectionAssumptions.model_validate(
            {"events": [{"event_type": "disposition", "asset_id": "b"}]}
        )
        assert missing.events[0].period == 0

    def test_horizon_bounds_apply_after_coercion(self):
        with pytest.raises(ValidationError):
            ProjectionAssumptions.model_validate({"horizon_years": "250"})
        with pytest.raises(ValidationError):
            ProjectionAssumptions.model_validate({"horizon_years": "-1"})

    def test_events_are_discriminated(self):
        assumptions = ProjectionAssumptions.model_validate(
            {
                "horizon_years": 3,
                "base_year": 2025,
                "assets": [{"asset_id": "a", "acquisition_cost": 100}],
                "events": [
                    {"event_type": "acquisition", "period": 1, "asset": {"asset_id": "b", "acquisition_cost": 50}},
                    {"event_type": "disposition", "period": 2, "asset_id": "a", "sale_price": 120},
                ],
            }
        )
        events = assumptions.to_events()
        assert isinstance(events[0], Acquisition)
        assert isinstance(events[1], Disposition)
        assert [a.asset_id for a in assumptions.lifecycle().active_as_of(3)] == ["b"]

    def test_invalid_brackets_raise_at_run(self):
        assumptions = ProjectionAssumptions.model_validate(
            {
                "tax_brackets": [
                    {"upper_bound": None, "rate": 0.3},
                    {"upper_bound": 50000, "rate": 0.2},
                ]
            }
        )
        with pytest.raises(ValueError):
            assumptions.run()
