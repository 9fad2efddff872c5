"""Tests for the entity model and payload parsing."""

from dataclasses import replace

import pytest

from iris_revenue.models import (
    BillableEntity,
    EntityCategory,
    EntityOrigin,
    MonthlyKPI,
    SyncStatus,
    YearlyKPIs,
    validate_month_key,
)


class TestMonthKeys:
    """Tests for month key validation."""

    @pytest.mark.parametrize("key", ["2025-01", "2025-12", "1999-07"])
    def test_valid_keys(self, key):
        assert validate_month_key(key) == key

    @pytest.mark.parametrize("key", ["2025-13", "2025-1", "25-01", "2025/01", "", None])
    def test_invalid_keys(self, key):
        with pytest.raises(ValueError):
            validate_month_key(key)


class TestEnums:
    """Tests for category and origin parsing."""

    def test_category_from_wire_value(self):
        assert EntityCategory.parse("Vaste prijs") is EntityCategory.FIXED_PRICE
        assert EntityCategory.parse("nacalculatie") is EntityCategory.TIME_AND_MATERIALS

    def test_category_from_english_alias(self):
        assert EntityCategory.parse("FixedPrice") is EntityCategory.FIXED_PRICE
        assert EntityCategory.parse("TimeAndMaterials") is EntityCategory.TIME_AND_MATERIALS

    def test_missing_category_is_none(self):
        assert EntityCategory.parse(None) is None
        assert EntityCategory.parse("") is None

    def test_unknown_category_raises(self):
        with pytest.raises(ValueError):
            EntityCategory.parse("Barter")

    def test_origin_parsing(self):
        assert EntityOrigin.parse("Offerte") is EntityOrigin.OFFER
        assert EntityOrigin.parse("offer") is EntityOrigin.OFFER
        assert EntityOrigin.parse(None) is EntityOrigin.PROJECT


class TestBillableEntity:
    """Tests for BillableEntity."""

    def test_from_dict(self, mock_revenue_response):
        entity = BillableEntity.from_dict(mock_revenue_response[0])

        assert entity.id == 5544
        assert entity.company_name == "Acme BV"
        assert entity.category is EntityCategory.FIXED_PRICE
        assert entity.origin is EntityOrigin.PROJECT
        assert entity.total_budget_excl_vat == 12000.0
        assert entity.prior_year_consumption == 2000.0
        assert entity.remaining_budget is None
        assert entity.monthly_hours == {"2025-01": 12.5, "2025-02": 4.0}
        assert entity.over_budget_months == {"2025-02": True}
        assert entity.sync_status is SyncStatus.SYNCED

    def test_from_dict_with_missing_optional_fields(self, mock_revenue_response):
        entity = BillableEntity.from_dict(mock_revenue_response[1])

        assert entity.origin is EntityOrigin.OFFER
        assert entity.total_budget_excl_vat is None
        assert entity.prior_year_consumption is None
        assert entity.monthly_revenue == {}
        assert entity.sync_status is None

    def test_negative_values_are_kept(self):
        entity = BillableEntity.from_dict(
            {"id": 1, "name": "Credit", "monthlyRevenue": {"2025-04": -350.5}}
        )
        assert entity.monthly_revenue["2025-04"] == -350.5

    def test_invalid_month_key_rejected(self):
        with pytest.raises(ValueError):
            BillableEntity.from_dict({"id": 1, "name": "X", "monthlyHours": {"2025-1": 3}})

    def test_budget_bound(self):
        fixed = BillableEntity(id=1, name="a", category=EntityCategory.FIXED_PRICE)
        offer = BillableEntity(
            id=2, name="b", category=EntityCategory.TIME_AND_MATERIALS, origin=EntityOrigin.OFFER
        )
        contract = BillableEntity(id=3, name="c", category=EntityCategory.CONTRACT)

        assert fixed.is_budget_bound
        assert offer.is_budget_bound
        assert not contract.is_budget_bound


class TestKpis:
    """Tests for KPI record parsing."""

    def test_monthly_kpi_diffs_from_payload(self, mock_kpi_response):
        record = MonthlyKPI.from_dict(mock_kpi_response["months"][0])

        assert record.target_final_diff == 200.0
        assert record.target_total_diff == -100.0

    def test_final_missing_leaves_diff_undefined(self, mock_kpi_response):
        record = MonthlyKPI.from_dict(mock_kpi_response["months"][1])

        assert record.final_revenue is None
        assert record.target_final_diff is None
        assert record.target_total_diff == 500.0

    def test_yearly_kpis_fill_missing_months(self, mock_kpi_response):
        kpis = YearlyKPIs.from_dict(mock_kpi_response)

        assert kpis.year == 2025
        assert [m.month for m in kpis.months] == [f"2025-{n:02d}" for n in range(1, 13)]
        assert kpis.get("2025-05").target_revenue == 0.0
        assert kpis.get("2025-01").final_revenue == 1200.0

    def test_yearly_kpis_reject_other_year(self):
        with pytest.raises(ValueError):
            YearlyKPIs.from_dict(
                {"year": 2025, "months": [{"month": "2024-12", "targetRevenue": 1}]}
            )

    def test_to_dict_round_trips_wire_names(self, mock_kpi_response):
        kpis = YearlyKPIs.from_dict(mock_kpi_response)
        data = kpis.to_dict()

        assert data["year"] == 2025
        assert data["months"][0]["targetFinalDiff"] == 200.0
        assert YearlyKPIs.from_dict(data) == kpis


class TestEntityImmutability:
    """Monthly series cannot be changed after construction."""

    def test_series_are_read_only(self, fixed_price_entity):
        with pytest.raises(TypeError):
            fixed_price_entity.monthly_revenue["2025-01"] = 0.0
        with pytest.raises(TypeError):
            fixed_price_entity.over_budget_months["2025-01"] = True

    def test_series_copied_from_input(self):
        hours = {"2025-01": 4.0}
        entity = BillableEntity(id=1, name="Audit", monthly_hours=hours)

        hours["2025-01"] = 40.0

        assert entity.monthly_hours["2025-01"] == 4.0

    def test_replace_keeps_series(self, fixed_price_entity):
        updated = replace(fixed_price_entity, prior_year_consumption=0.0)

        assert updated.monthly_revenue == {"2025-01": 3000.0}
        assert updated.monthly_revenue is fixed_price_entity.monthly_revenue
