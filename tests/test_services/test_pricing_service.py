"""
Unit tests for subscription and rental pricing

Author: TM3
Date: 2026-03-12
"""
import pytest
from datetime import datetime, timedelta

from rentalshop.core.errors import ValidationError
from rentalshop.services.pricing_service import (
    calculate_subscription_price,
    calculate_proration,
    calculate_rental_price,
    validate_rental_period,
)


class TestSubscriptionPrice:

    def test_quarterly_discount(self):
        # Act
        pricing = calculate_subscription_price(100, "quarterly")

        # Assert
        assert pricing["total_price"] == 300.0
        assert pricing["discount_percentage"] == 10
        assert pricing["discount_amount"] == 30.0
        assert pricing["final_price"] == 270.0
        assert pricing["monthly_equivalent"] == 90.0
        assert pricing["savings"] == 30.0

    def test_monthly_has_no_discount(self):
        pricing = calculate_subscription_price(49.99, "monthly")

        assert pricing["final_price"] == 49.99
        assert pricing["discount_amount"] == 0.0

    def test_yearly_and_six_months(self):
        assert calculate_subscription_price(100, "yearly")["final_price"] == 960.0
        assert calculate_subscription_price(100, "sixMonths")["final_price"] == 510.0

    def test_invalid_interval_raises(self):
        with pytest.raises(ValidationError):
            calculate_subscription_price(100, "weekly")


class TestProration:

    def test_upgrade_charges_difference(self):
        """Test 15 days left moving from 30/month to 60/month"""
        # Act
        proration = calculate_proration(30, 60, 15)

        # Assert
        assert proration["credit"] == 15.0
        assert proration["charge"] == 30.0
        assert proration["net_amount"] == 15.0
        assert proration["is_upgrade"] is True

    def test_downgrade_gives_negative_net(self):
        proration = calculate_proration(60, 30, 10)

        assert proration["net_amount"] == -10.0
        assert proration["is_upgrade"] is False

    def test_negative_days_are_clamped(self):
        proration = calculate_proration(30, 60, -5)

        assert proration["days_remaining"] == 0
        assert proration["net_amount"] == 0.0


class TestRentalPrice:

    def test_fixed_ignores_duration(self):
        price = calculate_rental_price(150000, 2, duration=5, pricing_type="FIXED", deposit=500000)

        assert price["duration"] == 1
        assert price["subtotal"] == 300000.0
        assert price["deposit"] == 1000000.0
        assert price["total"] == 1300000.0

    def test_daily_multiplies_by_days(self):
        price = calculate_rental_price(100, 1, duration=3, pricing_type="DAILY")

        assert price["unit_price"] == 300.0
        assert price["total"] == 300.0

    def test_hourly_defaults_to_one_unit(self):
        price = calculate_rental_price(20, 2, pricing_type="HOURLY")

        assert price["duration"] == 1
        assert price["subtotal"] == 40.0

    def test_invalid_pricing_type(self):
        with pytest.raises(ValidationError):
            calculate_rental_price(100, 1, pricing_type="WEEKLY")


class TestRentalPeriod:

    def test_valid_period(self, now):
        result = validate_rental_period(now, now + timedelta(days=3), 2, 5, 150000)

        assert result["is_valid"] is True
        assert result["days"] == 3
        assert result["errors"] == []

    def test_partial_day_rounds_up(self, now):
        result = validate_rental_period(now, now + timedelta(hours=30), 1, 1, 100)

        assert result["days"] == 2

    def test_end_before_start(self, now):
        result = validate_rental_period(now, now - timedelta(days=1), 1, 5, 100)

        assert result["is_valid"] is False
        assert "End date must be after start date" in result["errors"]

    def test_insufficient_stock_and_zero_price(self, now):
        result = validate_rental_period(now, now + timedelta(days=1), 3, 2, 0)

        assert result["is_valid"] is False
        assert len(result["errors"]) == 2

    def test_long_period_and_large_quantity_are_warnings(self):
        start = datetime(2026, 1, 1)
        result = validate_rental_period(start, start + timedelta(days=400), 150, 200, 10)

        assert result["is_valid"] is True
        assert len(result["warnings"]) == 2
