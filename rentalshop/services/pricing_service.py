"""
Pricing Service - subscription billing math and rental price calculation

All money values are rounded to 2 decimals with ROUND_HALF_UP.
"""
import math
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Any, Optional, Union

from rentalshop.core.errors import ValidationError

Number = Union[int, float, Decimal]

# Discount percentage per billing interval
INTERVAL_DISCOUNTS = {
    "monthly": 0,
    "quarterly": 10,
    "sixMonths": 15,
    "yearly": 20,
}

INTERVAL_MONTHS = {
    "monthly": 1,
    "quarterly": 3,
    "sixMonths": 6,
    "yearly": 12,
}

DAYS_PER_BILLING_MONTH = 30
MAX_RENTAL_DAYS = 365
MAX_RENTAL_QUANTITY = 100


def _money(value: Number) -> Decimal:
    return Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def _interval(interval: str) -> str:
    if interval not in INTERVAL_MONTHS:
        raise ValidationError(
            f"Invalid billing interval '{interval}'. "
            f"Expected one of: {', '.join(INTERVAL_MONTHS)}"
        )
    return interval


def calculate_subscription_price(base_price: Number, interval: str) -> Dict[str, Any]:
    """
    Price breakdown for a plan billed at the given interval.

    Example (base 100, quarterly):
        total 300, discount 10% = 30, final 270, monthly equivalent 90
    """
    interval = _interval(interval)
    months = INTERVAL_MONTHS[interval]
    discount_percentage = INTERVAL_DISCOUNTS[interval]

    base = Decimal(str(base_price))
    total_price = base * months
    discount_amount = total_price * discount_percentage / 100
    final_price = total_price - discount_amount

    return {
        "base_price": float(_money(base)),
        "interval": interval,
        "interval_months": months,
        "total_price": float(_money(total_price)),
        "discount_percentage": discount_percentage,
        "discount_amount": float(_money(discount_amount)),
        "final_price": float(_money(final_price)),
        "monthly_equivalent": float(_money(final_price / months)),
        "savings": float(_money(discount_amount)),
    }


def calculate_proration(current_price: Number, new_price: Number, days_remaining: int) -> Dict[str, Any]:
    """Credit for unused days on the current plan vs charge for the new plan"""
    days_remaining = max(0, int(days_remaining))
    current_daily = Decimal(str(current_price)) / DAYS_PER_BILLING_MONTH
    new_daily = Decimal(str(new_price)) / DAYS_PER_BILLING_MONTH

    credit = current_daily * days_remaining
    charge = new_daily * days_remaining
    net = charge - credit

    return {
        "days_remaining": days_remaining,
        "credit": float(_money(credit)),
        "charge": float(_money(charge)),
        "net_amount": float(_money(net)),
        "is_upgrade": new_price > current_price,
    }


def calculate_rental_price(rent_price: Number, quantity: int, duration: Optional[int] = None,
                           pricing_type: str = "FIXED", deposit: Number = 0) -> Dict[str, Any]:
    """
    Price of renting quantity units.

    FIXED ignores duration; HOURLY/DAILY multiply the unit price by the
    duration in hours/days (default 1).
    """
    if pricing_type not in ("FIXED", "HOURLY", "DAILY"):
        raise ValidationError(f"Invalid pricing type '{pricing_type}'")

    units = 1 if pricing_type == "FIXED" else (duration or 1)
    unit_price = Decimal(str(rent_price)) * units
    subtotal = unit_price * quantity
    deposit_total = Decimal(str(deposit)) * quantity

    return {
        "pricing_type": pricing_type,
        "duration": units,
        "unit_price": float(_money(unit_price)),
        "subtotal": float(_money(subtotal)),
        "deposit": float(_money(deposit_total)),
        "total": float(_money(subtotal + deposit_total)),
    }


def validate_rental_period(start: datetime, end: datetime, quantity: int,
                           available_stock: int, rent_price: Number) -> Dict[str, Any]:
    """
    Validate a rental request.

    Returns:
        {"is_valid", "errors", "warnings", "days"}
    """
    errors = []
    warnings = []
    days = 0

    if end <= start:
        errors.append("End date must be after start date")
    else:
        days = math.ceil((end - start).total_seconds() / 86400)
        if days < 1:
            errors.append("Rental period must be at least 1 day")
        elif days > MAX_RENTAL_DAYS:
            warnings.append(f"Rental period exceeds {MAX_RENTAL_DAYS} days")

    if quantity <= 0:
        errors.append("Quantity must be greater than 0")
    elif quantity > MAX_RENTAL_QUANTITY:
        warnings.append(f"Large quantity requested ({quantity} units)")

    if available_stock < quantity:
        errors.append(f"Insufficient stock. Available: {available_stock}, requested: {quantity}")

    if Decimal(str(rent_price)) <= 0:
        errors.append("Product rent price must be greater than 0")

    return {
        "is_valid": not errors,
        "errors": errors,
        "warnings": warnings,
        "days": days,
    }
