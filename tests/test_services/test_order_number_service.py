"""
Unit tests for OrderNumberGenerator

Author: TM3
Date: 2026-03-12
"""
import re
import pytest
from unittest.mock import MagicMock
from datetime import datetime

from rentalshop.core.errors import ConflictError, ValidationError, ErrorCode
from rentalshop.services.order_number_service import (
    OrderNumberGenerator, OrderNumberConfig, outlet_code
)


@pytest.fixture
def repository():
    repo = MagicMock()
    repo.find_latest_number.return_value = None
    repo.order_number_exists.return_value = False
    return repo


def _generator(repository, **config):
    return OrderNumberGenerator(
        OrderNumberConfig(**config),
        repository=repository,
        clock=lambda: datetime(2026, 3, 5, 8, 30)
    )


class TestOrderNumberGenerator:

    def test_outlet_code_is_zero_padded(self):
        assert outlet_code(1) == "001"
        assert outlet_code(1234) == "1234"

    def test_compact_numeric_default(self, repository):
        number = _generator(repository).generate(1)

        assert re.match(r"^ORD001\d{5}$", number)

    def test_sequential_starts_at_one(self, repository):
        # Act
        number = _generator(repository, format="sequential").generate(1)

        # Assert
        assert number == "ORD-001-0001"
        repository.find_latest_number.assert_called_once_with("ORD-001-")

    def test_sequential_continues_from_latest(self, repository):
        repository.find_latest_number.return_value = "ORD-001-0041"

        assert _generator(repository, format="sequential").generate(1) == "ORD-001-0042"

    def test_sequential_skips_taken_number(self, repository):
        """Test a concurrent insert of the next number moves to the following one"""
        # Arrange
        repository.find_latest_number.return_value = "ORD-002-0009"
        repository.order_number_exists.side_effect = [True, False]

        # Act
        number = _generator(repository, format="sequential").generate(2)

        # Assert
        assert number == "ORD-002-0011"

    def test_date_based_includes_date(self, repository):
        number = _generator(repository, format="date-based").generate(3)

        assert number == "ORD-003-20260305-0001"

    def test_random_formats(self, repository):
        assert re.match(r"^ORD-001-[A-Z0-9]{6}$", _generator(repository, format="random").generate(1))
        assert re.match(r"^ORD-001-\d{8}$",
                        _generator(repository, format="random-numeric", random_length=8).generate(1))
        assert re.match(r"^ORD-001-20260305-[A-Z0-9]{4}$",
                        _generator(repository, format="hybrid").generate(1))

    def test_custom_prefix(self, repository):
        assert _generator(repository, format="sequential", prefix="RNT").generate(5) == "RNT-005-0001"

    def test_exhausted_retries_raise_conflict(self, repository):
        # Arrange
        repository.order_number_exists.return_value = True

        # Act / Assert
        with pytest.raises(ConflictError) as exc_info:
            _generator(repository, max_retries=3).generate(1)

        assert exc_info.value.code == ErrorCode.ORDER_NUMBER_EXHAUSTED
        assert repository.order_number_exists.call_count == 3

    def test_invalid_config(self, repository):
        with pytest.raises(ValidationError):
            _generator(repository, format="uuid")
        with pytest.raises(ValidationError):
            _generator(repository, random_length=2)
        with pytest.raises(ValidationError):
            _generator(repository, max_retries=0)
