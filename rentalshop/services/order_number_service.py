"""
Order Number Service - generates unique order numbers per outlet

Formats (outlet code = outlet id zero-padded to 3 digits):
- sequential:      ORD-001-0001
- date-based:      ORD-001-20260305-0001 (sequence resets daily)
- random:          ORD-001-A7B9X2
- random-numeric:  ORD-001-123456
- compact-numeric: ORD00112345 (default)
- hybrid:          ORD-001-20260305-A7B9
"""
import logging
import secrets
import string
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from rentalshop.core.errors import ConflictError, ValidationError, ErrorCode
from rentalshop.repositories.order_repository import OrderRepository

logger = logging.getLogger(__name__)

ORDER_NUMBER_FORMATS = (
    "sequential", "date-based", "random", "random-numeric", "compact-numeric", "hybrid"
)

ALPHANUMERIC = string.ascii_uppercase + string.digits
COMPACT_RANDOM_LENGTH = 5
HYBRID_RANDOM_LENGTH = 4


@dataclass
class OrderNumberConfig:
    format: str = "compact-numeric"
    prefix: str = "ORD"
    sequence_length: int = 4
    random_length: int = 6
    max_retries: int = 5

    def validate(self) -> None:
        if self.format not in ORDER_NUMBER_FORMATS:
            raise ValidationError(f"Unknown order number format: {self.format}")
        if not 1 <= self.sequence_length <= 10:
            raise ValidationError("sequence_length must be between 1 and 10")
        if not 4 <= self.random_length <= 20:
            raise ValidationError("random_length must be between 4 and 20")
        if not 1 <= self.max_retries <= 20:
            raise ValidationError("max_retries must be between 1 and 20")


def random_string(length: int, numeric_only: bool = False) -> str:
    chars = string.digits if numeric_only else ALPHANUMERIC
    return "".join(secrets.choice(chars) for _ in range(length))


def outlet_code(outlet_id: int) -> str:
    return str(outlet_id).zfill(3)


def _next_sequence(latest: Optional[str], prefix: str) -> int:
    if not latest:
        return 1
    tail = latest[len(prefix):]
    try:
        return int(tail) + 1
    except ValueError:
        return 1


class OrderNumberGenerator:
    """
    Generate order numbers with uniqueness checks against the orders table.

    The repository is injectable so callers inside a sync run or tests can
    supply their own lookup.
    """

    def __init__(self, config: Optional[OrderNumberConfig] = None,
                 repository: Optional[OrderRepository] = None,
                 clock: Callable[[], datetime] = datetime.now):
        self.config = config or OrderNumberConfig()
        self.config.validate()
        self.repository = repository or OrderRepository()
        self.clock = clock

    def generate(self, outlet_id: int) -> str:
        cfg = self.config
        code = outlet_code(outlet_id)

        if cfg.format == "sequential":
            return self._sequential(f"{cfg.prefix}-{code}-")
        if cfg.format == "date-based":
            date_str = self.clock().strftime("%Y%m%d")
            return self._sequential(f"{cfg.prefix}-{code}-{date_str}-")
        if cfg.format == "random":
            return self._random(lambda: f"{cfg.prefix}-{code}-{random_string(cfg.random_length)}")
        if cfg.format == "random-numeric":
            return self._random(
                lambda: f"{cfg.prefix}-{code}-{random_string(cfg.random_length, numeric_only=True)}"
            )
        if cfg.format == "hybrid":
            date_str = self.clock().strftime("%Y%m%d")
            return self._random(
                lambda: f"{cfg.prefix}-{code}-{date_str}-{random_string(HYBRID_RANDOM_LENGTH)}"
            )

        # compact-numeric
        return self._random(
            lambda: f"{cfg.prefix}{code}{random_string(COMPACT_RANDOM_LENGTH, numeric_only=True)}"
        )

    def _sequential(self, prefix: str) -> str:
        for attempt in range(self.config.max_retries):
            latest = self.repository.find_latest_number(prefix)
            sequence = _next_sequence(latest, prefix) + attempt
            candidate = f"{prefix}{str(sequence).zfill(self.config.sequence_length)}"
            if not self.repository.order_number_exists(candidate):
                return candidate
            logger.warning(f"Order number {candidate} already taken, retrying")

        raise ConflictError(
            f"Could not generate a unique order number after {self.config.max_retries} attempts",
            code=ErrorCode.ORDER_NUMBER_EXHAUSTED
        )

    def _random(self, build: Callable[[], str]) -> str:
        for _ in range(self.config.max_retries):
            candidate = build()
            if not self.repository.order_number_exists(candidate):
                return candidate
            logger.warning(f"Order number {candidate} already taken, retrying")

        raise ConflictError(
            f"Could not generate a unique order number after {self.config.max_retries} attempts",
            code=ErrorCode.ORDER_NUMBER_EXHAUSTED
        )
