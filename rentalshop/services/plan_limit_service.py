"""
Plan Limit Service - enforces per-plan resource quotas

Counts what a merchant already has and compares it with the limits of
its plan. A limit of -1 means unlimited; merchants without a plan are
not limited.
"""
import logging
from typing import Dict, Any, Optional

from rentalshop.core.database import get_db_connection_dict
from rentalshop.core.errors import PlanLimitError
from rentalshop.domain.subscription import Plan, UNLIMITED
from rentalshop.repositories.subscription_repository import PlanRepository

logger = logging.getLogger(__name__)

LIMITED_ENTITIES = ("outlets", "users", "products", "customers", "orders")

USAGE_QUERIES = {
    "outlets": "SELECT COUNT(*) as count FROM outlets WHERE merchant_id = %s",
    "users": "SELECT COUNT(*) as count FROM users WHERE merchant_id = %s AND role != 'ADMIN'",
    "products": "SELECT COUNT(*) as count FROM products WHERE merchant_id = %s",
    "customers": "SELECT COUNT(*) as count FROM customers WHERE merchant_id = %s",
    "orders": """
        SELECT COUNT(*) as count
        FROM orders o JOIN outlets ot ON ot.id = o.outlet_id
        WHERE ot.merchant_id = %s
    """,
}


def limit_message(entity: str, current: int, limit: int) -> str:
    return (
        f"Plan limit exceeded. You have reached the maximum limit of {limit} {entity}. "
        f"Current: {current}/{limit}. Please upgrade your plan to create more {entity}."
    )


def evaluate_limit(entity: str, current: int, limit: int) -> Dict[str, Any]:
    """Pure comparison of a count against a limit"""
    if limit == UNLIMITED:
        return {"entity": entity, "allowed": True, "current": current, "limit": limit,
                "unlimited": True, "message": None}

    allowed = current < limit
    return {
        "entity": entity,
        "allowed": allowed,
        "current": current,
        "limit": limit,
        "unlimited": False,
        "message": None if allowed else limit_message(entity, current, limit),
    }


class PlanLimitService:
    """Checks usage against the merchant's plan"""

    def __init__(self, plan_repo: Optional[PlanRepository] = None):
        self.plan_repo = plan_repo or PlanRepository()

    def count_usage(self, merchant_id: int, entity: str) -> int:
        if entity not in USAGE_QUERIES:
            raise ValueError(f"Unknown limited entity: {entity}")

        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute(USAGE_QUERIES[entity], (merchant_id,))
            return int(cursor.fetchone()['count'])
        finally:
            cursor.close()
            conn.close()

    def check_limit(self, merchant_id: int, entity: str, plan: Optional[Plan] = None) -> Dict[str, Any]:
        plan = plan or self.plan_repo.find_for_merchant(merchant_id)
        current = self.count_usage(merchant_id, entity)
        limit = plan.limit_for(entity) if plan else UNLIMITED
        return evaluate_limit(entity, current, limit)

    def enforce(self, merchant_id: int, entity: str) -> None:
        """
        Raise PlanLimitError when creating one more entity would exceed the plan

        Raises:
            PlanLimitError: if current >= limit
        """
        result = self.check_limit(merchant_id, entity)
        if not result["allowed"]:
            logger.info(f"Plan limit hit for merchant {merchant_id}: {entity} {result['current']}/{result['limit']}")
            raise PlanLimitError(result["message"], details=result)

    def get_usage(self, merchant_id: int) -> Dict[str, Any]:
        plan = self.plan_repo.find_for_merchant(merchant_id)
        return {
            "plan": plan.to_dict() if plan else None,
            "usage": {entity: self.check_limit(merchant_id, entity, plan) for entity in LIMITED_ENTITIES},
        }
