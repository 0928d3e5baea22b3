"""
Legacy Sync Service
Imports customers, products and orders from the legacy rental POS

Each execution runs inside a sync session. Every record created is written
to sync_records so the whole session can be rolled back later. A failure
outside a single record deletes everything created so far and marks the
session FAILED. A FAILED or PARTIALLY_COMPLETED session can be resumed:
legacy ids already recorded for it are skipped.

Author: TM3
Date: 2026-03-06
"""
from typing import Dict, List, Optional, Any, Tuple
from datetime import datetime
import logging

import requests

from rentalshop.connectors.legacy_rental_connector import LegacyRentalConnector
from rentalshop.core.config import settings
from rentalshop.core.errors import NotFoundError, ValidationError, RentalShopError, ErrorCode
from rentalshop.domain.customer import CustomerCreate
from rentalshop.domain.product import ProductCreate
from rentalshop.domain.sync import SyncSession, SYNC_ENTITIES, RESUMABLE_STATUSES
from rentalshop.repositories.merchant_repository import MerchantRepository, OutletRepository
from rentalshop.repositories.customer_repository import CustomerRepository
from rentalshop.repositories.product_repository import ProductRepository, CategoryRepository
from rentalshop.repositories.order_repository import OrderRepository
from rentalshop.repositories.sync_repository import SyncRepository
from rentalshop.services.order_number_service import OrderNumberGenerator
from rentalshop.services.legacy_transformers import (
    transform_customer, transform_product, transform_order
)

logger = logging.getLogger(__name__)

PREVIEW_SAMPLE_SIZE = 5
EXPORT_PREVIEW_LIMIT = 20
IMAGE_CHECK_TIMEOUT = 10

# Deletion order for rollback: dependants first
ROLLBACK_ORDER = ("order", "product", "customer")

# sync_records.entity_type for each entity
ENTITY_TYPES = {"customers": "customer", "products": "product", "orders": "order"}


def build_connector(endpoint: Optional[str] = None, token: Optional[str] = None) -> LegacyRentalConnector:
    """Connector for the given endpoint/token, falling back to LEGACY_API_URL / LEGACY_API_TOKEN"""
    endpoint = endpoint or settings.LEGACY_API_URL
    if not endpoint:
        raise ValidationError("Legacy API endpoint not configured. Set LEGACY_API_URL",
                              code=ErrorCode.LEGACY_SYNC_FAILED)
    return LegacyRentalConnector(
        endpoint=endpoint,
        token=token or settings.LEGACY_API_TOKEN,
        cookie=settings.LEGACY_API_COOKIE,
    )


def resolve_entities(entities: Optional[List[str]], orders_need_products: bool = True) -> List[str]:
    """
    Normalize an entity selection, in sync order.

    None or an empty list selects everything. Orders can only be synced
    together with products, since their items are mapped through them.
    """
    if not entities:
        return list(SYNC_ENTITIES)

    requested = {entity.strip().lower() for entity in entities}
    unknown = sorted(requested - set(SYNC_ENTITIES))
    if unknown:
        raise ValidationError(f"Unknown sync entities: {', '.join(unknown)}",
                              details={"allowed": list(SYNC_ENTITIES)})
    if orders_need_products and "orders" in requested and "products" not in requested:
        raise ValidationError("Orders can only be synced together with products")

    return [entity for entity in SYNC_ENTITIES if entity in requested]


def validate_image_urls(urls: List[str], timeout: int = IMAGE_CHECK_TIMEOUT) -> List[str]:
    """Keep only URLs answering 200 with an image content type"""
    valid = []
    for url in urls:
        try:
            response = requests.head(url, timeout=timeout, allow_redirects=True)
        except requests.RequestException as e:
            logger.warning(f"Image check failed for {url}: {e}")
            continue

        content_type = response.headers.get("Content-Type", "")
        if response.status_code == 200 and content_type.startswith("image/"):
            valid.append(url)
        else:
            logger.warning(f"Skipping image {url}: status {response.status_code}, type '{content_type}'")
    return valid


def _empty_stats(entities=SYNC_ENTITIES) -> Dict[str, Dict[str, int]]:
    return {entity: {"total": 0, "created": 0, "failed": 0} for entity in entities}


def _model_fields(data: Dict[str, Any], model) -> Dict[str, Any]:
    return {k: v for k, v in data.items() if k in model.model_fields and v is not None}


class LegacySyncService:
    """
    Service to sync legacy POS data into a merchant

    Handles:
    - Preview of what would be imported
    - Execution in a tracked sync session, for all or some entities
    - Resume of a failed or partially completed session
    - Rollback of a session
    - Export of the transformed legacy data
    """

    def __init__(self,
                 connector: Optional[LegacyRentalConnector] = None,
                 merchant_repo: Optional[MerchantRepository] = None,
                 outlet_repo: Optional[OutletRepository] = None,
                 customer_repo: Optional[CustomerRepository] = None,
                 product_repo: Optional[ProductRepository] = None,
                 category_repo: Optional[CategoryRepository] = None,
                 order_repo: Optional[OrderRepository] = None,
                 sync_repo: Optional[SyncRepository] = None,
                 number_generator: Optional[OrderNumberGenerator] = None):
        self._connector = connector
        self.merchant_repo = merchant_repo or MerchantRepository()
        self.outlet_repo = outlet_repo or OutletRepository()
        self.customer_repo = customer_repo or CustomerRepository()
        self.product_repo = product_repo or ProductRepository()
        self.category_repo = category_repo or CategoryRepository()
        self.order_repo = order_repo or OrderRepository()
        self.sync_repo = sync_repo or SyncRepository()
        self.number_generator = number_generator or OrderNumberGenerator(repository=self.order_repo)

    @property
    def connector(self) -> LegacyRentalConnector:
        if self._connector is None:
            self._connector = build_connector()
        return self._connector

    async def _fetch_entity(self, entity: str) -> Dict[str, Any]:
        fetchers = {
            "customers": self.connector.fetch_customers,
            "products": self.connector.fetch_products,
            "orders": self.connector.fetch_orders,
        }
        return await fetchers[entity]()

    async def _fetch_all(self, entities=SYNC_ENTITIES) -> Dict[str, List[Dict[str, Any]]]:
        fetched = {}
        for entity in entities:
            result = await self._fetch_entity(entity)
            if not result["success"]:
                raise RentalShopError(
                    f"Failed to fetch {entity} from legacy server: {result.get('error')}",
                    code=ErrorCode.LEGACY_SYNC_FAILED
                )
            data = result.get("data")
            fetched[entity] = data if isinstance(data, list) else []
        return fetched

    def _require_merchant(self, merchant_id: int) -> None:
        if self.merchant_repo.find_by_id(merchant_id) is None:
            raise NotFoundError(f"Merchant {merchant_id} not found", code=ErrorCode.MERCHANT_NOT_FOUND)

    def _targets(self, merchant_id: int) -> Tuple[int, int]:
        """Default outlet and category every synced record goes to"""
        self._require_merchant(merchant_id)

        outlet = self.outlet_repo.find_default(merchant_id)
        if outlet is None:
            raise NotFoundError(f"Merchant {merchant_id} has no outlet", code=ErrorCode.OUTLET_NOT_FOUND)

        return outlet.id, self.category_repo.find_or_create_default(merchant_id)

    # ========================================================================
    # Preview
    # ========================================================================

    async def preview(self, merchant_id: int, entities: Optional[List[str]] = None) -> Dict[str, Any]:
        self._require_merchant(merchant_id)
        selected = resolve_entities(entities, orders_need_products=False)
        transformers = {"customers": transform_customer, "products": transform_product,
                        "orders": transform_order}

        fetched = await self._fetch_all(selected)
        return {
            "merchant_id": merchant_id,
            "entities": selected,
            "counts": {entity: len(rows) for entity, rows in fetched.items()},
            "samples": {
                entity: [transformers[entity](row) for row in rows[:PREVIEW_SAMPLE_SIZE]]
                for entity, rows in fetched.items()
            },
            "logs": self.connector.get_logs(),
        }

    # ========================================================================
    # Execute / resume
    # ========================================================================

    async def execute(self, merchant_id: int, entities: Optional[List[str]] = None,
                      validate_images: bool = False) -> Dict[str, Any]:
        """
        Run a sync for the merchant, for all entities or the selected ones.

        Returns:
            {"session": ..., "stats": {entity: {total, created, failed}}, "errors": [...]}

        Raises:
            ValidationError: bad entity selection or no legacy endpoint
            NotFoundError: merchant or default outlet missing
            RentalShopError: the run failed; created records were removed
        """
        selected = resolve_entities(entities)
        outlet_id, category_id = self._targets(merchant_id)

        session = self.sync_repo.create_session(
            merchant_id, entities=selected, config={"endpoint": self.connector.endpoint}
        )
        logger.info(f"Legacy sync session {session.id} started for merchant {merchant_id}: {selected}")

        stats = _empty_stats(selected)
        errors: List[str] = []
        created: Dict[str, List[int]] = {entity: [] for entity in ROLLBACK_ORDER}

        try:
            await self._sync(session.id, merchant_id, outlet_id, category_id, selected,
                             stats, errors, created, validate_images)

        except Exception as e:
            logger.error(f"Legacy sync session {session.id} failed: {e}")
            self._delete_created(created)
            self.sync_repo.delete_records(session.id)
            self.sync_repo.finish_session(session.id, "FAILED", stats=stats, error=str(e))
            if isinstance(e, RentalShopError):
                raise
            raise RentalShopError(f"Legacy sync failed: {str(e)}", code=ErrorCode.LEGACY_SYNC_FAILED)

        finished = self.sync_repo.finish_session(session.id, "COMPLETED", stats=stats)
        logger.info(f"Legacy sync session {session.id} completed: {stats}")

        return {
            "session": finished.model_dump() if finished else {"id": session.id},
            "stats": stats,
            "errors": errors,
        }

    async def resume(self, session_id: int, validate_images: bool = False,
                     endpoint: Optional[str] = None, token: Optional[str] = None) -> Dict[str, Any]:
        """
        Continue a FAILED or PARTIALLY_COMPLETED session.

        Uses the session's entities and endpoint unless another endpoint is
        given. Legacy ids already recorded for the session are skipped and
        its products keep serving the order item mapping. An unexpected
        failure keeps what was created and leaves the session
        PARTIALLY_COMPLETED.
        """
        session = self.get_session(session_id)
        if session.status not in RESUMABLE_STATUSES:
            raise ValidationError(
                f"Sync session {session_id} is {session.status} and cannot be resumed",
                code=ErrorCode.SYNC_SESSION_NOT_RESUMABLE,
                details={"status": session.status, "resumable": list(RESUMABLE_STATUSES)}
            )

        outlet_id, category_id = self._targets(session.merchant_id)
        if self._connector is None:
            self._connector = build_connector(endpoint or session.config.get("endpoint"), token)

        done: Dict[str, Dict[str, int]] = {entity_type: {} for entity_type in ROLLBACK_ORDER}
        for record in self.sync_repo.find_records(session_id):
            if record.old_id is not None:
                done.setdefault(record.entity_type, {})[record.old_id] = record.entity_id

        self.sync_repo.restart_session(session_id)
        already = {entity_type: len(ids) for entity_type, ids in done.items()}
        logger.info(f"Legacy sync session {session_id} resumed, already synced: {already}")

        stats = _empty_stats(session.entities)
        errors: List[str] = []
        created: Dict[str, List[int]] = {entity: [] for entity in ROLLBACK_ORDER}

        try:
            await self._sync(session_id, session.merchant_id, outlet_id, category_id, session.entities,
                             stats, errors, created, validate_images, done=done)

        except Exception as e:
            logger.error(f"Resumed sync session {session_id} failed: {e}")
            self.sync_repo.finish_session(session_id, "PARTIALLY_COMPLETED",
                                          stats=_with_previous(stats, done), error=str(e))
            if isinstance(e, RentalShopError):
                raise
            raise RentalShopError(f"Legacy sync failed: {str(e)}", code=ErrorCode.LEGACY_SYNC_FAILED)

        stats = _with_previous(stats, done)
        finished = self.sync_repo.finish_session(session_id, "COMPLETED", stats=stats)
        logger.info(f"Legacy sync session {session_id} completed after resume: {stats}")

        return {
            "session": finished.model_dump() if finished else {"id": session_id},
            "stats": stats,
            "errors": errors,
            "skipped": {entity: len(done.get(ENTITY_TYPES[entity], {})) for entity in session.entities},
        }

    async def _sync(self, session_id: int, merchant_id: int, outlet_id: int, category_id: int,
                    entities: List[str], stats: Dict, errors: List[str], created: Dict[str, List[int]],
                    validate_images: bool, done: Optional[Dict[str, Dict[str, int]]] = None) -> None:
        done = done or {}
        fetched = await self._fetch_all(entities)

        if "customers" in fetched:
            self._sync_customers(session_id, merchant_id, fetched["customers"], stats, errors, created,
                                 skip=done.get("customer"))

        product_map = dict(done.get("product", {}))
        if "products" in fetched:
            product_map.update(self._sync_products(session_id, merchant_id, outlet_id, category_id,
                                                   fetched["products"], stats, errors, created,
                                                   validate_images, skip=done.get("product")))

        if "orders" in fetched:
            self._sync_orders(session_id, merchant_id, outlet_id, fetched["orders"], product_map,
                              stats, errors, created, skip=done.get("order"))

    def _sync_customers(self, session_id: int, merchant_id: int, customers: List[Dict[str, Any]],
                        stats: Dict, errors: List[str], created: Dict[str, List[int]],
                        skip: Optional[Dict[str, int]] = None) -> None:
        stats["customers"]["total"] = len(customers)
        skip = skip or {}
        transformed = [transform_customer(c) for c in customers]

        phones = [c["phone"] for c in transformed if c["phone"]]
        seen = set(self.customer_repo.find_existing_phones(merchant_id, phones))

        for data in transformed:
            old_id = _old_id(data["metadata"]["customer_id"])
            if old_id in skip:
                continue
            if data["phone"] and data["phone"] in seen:
                # matched by phone, nothing to create
                continue
            try:
                customer = self.customer_repo.create(merchant_id, CustomerCreate(**_model_fields(data, CustomerCreate)))
            except Exception as e:
                stats["customers"]["failed"] += 1
                errors.append(f"Customer {old_id}: {str(e)}")
                logger.warning(f"Failed to sync customer {old_id}: {e}")
                continue

            created["customer"].append(customer.id)
            stats["customers"]["created"] += 1
            if data["phone"]:
                seen.add(data["phone"])
            self.sync_repo.add_record(session_id, "customer", customer.id, old_id=old_id)

    def _sync_products(self, session_id: int, merchant_id: int, outlet_id: int, category_id: int,
                       products: List[Dict[str, Any]], stats: Dict, errors: List[str],
                       created: Dict[str, List[int]], validate_images: bool,
                       skip: Optional[Dict[str, int]] = None) -> Dict[str, int]:
        stats["products"]["total"] = len(products)
        skip = skip or {}
        product_map: Dict[str, int] = {}

        for raw in products:
            data = transform_product(raw, outlet_id, category_id)
            old_id = _old_id(data["metadata"]["product_id"])
            if old_id in skip:
                continue
            if validate_images and data["images"]:
                data["images"] = validate_image_urls(data["images"])

            try:
                product = self.product_repo.create(
                    merchant_id, ProductCreate(**_model_fields(data, ProductCreate)), category_id, outlet_id
                )
            except Exception as e:
                stats["products"]["failed"] += 1
                errors.append(f"Product {old_id}: {str(e)}")
                logger.warning(f"Failed to sync product {old_id}: {e}")
                continue

            # recorded before deactivation
            created["product"].append(product.id)
            self.sync_repo.add_record(session_id, "product", product.id, old_id=old_id)
            stats["products"]["created"] += 1
            if old_id is not None:
                product_map[old_id] = product.id

            if not data["is_active"]:
                try:
                    self.product_repo.deactivate(product.id)
                except Exception as e:
                    errors.append(f"Product {old_id}: created but could not be deactivated: {str(e)}")
                    logger.warning(f"Failed to deactivate synced product {product.id}: {e}")

        return product_map

    def _sync_orders(self, session_id: int, merchant_id: int, outlet_id: int,
                     orders: List[Dict[str, Any]], product_map: Dict[str, int],
                     stats: Dict, errors: List[str], created: Dict[str, List[int]],
                     skip: Optional[Dict[str, int]] = None) -> None:
        stats["orders"]["total"] = len(orders)
        skip = skip or {}
        customer_ids: Dict[str, Optional[int]] = {}

        for raw in orders:
            data = transform_order(raw, outlet_id, product_map)
            old_id = _old_id(data["metadata"]["order_id"])
            if old_id in skip:
                continue

            unmapped = [item["old_product_id"] for item in data["items"] if item["product_id"] is None]
            if unmapped or not data["items"]:
                stats["orders"]["failed"] += 1
                reason = f"unmapped products {unmapped}" if unmapped else "no items"
                errors.append(f"Order {old_id}: {reason}")
                continue

            phone = data["customer_phone"]
            if phone and phone not in customer_ids:
                customer = self.customer_repo.find_by_phone(merchant_id, phone)
                customer_ids[phone] = customer.id if customer else None

            order_fields = {k: v for k, v in data.items() if k not in ("items", "metadata")}
            order_fields["customer_id"] = customer_ids.get(phone) if phone else None

            try:
                order_fields["order_number"] = self.number_generator.generate(outlet_id)
                order = self.order_repo.create(order_fields, data["items"], check_stock=False)
            except Exception as e:
                stats["orders"]["failed"] += 1
                errors.append(f"Order {old_id}: {str(e)}")
                logger.warning(f"Failed to sync order {old_id}: {e}")
                continue

            created["order"].append(order.id)
            stats["orders"]["created"] += 1
            self.sync_repo.add_record(session_id, "order", order.id, old_id=old_id)

    # ========================================================================
    # Export
    # ========================================================================

    async def export(self, entities: Optional[List[str]] = None, preview: bool = False) -> Dict[str, Any]:
        """
        Transformed legacy data, nothing is written.

        A failed fetch is reported under "errors" and the other entities are
        still exported. Products and order items keep their legacy ids so the
        file can be imported later.
        """
        selected = resolve_entities(entities, orders_need_products=False)
        transformers = {"customers": transform_customer, "products": transform_product,
                        "orders": transform_order}

        data: Dict[str, List[Dict[str, Any]]] = {}
        counts: Dict[str, int] = {}
        errors: List[str] = []

        for entity in selected:
            result = await self._fetch_entity(entity)
            if not result["success"]:
                errors.append(f"Failed to fetch {entity}: {result.get('error')}")
                logger.warning(f"Legacy export of {entity} failed: {result.get('error')}")
                data[entity], counts[entity] = [], 0
                continue

            rows = result.get("data") if isinstance(result.get("data"), list) else []
            counts[entity] = len(rows)
            if preview:
                rows = rows[:EXPORT_PREVIEW_LIMIT]
            data[entity] = [transformers[entity](row) for row in rows]

        logger.info(f"Legacy export of {selected}: {counts}")
        return {
            "version": "1.0",
            "exported_at": datetime.utcnow().isoformat(),
            "preview": preview,
            "preview_limit": EXPORT_PREVIEW_LIMIT if preview else None,
            "entities": selected,
            "counts": counts,
            "data": data,
            "errors": errors,
        }

    # ========================================================================
    # Rollback
    # ========================================================================

    def _delete_created(self, created: Dict[str, List[int]]) -> Dict[str, int]:
        deleters = {
            "order": self.order_repo.delete_many,
            "product": self.product_repo.delete_many,
            "customer": self.customer_repo.delete_many,
        }
        return {entity: deleters[entity](created.get(entity, [])) for entity in ROLLBACK_ORDER}

    def rollback(self, session_id: int) -> Dict[str, Any]:
        session = self.get_session(session_id)
        if session.status == "ROLLED_BACK":
            raise ValidationError(f"Sync session {session_id} is already rolled back")
        if session.status == "IN_PROGRESS":
            raise ValidationError(f"Sync session {session_id} is still running")

        created: Dict[str, List[int]] = {entity: [] for entity in ROLLBACK_ORDER}
        for record in self.sync_repo.find_records(session_id):
            created.setdefault(record.entity_type, []).append(record.entity_id)

        deleted = self._delete_created(created)
        finished = self.sync_repo.finish_session(session_id, "ROLLED_BACK")
        logger.info(f"Sync session {session_id} rolled back: {deleted}")

        return {"session": finished.model_dump() if finished else {"id": session_id}, "deleted": deleted}

    def get_session(self, session_id: int) -> SyncSession:
        session = self.sync_repo.find_session(session_id)
        if session is None:
            raise NotFoundError(f"Sync session {session_id} not found", code=ErrorCode.SYNC_SESSION_NOT_FOUND)
        return session


def _old_id(value: Any) -> Optional[str]:
    return str(value) if value is not None else None


def _with_previous(stats: Dict[str, Dict[str, int]], done: Dict[str, Dict[str, int]]) -> Dict[str, Dict[str, int]]:
    """Add the records created by earlier runs of the session to created"""
    return {
        entity: {**counts, "created": counts["created"] + len(done.get(ENTITY_TYPES[entity], {}))}
        for entity, counts in stats.items()
    }
