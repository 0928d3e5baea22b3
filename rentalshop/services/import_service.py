"""
Import Service - bulk customers/products from CSV, Excel or JSON

Spreadsheet flow:
1. Read the upload with pandas (all cells as text)
2. Normalize headers and map them through the alias tables
3. Flag duplicate keys and validate each row
4. Preview, or create the valid rows

Row numbers in errors are spreadsheet rows: header is row 1, the first
data row is row 2.

Author: TM3
Date: 2026-03-07
"""
import io
import json
import re
import unicodedata
from decimal import Decimal, InvalidOperation
from typing import Dict, List, Optional, Any, Tuple
import logging

import pandas as pd
from dateutil import parser as date_parser

from rentalshop.core.config import settings
from rentalshop.core.errors import NotFoundError, ValidationError, ErrorCode
from rentalshop.domain.customer import CustomerCreate, ID_TYPES
from rentalshop.domain.product import ProductCreate, PRICING_TYPES
from rentalshop.repositories.merchant_repository import MerchantRepository, OutletRepository
from rentalshop.repositories.customer_repository import CustomerRepository
from rentalshop.repositories.product_repository import ProductRepository, CategoryRepository
from rentalshop.repositories.order_repository import OrderRepository
from rentalshop.services.order_number_service import OrderNumberGenerator
from rentalshop.services.plan_limit_service import PlanLimitService
from rentalshop.services.legacy_transformers import (
    transform_customer, transform_product, transform_order
)

logger = logging.getLogger(__name__)

IMPORT_ENTITIES = ("customers", "products")
JSON_ENTITIES = ("customers", "products", "orders")
PREVIEW_SIZE = 20
MAX_REPORTED_ERRORS = 100

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

CUSTOMER_ALIASES = {
    "first_name": ["firstname", "first name", "first_name", "ten"],
    "last_name": ["lastname", "last name", "last_name", "ho", "ho ten", "ho_ten"],
    "email": ["email", "e-mail", "mail"],
    "phone": ["phone", "phone number", "phone_number", "sdt", "so dien thoai",
              "dien thoai", "dien_thoai", "mobile"],
    "address": ["address", "dia chi"],
    "city": ["city", "thanh pho"],
    "state": ["state", "province", "tinh"],
    "zip_code": ["zipcode", "zip_code", "zip code", "postal code", "postal_code"],
    "country": ["country", "quoc gia"],
    "date_of_birth": ["dateofbirth", "date_of_birth", "date of birth", "dob", "ngay sinh"],
    "id_number": ["idnumber", "id_number", "id number", "cmnd", "cccd"],
    "id_type": ["idtype", "id_type", "id type", "loai giay to"],
    "notes": ["notes", "note", "ghi chu", "ghi_chu", "memo"],
}

PRODUCT_ALIASES = {
    "name": ["name", "product name", "product_name", "ten san pham"],
    "description": ["description", "desc", "mo ta"],
    "barcode": ["barcode", "bar code", "ma vach", "sku", "code"],
    "category_name": ["category", "category name", "category_name", "danh muc"],
    "rent_price": ["rent_price", "rent price", "rentprice", "price", "gia thue"],
    "sale_price": ["sale_price", "sale price", "saleprice", "gia ban"],
    "cost_price": ["cost_price", "cost price", "costprice", "cost", "gia von"],
    "deposit": ["deposit", "tien coc", "coc", "dat coc", "tien dat coc"],
    "stock": ["stock", "quantity", "qty", "ton kho", "so luong"],
    "pricing_type": ["pricing_type", "pricing type", "pricingtype", "loai gia"],
    "duration_config": ["duration_config", "duration config", "durationconfig"],
}

ALIASES = {"customers": CUSTOMER_ALIASES, "products": PRODUCT_ALIASES}


# ============================================================================
# Parsing
# ============================================================================

def normalize_header(header: Any) -> str:
    """Lower-case, trim, strip diacritics and collapse whitespace"""
    text = str(header).strip().lower().replace("đ", "d")
    text = unicodedata.normalize("NFKD", text)
    text = "".join(ch for ch in text if not unicodedata.combining(ch))
    return re.sub(r"\s+", " ", text)


def _alias_lookup(entity: str) -> Dict[str, str]:
    lookup = {}
    for field, aliases in ALIASES[entity].items():
        for alias in aliases:
            lookup[normalize_header(alias)] = field
    return lookup


def read_table(content: bytes, filename: str, max_rows: Optional[int] = None) -> pd.DataFrame:
    """
    Read a .csv or .xlsx upload into a DataFrame of strings.

    Raises:
        ValidationError: unsupported/unreadable file or too many rows
    """
    max_rows = max_rows or settings.IMPORT_MAX_ROWS
    name = (filename or "").lower()

    try:
        if name.endswith(".csv"):
            df = pd.read_csv(io.BytesIO(content), dtype=str, keep_default_na=False, encoding="utf-8-sig")
        elif name.endswith((".xlsx", ".xls")):
            df = pd.read_excel(io.BytesIO(content), sheet_name=0, header=0, dtype=str)
        else:
            raise ValidationError("File must be a CSV (.csv) or Excel (.xlsx) file",
                                  code=ErrorCode.IMPORT_INVALID_FILE)
    except ValidationError:
        raise
    except Exception as e:
        raise ValidationError(f"Error reading file: {str(e)}", code=ErrorCode.IMPORT_INVALID_FILE)

    df = df.fillna("")
    if len(df) > max_rows:
        raise ValidationError(
            f"File has {len(df)} rows; the maximum is {max_rows}",
            code=ErrorCode.IMPORT_TOO_MANY_ROWS,
            details={"rows": len(df), "max_rows": max_rows}
        )
    return df


def map_rows(df: pd.DataFrame, entity: str) -> List[Dict[str, str]]:
    """Rename known headers to field names; unknown columns are dropped"""
    lookup = _alias_lookup(entity)
    columns = {}
    for column in df.columns:
        field = lookup.get(normalize_header(column))
        if field and field not in columns.values():
            columns[column] = field

    rows = []
    for _, record in df.iterrows():
        rows.append({field: str(record[column]).strip() for column, field in columns.items()})
    return rows


TEMPLATE_EXAMPLES = {
    "customers": {"first_name": "Jane", "last_name": "Doe", "email": "jane@example.com",
                  "phone": "0900000001", "id_type": "national_id"},
    "products": {"name": "Evening dress", "category_name": "Dresses", "rent_price": "150000",
                 "deposit": "500000", "stock": "3", "pricing_type": "FIXED"},
}


def build_template(entity: str) -> io.BytesIO:
    """Excel file with one column per importable field and an example row"""
    if entity not in IMPORT_ENTITIES:
        raise ValidationError(f"Invalid import type '{entity}'. Expected one of: {', '.join(IMPORT_ENTITIES)}")

    columns = list(ALIASES[entity].keys())
    example = TEMPLATE_EXAMPLES[entity]
    df = pd.DataFrame([{column: example.get(column, "") for column in columns}], columns=columns)

    output = io.BytesIO()
    with pd.ExcelWriter(output, engine="openpyxl") as writer:
        df.to_excel(writer, index=False, sheet_name=entity.capitalize())
    output.seek(0)
    return output


# ============================================================================
# Validation
# ============================================================================

def _error(row: int, field: str, message: str, value: Any = None) -> Dict[str, Any]:
    return {"row": row, "field": field, "message": message, "value": value}


def find_duplicates(rows: List[Dict[str, str]], entity: str) -> List[Dict[str, Any]]:
    """Flag every occurrence of a repeated phone (customers) or name (products)"""
    if entity == "customers":
        field, message = "phone", "Duplicate phone number"
        key = lambda row: (row.get("phone") or "").strip()
    else:
        field, message = "name", "Duplicate product name"
        key = lambda row: (row.get("name") or "").strip().lower()

    positions: Dict[str, List[int]] = {}
    for index, row in enumerate(rows):
        value = key(row)
        if value:
            positions.setdefault(value, []).append(index)

    duplicates = []
    for indexes in positions.values():
        if len(indexes) > 1:
            for index in indexes:
                duplicates.append(_error(index + 2, field, message, rows[index].get(field)))
    return sorted(duplicates, key=lambda d: d["row"])


def _decimal(value: str) -> Decimal:
    return Decimal(value.replace(",", ""))


def validate_customer_row(row: Dict[str, str], row_number: int) -> Tuple[Optional[Dict[str, Any]], List[Dict]]:
    if not any(row.get(f) for f in ("first_name", "last_name", "email", "phone")):
        return None, []

    errors = []
    if not row.get("first_name"):
        errors.append(_error(row_number, "first_name", "First name is required", row.get("first_name")))

    email = row.get("email")
    if email and not EMAIL_PATTERN.match(email):
        errors.append(_error(row_number, "email", "Invalid email format", email))

    id_type = row.get("id_type")
    if id_type and id_type not in ID_TYPES:
        errors.append(_error(row_number, "id_type", f"ID type must be one of: {', '.join(ID_TYPES)}", id_type))

    date_of_birth = None
    if row.get("date_of_birth"):
        try:
            date_of_birth = date_parser.parse(row["date_of_birth"]).date()
        except (ValueError, OverflowError):
            errors.append(_error(row_number, "date_of_birth", "Invalid date", row["date_of_birth"]))

    if errors:
        return None, errors

    data = {k: v for k, v in row.items() if v and k in CUSTOMER_ALIASES}
    if date_of_birth:
        data["date_of_birth"] = date_of_birth
    return data, []


def validate_product_row(row: Dict[str, str], row_number: int) -> Tuple[Optional[Dict[str, Any]], List[Dict]]:
    if not row.get("name"):
        return None, []

    errors = []
    data: Dict[str, Any] = {k: v for k, v in row.items() if v and k in PRODUCT_ALIASES}

    if not row.get("category_name"):
        errors.append(_error(row_number, "category_name", "Category name is required", row.get("category_name")))

    for field, label in (("rent_price", "Rent price"), ("sale_price", "Sale price"),
                         ("cost_price", "Cost price"), ("deposit", "Deposit")):
        if not row.get(field):
            continue
        try:
            amount = _decimal(row[field])
        except InvalidOperation:
            amount = None
        if amount is None or not amount.is_finite():
            errors.append(_error(row_number, field, f"{label} must be a number", row[field]))
            continue
        if amount < 0:
            errors.append(_error(row_number, field, f"{label} must be non-negative", row[field]))
        data[field] = amount

    if row.get("stock"):
        try:
            stock = int(float(row["stock"]))
            if stock < 0 or stock != float(row["stock"]):
                raise ValueError(row["stock"])
            data["stock"] = stock
        except (ValueError, OverflowError):
            errors.append(_error(row_number, "stock", "Stock must be a non-negative integer", row["stock"]))

    pricing_type = (row.get("pricing_type") or "FIXED").upper()
    if pricing_type not in PRICING_TYPES:
        errors.append(_error(row_number, "pricing_type",
                             f"Pricing type must be one of: {', '.join(PRICING_TYPES)}", row.get("pricing_type")))
    elif pricing_type in ("HOURLY", "DAILY"):
        errors.extend(_duration_config_errors(row.get("duration_config"), row_number))
    data["pricing_type"] = pricing_type

    if errors:
        return None, errors
    return data, []


def _duration_config_errors(raw: Optional[str], row_number: int) -> List[Dict[str, Any]]:
    if not raw:
        return [_error(row_number, "duration_config",
                       "Duration config is required for HOURLY and DAILY pricing types", raw)]
    try:
        config = json.loads(raw)
    except ValueError:
        return [_error(row_number, "duration_config", "Duration config must be valid JSON", raw)]

    # Accepts minDuration style keys as well
    config = _snake_keys(config)
    required = ("min_duration", "max_duration", "default_duration")
    if not isinstance(config, dict) or not all(config.get(key) for key in required):
        return [_error(row_number, "duration_config",
                       "Duration config must have min_duration, max_duration and default_duration", raw)]
    return []


VALIDATORS = {"customers": validate_customer_row, "products": validate_product_row}


def validate_rows(rows: List[Dict[str, str]], entity: str) -> Dict[str, Any]:
    """
    Validate mapped rows.

    Returns:
        {"valid": [(row_number, data)], "errors": [...], "duplicates": [...], "skipped": n}
    """
    validator = VALIDATORS[entity]
    duplicates = find_duplicates(rows, entity)
    duplicate_rows = {d["row"] for d in duplicates}

    valid = []
    errors = []
    skipped = 0
    for index, row in enumerate(rows):
        row_number = index + 2
        data, row_errors = validator(row, row_number)
        if row_errors:
            errors.extend(row_errors)
        elif data is None:
            skipped += 1
        elif row_number not in duplicate_rows:
            valid.append((row_number, data))

    return {"valid": valid, "errors": errors, "duplicates": duplicates, "skipped": skipped}


# ============================================================================
# JSON data import
# ============================================================================

def _snake(key: str) -> str:
    return re.sub(r"(?<!^)(?=[A-Z])", "_", key).lower()


def _snake_keys(record: Any) -> Any:
    if isinstance(record, dict):
        return {_snake(str(k)): _snake_keys(v) for k, v in record.items()}
    if isinstance(record, list):
        return [_snake_keys(v) for v in record]
    return record


def detect_json_entity(payload: Any, filename: str,
                       entity_type: Optional[str] = None) -> Tuple[str, List[Dict[str, Any]]]:
    """
    Work out which entity a JSON upload holds.

    Accepted shapes: a plain array (entity_type required), {"data": {...}}
    with one known entity key (or entity_type choosing among several), or
    anything else with the entity named in the file name.
    """
    if entity_type is not None and entity_type not in JSON_ENTITIES:
        raise ValidationError(f"Invalid entity type '{entity_type}'. Expected one of: {', '.join(JSON_ENTITIES)}")

    if isinstance(payload, list):
        if not entity_type:
            raise ValidationError(
                "Entity type is required when importing an array. Specify customers, products or orders."
            )
        return entity_type, payload

    if isinstance(payload, dict) and isinstance(payload.get("data"), dict):
        found = [key for key in JSON_ENTITIES if key in payload["data"]]
        if not found:
            raise ValidationError("No valid entities found in data. Expected customers, products or orders.")
        if entity_type in found:
            return entity_type, payload["data"][entity_type] or []
        if len(found) == 1:
            return found[0], payload["data"][found[0]] or []
        raise ValidationError(f"Multiple entities found: {', '.join(found)}. Please specify entity_type.")

    name = (filename or "").lower()
    for entity in JSON_ENTITIES:
        if entity.rstrip("s") in name:
            return entity, payload if isinstance(payload, list) else [payload]

    raise ValidationError("Cannot detect entity type from file. Specify entity_type or use the standard format.")


def validate_json_records(entity: str, records: List[Any]) -> List[Dict[str, Any]]:
    """Validation errors for JSON records; index is 0-based"""
    errors = []
    for index, record in enumerate(records):
        if not isinstance(record, dict):
            errors.append({"index": index, "message": "Record must be an object"})
            continue
        if entity == "customers" and not (record.get("phone") or record.get("email")):
            errors.append({"index": index, "message": "Customer needs a phone or email"})
        elif entity == "products" and not (record.get("name") or record.get("product_name") or record.get("title")):
            errors.append({"index": index, "message": "Product name is required"})
        elif entity == "orders" and not (record.get("items") or record.get("order_items") or record.get("list_product")):
            errors.append({"index": index, "message": "Order has no items"})
    return errors


class ImportService:
    """Spreadsheet and JSON imports for a merchant"""

    def __init__(self,
                 merchant_repo: Optional[MerchantRepository] = None,
                 outlet_repo: Optional[OutletRepository] = None,
                 customer_repo: Optional[CustomerRepository] = None,
                 product_repo: Optional[ProductRepository] = None,
                 category_repo: Optional[CategoryRepository] = None,
                 order_repo: Optional[OrderRepository] = None,
                 plan_limits: Optional[PlanLimitService] = None,
                 number_generator: Optional[OrderNumberGenerator] = None):
        self.merchant_repo = merchant_repo or MerchantRepository()
        self.outlet_repo = outlet_repo or OutletRepository()
        self.customer_repo = customer_repo or CustomerRepository()
        self.product_repo = product_repo or ProductRepository()
        self.category_repo = category_repo or CategoryRepository()
        self.order_repo = order_repo or OrderRepository()
        self.plan_limits = plan_limits or PlanLimitService()
        self.number_generator = number_generator or OrderNumberGenerator(repository=self.order_repo)

    @staticmethod
    def _check_entity(entity: str) -> None:
        if entity not in IMPORT_ENTITIES:
            raise ValidationError(f"Invalid import type '{entity}'. Expected one of: {', '.join(IMPORT_ENTITIES)}")

    def _load(self, content: bytes, filename: str, entity: str) -> Tuple[List[Dict[str, str]], Dict[str, Any]]:
        self._check_entity(entity)
        rows = map_rows(read_table(content, filename), entity)
        return rows, validate_rows(rows, entity)

    def preview(self, content: bytes, filename: str, entity: str) -> Dict[str, Any]:
        rows, result = self._load(content, filename, entity)
        invalid_rows = len({e["row"] for e in result["errors"]})

        return {
            "entity": entity,
            "total_rows": len(rows) - result["skipped"],
            "valid_rows": len(result["valid"]),
            "invalid_rows": invalid_rows,
            "duplicates": result["duplicates"],
            "errors": result["errors"][:MAX_REPORTED_ERRORS],
            "data": [dict(data, row=row) for row, data in result["valid"][:PREVIEW_SIZE]],
        }

    def import_file(self, merchant_id: int, content: bytes, filename: str, entity: str) -> Dict[str, Any]:
        """
        Create the valid, non-duplicate rows of an upload.

        Returns:
            {"imported", "failed", "total", "errors"}
        """
        if self.merchant_repo.find_by_id(merchant_id) is None:
            raise NotFoundError(f"Merchant {merchant_id} not found", code=ErrorCode.MERCHANT_NOT_FOUND)

        rows, result = self._load(content, filename, entity)
        errors = result["errors"] + result["duplicates"]
        total = len(rows) - result["skipped"]

        if entity == "customers":
            imported, create_errors = self._import_customers(merchant_id, result["valid"])
        else:
            imported, create_errors = self._import_products(merchant_id, result["valid"])
        errors.extend(create_errors)

        logger.info(f"Import of {entity} for merchant {merchant_id}: {imported}/{total} created")
        return {
            "imported": imported,
            "failed": total - imported,
            "total": total,
            "errors": errors[:MAX_REPORTED_ERRORS],
        }

    def _remaining_capacity(self, merchant_id: int, entity: str) -> Optional[int]:
        check = self.plan_limits.check_limit(merchant_id, entity)
        if check["unlimited"]:
            return None
        return max(0, check["limit"] - check["current"])

    def _import_customers(self, merchant_id: int, valid: List[Tuple[int, Dict[str, Any]]]) -> Tuple[int, List[Dict]]:
        errors = []
        existing = self.customer_repo.find_existing_phones(merchant_id, [d.get("phone") for _, d in valid])
        capacity = self._remaining_capacity(merchant_id, "customers")

        to_create = []
        for row, data in valid:
            if data.get("phone") in existing:
                errors.append(_error(row, "phone", "Customer with this phone already exists", data["phone"]))
                continue
            if capacity is not None and len(to_create) >= capacity:
                errors.append(_error(row, "customers", "Plan limit reached"))
                continue
            to_create.append(CustomerCreate(**data))

        created = self.customer_repo.bulk_create(merchant_id, to_create) if to_create else []
        return len(created), errors

    def _import_products(self, merchant_id: int, valid: List[Tuple[int, Dict[str, Any]]]) -> Tuple[int, List[Dict]]:
        outlet = self.outlet_repo.find_default(merchant_id)
        if outlet is None:
            raise NotFoundError(f"Merchant {merchant_id} has no outlet", code=ErrorCode.OUTLET_NOT_FOUND)

        errors = []
        imported = 0
        categories: Dict[str, int] = {}
        capacity = self._remaining_capacity(merchant_id, "products")

        for row, data in valid:
            if self.product_repo.find_by_name(merchant_id, data["name"]) is not None:
                errors.append(_error(row, "name", "Product with this name already exists", data["name"]))
                continue
            if capacity is not None and imported >= capacity:
                errors.append(_error(row, "products", "Plan limit reached"))
                continue

            category_name = data.pop("category_name")
            data.pop("duration_config", None)
            key = category_name.lower()
            try:
                if key not in categories:
                    categories[key] = self.category_repo.find_or_create(merchant_id, category_name)
                self.product_repo.create(merchant_id, ProductCreate(**data), categories[key], outlet.id)
                imported += 1
            except Exception as e:
                logger.warning(f"Import row {row} failed: {e}")
                errors.append(_error(row, "name", str(e), data.get("name")))

        return imported, errors

    # ========================================================================
    # JSON
    # ========================================================================

    def import_json(self, merchant_id: int, content: bytes, filename: str,
                    entity_type: Optional[str] = None, validate_only: bool = False) -> Dict[str, Any]:
        if not (filename or "").lower().endswith(".json"):
            raise ValidationError("Only JSON files are supported", code=ErrorCode.IMPORT_INVALID_FILE)
        if len(content) > settings.IMPORT_MAX_FILE_SIZE:
            raise ValidationError(
                f"File size exceeds maximum of {settings.IMPORT_MAX_FILE_SIZE // (1024 * 1024)}MB",
                code=ErrorCode.IMPORT_INVALID_FILE
            )
        if self.merchant_repo.find_by_id(merchant_id) is None:
            raise NotFoundError(f"Merchant {merchant_id} not found", code=ErrorCode.MERCHANT_NOT_FOUND)

        try:
            payload = json.loads(content)
        except ValueError as e:
            raise ValidationError(f"Failed to parse JSON: {str(e)}", code=ErrorCode.IMPORT_INVALID_FILE)

        entity, records = detect_json_entity(payload, filename, entity_type)
        records = _snake_keys(records)
        errors = validate_json_records(entity, records)

        summary = {
            "entity_type": entity,
            "total": len(records),
            "valid": len(records) - len({e["index"] for e in errors}),
            "invalid": len({e["index"] for e in errors}),
            "errors": errors[:MAX_REPORTED_ERRORS],
        }
        if validate_only:
            return dict(summary, validate_only=True)

        invalid = {e["index"] for e in errors}
        valid_records = [r for i, r in enumerate(records) if i not in invalid]

        if entity == "customers":
            imported, failed = self._import_json_customers(merchant_id, valid_records)
        elif entity == "products":
            imported, failed = self._import_json_products(merchant_id, valid_records)
        else:
            imported, failed = self._import_json_orders(merchant_id, valid_records)

        return dict(summary, imported=imported, failed=failed + summary["invalid"])

    def _import_json_customers(self, merchant_id: int, records: List[Dict[str, Any]]) -> Tuple[int, int]:
        transformed = [transform_customer(r) for r in records]
        existing = self.customer_repo.find_existing_phones(merchant_id, [c["phone"] for c in transformed])

        to_create = []
        seen = set(existing)
        for data in transformed:
            if data["phone"] and data["phone"] in seen:
                continue
            if data["phone"]:
                seen.add(data["phone"])
            to_create.append(CustomerCreate(**{k: v for k, v in data.items()
                                               if k in CustomerCreate.model_fields and v is not None}))

        created = self.customer_repo.bulk_create(merchant_id, to_create) if to_create else []
        return len(created), len(records) - len(created)

    def _import_json_products(self, merchant_id: int, records: List[Dict[str, Any]]) -> Tuple[int, int]:
        outlet = self.outlet_repo.find_default(merchant_id)
        if outlet is None:
            raise NotFoundError(f"Merchant {merchant_id} has no outlet", code=ErrorCode.OUTLET_NOT_FOUND)
        default_category = self.category_repo.find_or_create_default(merchant_id)

        imported = 0
        for record in records:
            data = transform_product(record, outlet.id)
            category_id = default_category
            if record.get("category_name"):
                category_id = self.category_repo.find_or_create(merchant_id, record["category_name"])
            try:
                self.product_repo.create(
                    merchant_id,
                    ProductCreate(**{k: v for k, v in data.items()
                                     if k in ProductCreate.model_fields and v is not None}),
                    category_id, outlet.id
                )
                imported += 1
            except Exception as e:
                logger.warning(f"JSON product import failed for '{data['name']}': {e}")
        return imported, len(records) - imported

    def _import_json_orders(self, merchant_id: int, records: List[Dict[str, Any]]) -> Tuple[int, int]:
        """Orders reference our product ids; items pointing elsewhere fail the order"""
        outlet = self.outlet_repo.find_default(merchant_id)
        if outlet is None:
            raise NotFoundError(f"Merchant {merchant_id} has no outlet", code=ErrorCode.OUTLET_NOT_FOUND)

        product_map: Dict[str, int] = {}
        imported = 0
        for record in records:
            for item in record.get("items") or record.get("order_items") or record.get("list_product") or []:
                product_id = item.get("product_id")
                if product_id is None or str(product_id) in product_map:
                    continue
                product = self.product_repo.find_by_id(int(product_id))
                if product is not None and product.merchant_id == merchant_id:
                    product_map[str(product_id)] = product.id

            if "order_items" in record and "items" not in record:
                record = dict(record, items=record["order_items"])
            data = transform_order(record, outlet.id, product_map)
            if not data["items"] or any(item["product_id"] is None for item in data["items"]):
                continue

            fields = {k: v for k, v in data.items() if k not in ("items", "metadata")}
            if data["customer_phone"]:
                customer = self.customer_repo.find_by_phone(merchant_id, data["customer_phone"])
                fields["customer_id"] = customer.id if customer else None
            try:
                fields["order_number"] = self.number_generator.generate(outlet.id)
                self.order_repo.create(fields, data["items"], check_stock=False)
                imported += 1
            except Exception as e:
                logger.warning(f"JSON order import failed: {e}")
        return imported, len(records) - imported
