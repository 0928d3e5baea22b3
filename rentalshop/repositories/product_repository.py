"""
Product Repository - Data Access Layer for Products

Handles all database queries for products, their per-outlet stock
and product categories. Returns Product domain models.

Author: TM3
Date: 2026-03-03
"""
from typing import List, Optional, Tuple, Dict
from datetime import datetime

from psycopg2.extras import Json

from rentalshop.domain.product import Product, OutletStock, ProductCreate, ProductUpdate
from rentalshop.core.database import get_db_connection_dict
from rentalshop.core.errors import InsufficientStockError

DEFAULT_CATEGORY_NAME = "General"

PRODUCT_COLUMNS = """
    p.id, p.merchant_id, p.category_id, p.name, p.description, p.barcode,
    p.rent_price, p.sale_price, p.cost_price, p.deposit, p.pricing_type,
    p.images, p.is_active, p.created_at, p.updated_at
"""


class ProductRepository:
    """
    Repository for Product data access

    All SQL queries for products are centralized here.
    Returns Product domain models, not raw dictionaries.
    """

    @staticmethod
    def _map_row_to_product(row: dict, stock_rows: Optional[List[dict]] = None) -> Product:
        """Map a products row plus its outlet_stock rows to a Product"""
        return Product(
            id=row['id'],
            merchant_id=row['merchant_id'],
            category_id=row.get('category_id'),
            name=row['name'],
            description=row.get('description'),
            barcode=row.get('barcode'),
            rent_price=row['rent_price'],
            sale_price=row.get('sale_price'),
            cost_price=row.get('cost_price'),
            deposit=row['deposit'],
            pricing_type=row['pricing_type'],
            images=row.get('images') or [],
            outlet_stock=[
                OutletStock(
                    outlet_id=s['outlet_id'],
                    stock=s['stock'],
                    renting=s['renting'],
                    available=s['available']
                )
                for s in (stock_rows or [])
            ],
            is_active=row['is_active'],
            created_at=row['created_at'],
            updated_at=row.get('updated_at')
        )

    @staticmethod
    def _load_stock(cursor, product_ids: List[int]) -> Dict[int, List[dict]]:
        if not product_ids:
            return {}

        cursor.execute("""
            SELECT product_id, outlet_id, stock, renting, available
            FROM outlet_stock
            WHERE product_id = ANY(%s)
            ORDER BY outlet_id
        """, (product_ids,))

        stock_by_product: Dict[int, List[dict]] = {}
        for row in cursor.fetchall():
            stock_by_product.setdefault(row['product_id'], []).append(row)
        return stock_by_product

    def find_by_id(self, product_id: int) -> Optional[Product]:
        """
        Find product by ID, including stock at every outlet

        Returns:
            Product or None if not found
        """
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute(f"""
                SELECT {PRODUCT_COLUMNS}
                FROM products p
                WHERE p.id = %s
            """, (product_id,))

            row = cursor.fetchone()
            if not row:
                return None

            stock = self._load_stock(cursor, [row['id']])
            return self._map_row_to_product(row, stock.get(row['id']))

        finally:
            cursor.close()
            conn.close()

    def find_by_name(self, merchant_id: int, name: str) -> Optional[Product]:
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute(f"""
                SELECT {PRODUCT_COLUMNS}
                FROM products p
                WHERE p.merchant_id = %s AND LOWER(p.name) = LOWER(%s)
                LIMIT 1
            """, (merchant_id, name))

            row = cursor.fetchone()
            return self._map_row_to_product(row) if row else None

        finally:
            cursor.close()
            conn.close()

    def find_all(
        self,
        merchant_id: Optional[int] = None,
        category_id: Optional[int] = None,
        outlet_id: Optional[int] = None,
        is_active: Optional[bool] = None,
        search: Optional[str] = None,
        limit: int = 100,
        offset: int = 0
    ) -> Tuple[List[Product], int]:
        """
        Find products with filters

        Args:
            merchant_id: Filter by merchant
            category_id: Filter by category
            outlet_id: Only products stocked at this outlet
            is_active: Filter by active status
            search: Search in name or barcode
            limit: Maximum results to return
            offset: Number of results to skip

        Returns:
            Tuple of (list of products, total count)
        """
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            conditions = []
            params = []

            if merchant_id is not None:
                conditions.append("p.merchant_id = %s")
                params.append(merchant_id)

            if category_id is not None:
                conditions.append("p.category_id = %s")
                params.append(category_id)

            if outlet_id is not None:
                conditions.append("EXISTS (SELECT 1 FROM outlet_stock s WHERE s.product_id = p.id AND s.outlet_id = %s)")
                params.append(outlet_id)

            if is_active is not None:
                conditions.append("p.is_active = %s")
                params.append(is_active)

            if search:
                conditions.append("(p.name ILIKE %s OR p.barcode ILIKE %s)")
                search_term = f"%{search}%"
                params.extend([search_term, search_term])

            where_clause = " AND ".join(conditions) if conditions else "1=1"

            cursor.execute(f"""
                SELECT COUNT(*) as total
                FROM products p
                WHERE {where_clause}
            """, params)
            total = cursor.fetchone()['total']

            cursor.execute(f"""
                SELECT {PRODUCT_COLUMNS}
                FROM products p
                WHERE {where_clause}
                ORDER BY p.name
                LIMIT %s OFFSET %s
            """, params + [limit, offset])

            rows = cursor.fetchall()
            stock = self._load_stock(cursor, [row['id'] for row in rows])
            products = [self._map_row_to_product(row, stock.get(row['id'])) for row in rows]

            return products, total

        finally:
            cursor.close()
            conn.close()

    def create(self, merchant_id: int, data: ProductCreate, category_id: int,
               outlet_id: Optional[int]) -> Product:
        """
        Insert a product and, when an outlet is given, its initial stock row
        (available = stock, renting = 0) in one transaction
        """
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            now = datetime.utcnow()
            cursor.execute(f"""
                INSERT INTO products AS p
                    (merchant_id, category_id, name, description, barcode,
                     rent_price, sale_price, cost_price, deposit, pricing_type,
                     images, is_active, created_at, updated_at)
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, true, %s, %s)
                RETURNING {PRODUCT_COLUMNS}
            """, (
                merchant_id, category_id, data.name, data.description, data.barcode,
                data.rent_price, data.sale_price, data.cost_price, data.deposit,
                data.pricing_type, Json(data.images), now, now
            ))
            row = cursor.fetchone()

            stock_rows = []
            if outlet_id is not None:
                cursor.execute("""
                    INSERT INTO outlet_stock (product_id, outlet_id, stock, renting, available)
                    VALUES (%s, %s, %s, 0, %s)
                    RETURNING product_id, outlet_id, stock, renting, available
                """, (row['id'], outlet_id, data.stock, data.stock))
                stock_rows.append(cursor.fetchone())

            conn.commit()
            return self._map_row_to_product(row, stock_rows)

        except Exception:
            conn.rollback()
            raise
        finally:
            cursor.close()
            conn.close()

    def update(self, product_id: int, data: ProductUpdate) -> Optional[Product]:
        fields = data.model_dump(exclude_unset=True)
        if not fields:
            return self.find_by_id(product_id)
        if 'images' in fields:
            fields['images'] = Json(fields['images'] or [])

        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            assignments = [f"{column} = %s" for column in fields] + ["updated_at = %s"]
            params = list(fields.values()) + [datetime.utcnow(), product_id]

            cursor.execute(f"""
                UPDATE products p
                SET {', '.join(assignments)}
                WHERE p.id = %s
                RETURNING {PRODUCT_COLUMNS}
            """, params)
            row = cursor.fetchone()
            if not row:
                conn.rollback()
                return None

            stock = self._load_stock(cursor, [row['id']])
            conn.commit()
            return self._map_row_to_product(row, stock.get(row['id']))

        except Exception:
            conn.rollback()
            raise
        finally:
            cursor.close()
            conn.close()

    def deactivate(self, product_id: int) -> bool:
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute("""
                UPDATE products SET is_active = false, updated_at = %s WHERE id = %s
            """, (datetime.utcnow(), product_id))
            conn.commit()
            return cursor.rowcount > 0
        except Exception:
            conn.rollback()
            raise
        finally:
            cursor.close()
            conn.close()

    def delete_many(self, product_ids: List[int]) -> int:
        """Hard delete (sync rollback only); stock rows go first"""
        if not product_ids:
            return 0

        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute("DELETE FROM outlet_stock WHERE product_id = ANY(%s)", (product_ids,))
            cursor.execute("DELETE FROM products WHERE id = ANY(%s)", (product_ids,))
            deleted = cursor.rowcount
            conn.commit()
            return deleted
        except Exception:
            conn.rollback()
            raise
        finally:
            cursor.close()
            conn.close()

    def adjust_stock(self, product_id: int, outlet_id: int,
                     stock_delta: int = 0, renting_delta: int = 0) -> OutletStock:
        """
        Apply stock/renting deltas at one outlet and recompute available.

        Creates the stock row when missing. Raises InsufficientStockError if the
        result would make stock or renting negative.
        """
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute("""
                INSERT INTO outlet_stock (product_id, outlet_id, stock, renting, available)
                VALUES (%s, %s, 0, 0, 0)
                ON CONFLICT (product_id, outlet_id) DO NOTHING
            """, (product_id, outlet_id))

            cursor.execute("""
                SELECT stock, renting
                FROM outlet_stock
                WHERE product_id = %s AND outlet_id = %s
                FOR UPDATE
            """, (product_id, outlet_id))
            current = cursor.fetchone()

            new_stock = current['stock'] + stock_delta
            new_renting = current['renting'] + renting_delta
            if new_stock < 0 or new_renting < 0 or new_renting > new_stock:
                raise InsufficientStockError(
                    f"Invalid stock adjustment for product {product_id} at outlet {outlet_id}: "
                    f"stock={new_stock}, renting={new_renting}"
                )

            cursor.execute("""
                UPDATE outlet_stock
                SET stock = %s, renting = %s, available = %s
                WHERE product_id = %s AND outlet_id = %s
                RETURNING outlet_id, stock, renting, available
            """, (new_stock, new_renting, new_stock - new_renting, product_id, outlet_id))
            row = cursor.fetchone()
            conn.commit()

            return OutletStock(**row)

        except Exception:
            conn.rollback()
            raise
        finally:
            cursor.close()
            conn.close()


class CategoryRepository:
    """Product categories (one default per merchant)"""

    def find_or_create(self, merchant_id: int, name: str, is_default: bool = False) -> int:
        """Return the id of the merchant's category with this name, creating it if needed"""
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute("""
                SELECT id FROM categories
                WHERE merchant_id = %s AND LOWER(name) = LOWER(%s)
                LIMIT 1
            """, (merchant_id, name))
            row = cursor.fetchone()
            if row:
                return row['id']

            cursor.execute("""
                INSERT INTO categories (merchant_id, name, is_default, created_at)
                VALUES (%s, %s, %s, %s)
                RETURNING id
            """, (merchant_id, name, is_default, datetime.utcnow()))
            category_id = cursor.fetchone()['id']
            conn.commit()
            return category_id

        except Exception:
            conn.rollback()
            raise
        finally:
            cursor.close()
            conn.close()

    def find_or_create_default(self, merchant_id: int) -> int:
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute("""
                SELECT id FROM categories
                WHERE merchant_id = %s AND is_default = true
                LIMIT 1
            """, (merchant_id,))
            row = cursor.fetchone()
        finally:
            cursor.close()
            conn.close()

        if row:
            return row['id']
        return self.find_or_create(merchant_id, DEFAULT_CATEGORY_NAME, is_default=True)

    def find_all(self, merchant_id: int) -> List[dict]:
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute("""
                SELECT id, merchant_id, name, is_default, created_at
                FROM categories
                WHERE merchant_id = %s
                ORDER BY is_default DESC, name
            """, (merchant_id,))
            return cursor.fetchall()
        finally:
            cursor.close()
            conn.close()
