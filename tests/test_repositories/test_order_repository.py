"""
Unit tests for OrderRepository

Author: TM3
Date: 2026-03-12
"""
import pytest
from unittest.mock import patch, MagicMock
from decimal import Decimal
from datetime import datetime

from rentalshop.repositories.order_repository import OrderRepository
from rentalshop.domain.order import Order
from rentalshop.core.errors import InsufficientStockError, ValidationError, ConflictError


def _mock_connection(mock_get_conn):
    mock_conn = MagicMock()
    mock_cursor = MagicMock()
    mock_get_conn.return_value = mock_conn
    mock_conn.cursor.return_value = mock_cursor
    return mock_conn, mock_cursor


def _order_fields():
    return {
        'order_number': 'ORD00112345',
        'order_type': 'RENT',
        'status': 'RESERVED',
        'outlet_id': 1,
        'total_amount': Decimal('300000'),
    }


def _item(product_id=10, quantity=2):
    return {
        'product_id': product_id,
        'quantity': quantity,
        'unit_price': Decimal('150000'),
        'total_price': Decimal('150000') * quantity,
    }


class TestOrderRepository:
    """Test OrderRepository methods"""

    @patch('rentalshop.repositories.order_repository.get_db_connection_dict')
    def test_find_by_id_returns_order_with_items(self, mock_get_conn, sample_order_row, sample_order_item_row):
        # Arrange
        mock_conn, mock_cursor = _mock_connection(mock_get_conn)
        mock_cursor.fetchone.return_value = sample_order_row
        mock_cursor.fetchall.return_value = [sample_order_item_row]

        # Act
        order = OrderRepository().find_by_id(100)

        # Assert
        assert isinstance(order, Order)
        assert order.order_number == 'ORD00112345'
        assert len(order.items) == 1
        assert order.items[0].product_name == 'Evening Dress'
        assert order.to_dict()['total_amount'] == 300000.0
        mock_conn.close.assert_called_once()

    @patch('rentalshop.repositories.order_repository.get_db_connection_dict')
    def test_create_checks_stock_and_commits(self, mock_get_conn, sample_order_row, sample_order_item_row):
        """Test create verifies availability before inserting"""
        # Arrange
        mock_conn, mock_cursor = _mock_connection(mock_get_conn)
        mock_cursor.fetchone.side_effect = [
            {'available': 5},      # stock check
            {'id': 100},           # order insert
            sample_order_row,      # reload
        ]
        mock_cursor.fetchall.return_value = [sample_order_item_row]

        # Act
        order = OrderRepository().create(_order_fields(), [_item()])

        # Assert
        assert order.id == 100
        assert "FOR UPDATE" in mock_cursor.execute.call_args_list[0][0][0]
        mock_conn.commit.assert_called_once()

    @patch('rentalshop.repositories.order_repository.get_db_connection_dict')
    def test_create_sums_quantities_per_product(self, mock_get_conn):
        """Test two lines of the same product are checked against stock together"""
        # Arrange
        mock_conn, mock_cursor = _mock_connection(mock_get_conn)
        mock_cursor.fetchone.return_value = {'available': 3}

        # Act / Assert
        with pytest.raises(InsufficientStockError) as exc_info:
            OrderRepository().create(_order_fields(), [_item(quantity=2), _item(quantity=2)])

        assert "requested 4, available 3" in exc_info.value.message
        mock_conn.rollback.assert_called_once()
        mock_conn.commit.assert_not_called()

    @patch('rentalshop.repositories.order_repository.get_db_connection_dict')
    def test_create_without_stock_check(self, mock_get_conn, sample_order_row):
        """Test imported orders skip the availability check"""
        # Arrange
        mock_conn, mock_cursor = _mock_connection(mock_get_conn)
        mock_cursor.fetchone.side_effect = [{'id': 100}, sample_order_row]
        mock_cursor.fetchall.return_value = []

        # Act
        OrderRepository().create(_order_fields(), [_item()], check_stock=False)

        # Assert
        first_sql = mock_cursor.execute.call_args_list[0][0][0]
        assert "INSERT INTO orders" in first_sql

    @patch('rentalshop.repositories.order_repository.get_db_connection_dict')
    def test_update_applies_stock_moves(self, mock_get_conn, sample_order_row):
        # Arrange
        mock_conn, mock_cursor = _mock_connection(mock_get_conn)
        picked = dict(sample_order_row, status='PICKUPED')
        mock_cursor.fetchone.side_effect = [
            {'stock': 5, 'renting': 2},
            {'id': 100},
            picked,
        ]
        mock_cursor.fetchall.return_value = []

        # Act
        order = OrderRepository().update(100, {'status': 'PICKUPED'}, stock_moves=[(10, 1, 0, 2)])

        # Assert
        assert order.status == 'PICKUPED'
        move_params = mock_cursor.execute.call_args_list[0][0][1]
        assert move_params == (0, 2, 0, 2, 10, 1)
        mock_conn.commit.assert_called_once()

    @patch('rentalshop.repositories.order_repository.get_db_connection_dict')
    def test_update_rejects_renting_above_stock(self, mock_get_conn):
        # Arrange
        mock_conn, mock_cursor = _mock_connection(mock_get_conn)
        mock_cursor.fetchone.return_value = {'stock': 1, 'renting': 2}

        # Act / Assert
        with pytest.raises(InsufficientStockError):
            OrderRepository().update(100, {'status': 'PICKUPED'}, stock_moves=[(10, 1, 0, 2)])
        mock_conn.rollback.assert_called_once()

    @patch('rentalshop.repositories.order_repository.get_db_connection_dict')
    def test_update_missing_stock_row(self, mock_get_conn):
        # Arrange
        mock_conn, mock_cursor = _mock_connection(mock_get_conn)
        mock_cursor.fetchone.return_value = None

        # Act / Assert
        with pytest.raises(ValidationError):
            OrderRepository().update(100, {'status': 'PICKUPED'}, stock_moves=[(10, 1, 0, 1)])
        mock_conn.rollback.assert_called_once()

    @patch('rentalshop.repositories.order_repository.get_db_connection_dict')
    def test_update_locks_order_and_checks_status(self, mock_get_conn, sample_order_row):
        # Arrange
        mock_conn, mock_cursor = _mock_connection(mock_get_conn)
        returned = dict(sample_order_row, status='RETURNED')
        mock_cursor.fetchone.side_effect = [
            {'status': 'PICKUPED'},
            {'stock': 5, 'renting': 0},
            {'id': 100},
            returned,
        ]
        mock_cursor.fetchall.return_value = []

        # Act
        order = OrderRepository().update(100, {'status': 'RETURNED'}, stock_moves=[(10, 1, 0, -2)],
                                         expected_status='PICKUPED')

        # Assert
        assert order.status == 'RETURNED'
        assert "FOR UPDATE" in mock_cursor.execute.call_args_list[0][0][0]
        mock_conn.commit.assert_called_once()

    @patch('rentalshop.repositories.order_repository.get_db_connection_dict')
    def test_update_rejects_concurrent_status_change(self, mock_get_conn):
        """Test a second RETURNED request does not release renting stock again"""
        # Arrange
        mock_conn, mock_cursor = _mock_connection(mock_get_conn)
        mock_cursor.fetchone.return_value = {'status': 'RETURNED'}

        # Act / Assert
        with pytest.raises(ConflictError) as exc_info:
            OrderRepository().update(100, {'status': 'RETURNED'}, stock_moves=[(10, 1, 0, -2)],
                                     expected_status='PICKUPED')

        assert exc_info.value.code == 'ORDER_STATUS_CHANGED'
        assert mock_cursor.execute.call_count == 1
        mock_conn.rollback.assert_called_once()
        mock_conn.commit.assert_not_called()

    @patch('rentalshop.repositories.order_repository.get_db_connection_dict')
    def test_update_expected_status_missing_order(self, mock_get_conn):
        mock_conn, mock_cursor = _mock_connection(mock_get_conn)
        mock_cursor.fetchone.return_value = None

        assert OrderRepository().update(999, {'status': 'RETURNED'}, expected_status='PICKUPED') is None
        mock_conn.commit.assert_not_called()

    @patch('rentalshop.repositories.order_repository.get_db_connection_dict')
    def test_find_for_product_on_day_keeps_only_that_product(self, mock_get_conn, sample_order_row,
                                                             sample_order_item_row):
        # Arrange
        mock_conn, mock_cursor = _mock_connection(mock_get_conn)
        other_item = dict(sample_order_item_row, id=501, product_id=11)
        mock_cursor.fetchall.side_effect = [[sample_order_row], [sample_order_item_row, other_item]]
        day_start = datetime(2026, 3, 3)
        day_end = datetime(2026, 3, 3, 23, 59, 59)

        # Act
        orders = OrderRepository().find_for_product_on_day(10, 1, day_start, day_end)

        # Assert
        assert [item.product_id for item in orders[0].items] == [10]
        sql, params = mock_cursor.execute.call_args_list[0][0]
        assert "o.status <> 'CANCELLED'" in sql
        assert params[:2] == (1, 10)
        mock_conn.close.assert_called_once()

    @patch('rentalshop.repositories.order_repository.get_db_connection_dict')
    def test_find_for_product_on_day_without_orders(self, mock_get_conn):
        mock_conn, mock_cursor = _mock_connection(mock_get_conn)
        mock_cursor.fetchall.return_value = []

        assert OrderRepository().find_for_product_on_day(10, 1, datetime(2026, 3, 3), datetime(2026, 3, 4)) == []
        assert mock_cursor.execute.call_count == 1
