"""
Domain Layer - Business Entities

Pydantic models for merchants, catalog, orders and billing.
These models enforce type safety and validation across the application.
"""
from rentalshop.domain.merchant import Merchant, Outlet, User
from rentalshop.domain.product import Product, OutletStock
from rentalshop.domain.customer import Customer
from rentalshop.domain.order import Order, OrderItem
from rentalshop.domain.subscription import Plan, Subscription, Payment
from rentalshop.domain.setting import Setting, Notification
from rentalshop.domain.audit import AuditLog
from rentalshop.domain.sync import SyncSession, SyncRecord

__all__ = [
    'Merchant', 'Outlet', 'User',
    'Product', 'OutletStock',
    'Customer',
    'Order', 'OrderItem',
    'Plan', 'Subscription', 'Payment',
    'Setting', 'Notification',
    'AuditLog',
    'SyncSession', 'SyncRecord',
]
