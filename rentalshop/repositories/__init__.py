"""
Repository Layer - Data Access

This layer handles all database queries and returns domain models.
Repositories abstract away SQL details from business logic.
"""
from rentalshop.repositories.merchant_repository import MerchantRepository, OutletRepository
from rentalshop.repositories.user_repository import UserRepository
from rentalshop.repositories.product_repository import ProductRepository, CategoryRepository
from rentalshop.repositories.customer_repository import CustomerRepository
from rentalshop.repositories.order_repository import OrderRepository
from rentalshop.repositories.subscription_repository import PlanRepository, SubscriptionRepository
from rentalshop.repositories.payment_repository import PaymentRepository
from rentalshop.repositories.setting_repository import SettingRepository, NotificationRepository
from rentalshop.repositories.audit_repository import AuditRepository
from rentalshop.repositories.sync_repository import SyncRepository

__all__ = [
    'MerchantRepository',
    'OutletRepository',
    'UserRepository',
    'ProductRepository',
    'CategoryRepository',
    'CustomerRepository',
    'OrderRepository',
    'PlanRepository',
    'SubscriptionRepository',
    'PaymentRepository',
    'SettingRepository',
    'NotificationRepository',
    'AuditRepository',
    'SyncRepository',
]
