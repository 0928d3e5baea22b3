"""
RentalShop Platform - Backend API

Multi-tenant rental shop management: merchants, outlets, products,
customers, orders, subscriptions and the legacy POS sync.
"""
__version__ = "1.0.0"
