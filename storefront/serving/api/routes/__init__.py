"""
API Routes Module
"""
from .dashboard import router as dashboard_router
from .health import router as health_router
from .orders import router as orders_router
from .products import router as products_router
from .transactions import router as transactions_router
from .users import router as users_router

__all__ = [
    "dashboard_router",
    "health_router",
    "orders_router",
    "products_router",
    "transactions_router",
    "users_router",
]
