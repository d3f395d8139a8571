from commerce.api.errors import register_error_handlers
from commerce.api.routes import admin_router, order_router, payment_router, product_router, shipping_router

__all__ = [
    "admin_router",
    "order_router",
    "payment_router",
    "product_router",
    "register_error_handlers",
    "shipping_router",
]
