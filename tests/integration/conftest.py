import pytest
from commerce.api import (
    admin_router,
    order_router,
    payment_router,
    product_router,
    register_error_handlers,
    shipping_router,
)
from commerce.domain import commerce
from fastapi import FastAPI, Request
from fastapi.testclient import TestClient
from jose import jwt

CUSTOMER = "user-001"
ADMIN = "admin-001"


def _token(user_id, roles=()):
    return jwt.encode({"sub": user_id, "roles": list(roles)}, "test-secret", algorithm="HS256")


@pytest.fixture()
def client():
    app = FastAPI()

    @app.middleware("http")
    async def domain_context_middleware(request: Request, call_next):
        with commerce.domain_context():
            return await call_next(request)

    app.include_router(order_router)
    app.include_router(payment_router)
    app.include_router(product_router)
    app.include_router(shipping_router)
    app.include_router(admin_router)
    register_error_handlers(app)
    return TestClient(app, raise_server_exceptions=False)


@pytest.fixture()
def auth_for():
    """Build Authorization headers for a user with the given roles."""

    def _headers(user_id=CUSTOMER, roles=()):
        return {"Authorization": f"Bearer {_token(user_id, roles)}"}

    return _headers


@pytest.fixture()
def customer_headers(auth_for):
    return auth_for(CUSTOMER)


@pytest.fixture()
def admin_headers(auth_for):
    return auth_for(ADMIN, roles=["admin"])


@pytest.fixture()
def order_body(address):
    def _body(product_id, quantity=1, **extra):
        body = {"items": [{"product_id": str(product_id), "quantity": quantity}], "shipping_address": address}
        body.update(extra)
        return body

    return _body
