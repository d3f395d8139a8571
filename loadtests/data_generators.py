"""Faker-based data generators for Locust load test scenarios.

Each generator produces payloads that pass the storefront's validation rules
and match the exact field names expected by the API's Pydantic request
schemas.  Amounts are integers in minor units (cents of KES).
"""

import os
import random
import uuid

from faker import Faker
from jose import jwt

fake = Faker("en_US")

KENYAN_CITIES = ["Kisumu", "Nairobi", "Mombasa", "Nakuru", "Eldoret", "Kakamega"]
FOREIGN_ADDRESSES = [("Kampala", "Uganda"), ("Dar es Salaam", "Tanzania"), ("Kigali", "Rwanda")]
PRODUCT_WORDS = ["Kikoy", "Kanga", "Shuka", "Kiondo", "Sisal Basket", "Soapstone Bowl", "Beaded Bracelet"]


# ---------- Identity ----------


def user_id() -> str:
    return f"lt-user-{uuid.uuid4().hex[:8]}"


def bearer_token(subject: str, roles: tuple[str, ...] = ()) -> str:
    """Sign a token the API accepts, with the secret the server was started with."""
    secret = os.environ.get("AUTH_JWT_SECRET", "change-me")
    return jwt.encode({"sub": subject, "roles": list(roles)}, secret, algorithm="HS256")


def auth_headers(subject: str, roles: tuple[str, ...] = ()) -> dict:
    return {"Authorization": f"Bearer {bearer_token(subject, roles)}"}


def kenyan_phone() -> str:
    """Safaricom-style MSISDN: 2547XXXXXXXX."""
    return f"2547{random.randint(10_000_000, 99_999_999)}"


def address_data(international: bool = False) -> dict:
    """Generate an AddressSchema payload; most addresses are in Kenya."""
    if international:
        city, country = random.choice(FOREIGN_ADDRESSES)
    else:
        city, country = random.choice(KENYAN_CITIES), "Kenya"
    return {
        "full_name": fake.name()[:255],
        "phone": kenyan_phone(),
        "line1": fake.street_address()[:255],
        "city": city,
        "country": country,
    }


# ---------- Inventory ----------


def valid_sku(prefix: str = "LT") -> str:
    return f"{prefix}-{uuid.uuid4().hex[:8].upper()}"


def product_data(stock: int | None = None) -> dict:
    """Generate an AddProductRequest payload."""
    return {
        "name": f"{random.choice(PRODUCT_WORDS)} {fake.color_name()}"[:255],
        "unit_price": random.randint(5, 500) * 10_000,
        "sku": valid_sku("PROD"),
        "currency": "KES",
        "stock": stock if stock is not None else random.randint(50, 500),
    }


def restock_data() -> dict:
    return {"quantity": random.randint(10, 100), "note": f"Delivery {fake.bothify('DN-####')}"}


# ---------- Ordering ----------


def order_data(product_ids: list[str], max_quantity: int = 3) -> dict:
    """Generate a PlaceOrderRequest payload over one or more products."""
    chosen = random.sample(product_ids, k=random.randint(1, min(3, len(product_ids))))
    return {
        "items": [{"product_id": pid, "quantity": random.randint(1, max_quantity)} for pid in chosen],
        "shipping_address": address_data(international=random.random() < 0.1),
        "notes": fake.sentence(nb_words=6) if random.random() < 0.2 else None,
    }


def cancel_reason() -> str:
    return random.choice(["Changed my mind", "Found a better price", "Ordered by mistake", "Delivery too slow"])


# ---------- Payments ----------


def payment_data(order_id: str, provider: str = "fake") -> dict:
    return {"order_id": order_id, "provider": provider, "idempotency_key": f"lt-{uuid.uuid4().hex}"}


def fake_callback(correlation_id: str, amount: int, succeeded: bool = True) -> dict:
    """Body the fake provider posts to the webhook."""
    return {
        "correlation_id": correlation_id,
        "result_code": "0" if succeeded else "1032",
        "amount": amount,
        "receipt_id": f"fake_rcpt_{uuid.uuid4().hex[:8]}" if succeeded else None,
    }
