"""Pydantic request/response schemas for the storefront API.

These are the external contracts; they are translated into domain commands
and service calls in ``routes.py``.  Money is always integer minor units.
"""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from commerce.inventory.product import load_locations


# ---------------------------------------------------------------------------
# Shared sub-models
# ---------------------------------------------------------------------------
class AddressSchema(BaseModel):
    full_name: str | None = None
    phone: str | None = None
    company: str | None = None
    line1: str = Field(min_length=1)
    line2: str | None = None
    city: str | None = None
    state: str | None = None
    postal_code: str | None = None
    country: str = "Kenya"


class OrderItemSchema(BaseModel):
    product_id: str
    quantity: int = Field(ge=1)
    variant_id: str | None = None
    location: str | None = None


class PaymentPreference(BaseModel):
    provider: str | None = None
    currency: str | None = Field(default=None, min_length=3, max_length=3)


class VariantSchema(BaseModel):
    title: str
    sku: str | None = None
    unit_price: int | None = Field(default=None, ge=0)
    stock: int = 0
    stock_by_location: dict[str, int] | None = None


# ---------------------------------------------------------------------------
# Order Request Schemas
# ---------------------------------------------------------------------------
class PlaceOrderRequest(BaseModel):
    items: list[OrderItemSchema] = Field(min_length=1)
    shipping_address: AddressSchema
    billing_address: AddressSchema | None = None
    notes: str | None = None
    payment: PaymentPreference | None = None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "items": [{"product_id": "prod-001", "quantity": 2}],
                    "shipping_address": {"full_name": "Achieng Otieno", "line1": "Oginga Odinga St", "city": "Kisumu"},
                    "payment": {"provider": "mpesa", "currency": "KES"},
                }
            ]
        }
    }


class CancelOrderRequest(BaseModel):
    reason: str | None = None


class ChangeStatusRequest(BaseModel):
    status: Literal["processing", "shipped", "delivered", "cancelled", "refunded"]
    reason: str | None = None


# ---------------------------------------------------------------------------
# Payment Request Schemas
# ---------------------------------------------------------------------------
class InitiatePaymentRequest(BaseModel):
    order_id: str
    provider: str
    idempotency_key: str | None = Field(default=None, max_length=255)
    payer_ref: str | None = None
    provider_meta: dict | None = None


# ---------------------------------------------------------------------------
# Product Request Schemas
# ---------------------------------------------------------------------------
class AddProductRequest(BaseModel):
    name: str = Field(min_length=1)
    unit_price: int = Field(ge=0)
    sku: str | None = None
    currency: str | None = Field(default=None, min_length=3, max_length=3)
    stock: int = 0
    stock_by_location: dict[str, int] | None = None
    allow_backorder: bool = False
    variants: list[VariantSchema] | None = None


class RestockRequest(BaseModel):
    quantity: int = Field(ge=1)
    variant_id: str | None = None
    location: str | None = None
    note: str | None = None


class ShippingQuoteRequest(BaseModel):
    address: AddressSchema


# ---------------------------------------------------------------------------
# Response Schemas
# ---------------------------------------------------------------------------
class OrderLineResponse(BaseModel):
    product_id: str
    variant_id: str | None = None
    sku: str | None = None
    name: str
    unit_price: int
    quantity: int
    line_total: int


class TotalsResponse(BaseModel):
    sub_total: int
    shipping_fee: int
    tax_total: int
    discount_total: int
    total: int


class PaymentSummaryResponse(BaseModel):
    provider: str | None = None
    status: str
    amount: int
    currency: str | None = None
    transaction_id: str | None = None
    receipt_id: str | None = None


class OrderResponse(BaseModel):
    id: str
    order_number: str
    user_id: str
    status: str
    currency: str
    lines: list[OrderLineResponse]
    totals: TotalsResponse
    payment: PaymentSummaryResponse | None = None
    shipping_address: AddressSchema | None = None
    billing_address: AddressSchema | None = None
    notes: str | None = None
    cancellation_reason: str | None = None
    created_at: datetime | None = None
    paid_at: datetime | None = None
    cancelled_at: datetime | None = None

    @classmethod
    def from_order(cls, order) -> "OrderResponse":
        return cls(
            id=str(order.id),
            order_number=order.order_number,
            user_id=str(order.user_id),
            status=order.status,
            currency=order.currency,
            lines=[
                OrderLineResponse(
                    product_id=str(line.product_id),
                    variant_id=str(line.variant_id) if line.variant_id else None,
                    sku=line.sku,
                    name=line.name,
                    unit_price=line.unit_price,
                    quantity=line.quantity,
                    line_total=line.line_total,
                )
                for line in order.lines
            ],
            totals=TotalsResponse(**_vo(order.totals)),
            payment=PaymentSummaryResponse(**_vo(order.payment)) if order.payment else None,
            shipping_address=AddressSchema(**_vo(order.shipping_address)) if order.shipping_address else None,
            billing_address=AddressSchema(**_vo(order.billing_address)) if order.billing_address else None,
            notes=order.notes,
            cancellation_reason=order.cancellation_reason,
            created_at=order.created_at,
            paid_at=order.paid_at,
            cancelled_at=order.cancelled_at,
        )


class TransactionResponse(BaseModel):
    id: str
    order_id: str
    provider: str
    amount: int
    currency: str
    status: str
    idempotency_key: str | None = None
    correlation_id: str | None = None
    provider_tx_id: str | None = None
    error: str | None = None
    created_at: datetime | None = None
    settled_at: datetime | None = None

    @classmethod
    def from_transaction(cls, transaction) -> "TransactionResponse":
        return cls(
            id=str(transaction.id),
            order_id=str(transaction.order_id),
            provider=transaction.provider,
            amount=transaction.amount,
            currency=transaction.currency,
            status=transaction.status,
            idempotency_key=transaction.idempotency_key,
            correlation_id=transaction.correlation_id,
            provider_tx_id=transaction.provider_tx_id,
            error=transaction.error,
            created_at=transaction.created_at,
            settled_at=transaction.settled_at,
        )


class InitiatePaymentResponse(BaseModel):
    transaction: TransactionResponse
    created: bool
    outcome: str
    note: str | None = None


class WebhookAck(BaseModel):
    ok: bool = True


class ProductResponse(BaseModel):
    id: str
    name: str
    sku: str | None = None
    unit_price: int
    currency: str
    stock: int
    in_stock: bool
    allow_backorder: bool
    stock_by_location: dict[str, int] = Field(default_factory=dict)
    variants: list[dict] = Field(default_factory=list)

    @classmethod
    def from_product(cls, product) -> "ProductResponse":
        return cls(
            id=str(product.id),
            name=product.name,
            sku=product.sku,
            unit_price=product.unit_price,
            currency=product.currency,
            stock=product.stock,
            in_stock=product.in_stock,
            allow_backorder=product.allow_backorder,
            stock_by_location=load_locations(product.stock_by_location),
            variants=[
                {
                    "id": str(variant.id),
                    "title": variant.title,
                    "sku": variant.sku,
                    "unit_price": product.price_for(variant.id),
                    "stock": variant.stock,
                    "stock_by_location": load_locations(variant.stock_by_location),
                    "in_stock": variant.in_stock,
                }
                for variant in product.variants
            ],
        )


class ProductIdResponse(BaseModel):
    product_id: str


class StockResponse(BaseModel):
    product_id: str
    stock: int


class ShippingQuoteResponse(BaseModel):
    fee: int
    currency: str
    rate_name: str


def _vo(value) -> dict:
    """Plain dict of a value object's fields, without ``None`` entries."""
    return {key: val for key, val in value.to_dict().items() if val is not None}
