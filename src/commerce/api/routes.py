"""FastAPI routes for the storefront: orders, payments, products, shipping."""

import json
from typing import Annotated

from fastapi import APIRouter, Depends, Header, Request, Response
from protean.utils.globals import current_domain

from commerce.api.auth import Principal, admin_principal, current_principal, ensure_can_access
from commerce.api.schemas import (
    AddProductRequest,
    CancelOrderRequest,
    ChangeStatusRequest,
    InitiatePaymentRequest,
    InitiatePaymentResponse,
    OrderResponse,
    PlaceOrderRequest,
    ProductIdResponse,
    ProductResponse,
    RestockRequest,
    ShippingQuoteRequest,
    ShippingQuoteResponse,
    StockResponse,
    TransactionResponse,
    WebhookAck,
)
from commerce.concurrency import process_exclusively, product_key
from commerce.domain import commerce
from commerce.gateway.port import malformed
from commerce.inventory.movements import movements_for
from commerce.inventory.product import Product, dump_locations
from commerce.inventory.registration import AddProduct
from commerce.inventory.restock import RestockProduct
from commerce.order.cancellation import cancel_order
from commerce.order.order import Order
from commerce.order.placement import place_order
from commerce.order.status import change_order_status
from commerce.payment.ledger import EXISTING, PaymentLedger
from commerce.payment.reconciliation import ReconciliationHandler, unmatched_callbacks
from commerce.payment.transaction import PaymentTransaction
from commerce.shipping import get_shipping_rates

CurrentPrincipal = Annotated[Principal, Depends(current_principal)]
AdminPrincipal = Annotated[Principal, Depends(admin_principal)]

PENDING_NOTE = "pending, check back"


# ---------------------------------------------------------------------------
# Order Router
# ---------------------------------------------------------------------------
order_router = APIRouter(prefix="/orders", tags=["orders"])


@order_router.post("", status_code=201, response_model=OrderResponse)
async def create_order(body: PlaceOrderRequest, principal: CurrentPrincipal) -> OrderResponse:
    """Reserve stock for every item and record a pending order.

    Answers 409 with the complete ``failures`` list when any item cannot be
    reserved; in that case no stock changes.
    """
    payment = body.payment
    order_id = place_order(
        user_id=principal.user_id,
        items=[item.model_dump() for item in body.items],
        shipping_address=body.shipping_address.model_dump(exclude_none=True),
        billing_address=body.billing_address.model_dump(exclude_none=True) if body.billing_address else None,
        payment_provider=payment.provider if payment else None,
        currency=payment.currency if payment else None,
        notes=body.notes,
    )
    order = current_domain.repository_for(Order).get(order_id)
    return OrderResponse.from_order(order)


@order_router.get("/mine", response_model=list[OrderResponse])
async def my_orders(principal: CurrentPrincipal) -> list[OrderResponse]:
    orders = current_domain.repository_for(Order).for_user(principal.user_id)
    return [OrderResponse.from_order(order) for order in orders]


@order_router.get("/{order_id}", response_model=OrderResponse)
async def get_order(order_id: str, principal: CurrentPrincipal) -> OrderResponse:
    order = current_domain.repository_for(Order).get(order_id)
    ensure_can_access(principal, order.user_id)
    return OrderResponse.from_order(order)


@order_router.post("/{order_id}/cancel", response_model=OrderResponse)
async def cancel(order_id: str, principal: CurrentPrincipal, body: CancelOrderRequest | None = None) -> OrderResponse:
    repo = current_domain.repository_for(Order)
    ensure_can_access(principal, repo.get(order_id).user_id)
    cancel_order(order_id, cancelled_by=principal.user_id, reason=body.reason if body else None)
    return OrderResponse.from_order(repo.get(order_id))


# ---------------------------------------------------------------------------
# Payment Router
# ---------------------------------------------------------------------------
payment_router = APIRouter(prefix="/payments", tags=["payments"])


@payment_router.post("", status_code=201, response_model=InitiatePaymentResponse)
def initiate_payment(
    body: InitiatePaymentRequest,
    response: Response,
    principal: CurrentPrincipal,
    idempotency_key: Annotated[str | None, Header(alias="Idempotency-Key")] = None,
) -> InitiatePaymentResponse:
    """Open a ledger row and ask the provider to collect the order total.

    201 for a new transaction, 200 when the idempotency key matched an
    existing one, 202 when the provider did not confirm the request in time.
    Runs in the threadpool because the provider call blocks.
    """
    with commerce.domain_context():
        result = PaymentLedger().initiate(
            order_id=body.order_id,
            provider=body.provider,
            requested_by=principal.user_id,
            idempotency_key=body.idempotency_key or idempotency_key,
            payer_ref=body.payer_ref,
            requested_by_admin=principal.is_admin,
            provider_meta=body.provider_meta,
        )
        transaction = TransactionResponse.from_transaction(result.transaction)

    note = None
    if result.outcome == EXISTING:
        response.status_code = 200
    elif result.awaiting_provider:
        response.status_code = 202
        note = PENDING_NOTE
    return InitiatePaymentResponse(transaction=transaction, created=result.created, outcome=result.outcome, note=note)


@payment_router.get("/{transaction_id}", response_model=TransactionResponse)
async def get_payment(transaction_id: str, principal: CurrentPrincipal) -> TransactionResponse:
    transaction = current_domain.repository_for(PaymentTransaction).get(transaction_id)
    ensure_can_access(principal, transaction.user_id)
    return TransactionResponse.from_transaction(transaction)


@payment_router.post("/webhook/{provider}", response_model=WebhookAck)
async def payment_webhook(
    provider: str,
    request: Request,
    signature: Annotated[str | None, Header(alias="X-Gateway-Signature")] = None,
    token: str | None = None,
) -> WebhookAck:
    """Provider callback endpoint.

    Every callback that verifies and decodes is acknowledged, including
    duplicates and callbacks for unknown transactions, so providers stop
    redelivering.
    """
    try:
        payload = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise malformed("Body is not valid JSON") from None
    if not isinstance(payload, dict):
        raise malformed("Body must be a JSON object")

    ack = ReconciliationHandler().handle_callback(provider, payload, signature or token)
    return WebhookAck(ok=ack.ok)


# ---------------------------------------------------------------------------
# Product Router
# ---------------------------------------------------------------------------
product_router = APIRouter(prefix="/products", tags=["products"])


@product_router.get("/{product_id}", response_model=ProductResponse)
async def get_product(product_id: str) -> ProductResponse:
    product = current_domain.repository_for(Product).get(product_id)
    return ProductResponse.from_product(product)


# ---------------------------------------------------------------------------
# Shipping Router
# ---------------------------------------------------------------------------
shipping_router = APIRouter(prefix="/shipping", tags=["shipping"])


@shipping_router.post("/quote", response_model=ShippingQuoteResponse)
async def shipping_quote(body: ShippingQuoteRequest) -> ShippingQuoteResponse:
    quote = get_shipping_rates().quote(body.address.model_dump(exclude_none=True))
    return ShippingQuoteResponse(fee=quote.fee, currency=quote.currency, rate_name=quote.rate_name)


# ---------------------------------------------------------------------------
# Admin Router
# ---------------------------------------------------------------------------
admin_router = APIRouter(prefix="/admin", tags=["admin"])


@admin_router.patch("/orders/{order_id}/status", response_model=OrderResponse)
async def change_status(order_id: str, body: ChangeStatusRequest, principal: AdminPrincipal) -> OrderResponse:
    change_order_status(order_id, body.status, changed_by=principal.user_id, reason=body.reason)
    return OrderResponse.from_order(current_domain.repository_for(Order).get(order_id))


@admin_router.post("/products", status_code=201, response_model=ProductIdResponse)
async def add_product(body: AddProductRequest, principal: AdminPrincipal) -> ProductIdResponse:
    command = AddProduct(
        name=body.name,
        unit_price=body.unit_price,
        sku=body.sku,
        currency=body.currency,
        stock=body.stock,
        stock_by_location=dump_locations(body.stock_by_location),
        allow_backorder=body.allow_backorder,
        variants=json.dumps([v.model_dump(exclude_none=True) for v in body.variants]) if body.variants else None,
    )
    product_id = current_domain.process(command, asynchronous=False)
    return ProductIdResponse(product_id=product_id)


@admin_router.post("/products/{product_id}/restock", response_model=StockResponse)
async def restock_product(product_id: str, body: RestockRequest, principal: AdminPrincipal) -> StockResponse:
    command = RestockProduct(
        product_id=product_id,
        quantity=body.quantity,
        variant_id=body.variant_id,
        location=body.location,
        note=body.note,
        actor=principal.user_id,
    )
    stock = process_exclusively(command, [product_key(product_id)])
    return StockResponse(product_id=product_id, stock=stock)


@admin_router.get("/products/{product_id}/movements")
async def stock_movements(product_id: str, principal: AdminPrincipal) -> list[dict]:
    return [
        {
            "change": movement.change,
            "stock_after": movement.stock_after,
            "reason": movement.reason,
            "variant_id": movement.variant_id,
            "location": movement.location,
            "reference_id": movement.reference_id,
            "actor": movement.actor,
            "occurred_at": movement.occurred_at.isoformat() if movement.occurred_at else None,
        }
        for movement in movements_for(product_id)
    ]


@admin_router.get("/payments/unmatched")
async def unmatched_payment_callbacks(principal: AdminPrincipal, provider: str | None = None) -> list[dict]:
    return [
        {
            "id": str(callback.id),
            "provider": callback.provider,
            "correlation_id": callback.correlation_id,
            "succeeded": callback.succeeded,
            "amount": callback.amount,
            "receipt_id": callback.receipt_id,
            "received_at": callback.received_at.isoformat() if callback.received_at else None,
        }
        for callback in unmatched_callbacks(provider)
    ]
