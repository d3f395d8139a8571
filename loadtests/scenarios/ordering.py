"""Ordering load test scenarios.

Two stateful SequentialTaskSet journeys: the checkout happy path from order
placement through a provider callback, and a placement that is cancelled
before payment so its stock returns to the shelf.
"""

from locust import HttpUser, SequentialTaskSet, between, task

from loadtests.data_generators import (
    auth_headers,
    cancel_reason,
    fake_callback,
    order_data,
    payment_data,
    product_data,
    user_id,
)
from loadtests.helpers.response import extract_error_detail, is_stock_refusal
from loadtests.helpers.state import OrderState, PaymentState

WEBHOOK_SIGNATURE = "test-signature"


def seed_products(client, count: int = 5) -> list[str]:
    """Create products as an administrator and return their ids."""
    admin = auth_headers("lt-admin", roles=("admin",))
    product_ids = []
    for _ in range(count):
        with client.post(
            "/admin/products",
            json=product_data(),
            headers=admin,
            catch_response=True,
            name="POST /admin/products",
        ) as resp:
            if resp.status_code == 201:
                product_ids.append(resp.json()["product_id"])
            else:
                resp.failure(f"Seed product failed: {resp.status_code} — {extract_error_detail(resp)}")
    return product_ids


class _CustomerJourney(SequentialTaskSet):
    def on_start(self):
        self.customer = user_id()
        self.headers = auth_headers(self.customer)
        self.order = OrderState()
        self.payment = PaymentState()

    def place_order(self):
        with self.client.post(
            "/orders",
            json=order_data(self.user.product_ids),
            headers=self.headers,
            catch_response=True,
            name="POST /orders",
        ) as resp:
            if resp.status_code == 201:
                data = resp.json()
                self.order.order_id = data["id"]
                self.order.order_number = data["order_number"]
                self.order.total = data["totals"]["total"]
            elif is_stock_refusal(resp):
                # Sold out is a correct answer under load
                resp.success()
                self.interrupt()
            else:
                resp.failure(f"Place order failed: {resp.status_code} — {extract_error_detail(resp)}")
                self.interrupt()


class CheckoutJourney(_CustomerJourney):
    """Place Order -> Initiate Payment -> Provider Callback -> Read Order.

    Exercises the reservation, the payment ledger and reconciliation in the
    order a real customer triggers them.
    """

    @task
    def create_order(self):
        self.place_order()

    @task
    def initiate_payment(self):
        with self.client.post(
            "/payments",
            json=payment_data(self.order.order_id),
            headers=self.headers,
            catch_response=True,
            name="POST /payments",
        ) as resp:
            if resp.status_code in (200, 201, 202):
                transaction = resp.json()["transaction"]
                self.payment.transaction_id = transaction["id"]
                self.payment.correlation_id = transaction["correlation_id"]
                self.payment.amount = transaction["amount"]
                self.payment.current_status = transaction["status"]
            else:
                resp.failure(f"Initiate payment failed: {resp.status_code} — {extract_error_detail(resp)}")
                self.interrupt()

    @task
    def deliver_callback(self):
        if not self.payment.correlation_id:
            self.interrupt()
            return
        with self.client.post(
            "/payments/webhook/fake",
            json=fake_callback(self.payment.correlation_id, self.payment.amount),
            headers={"X-Gateway-Signature": WEBHOOK_SIGNATURE},
            catch_response=True,
            name="POST /payments/webhook/{provider}",
        ) as resp:
            if resp.status_code != 200:
                resp.failure(f"Webhook failed: {resp.status_code} — {extract_error_detail(resp)}")

    @task
    def read_order(self):
        with self.client.get(
            f"/orders/{self.order.order_id}",
            headers=self.headers,
            catch_response=True,
            name="GET /orders/{id}",
        ) as resp:
            if resp.status_code == 200:
                self.order.current_status = resp.json()["status"]
                if self.order.current_status != "paid":
                    resp.failure(f"Order not paid after callback: {self.order.current_status}")
            else:
                resp.failure(f"Read order failed: {resp.status_code} — {extract_error_detail(resp)}")

    @task
    def done(self):
        self.interrupt()


class CancelBeforePaymentJourney(_CustomerJourney):
    """Place Order -> Cancel -> List My Orders."""

    @task
    def create_order(self):
        self.place_order()

    @task
    def cancel_order(self):
        with self.client.post(
            f"/orders/{self.order.order_id}/cancel",
            json={"reason": cancel_reason()},
            headers=self.headers,
            catch_response=True,
            name="POST /orders/{id}/cancel",
        ) as resp:
            if resp.status_code == 200:
                self.order.current_status = "cancelled"
            else:
                resp.failure(f"Cancel failed: {resp.status_code} — {extract_error_detail(resp)}")

    @task
    def list_my_orders(self):
        with self.client.get("/orders/mine", headers=self.headers, catch_response=True, name="GET /orders/mine") as resp:
            if resp.status_code != 200:
                resp.failure(f"List orders failed: {resp.status_code} — {extract_error_detail(resp)}")

    @task
    def done(self):
        self.interrupt()


class OrderingUser(HttpUser):
    """Locust user simulating storefront customers.

    Weighted distribution:
    - 75% Checkout with payment (happy path)
    - 25% Cancellation before payment
    """

    wait_time = between(0.5, 2.0)
    tasks = {
        CheckoutJourney: 3,
        CancelBeforePaymentJourney: 1,
    }

    def on_start(self):
        self.product_ids = seed_products(self.client)
        if not self.product_ids:
            self.stop()
