"""Payment load test scenarios.

Two stateful SequentialTaskSet journeys: a provider that redelivers the
same success callback, and a declined payment retried with a new
idempotency key.
"""

from locust import HttpUser, SequentialTaskSet, between, task

from loadtests.data_generators import auth_headers, fake_callback, payment_data, user_id
from loadtests.helpers.response import extract_error_detail
from loadtests.helpers.state import OrderState, PaymentState
from loadtests.scenarios.ordering import WEBHOOK_SIGNATURE, seed_products


class _PaymentJourney(SequentialTaskSet):
    def on_start(self):
        self.customer = user_id()
        self.headers = auth_headers(self.customer)
        self.order = OrderState()
        self.payment = PaymentState()

    def place_single_item_order(self):
        payload = {
            "items": [{"product_id": self.user.product_ids[0], "quantity": 1}],
            "shipping_address": {"full_name": "Load Test", "line1": "Oginga Odinga Street", "city": "Kisumu"},
        }
        with self.client.post(
            "/orders", json=payload, headers=self.headers, catch_response=True, name="POST /orders"
        ) as resp:
            if resp.status_code == 201:
                self.order.order_id = resp.json()["id"]
            else:
                resp.failure(f"Place order failed: {resp.status_code} — {extract_error_detail(resp)}")
                self.interrupt()

    def initiate(self):
        with self.client.post(
            "/payments",
            json=payment_data(self.order.order_id),
            headers=self.headers,
            catch_response=True,
            name="POST /payments",
        ) as resp:
            if resp.status_code in (201, 202):
                transaction = resp.json()["transaction"]
                self.payment.transaction_id = transaction["id"]
                self.payment.correlation_id = transaction["correlation_id"]
                self.payment.amount = transaction["amount"]
            else:
                resp.failure(f"Initiate payment failed: {resp.status_code} — {extract_error_detail(resp)}")
                self.interrupt()

    def callback(self, succeeded=True, label="POST /payments/webhook/{provider}"):
        with self.client.post(
            "/payments/webhook/fake",
            json=fake_callback(self.payment.correlation_id, self.payment.amount, succeeded=succeeded),
            headers={"X-Gateway-Signature": WEBHOOK_SIGNATURE},
            catch_response=True,
            name=label,
        ) as resp:
            if resp.status_code != 200:
                resp.failure(f"Webhook failed: {resp.status_code} — {extract_error_detail(resp)}")

    def expect_transaction(self, status):
        with self.client.get(
            f"/payments/{self.payment.transaction_id}",
            headers=self.headers,
            catch_response=True,
            name="GET /payments/{id}",
        ) as resp:
            if resp.status_code != 200:
                resp.failure(f"Read payment failed: {resp.status_code} — {extract_error_detail(resp)}")
            elif resp.json()["status"] != status:
                resp.failure(f"Expected {status}, transaction is {resp.json()['status']}")


class WebhookRedeliveryJourney(_PaymentJourney):
    """Place Order -> Initiate -> Callback x3 -> Read Transaction.

    The provider retries a callback it already delivered; only the first
    one may settle the order.
    """

    @task
    def create_order(self):
        self.place_single_item_order()

    @task
    def initiate_payment(self):
        self.initiate()

    @task
    def deliver_three_times(self):
        for _ in range(3):
            self.callback(label="POST /payments/webhook/{provider} [redelivery]")

    @task
    def verify(self):
        self.expect_transaction("succeeded")

    @task
    def done(self):
        self.interrupt()


class DeclineAndRetryJourney(_PaymentJourney):
    """Place Order -> Initiate -> Decline -> Initiate Again -> Success."""

    @task
    def create_order(self):
        self.place_single_item_order()

    @task
    def first_attempt(self):
        self.initiate()
        self.callback(succeeded=False)
        self.expect_transaction("failed")

    @task
    def second_attempt(self):
        self.initiate()
        self.callback()
        self.expect_transaction("succeeded")

    @task
    def done(self):
        self.interrupt()


class PaymentsUser(HttpUser):
    """Locust user simulating provider callback traffic.

    Weighted distribution:
    - 50% Webhook redelivery
    - 50% Decline then retry
    """

    wait_time = between(0.5, 2.0)
    tasks = {
        WebhookRedeliveryJourney: 1,
        DeclineAndRetryJourney: 1,
    }

    def on_start(self):
        self.product_ids = seed_products(self.client, count=1)
        if not self.product_ids:
            self.stop()
