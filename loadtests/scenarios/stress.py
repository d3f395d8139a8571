"""Stress test scenarios for stock contention.

HotProductUser sends every customer after the same few products so that
placements serialize on the same locks.  Refusals for insufficient stock
are expected; the oversell check after the run is what matters.
"""

import random

from locust import HttpUser, constant_pacing, events, task

from loadtests.data_generators import address_data, auth_headers, product_data, restock_data, user_id
from loadtests.helpers.response import extract_error_detail, is_stock_refusal

HOT_PRODUCT_COUNT = 2
HOT_PRODUCT_STOCK = 200

ADMIN = auth_headers("lt-admin", roles=("admin",))

# Shared across users so every Locust user contends on the same rows
_hot_products: list[str] = []


@events.test_start.add_listener
def _seed_hot_products(environment, **_kwargs):
    _hot_products.clear()


class HotProductUser(HttpUser):
    """Contention test: many customers, few products.

    Use with a high user count and instant spawn rate.  Compare the sum of
    successful placements with the restocked total afterwards: the product
    stock must never go below zero.
    """

    wait_time = constant_pacing(0.1)  # ~10 req/sec per user

    def on_start(self):
        self.customer = user_id()
        self.headers = auth_headers(self.customer)
        if len(_hot_products) < HOT_PRODUCT_COUNT:
            with self.client.post(
                "/admin/products",
                json=product_data(stock=HOT_PRODUCT_STOCK),
                headers=ADMIN,
                catch_response=True,
                name="POST /admin/products",
            ) as resp:
                if resp.status_code == 201:
                    _hot_products.append(resp.json()["product_id"])
                else:
                    resp.failure(f"Seed product failed: {resp.status_code} — {extract_error_detail(resp)}")

    @task(10)
    def buy_hot_product(self):
        if not _hot_products:
            return
        payload = {
            "items": [{"product_id": random.choice(_hot_products), "quantity": random.randint(1, 3)}],
            "shipping_address": address_data(),
        }
        with self.client.post(
            "/orders",
            json=payload,
            headers=self.headers,
            catch_response=True,
            name="POST /orders [hot]",
        ) as resp:
            if resp.status_code == 201 or is_stock_refusal(resp):
                resp.success()
            else:
                resp.failure(f"Place order failed: {resp.status_code} — {extract_error_detail(resp)}")

    @task(1)
    def restock_hot_product(self):
        if not _hot_products:
            return
        with self.client.post(
            f"/admin/products/{random.choice(_hot_products)}/restock",
            json=restock_data(),
            headers=ADMIN,
            catch_response=True,
            name="POST /admin/products/{id}/restock",
        ) as resp:
            if resp.status_code != 200:
                resp.failure(f"Restock failed: {resp.status_code} — {extract_error_detail(resp)}")

    @task(2)
    def check_stock(self):
        if not _hot_products:
            return
        with self.client.get(
            f"/products/{random.choice(_hot_products)}",
            catch_response=True,
            name="GET /products/{id}",
        ) as resp:
            if resp.status_code != 200:
                resp.failure(f"Read product failed: {resp.status_code} — {extract_error_detail(resp)}")
            elif resp.json()["stock"] < 0:
                resp.failure(f"Oversold: stock is {resp.json()['stock']}")
