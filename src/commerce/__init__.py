"""Storefront consistency core: inventory, orders, payments and reconciliation."""
