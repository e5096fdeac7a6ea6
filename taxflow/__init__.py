"""Shopify order tax classification and reconciliation."""
