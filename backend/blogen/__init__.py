"""Blogen - Shopify blog content backend."""
