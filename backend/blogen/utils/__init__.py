"""Utility modules for Blogen."""
