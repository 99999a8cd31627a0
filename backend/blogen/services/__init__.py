"""Business logic services for Blogen."""
