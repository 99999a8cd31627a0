"""Database models for Blogen."""

from blogen.models.profile import Profile, ProfileRole

__all__ = [
    "Profile",
    "ProfileRole",
]
