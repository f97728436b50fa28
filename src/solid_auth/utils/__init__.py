"""Utility helpers for solid_auth."""

from solid_auth.utils.sanitization import sanitize_token, sanitize_url

__all__ = ["sanitize_token", "sanitize_url"]
