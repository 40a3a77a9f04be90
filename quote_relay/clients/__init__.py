"""Instrumented outbound HTTP calls."""
from .quotes import client_span, get_random_quote, save_quote

__all__ = ["client_span", "get_random_quote", "save_quote"]
