"""Draft validation package."""

from src.validation.validator import DraftValidator, slugify_key

__all__ = [
    "DraftValidator",
    "slugify_key",
]
