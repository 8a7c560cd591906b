"""Utility functions."""

from .http import HTTPClient
from .text import jaccard, normalize_title, text_similarity, tokenize

__all__ = ["HTTPClient", "jaccard", "normalize_title", "text_similarity", "tokenize"]
