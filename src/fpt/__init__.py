"""Firestore Power Tools: local inspection of Firestore databases."""

__version__ = "0.1.0"
