"""
Docker Compose generation.

Translates the homelab model into per-machine Compose documents.
"""

from .translator import ALL_SCOPE, ComposeTranslator

__all__ = [
    "ALL_SCOPE",
    "ComposeTranslator",
]
