"""Docker Swarm stack generation."""

from .translator import SwarmTranslator, validate_stack

__all__ = [
    "SwarmTranslator",
    "validate_stack",
]
