"""Reverse-proxy (nginx) configuration generation."""

from .generator import NginxBundle, NginxConfigBlock, NginxGenerator

__all__ = [
    "NginxBundle",
    "NginxConfigBlock",
    "NginxGenerator",
]
