"""Configuration loading, validation and editing."""
from homelab.config.document import ConfigDocument
from homelab.config.loader import ConfigLoader, build_config, read_document

__all__ = ['ConfigDocument', 'ConfigLoader', 'build_config', 'read_document']
