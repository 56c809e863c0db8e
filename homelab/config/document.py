"""Editable view of the configuration document.

The only mutation homelab performs on its source document is toggling the
``enabled`` flag of services. Changes are staged in memory and written with a
single atomic save. The document is loaded and dumped in ruamel.yaml
round-trip mode so comments, key order and quoting in the hand-written file
survive an edit.
"""
import io
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Iterable, List

from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from homelab.core.logger import get_logger
from homelab.models.errors import ConfigNotFound, ConfigParseError, ConfigSchemaError

logger = get_logger(__name__)

LEGACY_ENABLED_FILE = ".enabled-services"


def _round_trip_yaml() -> YAML:
    yaml = YAML()
    yaml.preserve_quotes = True
    yaml.indent(mapping=2, sequence=4, offset=2)
    yaml.width = 4096
    return yaml


class ConfigDocument:
    """A homelab.yaml document open for editing."""

    def __init__(self, path: Path, data: Dict[str, Any]):
        self.path = Path(path)
        self.data = data
        self.dirty = False

    @classmethod
    def open(cls, path) -> "ConfigDocument":
        path = Path(path)
        if not path.exists():
            raise ConfigNotFound(path)

        try:
            with open(path) as f:
                data = _round_trip_yaml().load(f)
        except YAMLError as exc:
            raise ConfigParseError(f"{path}: invalid YAML: {exc}") from exc

        if data is None:
            raise ConfigParseError(f"{path}: config file is empty")
        if not isinstance(data, dict):
            raise ConfigParseError(f"{path}: top level must be a mapping, got {type(data).__name__}")
        return cls(path, data)

    @property
    def services(self) -> Dict[str, Any]:
        services = self.data.get('services')
        if not isinstance(services, dict):
            raise ConfigSchemaError("services: section is required")
        return services

    def enabled_keys(self) -> List[str]:
        return [key for key, entry in self.services.items() if (entry or {}).get('enabled') is True]

    def set_enabled(self, keys: Iterable[str], value: bool) -> List[str]:
        """Set ``enabled`` on the given services.

        Unknown keys are rejected before anything changes.

        Returns:
            Keys whose flag actually changed.
        """
        keys = list(dict.fromkeys(keys))
        services = self.services
        unknown = [key for key in keys if key not in services]
        if unknown:
            raise ConfigSchemaError([f"services.{key}: no such service" for key in unknown])

        changed = []
        for key in keys:
            entry = services[key]
            if not isinstance(entry, dict):
                raise ConfigSchemaError(f"services.{key}: must be a mapping")
            if entry.get('enabled') is value:
                continue
            entry['enabled'] = value
            changed.append(key)

        if changed:
            self.dirty = True
        return changed

    def enable(self, keys: Iterable[str]) -> List[str]:
        return self.set_enabled(keys, True)

    def disable(self, keys: Iterable[str]) -> List[str]:
        return self.set_enabled(keys, False)

    def migrate_legacy_enabled_file(self) -> List[str]:
        """Fold a legacy ``.enabled-services`` list into the document.

        The legacy file sits next to the configuration and lists one service
        key per line. It is renamed to ``.enabled-services.migrated`` only
        after the document has been saved.
        """
        legacy = self.path.parent / LEGACY_ENABLED_FILE
        if not legacy.exists():
            return []

        keys = [
            line.strip()
            for line in legacy.read_text().splitlines()
            if line.strip() and not line.strip().startswith('#')
        ]
        known = [key for key in keys if key in self.services]
        for key in keys:
            if key not in known:
                logger.warning(f"⚠ Ignoring unknown service '{key}' in {legacy.name}")

        changed = self.enable(known)
        self.save()
        legacy.rename(legacy.with_name(LEGACY_ENABLED_FILE + ".migrated"))
        logger.info(f"✓ Migrated {len(known)} services from {legacy.name}")
        return changed

    def save(self) -> bool:
        """Write the document atomically (temp file + rename).

        Returns:
            True if the file was written.
        """
        if not self.dirty:
            return False

        buffer = io.StringIO()
        _round_trip_yaml().dump(self.data, buffer)
        rendered = buffer.getvalue()
        fd, temp_name = tempfile.mkstemp(
            prefix=f".{self.path.name}.", suffix=".tmp", dir=str(self.path.parent)
        )
        try:
            with os.fdopen(fd, 'w') as f:
                f.write(rendered)
            if self.path.exists():
                os.chmod(temp_name, self.path.stat().st_mode & 0o777)
            os.replace(temp_name, self.path)
        except OSError:
            if os.path.exists(temp_name):
                os.unlink(temp_name)
            raise

        self.dirty = False
        logger.debug(f"Saved {self.path}")
        return True
