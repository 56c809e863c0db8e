"""YAML configuration loader."""
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import ValidationError

from homelab.core.logger import get_logger
from homelab.models.deploy_target import RESERVED_KEYWORDS
from homelab.models.errors import ConfigNotFound, ConfigParseError, ConfigSchemaError
from homelab.models.homelab import HomelabConfig
from homelab.models.machine import Machine
from homelab.models.service import ResourceSpec, Service

logger = get_logger(__name__)


class ConfigLoader:
    """Loads homelab.yaml into a HomelabConfig.

    Loading is a pure read. Schema problems of every machine and service are
    collected and raised together as one ConfigSchemaError.
    """

    def __init__(self, config_path: str = "homelab.yaml"):
        self.config_path = Path(config_path)
        self.raw_config: Optional[Dict[str, Any]] = None
        self.config: Optional[HomelabConfig] = None

    def load(self) -> HomelabConfig:
        """Load and validate the configuration file."""
        self.raw_config = read_document(self.config_path)
        self.config = build_config(self.raw_config, self.config_path)
        logger.debug(
            f"Loaded {len(self.config.services)} services and "
            f"{len(self.config.machines)} machines from {self.config_path}"
        )
        return self.config


def read_document(path: Path) -> Dict[str, Any]:
    """Read a configuration document as a plain mapping."""
    if not path.exists():
        raise ConfigNotFound(path)

    try:
        with open(path) as f:
            raw = yaml.safe_load(f)
    except yaml.YAMLError as exc:
        raise ConfigParseError(f"{path}: invalid YAML: {exc}") from exc

    if raw is None:
        raise ConfigParseError(f"{path}: config file is empty")
    if not isinstance(raw, dict):
        raise ConfigParseError(f"{path}: top level must be a mapping, got {type(raw).__name__}")
    return raw


def build_config(raw: Dict[str, Any], source_path: Optional[Path] = None) -> HomelabConfig:
    """Turn a raw document into a HomelabConfig with resolved deploy targets."""
    problems: List[str] = []

    machines = _build_machines(raw.get('machines'), problems)

    drivers = [key for key, machine in machines.items() if machine.driver]
    if len(drivers) > 1:
        problems.append(f"machines: only one machine may be the driver (found {', '.join(drivers)})")

    defaults = raw.get('defaults') or {}
    if not isinstance(defaults, dict):
        problems.append("defaults: must be a mapping")
        defaults = {}
    elif defaults.get('resources') is not None:
        try:
            ResourceSpec.model_validate(defaults['resources'])
        except ValidationError as exc:
            problems.extend(_format_validation_errors("defaults.resources", exc))

    services = _build_services(raw.get('services'), defaults, problems)
    categories = _as_categories(raw.get('categories'), problems)
    environment = _as_environment(raw.get('environment'), problems)
    secrets = _as_named_mapping('secrets', raw.get('secrets'), problems)
    networks = _as_named_mapping('networks', raw.get('networks'), problems)

    if problems:
        raise ConfigSchemaError(problems)

    config = HomelabConfig(
        machines=machines,
        services=services,
        categories=categories,
        defaults=defaults,
        environment=environment,
        secrets=secrets,
        networks=networks,
        version=str(raw.get('version', "2.0")),
        deployment=str(raw.get('deployment', "docker_compose")),
        source_path=source_path,
    )

    default_deploy = defaults.get('deploy')
    if not default_deploy:
        default_deploy = config.driver.key if config.driver else "any"
    machine_keys = list(machines)
    roles = config.roles()
    for service in services.values():
        service.resolve_target(machine_keys, roles, str(default_deploy))

    return config


def _build_machines(section: Any, problems: List[str]) -> Dict[str, Machine]:
    machines: Dict[str, Machine] = {}
    if section is None:
        return machines
    if not isinstance(section, dict):
        problems.append("machines: must be a mapping of machine keys")
        return machines

    for raw_key, entry in section.items():
        key = str(raw_key)
        if key in RESERVED_KEYWORDS:
            problems.append(f"machines.{key}: '{key}' is a reserved deploy keyword")
            continue
        if entry is None:
            entry = {}
        if not isinstance(entry, dict):
            problems.append(f"machines.{key}: must be a mapping")
            continue
        try:
            machines[key] = Machine.model_validate({**entry, 'key': key})
        except ValidationError as exc:
            problems.extend(_format_validation_errors(f"machines.{key}", exc))
    return machines


def _build_services(section: Any, defaults: Dict[str, Any], problems: List[str]) -> Dict[str, Service]:
    services: Dict[str, Service] = {}
    if section is None:
        problems.append("services: section is required")
        return services
    if not isinstance(section, dict):
        problems.append("services: must be a mapping of service keys")
        return services

    default_enabled = bool(defaults.get('enabled', False))
    for raw_key, entry in section.items():
        key = str(raw_key)
        if not isinstance(entry, dict):
            problems.append(f"services.{key}: must be a mapping")
            continue
        data = {**entry, 'key': key}
        data.setdefault('enabled', default_enabled)
        try:
            services[key] = Service.model_validate(data)
        except ValidationError as exc:
            problems.extend(_format_validation_errors(f"services.{key}", exc))
    return services


def _format_validation_errors(prefix: str, exc: ValidationError) -> List[str]:
    messages = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error['loc'])
        message = error['msg']
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        messages.append(f"{prefix}.{location}: {message}" if location else f"{prefix}: {message}")
    return messages


def _is_scalar(value: Any) -> bool:
    return isinstance(value, (str, int, float, bool))


def _as_categories(section: Any, problems: List[str]) -> Dict[str, str]:
    if not section:
        return {}
    if isinstance(section, list):
        if not all(_is_scalar(name) for name in section):
            problems.append("categories: list entries must be category names")
            return {}
        return {str(name): str(name) for name in section}
    if not isinstance(section, dict):
        problems.append("categories: must be a mapping or a list of names")
        return {}
    return {str(key): str(value) for key, value in section.items()}


def _as_environment(section: Any, problems: List[str]) -> Dict[str, str]:
    if not section:
        return {}
    if not isinstance(section, dict):
        problems.append("environment: must be a mapping of NAME: value")
        return {}
    environment = {}
    for key, value in section.items():
        if value is not None and not _is_scalar(value):
            problems.append(f"environment.{key}: must be a scalar value")
            continue
        environment[str(key)] = "" if value is None else str(value)
    return environment


def _as_named_mapping(name: str, section: Any, problems: List[str]) -> Dict[str, Dict[str, Any]]:
    """Accept ``{name: {...}}`` or a plain list of names."""
    if not section:
        return {}
    if isinstance(section, list):
        if not all(_is_scalar(entry) for entry in section):
            problems.append(f"{name}: list entries must be names")
            return {}
        return {str(entry): {} for entry in section}
    if not isinstance(section, dict):
        problems.append(f"{name}: must be a mapping or a list of names")
        return {}

    named = {}
    for key, options in section.items():
        if options is not None and not isinstance(options, dict):
            problems.append(f"{name}.{key}: must be a mapping")
            continue
        named[str(key)] = dict(options or {})
    return named
