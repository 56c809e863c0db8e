"""Domain naming: env-var normalization, FQDN expansion and uniqueness."""
import re
from collections import OrderedDict
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Tuple

from homelab.core.rendering import generated_header, render_template
from homelab.models.errors import ConfigError, ConfigSchemaError, ConfigValidationError, DuplicateDomainError
from homelab.models.service import Service

DOMAIN_PREFIX = "DOMAIN_"
RESERVED_LABELS = ("www", "mail", "ftp", "admin", "root", "localhost")
_LABEL_PATTERN = re.compile(r'^[a-z0-9-]*$')

DOMAINS_MARKDOWN = """{{ header }}
# Domain Mapping

Base domain: `{{ base_domain }}`

| Service | Variable | Domain |
|---------|----------|--------|
{% for row in rows %}
| {{ row.name }} | `{{ row.env_var }}` | {{ row.domain }} |
{% endfor %}
"""


def normalize_env_name(key: str) -> str:
    """Uppercase a service key and replace anything outside [A-Z0-9] with '_'."""
    return re.sub(r'[^A-Z0-9]', '_', key.upper())


def domain_env_var(key: str) -> str:
    return f"{DOMAIN_PREFIX}{normalize_env_name(key)}"


def expand_domain(service: Service, base_domain: str) -> str:
    """Fully-qualified domain for a service.

    An explicit domain containing a dot is used as-is; a bare label (or the
    service key when no domain is given) is placed under the base domain.
    """
    if service.domain and '.' in service.domain:
        return service.domain.lower()
    label = service.domain or service.key
    return f"{label}.{base_domain}".lower()


def _named_services(services: Iterable[Service]) -> List[Service]:
    return [svc for svc in services if svc.web_exposed or svc.domain]


def domain_conflicts(services: Iterable[Service], base_domain: str) -> List[Tuple[str, List[str]]]:
    """(domain, service keys) for every FQDN claimed by more than one service."""
    by_domain: Dict[str, List[str]] = OrderedDict()
    for service in _named_services(services):
        by_domain.setdefault(expand_domain(service, base_domain), []).append(service.key)
    return [(domain, keys) for domain, keys in by_domain.items() if len(keys) > 1]


def env_name_collisions(services: Iterable[Service]) -> List[str]:
    """Problems for service keys that normalize to the same DOMAIN_ variable."""
    by_env: Dict[str, List[str]] = OrderedDict()
    for service in _named_services(services):
        by_env.setdefault(domain_env_var(service.key), []).append(service.key)
    return [
        f"services.{keys[0]}: {env_var} is also produced by {', '.join(keys[1:])}"
        for env_var, keys in by_env.items()
        if len(keys) > 1
    ]


def validate_uniqueness(services: Iterable[Service], base_domain: str) -> None:
    """Raise if two services share an FQDN or a normalized env name.

    Every duplicated domain is reported in a single DuplicateDomainError.
    When env names collide as well, both are raised together in a
    ConfigValidationError.
    """
    services = list(services)
    problems: List[ConfigError] = []
    conflicts = domain_conflicts(services, base_domain)
    if conflicts:
        problems.append(DuplicateDomainError(conflicts))
    collisions = env_name_collisions(services)
    if collisions:
        problems.append(ConfigSchemaError(collisions))

    if len(problems) > 1:
        raise ConfigValidationError(problems)
    if problems:
        raise problems[0]


def validate_domain_patterns(services: Iterable[Service]) -> Tuple[List[str], List[str]]:
    """Check explicit domain labels.

    Returns:
        (errors, warnings): invalid characters are errors, reserved labels
        such as ``www`` or ``mail`` are warnings.
    """
    errors: List[str] = []
    warnings: List[str] = []
    for service in services:
        if not service.domain:
            continue
        for label in service.domain.split('.'):
            if not label or not _LABEL_PATTERN.match(label) or label.startswith('-'):
                errors.append(
                    f"services.{service.key}.domain: '{service.domain}' may only contain "
                    "lowercase letters, digits and hyphens"
                )
                break
        first_label = service.domain.split('.')[0]
        if first_label in RESERVED_LABELS:
            warnings.append(f"services.{service.key}.domain: '{first_label}' is a reserved name")
    return errors, warnings


@dataclass(frozen=True)
class ResolvedDomains:
    """Immutable DOMAIN_<KEY> -> FQDN map for one base domain."""

    base_domain: str
    by_env: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    by_service: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))

    def __contains__(self, service_key: str) -> bool:
        return service_key in self.by_service

    def domain_for(self, service_key: str) -> str:
        return self.by_service[service_key]

    def env_var_for(self, service_key: str) -> str:
        return domain_env_var(service_key)

    def as_env(self) -> Dict[str, str]:
        """Environment mapping with BASE_DOMAIN first."""
        env = {"BASE_DOMAIN": self.base_domain}
        env.update(self.by_env)
        return env


def resolve_domains(services: Iterable[Service], base_domain: str) -> ResolvedDomains:
    """Resolve domains for the web-exposed services, in the given order."""
    services = [svc for svc in services if svc.web_exposed]
    validate_uniqueness(services, base_domain)
    by_env = OrderedDict()
    by_service = OrderedDict()
    for service in services:
        domain = expand_domain(service, base_domain)
        by_env[domain_env_var(service.key)] = domain
        by_service[service.key] = domain
    return ResolvedDomains(
        base_domain=base_domain,
        by_env=MappingProxyType(dict(by_env)),
        by_service=MappingProxyType(dict(by_service)),
    )


def render_domains_file(resolved: ResolvedDomains, source: str = "homelab.yaml") -> str:
    """Render the .domains env file, BASE_DOMAIN line first."""
    lines = [generated_header(source).rstrip("\n")]
    lines.extend(f"{name}={value}" for name, value in resolved.as_env().items())
    return "\n".join(lines) + "\n"


def render_domain_mapping(
    resolved: ResolvedDomains,
    services: Mapping[str, Service],
    source: str = "homelab.yaml",
) -> str:
    """Render DOMAINS.md, a human-readable table of the domain mapping."""
    rows = [
        {
            'name': services[key].display_name if key in services else key,
            'env_var': domain_env_var(key),
            'domain': domain,
        }
        for key, domain in resolved.by_service.items()
    ]
    return render_template(
        DOMAINS_MARKDOWN,
        header=generated_header(source, comment="<!--").rstrip("\n"),
        base_domain=resolved.base_domain,
        rows=rows,
    )
