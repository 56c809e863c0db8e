"""Translate the homelab model into a Docker Swarm stack document."""
import warnings
from typing import Any, Dict, List, Optional, Tuple

from homelab.core.domains import ResolvedDomains
from homelab.core.logger import get_logger
from homelab.models.deploy_target import KNOWN_ROLES, AllMachines, AnyOne, Role, SpecificMachine
from homelab.models.errors import UnknownDeployTargetWarning
from homelab.models.homelab import HomelabConfig
from homelab.models.service import ResourceSpec, Service
from homelab.services.docker_compose.blocks import (
    NETWORK_NAME,
    PROXY_IMAGE,
    PROXY_PORTS,
    PROXY_SERVICE,
    certificate_secrets,
    environment_list,
    healthcheck_block,
    network_names,
    secret_definition,
    storage_volumes,
)

logger = get_logger(__name__)

STACK_VERSION = "3.8"
VALID_MODES = ("replicated", "global")
DEFAULT_UPDATE_CONFIG = {'parallelism': 1, 'delay': '10s'}
DEFAULT_RESTART_POLICY = {'condition': 'on-failure'}

# Secrets the reverse proxy reads its certificate from (/run/secrets/<name>)
CERTIFICATE_SECRET = "ssl_full.pem"
CERTIFICATE_KEY_SECRET = "ssl_key.pem"


class SwarmTranslator:
    """Builds a single Swarm stack document for all enabled services."""

    def __init__(self, config: HomelabConfig, domains: ResolvedDomains):
        self.config = config
        self.domains = domains
        self.skipped: Dict[str, str] = {}

    def translate(self) -> Dict[str, Any]:
        stack: Dict[str, Any] = {'version': STACK_VERSION, 'services': {}}
        named_volumes: List[str] = []
        secrets: List[str] = []
        networks: List[str] = [NETWORK_NAME]

        placed = []
        for service in self.config.enabled_services().values():
            placement = self._placement(service)
            if placement is not None:
                placed.append((service, placement))

        include_proxy = PROXY_SERVICE not in {service.key for service, _ in placed} and any(
            service.web_exposed for service, _ in placed
        )

        for service, placement in placed:
            stack['services'][service.key] = self._service_block(service, placement, include_proxy)
            _, named = storage_volumes(service, self.config.defaults)
            named_volumes.extend(name for name in named if name not in named_volumes)
            secrets.extend(name for name in service.secrets if name not in secrets)
            networks.extend(name for name in network_names(service) if name not in networks)

        if include_proxy:
            proxy_secrets = certificate_secrets(self.config)
            stack['services'][PROXY_SERVICE] = self._proxy_block(proxy_secrets)
            secrets.extend(name for name in proxy_secrets if name not in secrets)

        stack['networks'] = {
            name: self.config.networks.get(name) or {'driver': 'overlay', 'attachable': True}
            for name in networks
        }
        if named_volumes:
            stack['volumes'] = {name: {'driver': 'local'} for name in named_volumes}
        if secrets:
            stack['secrets'] = {
                name: secret_definition(name, self.config, default_external=True) for name in secrets
            }
        return stack

    def _placement(self, service: Service) -> Optional[Tuple[str, List[str]]]:
        """Return (mode, constraints) for a service, or None if it cannot be placed."""
        target = service.target
        if isinstance(target, AllMachines):
            mode, constraints = "global", []
        elif isinstance(target, AnyOne):
            mode, constraints = "replicated", []
        elif isinstance(target, SpecificMachine):
            machine = self.config.machines.get(target.key)
            if machine is None:
                message = f"services.{service.key}.deploy: no machine matches '{target.key}'"
                self.skipped[service.key] = message
                logger.warning(f"⚠ {message}; service skipped")
                warnings.warn(message, UnknownDeployTargetWarning, stacklevel=2)
                return None
            mode, constraints = "replicated", [f"node.hostname == {machine.node_hostname}"]
        elif isinstance(target, Role):
            if target.name in KNOWN_ROLES:
                constraints = [f"node.role == {target.name}"]
            else:
                constraints = [f"node.labels.role == {target.name}"]
            mode = "replicated"
        else:
            raise TypeError(f"Unsupported deploy target: {target!r}")

        constraints.extend(service.swarm.constraints)
        constraints.extend(f"node.labels.{k} == {v}" for k, v in service.swarm.node_labels.items())
        return mode, constraints

    def _service_block(
        self, service: Service, placement: Tuple[str, List[str]], include_proxy: bool
    ) -> Dict[str, Any]:
        block: Dict[str, Any] = {'image': service.container_image}

        # The generated proxy owns host ports 80/443
        ports = [
            mapping for mapping in service.published_ports
            if not (include_proxy and mapping.partition(':')[0] in PROXY_PORTS)
        ]
        if ports:
            block['ports'] = ports
        if service.environment:
            block['environment'] = environment_list(service.environment)
        volumes, _ = storage_volumes(service, self.config.defaults)
        if volumes:
            block['volumes'] = volumes
        if service.secrets:
            block['secrets'] = list(service.secrets)
        block['networks'] = network_names(service)

        healthcheck = healthcheck_block(service)
        if healthcheck:
            block['healthcheck'] = healthcheck

        block['deploy'] = self._deploy_block(service, *placement)
        return block

    def _deploy_block(self, service: Service, mode: str, constraints: List[str]) -> Dict[str, Any]:
        deploy: Dict[str, Any] = {'mode': mode}
        if mode == "replicated":
            deploy['replicas'] = service.replicas or 1

        placement: Dict[str, Any] = {}
        if constraints:
            placement['constraints'] = constraints
        if service.swarm.preferences:
            placement['preferences'] = [{'spread': pref} for pref in service.swarm.preferences]
        if placement:
            deploy['placement'] = placement

        resources = self._resources(service)
        if resources:
            deploy['resources'] = resources

        deploy['update_config'] = {**DEFAULT_UPDATE_CONFIG, **service.swarm.update_config}
        deploy['restart_policy'] = {**DEFAULT_RESTART_POLICY, **service.swarm.restart_policy}
        if service.swarm.labels:
            deploy['labels'] = dict(service.swarm.labels)
        return deploy

    def _resources(self, service: Service) -> Dict[str, Any]:
        spec = service.resources
        if spec is None and self.config.defaults.get('resources'):
            spec = ResourceSpec.model_validate(self.config.defaults['resources'])
        if spec is None:
            return {}
        return spec.model_dump(exclude_none=True)

    def _proxy_block(self, proxy_secrets: List[str]) -> Dict[str, Any]:
        block: Dict[str, Any] = {
            'image': PROXY_IMAGE,
            'ports': [f"{port}:{port}" for port in PROXY_PORTS],
            'env_file': ['.domains'],
            'volumes': [
                './nginx/nginx.conf:/etc/nginx/nginx.conf:ro',
                './nginx/templates:/etc/nginx/templates:ro',
                './nginx/includes:/etc/nginx/conf.d/includes:ro',
            ],
            'networks': [NETWORK_NAME],
            'deploy': {
                'mode': 'replicated',
                'replicas': 1,
                'placement': {'constraints': ['node.role == manager']},
                'update_config': dict(DEFAULT_UPDATE_CONFIG),
                'restart_policy': dict(DEFAULT_RESTART_POLICY),
            },
        }
        if proxy_secrets:
            block['secrets'] = list(proxy_secrets)
        return block


def validate_stack(stack: Dict[str, Any]) -> List[str]:
    """Structural check of a stack document against the Compose 3.8 rules Swarm enforces.

    Returns:
        Problems found; empty when the stack is deployable.
    """
    problems: List[str] = []
    if not isinstance(stack.get('version'), str):
        problems.append("version: must be a string such as '3.8'")

    services = stack.get('services')
    if not isinstance(services, dict):
        return problems + ["services: must be a mapping"]

    declared_secrets = stack.get('secrets') or {}
    declared_networks = stack.get('networks') or {}
    declared_volumes = stack.get('volumes') or {}

    for name, definition in declared_secrets.items():
        if not isinstance(definition, dict) or not (definition.get('external') or definition.get('file')):
            problems.append(f"secrets.{name}: must be external or name a file")

    for key, block in services.items():
        prefix = f"services.{key}"
        if not block.get('image'):
            problems.append(f"{prefix}: image is required")

        deploy = block.get('deploy') or {}
        mode = deploy.get('mode', 'replicated')
        if mode not in VALID_MODES:
            problems.append(f"{prefix}.deploy.mode: must be one of {', '.join(VALID_MODES)}")
        if mode == 'global' and 'replicas' in deploy:
            problems.append(f"{prefix}.deploy.replicas: not allowed in global mode")
        replicas = deploy.get('replicas')
        if replicas is not None and (not isinstance(replicas, int) or replicas < 0):
            problems.append(f"{prefix}.deploy.replicas: must be a non-negative integer")
        for constraint in (deploy.get('placement') or {}).get('constraints', []):
            if '==' not in constraint and '!=' not in constraint:
                problems.append(f"{prefix}.deploy.placement.constraints: '{constraint}' needs == or !=")

        for secret in block.get('secrets', []):
            secret_name = secret.get('source') if isinstance(secret, dict) else secret
            if secret_name not in declared_secrets:
                problems.append(f"{prefix}.secrets: '{secret_name}' is not declared at top level")
        for network in block.get('networks', []):
            if network not in declared_networks:
                problems.append(f"{prefix}.networks: '{network}' is not declared at top level")
        for volume in block.get('volumes', []):
            source, sep, _ = str(volume).partition(':')
            is_named = sep and not source.startswith(('/', '.', '~', '$'))
            if is_named and source not in declared_volumes:
                problems.append(f"{prefix}.volumes: '{source}' is not declared at top level")
    return problems
