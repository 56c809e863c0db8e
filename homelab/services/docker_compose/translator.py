"""Translate the homelab model into Docker Compose documents."""
from typing import Any, Dict, List, Optional

from homelab.core.domains import ResolvedDomains
from homelab.core.logger import get_logger
from homelab.core.placement import DeploymentTargetSet, resolve_targets
from homelab.models.errors import ConfigSchemaError
from homelab.models.homelab import HomelabConfig
from homelab.models.service import Service

from .blocks import (
    NETWORK_NAME,
    PROXY_IMAGE,
    PROXY_PORTS,
    PROXY_SERVICE,
    deep_merge,
    environment_list,
    healthcheck_block,
    is_certificate_secret,
    network_names,
    secret_definition,
    storage_volumes,
)

logger = get_logger(__name__)

ALL_SCOPE = "all"
COMPOSE_VERSION = "3.8"
ACME_SERVICE = "acme"
ACME_IMAGE = "neilpang/acme.sh:latest"


class ComposeTranslator:
    """Builds one Compose document per machine, or one for every machine.

    Only enabled services are included. The reverse proxy is added whenever a
    web-exposed service lands in the scope, and the ACME companion whenever a
    certificate secret is referenced.
    """

    def __init__(
        self,
        config: HomelabConfig,
        domains: ResolvedDomains,
        targets: Optional[DeploymentTargetSet] = None,
    ):
        self.config = config
        self.domains = domains
        self.targets = targets if targets is not None else resolve_targets(config)

    def scope_services(self, scope: str = ALL_SCOPE) -> List[Service]:
        """Enabled services placed in a scope, in document order."""
        if scope == ALL_SCOPE:
            keys = set(self.targets.placed_services())
        elif scope in self.config.machines:
            keys = set(self.targets.services_for(scope))
        else:
            raise ConfigSchemaError(f"machines.{scope}: no such machine")
        return [svc for key, svc in self.config.services.items() if key in keys]

    def translate(self, scope: str = ALL_SCOPE) -> Dict[str, Any]:
        """Build the Compose document for a machine key or ``all``."""
        services = self.scope_services(scope)
        keys = [svc.key for svc in services]
        web_keys = [svc.key for svc in services if svc.web_exposed and svc.key != PROXY_SERVICE]
        include_proxy = bool(web_keys) and PROXY_SERVICE not in keys

        document: Dict[str, Any] = {'version': COMPOSE_VERSION, 'services': {}}
        named_volumes: List[str] = []
        secrets: List[str] = []
        networks: List[str] = [NETWORK_NAME]

        for service in services:
            document['services'][service.key] = self._service_block(service, keys, include_proxy)
            _, named = storage_volumes(service, self.config.defaults)
            named_volumes.extend(name for name in named if name not in named_volumes)
            secrets.extend(name for name in service.secrets if name not in secrets)
            networks.extend(name for name in network_names(service) if name not in networks)

        if include_proxy:
            document['services'][PROXY_SERVICE] = self._proxy_block(web_keys)

        if any(is_certificate_secret(name, self.config) for name in secrets) and ACME_SERVICE not in keys:
            document['services'][ACME_SERVICE] = self._acme_block()

        document['networks'] = {
            name: self.config.networks.get(name) or {'driver': 'bridge'} for name in networks
        }
        if named_volumes:
            document['volumes'] = {name: {} for name in named_volumes}
        if secrets:
            document['secrets'] = {
                name: secret_definition(name, self.config, default_external=False) for name in secrets
            }

        logger.debug(f"Compose scope '{scope}': {len(services)} services")
        return document

    def _service_block(self, service: Service, scope_keys: List[str], include_proxy: bool) -> Dict[str, Any]:
        block: Dict[str, Any] = {
            'image': service.container_image,
            'container_name': service.key,
        }

        ports: List[str] = []
        expose: List[str] = []
        for mapping in service.published_ports:
            host_port, _, container_port = mapping.partition(':')
            if include_proxy and host_port in PROXY_PORTS:
                expose.append(container_port)
            else:
                ports.append(mapping)
        if ports:
            block['ports'] = ports
        if expose:
            block['expose'] = expose

        if service.environment:
            block['environment'] = environment_list(service.environment)

        volumes, _ = storage_volumes(service, self.config.defaults)
        if volumes:
            block['volumes'] = volumes

        depends_on = [dep for dep in service.depends_on if dep in scope_keys]
        if depends_on:
            block['depends_on'] = depends_on

        if service.secrets:
            block['secrets'] = list(service.secrets)

        block['networks'] = network_names(service)
        block['restart'] = 'unless-stopped'

        healthcheck = healthcheck_block(service)
        if healthcheck:
            block['healthcheck'] = healthcheck

        if service.compose:
            block = deep_merge(block, service.compose)
        return block

    def _proxy_block(self, web_keys: List[str]) -> Dict[str, Any]:
        return {
            'image': PROXY_IMAGE,
            'container_name': PROXY_SERVICE,
            'ports': [f"{port}:{port}" for port in PROXY_PORTS],
            'env_file': ['.domains'],
            'volumes': [
                './nginx/nginx.conf:/etc/nginx/nginx.conf:ro',
                './nginx/templates:/etc/nginx/templates:ro',
                './nginx/includes:/etc/nginx/conf.d/includes:ro',
                './ssl:/etc/nginx/ssl:ro',
            ],
            'depends_on': list(web_keys),
            'labels': {'sh.acme.autoload.domain': self.domains.base_domain},
            'networks': [NETWORK_NAME],
            'restart': 'unless-stopped',
        }

    def _acme_block(self) -> Dict[str, Any]:
        return {
            'image': ACME_IMAGE,
            'container_name': ACME_SERVICE,
            'command': 'daemon',
            'volumes': [
                './ssl:/acme.sh',
                '/var/run/docker.sock:/var/run/docker.sock',
            ],
            'environment': [
                f"DEPLOY_DOCKER_CONTAINER_LABEL=sh.acme.autoload.domain={self.domains.base_domain}",
                'DEPLOY_DOCKER_CONTAINER_KEY_FILE=/etc/nginx/ssl/key.pem',
                'DEPLOY_DOCKER_CONTAINER_FULLCHAIN_FILE=/etc/nginx/ssl/fullchain.pem',
                'DEPLOY_DOCKER_CONTAINER_RELOAD_CMD=nginx -s reload',
            ],
            'networks': [NETWORK_NAME],
            'restart': 'unless-stopped',
        }
