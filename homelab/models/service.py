"""Service configuration models."""
import re
from typing import Any, Dict, Iterable, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, field_validator, model_validator

from homelab.models.deploy_target import DeployTarget, parse_deploy_target

DEFAULT_STARTUP_PRIORITY = 10

# Database, cache and broker ports that never get a reverse-proxy route
NON_WEB_PORTS = frozenset({
    5432, 3306, 27017, 6379, 9200, 5672, 1433, 1521, 5984, 8086, 9042, 7000, 7001,
})


class StorageSpec(BaseModel):
    """Persistent storage for a service."""

    model_config = ConfigDict(extra='forbid')

    type: Literal["volume", "local", "nfs"] = "volume"
    path: Optional[str] = Field(None, description="Host path (local) or path below the NFS mount root (nfs)")
    mount: str = Field("/data", description="Mount point inside the container")
    size: Optional[str] = None

    @field_validator('mount')
    @classmethod
    def validate_mount(cls, v):
        if not v.startswith('/'):
            raise ValueError(f"Mount path must be absolute (start with /). Got: {v}")
        return v

    @model_validator(mode='after')
    def validate_local_path(self) -> 'StorageSpec':
        if self.type == "local" and not self.path:
            raise ValueError("Local storage requires a host path")
        return self


class ResourceLimits(BaseModel):
    model_config = ConfigDict(extra='forbid')

    cpus: Optional[str] = None
    memory: Optional[str] = None

    @field_validator('cpus', mode='before')
    @classmethod
    def cpus_as_string(cls, v):
        return None if v is None else str(v)

    @field_validator('memory')
    @classmethod
    def validate_memory(cls, v):
        if v is not None and not re.match(r'^\d+(\.\d+)?[bkmgBKMG]?$', v):
            raise ValueError(f"Memory must look like '512M' or '2G'. Got: {v}")
        return v


class ResourceSpec(BaseModel):
    model_config = ConfigDict(extra='forbid')

    limits: Optional[ResourceLimits] = None
    reservations: Optional[ResourceLimits] = None


class HealthCheckSpec(BaseModel):
    """HTTP health check probed with curl inside the container."""

    model_config = ConfigDict(extra='forbid')

    enabled: bool = True
    endpoint: str = "/health"
    interval: str = "30s"
    timeout: str = "10s"
    retries: int = Field(3, ge=1)
    start_period: Optional[str] = None

    @field_validator('interval', 'timeout', 'start_period', mode='before')
    @classmethod
    def seconds_as_duration(cls, v):
        if isinstance(v, int):
            return f"{v}s"
        return v

    @field_validator('endpoint')
    @classmethod
    def validate_endpoint(cls, v):
        if not v.startswith('/'):
            return f"/{v}"
        return v


class NginxOptions(BaseModel):
    model_config = ConfigDict(extra='forbid')

    template_file: Optional[str] = None
    additional_config: Optional[str] = None
    upstream: Optional[str] = None


class SwarmOptions(BaseModel):
    """Swarm-only placement and rollout settings."""

    model_config = ConfigDict(extra='forbid')

    constraints: List[str] = Field(default_factory=list)
    preferences: List[str] = Field(default_factory=list)
    node_labels: Dict[str, str] = Field(default_factory=dict)
    update_config: Dict[str, Any] = Field(default_factory=dict)
    restart_policy: Dict[str, Any] = Field(default_factory=dict)
    labels: Dict[str, str] = Field(default_factory=dict)


class Service(BaseModel):
    """A self-hosted service as declared under ``services:``."""

    model_config = ConfigDict(extra='allow')

    key: str
    name: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    image: Optional[str] = None
    container: Dict[str, Any] = Field(default_factory=dict)
    port: Optional[int] = Field(None, ge=1, le=65535)
    ports: List[Union[int, str]] = Field(default_factory=list)
    domain: Optional[str] = None
    deploy: Optional[str] = None
    enabled: bool = False
    depends_on: List[str] = Field(default_factory=list)
    startup_priority: Optional[int] = None
    web: Optional[bool] = None
    storage: Union[bool, StorageSpec, str, None] = None
    volumes: List[str] = Field(default_factory=list)
    environment: Dict[str, Any] = Field(default_factory=dict)
    networks: List[str] = Field(default_factory=list)
    replicas: Optional[int] = Field(None, ge=1)
    resources: Optional[ResourceSpec] = None
    secrets: List[str] = Field(default_factory=list)
    health_check: Optional[HealthCheckSpec] = None
    compose: Dict[str, Any] = Field(default_factory=dict)
    swarm: SwarmOptions = Field(default_factory=SwarmOptions)
    nginx: NginxOptions = Field(default_factory=NginxOptions)
    kubernetes: Dict[str, Any] = Field(default_factory=dict)

    _target: Optional[DeployTarget] = PrivateAttr(default=None)

    @field_validator('depends_on', 'secrets', 'networks', 'volumes', mode='before')
    @classmethod
    def listify(cls, v):
        if v is None:
            return []
        if isinstance(v, str):
            return [v]
        return v

    @field_validator('environment', mode='before')
    @classmethod
    def normalize_environment(cls, v):
        """Accept a mapping or a list of ``KEY=VALUE`` strings."""
        if v is None:
            return {}
        if isinstance(v, list):
            env = {}
            for item in v:
                name, _, value = str(item).partition('=')
                env[name] = value
            return env
        return v

    @field_validator('health_check', mode='before')
    @classmethod
    def normalize_health_check(cls, v):
        if v is None or v is False:
            return None
        if v is True:
            return {}
        if isinstance(v, str):
            return {'endpoint': v}
        return v

    @field_validator('ports')
    @classmethod
    def validate_ports(cls, v):
        for entry in v:
            if isinstance(entry, str) and not re.match(r'^(\d+:)?\d+(/(tcp|udp))?$', entry):
                raise ValueError(f"Port '{entry}' must look like 8080 or 8080:80")
        return v

    @field_validator('storage')
    @classmethod
    def validate_storage_size(cls, v):
        if isinstance(v, str) and not re.match(r'^\d+(\.\d+)?\s*[KMGT]i?B?$', v, re.IGNORECASE):
            raise ValueError(f"Storage size must look like '10GB'. Got: {v}")
        return v

    @model_validator(mode='after')
    def validate_image_and_port(self) -> 'Service':
        if not self.container_image:
            raise ValueError("Service requires an image (image, container.image or compose.image)")
        if self.web is True and self.primary_port is None:
            raise ValueError("Service is marked web: true but declares no port")
        return self

    @property
    def display_name(self) -> str:
        return self.name or self.key

    @property
    def container_image(self) -> Optional[str]:
        return self.image or self.container.get('image') or self.compose.get('image')

    @property
    def published_ports(self) -> List[str]:
        """Ports as ``host:container`` pairs, in declaration order."""
        published = []
        if self.port is not None:
            published.append(f"{self.port}:{self.port}")
        for entry in self.ports:
            text = str(entry)
            mapping = text if ':' in text else f"{text}:{text}"
            if mapping not in published:
                published.append(mapping)
        return published

    @property
    def primary_port(self) -> Optional[int]:
        """Container-side port the reverse proxy forwards to."""
        if self.port is not None:
            return self.port
        for entry in self.ports:
            container_side = str(entry).split(':')[-1].split('/')[0]
            if container_side.isdigit():
                return int(container_side)
        return None

    @property
    def web_exposed(self) -> bool:
        """Whether the service gets a reverse-proxy route and a domain."""
        if self.web is False:
            return False
        port = self.primary_port
        if port is None:
            return False
        if self.web is True or self.domain:
            return True
        return port not in NON_WEB_PORTS

    @property
    def priority(self) -> int:
        if self.startup_priority is None:
            return DEFAULT_STARTUP_PRIORITY
        return self.startup_priority

    @property
    def target(self) -> DeployTarget:
        if self._target is None:
            raise RuntimeError(f"Deploy target of service '{self.key}' has not been resolved")
        return self._target

    def resolve_target(
        self,
        machine_keys: Iterable[str],
        roles: Iterable[str],
        default_deploy: str,
    ) -> DeployTarget:
        """Resolve ``deploy`` once; called by the loader."""
        self._target = parse_deploy_target(self.deploy or default_deploy, machine_keys, roles)
        return self._target
