"""Data models for homelab."""
from homelab.models.deploy_target import (
    AllMachines,
    AnyOne,
    DeployTarget,
    Role,
    SpecificMachine,
    parse_deploy_target,
)
from homelab.models.errors import (
    CircularDependencyError,
    ConfigError,
    ConfigNotFound,
    ConfigParseError,
    ConfigSchemaError,
    ConfigValidationError,
    DeploymentError,
    DnsApiError,
    DuplicateDomainError,
    HomelabError,
    RecordAlreadyExistsNotice,
    RemoteApplyError,
    RemoteCommandError,
    RemoteConnectivityError,
    UnknownDeployTargetWarning,
)
from homelab.models.homelab import HomelabConfig
from homelab.models.machine import Machine
from homelab.models.service import Service

__all__ = [
    'AllMachines',
    'AnyOne',
    'DeployTarget',
    'Role',
    'SpecificMachine',
    'parse_deploy_target',
    'CircularDependencyError',
    'ConfigError',
    'ConfigNotFound',
    'ConfigParseError',
    'ConfigSchemaError',
    'ConfigValidationError',
    'DeploymentError',
    'DnsApiError',
    'DuplicateDomainError',
    'HomelabError',
    'RecordAlreadyExistsNotice',
    'RemoteApplyError',
    'RemoteCommandError',
    'RemoteConnectivityError',
    'UnknownDeployTargetWarning',
    'HomelabConfig',
    'Machine',
    'Service',
]
