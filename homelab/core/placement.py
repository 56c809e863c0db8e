"""Deployment target sets: which enabled services run on which machine."""
import warnings
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from homelab.core.logger import get_logger
from homelab.models.deploy_target import AllMachines, AnyOne, Role, SpecificMachine
from homelab.models.errors import UnknownDeployTargetWarning
from homelab.models.homelab import HomelabConfig
from homelab.models.service import Service

logger = get_logger(__name__)


@dataclass
class DeploymentTargetSet:
    """Machine key -> ordered service keys, plus services that could not be placed."""

    assignments: Dict[str, List[str]] = field(default_factory=dict)
    unplaced: Dict[str, str] = field(default_factory=dict)

    def services_for(self, machine_key: str) -> List[str]:
        return list(self.assignments.get(machine_key, []))

    def machines_for(self, service_key: str) -> List[str]:
        return [machine for machine, keys in self.assignments.items() if service_key in keys]

    def placed_services(self) -> List[str]:
        placed: List[str] = []
        for keys in self.assignments.values():
            for key in keys:
                if key not in placed:
                    placed.append(key)
        return placed

    def active_machines(self) -> List[str]:
        """Machines with at least one assigned service."""
        return [machine for machine, keys in self.assignments.items() if keys]


def target_machines(service: Service, config: HomelabConfig) -> List[str]:
    """Machine keys a service resolves to, in document order.

    ``any``/``random`` deterministically pick the first machine.
    """
    target = service.target
    machine_keys = list(config.machines)
    if isinstance(target, AllMachines):
        return machine_keys
    if isinstance(target, AnyOne):
        return machine_keys[:1]
    if isinstance(target, SpecificMachine):
        return [target.key] if target.key in config.machines else []
    if isinstance(target, Role):
        return [m.key for m in config.machines_with_role(target.name)]
    raise TypeError(f"Unsupported deploy target: {target!r}")


def resolve_targets(
    config: HomelabConfig,
    services: Optional[Iterable[Service]] = None,
) -> DeploymentTargetSet:
    """Build the target set for enabled services.

    Services whose target names an undefined machine (or a role no machine
    carries) are excluded and reported with UnknownDeployTargetWarning.
    """
    if services is None:
        services = config.enabled_services().values()

    targets = DeploymentTargetSet(assignments={key: [] for key in config.machines})
    for service in services:
        machines = target_machines(service, config)
        if not machines:
            description = service.target.describe()
            message = f"services.{service.key}.deploy: no machine matches '{description}'"
            targets.unplaced[service.key] = message
            logger.warning(f"⚠ {message}; service skipped")
            warnings.warn(message, UnknownDeployTargetWarning, stacklevel=2)
            continue
        for machine in machines:
            targets.assignments[machine].append(service.key)
    return targets
