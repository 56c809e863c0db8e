"""Loaded homelab configuration."""
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Set

from homelab.models.machine import Machine
from homelab.models.service import Service

DEFAULT_BASE_DOMAIN = "homelab.local"


@dataclass
class HomelabConfig:
    """Machines, services and global settings from one configuration document.

    Dict ordering is the document order; every generator iterates in that
    order so output stays deterministic.
    """

    machines: Dict[str, Machine]
    services: Dict[str, Service]
    categories: Dict[str, str] = field(default_factory=dict)
    defaults: Dict[str, Any] = field(default_factory=dict)
    environment: Dict[str, str] = field(default_factory=dict)
    secrets: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    networks: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    version: str = "2.0"
    deployment: str = "docker_compose"
    source_path: Optional[Path] = None

    @property
    def base_domain(self) -> str:
        return str(self.environment.get("BASE_DOMAIN") or DEFAULT_BASE_DOMAIN)

    @property
    def driver(self) -> Optional[Machine]:
        """The machine the tool runs on, if one is designated."""
        for machine in self.machines.values():
            if machine.driver:
                return machine
        return self.machines.get("driver")

    @property
    def manager(self) -> Optional[Machine]:
        """Swarm manager: first manager-role machine, else the driver, else the first machine."""
        for machine in self.machines.values():
            if machine.role == "manager":
                return machine
        if self.driver is not None:
            return self.driver
        return next(iter(self.machines.values()), None)

    @property
    def source_name(self) -> str:
        return self.source_path.name if self.source_path else "homelab.yaml"

    def roles(self) -> Set[str]:
        return {machine.role for machine in self.machines.values()}

    def machines_with_role(self, role: str) -> List[Machine]:
        return [m for m in self.machines.values() if m.role == role]

    def enabled_services(self) -> Dict[str, Service]:
        return {key: svc for key, svc in self.services.items() if svc.enabled}

    def category_name(self, category: Optional[str]) -> str:
        if not category:
            return "Uncategorized"
        return self.categories.get(category, category)
