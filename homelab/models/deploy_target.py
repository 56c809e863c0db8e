"""Where a service should run.

A deploy value from the configuration is resolved exactly once into one of
four variants. Translators branch on the variant type instead of comparing
raw strings.
"""
from dataclasses import dataclass
from typing import Iterable, Optional, Union

ALL_KEYWORD = "all"
ANY_KEYWORDS = ("any", "random")
RESERVED_KEYWORDS = (ALL_KEYWORD,) + ANY_KEYWORDS
KNOWN_ROLES = ("manager", "worker")


@dataclass(frozen=True)
class AllMachines:
    """Run on every machine."""

    def describe(self) -> str:
        return ALL_KEYWORD


@dataclass(frozen=True)
class AnyOne:
    """Run on exactly one machine, chosen by the generator."""

    strategy: str = "any"

    def describe(self) -> str:
        return self.strategy


@dataclass(frozen=True)
class SpecificMachine:
    """Run on one named machine."""

    key: str

    def describe(self) -> str:
        return self.key


@dataclass(frozen=True)
class Role:
    """Run on machines carrying a cluster role (manager/worker)."""

    name: str

    def describe(self) -> str:
        return f"role:{self.name}"


DeployTarget = Union[AllMachines, AnyOne, SpecificMachine, Role]


def parse_deploy_target(
    value: str,
    machine_keys: Iterable[str],
    roles: Optional[Iterable[str]] = None,
) -> DeployTarget:
    """Resolve a raw deploy value against the defined machines.

    Machine keys win over role names so a machine called ``manager`` stays
    addressable. Unknown values resolve to a SpecificMachine; placement
    reports them as unknown targets.
    """
    value = str(value).strip()
    if value == ALL_KEYWORD:
        return AllMachines()
    if value in ANY_KEYWORDS:
        return AnyOne(strategy=value)
    if value in set(machine_keys):
        return SpecificMachine(key=value)
    known_roles = set(KNOWN_ROLES)
    if roles:
        known_roles.update(roles)
    if value in known_roles:
        return Role(name=value)
    return SpecificMachine(key=value)
