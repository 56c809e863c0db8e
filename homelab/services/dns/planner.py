"""Plan and apply DNS records for machines and routed services."""
import ipaddress
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Tuple

from homelab.core.domains import ResolvedDomains, expand_domain, resolve_domains
from homelab.core.logger import get_logger
from homelab.models.errors import DnsApiError, RecordAlreadyExistsNotice
from homelab.models.homelab import HomelabConfig

from .base import DnsProvider, DnsRecord

logger = get_logger(__name__)


def _is_ip(value: Optional[str]) -> bool:
    if not value:
        return False
    try:
        ipaddress.ip_address(value)
    except ValueError:
        return False
    return True


@dataclass
class DnsApplyReport:
    """Outcome of applying a record plan."""

    created: List[DnsRecord] = field(default_factory=list)
    existing: List[DnsRecord] = field(default_factory=list)
    failed: List[Tuple[DnsRecord, str]] = field(default_factory=list)
    planned: List[DnsRecord] = field(default_factory=list)
    dry_run: bool = False

    @property
    def ok(self) -> bool:
        return not self.failed


class DnsRecordPlanner:
    """Derives A records for machines and CNAME records for routed services.

    Every routed service points at the manager machine's host name, where the
    reverse proxy listens.
    """

    def __init__(
        self,
        config: HomelabConfig,
        base_domain: Optional[str] = None,
        routed_services: Optional[Iterable[str]] = None,
        domains: Optional[ResolvedDomains] = None,
    ):
        self.config = config
        self.base_domain = base_domain or config.base_domain
        enabled = config.enabled_services()
        if routed_services is None:
            routed_services = [key for key, svc in enabled.items() if svc.web_exposed]
        self.routed_services = list(routed_services)
        self.domains = domains or resolve_domains(enabled.values(), self.base_domain)
        self.warnings: List[str] = []

    @property
    def zone(self) -> str:
        return self.base_domain

    def plan(self) -> List[DnsRecord]:
        """Records in a stable order: machines first, then services."""
        self.warnings = []
        records: List[DnsRecord] = []
        records.extend(self._machine_records())
        records.extend(self._service_records())
        return records

    def _machine_records(self) -> List[DnsRecord]:
        records = []
        for machine in self.config.machines.values():
            if _is_ip(machine.key):
                self._warn(f"machines.{machine.key}: key is an IP address, no A record")
                continue
            if not _is_ip(machine.ip):
                self._warn(f"machines.{machine.key}: address '{machine.ip}' is not an IP, no A record")
                continue
            records.append(DnsRecord("A", f"{machine.key}.{self.base_domain}", machine.ip))
        return records

    def _service_records(self) -> List[DnsRecord]:
        manager = self.config.manager
        if manager is None:
            if self.routed_services:
                self._warn("machines: no manager machine, no CNAME records")
            return []

        manager_host = f"{manager.key}.{self.base_domain}"
        records = []
        seen = set()
        for key in self.routed_services:
            if key in self.domains:
                fqdn = self.domains.domain_for(key)
            else:
                fqdn = expand_domain(self.config.services[key], self.base_domain)
            if fqdn == manager_host or fqdn in seen:
                continue
            if not fqdn.endswith(f".{self.base_domain}"):
                self._warn(f"services.{key}.domain: {fqdn} is outside zone {self.base_domain}")
                continue
            seen.add(fqdn)
            records.append(DnsRecord("CNAME", fqdn, manager_host))
        return records

    def apply(self, provider: DnsProvider, dry_run: bool = False) -> DnsApplyReport:
        """Create missing records; existing ones are left alone.

        A provider report that a record already exists counts as success.
        """
        records = self.plan()
        report = DnsApplyReport(dry_run=dry_run)

        if dry_run:
            for record in records:
                logger.info(f"Would create {record.describe()}")
                report.planned.append(record)
            return report

        provider.create_zone(self.zone)
        for record in records:
            try:
                if provider.record_exists(record, self.zone):
                    logger.debug(f"{record.describe()} already present")
                    report.existing.append(record)
                    continue
                provider.add_record(record, self.zone)
            except RecordAlreadyExistsNotice as notice:
                logger.info(f"{notice}")
                report.existing.append(record)
            except DnsApiError as exc:
                logger.error(f"✗ {record.describe()}: {exc}")
                report.failed.append((record, str(exc)))
            else:
                logger.info(f"✓ Created {record.describe()}")
                report.created.append(record)
        return report

    def _warn(self, message: str):
        self.warnings.append(message)
        logger.warning(f"⚠ {message}")
