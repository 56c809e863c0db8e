"""DNS record planning and provider adapters."""

from .base import DnsProvider, DnsRecord
from .planner import DnsApplyReport, DnsRecordPlanner
from .technitium import TechnitiumClient

__all__ = [
    "DnsApplyReport",
    "DnsProvider",
    "DnsRecord",
    "DnsRecordPlanner",
    "TechnitiumClient",
]
