"""Abstract base class for DNS providers."""
from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class DnsRecord:
    """One DNS record; ``name`` is fully qualified."""

    type: str
    name: str
    target: str
    ttl: int = 3600

    def describe(self) -> str:
        return f"{self.name} {self.type} {self.target}"


class DnsProvider(ABC):
    """Abstract interface for authoritative DNS servers."""

    def __init__(self, mock: bool = False):
        """Initialize provider.

        Args:
            mock: If True, log requests instead of sending them
        """
        self.mock = mock

    @abstractmethod
    def create_zone(self, zone: str) -> bool:
        """Create a primary zone.

        Returns:
            True if created, False if it already existed
        """

    @abstractmethod
    def record_exists(self, record: DnsRecord, zone: str) -> bool:
        """Check whether a record with the same name and type exists."""

    @abstractmethod
    def add_record(self, record: DnsRecord, zone: str) -> None:
        """Create a record.

        Raises:
            RecordAlreadyExistsNotice: The server already has the record
            DnsApiError: Any other failure
        """
