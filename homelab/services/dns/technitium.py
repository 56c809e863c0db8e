"""Technitium DNS Server HTTP API client."""
from typing import Any, Dict, Optional

import requests

from homelab.core.logger import get_logger
from homelab.core.retry import retry
from homelab.models.errors import DnsApiError, RecordAlreadyExistsNotice

from .base import DnsProvider, DnsRecord

logger = get_logger(__name__)

DEFAULT_PORT = 5380


class TechnitiumClient(DnsProvider):
    """Talks to the Technitium REST API (``/api/...``).

    Every request carries an explicit timeout. Connection errors and
    timeouts are retried with backoff before surfacing as DnsApiError.
    """

    def __init__(
        self,
        base_url: str,
        username: str = "admin",
        password: Optional[str] = None,
        timeout: int = 10,
        mock: bool = False,
        session: Optional[requests.Session] = None,
    ):
        super().__init__(mock=mock)
        self.base_url = base_url.rstrip('/')
        self.username = username
        self.password = password
        self.timeout = timeout
        self.session = session or requests.Session()
        self.token: Optional[str] = None

    @classmethod
    def for_host(cls, host: str, **kwargs) -> "TechnitiumClient":
        return cls(f"http://{host}:{DEFAULT_PORT}", **kwargs)

    def login(self) -> str:
        if self.password is None:
            raise DnsApiError("DNS password is not set (HOMELAB_DNS_PASSWORD)")
        response = self._call("/api/user/login", {'user': self.username, 'pass': self.password}, auth=False)
        token = response.get('token')
        if not token:
            raise DnsApiError("Login response did not contain a token")
        self.token = token
        logger.debug(f"Logged in to DNS server at {self.base_url}")
        return token

    def wait_until_ready(self, attempts: int = 30, interval: float = 2.0) -> None:
        """Block until the server answers, retrying on connection problems."""
        probe = retry(max_attempts=attempts, delay=interval, backoff=1.0, exceptions=(DnsApiError,))(self.login)
        probe()

    def create_zone(self, zone: str) -> bool:
        try:
            self._call("/api/zones/create", {'zone': zone, 'type': 'Primary'})
        except DnsApiError as exc:
            if "already exists" in str(exc).lower():
                logger.info(f"Zone {zone} already exists")
                return False
            raise
        logger.info(f"✓ Created zone {zone}")
        return True

    def record_exists(self, record: DnsRecord, zone: str) -> bool:
        response = self._call("/api/zones/records/get", {'domain': record.name, 'zone': zone})
        for existing in response.get('records', []):
            if existing.get('type') == record.type and existing.get('name', record.name) == record.name:
                return True
        return False

    def add_record(self, record: DnsRecord, zone: str) -> None:
        params = {
            'domain': record.name,
            'zone': zone,
            'type': record.type,
            'ttl': record.ttl,
        }
        if record.type == "A":
            params['ipAddress'] = record.target
        elif record.type == "CNAME":
            params['cname'] = record.target
        else:
            raise DnsApiError(f"Unsupported record type: {record.type}")

        try:
            self._call("/api/zones/records/add", params)
        except DnsApiError as exc:
            if "already exists" in str(exc).lower():
                raise RecordAlreadyExistsNotice(f"{record.describe()}: {exc}") from exc
            raise

    def _call(self, path: str, params: Dict[str, Any], auth: bool = True) -> Dict[str, Any]:
        """POST to the API and return the ``response`` payload."""
        if self.mock:
            logger.info(f"MOCK: Would POST {path} {self._redact(params)}")
            if path == "/api/user/login":
                return {'token': 'mock-token'}
            return {}

        if auth:
            if self.token is None:
                self.login()
            params = {**params, 'token': self.token}

        try:
            response = self._post(f"{self.base_url}{path}", params)
            response.raise_for_status()
            payload = response.json()
        except requests.RequestException as exc:
            raise DnsApiError(f"{path}: {exc}") from exc
        except ValueError as exc:
            raise DnsApiError(f"{path}: response is not JSON") from exc

        if payload.get('status') != "ok":
            message = payload.get('errorMessage') or payload.get('status') or "unknown error"
            raise DnsApiError(f"{path}: {message}")
        if path == "/api/user/login":
            return payload
        return payload.get('response') or {}

    @retry(max_attempts=3, delay=1.0, exceptions=(requests.ConnectionError, requests.Timeout))
    def _post(self, url: str, params: Dict[str, Any]) -> requests.Response:
        return self.session.post(url, data=params, timeout=self.timeout)

    @staticmethod
    def _redact(params: Dict[str, Any]) -> Dict[str, Any]:
        return {k: ("***" if k in ('pass', 'token') else v) for k, v in params.items()}
