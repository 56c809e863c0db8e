"""Machine models."""
from typing import Any, Dict, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

LOCAL_ADDRESSES = ("localhost", "127.0.0.1", "::1")


class Machine(BaseModel):
    """A host that can run services.

    ``host`` and ``user`` are accepted as legacy spellings of ``ip`` and
    ``ssh_user``.
    """

    model_config = ConfigDict(extra='allow', populate_by_name=True)

    key: str
    ip: Optional[str] = Field(None, validation_alias=AliasChoices('ip', 'host'))
    ssh_user: Optional[str] = Field(None, validation_alias=AliasChoices('ssh_user', 'user'))
    ssh_port: int = Field(22, ge=1, le=65535)
    role: str = "worker"
    hostname: Optional[str] = None
    labels: Dict[str, str] = Field(default_factory=dict)
    driver: bool = False
    local: bool = False

    @field_validator('labels', mode='before')
    @classmethod
    def normalize_labels(cls, v: Any) -> Dict[str, str]:
        """Accept a mapping or a list of ``key=value`` strings."""
        if v is None:
            return {}
        if isinstance(v, list):
            labels = {}
            for item in v:
                name, sep, value = str(item).partition('=')
                if not sep:
                    raise ValueError(f"Label '{item}' must look like key=value")
                labels[name.strip()] = value.strip()
            return labels
        if isinstance(v, dict):
            return {str(k): str(val) for k, val in v.items()}
        raise ValueError("labels must be a mapping or a list of key=value strings")

    @field_validator('role')
    @classmethod
    def normalize_role(cls, v: str) -> str:
        return v.strip().lower()

    @property
    def address(self) -> str:
        """Address used for SSH, falling back to the machine key."""
        return self.ip or self.key

    @property
    def node_hostname(self) -> str:
        """Hostname the machine registers under in a Swarm cluster."""
        return self.hostname or self.key

    @property
    def is_local(self) -> bool:
        return self.local or self.address in LOCAL_ADDRESSES

    def ssh_destination(self) -> str:
        if self.ssh_user:
            return f"{self.ssh_user}@{self.address}"
        return self.address
