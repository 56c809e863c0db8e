"""homelab runtime settings."""
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional


@dataclass
class HomelabSettings:
    """Runtime settings for generation and deployment.

    Attributes:
        ssh_timeout: Seconds to wait for an SSH connection (default: 5)
        command_timeout: Seconds a remote command may run (default: 300)
        dns_timeout: Seconds per DNS API request (default: 10)
        ssh_key_file: Private key passed to ssh/scp
        remote_path: Directory on each machine that receives the bundle
        output_dir: Local directory for generated artifacts
        project_name: Compose project / Swarm stack name
        dns_url: DNS provider API base URL (default: driver machine, port 5380)
        dns_user: DNS provider login
        dns_password: DNS provider password
    """

    ssh_timeout: int = 5
    command_timeout: int = 300
    dns_timeout: int = 10
    ssh_key_file: str = str(Path.home() / ".ssh" / "selfhosted_rsa")
    remote_path: str = "/opt/homelab"
    output_dir: str = "generated"
    project_name: str = "homelab"
    dns_url: Optional[str] = None
    dns_user: str = "admin"
    dns_password: Optional[str] = None

    @classmethod
    def from_env(cls) -> "HomelabSettings":
        """Create settings from HOMELAB_* environment variables."""
        return cls(
            ssh_timeout=int(os.getenv("HOMELAB_SSH_TIMEOUT", cls.ssh_timeout)),
            command_timeout=int(os.getenv("HOMELAB_COMMAND_TIMEOUT", cls.command_timeout)),
            dns_timeout=int(os.getenv("HOMELAB_DNS_TIMEOUT", cls.dns_timeout)),
            ssh_key_file=os.getenv("HOMELAB_SSH_KEY_FILE", cls.ssh_key_file),
            remote_path=os.getenv("HOMELAB_REMOTE_PATH", cls.remote_path),
            output_dir=os.getenv("HOMELAB_OUTPUT_DIR", cls.output_dir),
            project_name=os.getenv("HOMELAB_PROJECT_NAME", cls.project_name),
            dns_url=os.getenv("HOMELAB_DNS_URL", cls.dns_url),
            dns_user=os.getenv("HOMELAB_DNS_USER", cls.dns_user),
            dns_password=os.getenv("HOMELAB_DNS_PASSWORD", cls.dns_password),
        )


_settings: Optional[HomelabSettings] = None


def get_settings() -> HomelabSettings:
    """Get the global settings, creating them from the environment on first use."""
    global _settings
    if _settings is None:
        _settings = HomelabSettings.from_env()
    return _settings


def set_settings(settings: Optional[HomelabSettings]):
    """Replace the global settings (None resets to environment defaults)."""
    global _settings
    _settings = settings
