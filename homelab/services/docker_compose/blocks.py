"""Building blocks shared by the Compose and Swarm translators."""
import copy
from typing import Any, Dict, List, Optional, Tuple

from homelab.models.homelab import HomelabConfig
from homelab.models.service import Service, StorageSpec

NETWORK_NAME = "homelab"
PROXY_SERVICE = "reverseproxy"
PROXY_IMAGE = "nginx:alpine"
PROXY_PORTS = ("80", "443")
DEFAULT_NFS_MOUNT_ROOT = "/mnt/nfs"


def deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Return ``base`` with ``override`` merged in; nested mappings merge, everything else is replaced."""
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def environment_list(environment: Dict[str, Any]) -> List[str]:
    """Render an environment mapping as ``KEY=VALUE`` strings."""
    entries = []
    for name, value in environment.items():
        if isinstance(value, bool):
            value = "true" if value else "false"
        elif value is None:
            value = ""
        entries.append(f"{name}={value}")
    return entries


def storage_volumes(service: Service, defaults: Dict[str, Any]) -> Tuple[List[str], List[str]]:
    """Volume entries for a service and the named volumes they need.

    ``storage: true`` or a size string gives a ``<key>_data`` named volume;
    local storage binds a host path; NFS storage binds a path below the NFS
    mount root (``defaults.nfs_mount_root``).
    """
    entries: List[str] = []
    named: List[str] = []
    storage = service.storage

    if storage is True or isinstance(storage, str):
        storage = StorageSpec()
    if isinstance(storage, StorageSpec):
        if storage.type == "local":
            entries.append(f"{storage.path}:{storage.mount}")
        elif storage.type == "nfs":
            root = str(defaults.get('nfs_mount_root', DEFAULT_NFS_MOUNT_ROOT)).rstrip('/')
            path = storage.path or service.key
            host_path = path if path.startswith('/') else f"{root}/{path}"
            entries.append(f"{host_path}:{storage.mount}")
        else:
            name = f"{service.key}_data"
            entries.append(f"{name}:{storage.mount}")
            named.append(name)

    for entry in service.volumes:
        source, sep, _ = entry.partition(':')
        if sep and not source.startswith(('/', '.', '~', '$')) and source not in named:
            named.append(source)
        entries.append(entry)
    return entries, named


def healthcheck_block(service: Service) -> Optional[Dict[str, Any]]:
    check = service.health_check
    port = service.primary_port
    if check is None or not check.enabled or port is None:
        return None
    block: Dict[str, Any] = {
        'test': ["CMD", "curl", "-f", f"http://localhost:{port}{check.endpoint}"],
        'interval': check.interval,
        'timeout': check.timeout,
        'retries': check.retries,
    }
    if check.start_period:
        block['start_period'] = check.start_period
    return block


def is_certificate_secret(name: str, config: HomelabConfig) -> bool:
    return bool(config.secrets.get(name, {}).get('certificate')) or name.startswith("ssl_")


def certificate_secrets(config: HomelabConfig) -> List[str]:
    return [name for name in config.secrets if is_certificate_secret(name, config)]


def secret_definition(name: str, config: HomelabConfig, default_external: bool) -> Dict[str, Any]:
    """Top-level secret entry: a declared file, else external or ``./secrets/<name>``."""
    declared = config.secrets.get(name, {})
    if declared.get('file'):
        return {'file': declared['file']}
    if declared.get('external', default_external):
        return {'external': True}
    return {'file': f"./secrets/{name}"}


def network_names(service: Service) -> List[str]:
    return list(service.networks) or [NETWORK_NAME]
