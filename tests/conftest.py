"""Shared test fixtures for homelab tests."""
from pathlib import Path

import pytest
import yaml

from homelab.config.loader import ConfigLoader, build_config
from homelab.core.config import set_settings

SAMPLE_CONFIG = """\
version: "2.0"
deployment: docker_compose

environment:
  BASE_DOMAIN: diyhub.dev

categories:
  database: Databases
  media: Media
  finance: Finance

machines:
  manager:
    ip: 192.168.1.100
    ssh_user: admin
    role: manager
    driver: true
  node-01:
    ip: 192.168.1.101
    ssh_user: admin
    role: worker
    labels:
      storage: ssd

services:
  mariadb:
    name: MariaDB
    category: database
    image: mariadb:11
    port: 3306
    deploy: node-01
    enabled: true
    startup_priority: 1
    storage: true
    environment:
      MARIADB_DATABASE: photoprism

  photoprism:
    name: PhotoPrism
    category: media
    image: photoprism/photoprism:latest
    port: 2342
    domain: photos
    deploy: node-01
    enabled: true
    depends_on:
      - mariadb
    storage:
      type: local
      path: /srv/photos
      mount: /photoprism/originals
    health_check: /api/v1/status

  actual:
    name: Actual Budget
    description: Envelope budgeting
    category: finance
    image: actualbudget/actual-server:latest
    port: 5006
    domain: budget
    deploy: manager
    enabled: true

  jellyfin:
    name: Jellyfin
    category: media
    image: jellyfin/jellyfin:latest
    port: 8096
    deploy: node-01
    enabled: false
"""


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Isolate tests from HOMELAB_* variables and cached settings."""
    for name in ("HOMELAB_CONFIG", "HOMELAB_MOCK", "HOMELAB_OUTPUT_DIR", "HOMELAB_DNS_URL"):
        monkeypatch.delenv(name, raising=False)
    set_settings(None)
    yield
    set_settings(None)


@pytest.fixture
def sample_raw():
    """The sample homelab document as a plain mapping."""
    return yaml.safe_load(SAMPLE_CONFIG)


@pytest.fixture
def config_file(tmp_path):
    """Write the sample homelab.yaml and return its path."""
    path = tmp_path / "homelab.yaml"
    path.write_text(SAMPLE_CONFIG)
    return path


@pytest.fixture
def homelab_config(config_file):
    """Loaded sample configuration."""
    return ConfigLoader(str(config_file)).load()


@pytest.fixture
def write_config(tmp_path):
    """Factory writing a raw mapping to homelab.yaml in tmp_path."""

    def _write(raw, name="homelab.yaml") -> Path:
        path = tmp_path / name
        path.write_text(yaml.safe_dump(raw, sort_keys=False))
        return path

    return _write


@pytest.fixture
def make_config():
    """Factory building a HomelabConfig from machines and services mappings."""

    def _make(services, machines=None, **extra):
        raw = {
            'environment': {'BASE_DOMAIN': 'test.local'},
            'machines': machines if machines is not None else {
                'manager': {'ip': '192.168.1.100', 'role': 'manager', 'driver': True},
                'node-01': {'ip': '192.168.1.101', 'role': 'worker'},
            },
            'services': services,
        }
        raw.update(extra)
        return build_config(raw)

    return _make
