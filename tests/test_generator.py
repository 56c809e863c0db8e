"""Tests for building and writing the artifact bundle."""
import os

import pytest
import yaml

from homelab.core.config import HomelabSettings
from homelab.core.generator import HomelabGenerator
from homelab.models.errors import CircularDependencyError, ConfigValidationError


def build(config, target="all"):
    return HomelabGenerator(config, settings=HomelabSettings()).build(target)


def test_bundle_layout(homelab_config):
    files = set(build(homelab_config).files)

    assert {
        ".domains",
        "DOMAINS.md",
        "dependency-graph.md",
        "startup-services.sh",
        "shutdown-services.sh",
        "docker-compose.yaml",
        "docker-compose/manager/docker-compose.yaml",
        "docker-compose/manager/.domains",
        "docker-compose/manager/nginx/templates/actual.conf.template",
        "docker-compose/node-01/docker-compose.yaml",
        "docker-compose/node-01/nginx/nginx.conf",
        "docker-compose/node-01/nginx/templates/photoprism.conf.template",
        "docker-swarm/docker-stack.yaml",
        "docker-swarm/.domains",
        "docker-swarm/nginx/includes/ssl",
    } <= files
    assert "docker-compose/node-01/nginx/templates/actual.conf.template" not in files


def test_compose_only_target(homelab_config):
    files = build(homelab_config, "compose").files
    assert not any(path.startswith("docker-swarm/") for path in files)


def test_unknown_target(homelab_config):
    with pytest.raises(ValueError):
        build(homelab_config, "kubernetes")


def test_generated_yaml_parses(homelab_config):
    bundle = build(homelab_config)
    compose_file = bundle.files["docker-compose/node-01/docker-compose.yaml"]

    assert compose_file.startswith("# Generated by homelab from homelab.yaml - DO NOT EDIT\n")
    document = yaml.safe_load(compose_file)
    assert list(document['services']) == ['mariadb', 'photoprism', 'reverseproxy']


def test_swarm_nginx_reads_certificate_secrets(homelab_config):
    ssl = build(homelab_config).files["docker-swarm/nginx/includes/ssl"]
    assert "ssl_certificate /run/secrets/ssl_full.pem;" in ssl


def test_output_is_deterministic(homelab_config):
    assert build(homelab_config).files == build(homelab_config).files


def test_write_is_idempotent(homelab_config, tmp_path):
    """A second write with the same input changes nothing on disk."""
    output = tmp_path / "generated"
    bundle = build(homelab_config)

    first = bundle.write(output)
    second = build(homelab_config).write(output)

    assert len(first) == len(bundle.files)
    assert second == []
    assert (output / ".domains").read_text().splitlines()[1] == "BASE_DOMAIN=diyhub.dev"


def test_scripts_are_executable(homelab_config, tmp_path):
    build(homelab_config).write(tmp_path)
    assert os.access(tmp_path / "startup-services.sh", os.X_OK)
    assert not os.access(tmp_path / ".domains", os.X_OK)


def test_nothing_written_when_validation_fails(make_config, tmp_path):
    config = make_config({
        'a': {'image': 'busybox', 'depends_on': ['b'], 'enabled': True},
        'b': {'image': 'busybox', 'depends_on': ['a'], 'enabled': True},
    })
    generator = HomelabGenerator(config, settings=HomelabSettings())

    with pytest.raises(CircularDependencyError):
        generator.build().write(tmp_path / "generated")

    assert not (tmp_path / "generated").exists()


def test_every_problem_reported(make_config):
    config = make_config({
        'a': {'image': 'busybox', 'depends_on': ['b']},
        'b': {'image': 'busybox', 'depends_on': ['a']},
        'one': {'image': 'one', 'port': 8080, 'domain': 'app'},
        'two': {'image': 'two', 'port': 8081, 'domain': 'app'},
    })
    with pytest.raises(ConfigValidationError) as exc_info:
        build(config)
    assert len(exc_info.value.problems) == 2


def test_base_domain_override(homelab_config):
    bundle = HomelabGenerator(homelab_config, base_domain="lab.example", settings=HomelabSettings()).build()
    assert "DOMAIN_ACTUAL=budget.lab.example" in bundle.files[".domains"]
