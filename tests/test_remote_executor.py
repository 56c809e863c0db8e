"""Tests for the SSH executor."""
import subprocess

import pytest

from homelab.core.config import HomelabSettings
from homelab.models.errors import RemoteApplyError, RemoteCommandError, RemoteConnectivityError
from homelab.models.machine import Machine
from homelab.services.remote import RemoteExecutor


class FakeRun:
    """Stands in for subprocess.run and records argv."""

    def __init__(self, returncode=0, stdout="", stderr="", raises=None):
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        self.raises = raises
        self.calls = []

    def __call__(self, argv, **kwargs):
        self.calls.append((argv, kwargs))
        if self.raises is not None:
            raise self.raises
        return subprocess.CompletedProcess(argv, self.returncode, self.stdout, self.stderr)


@pytest.fixture
def node():
    return Machine(key="node-01", ip="192.168.1.101", ssh_user="admin")


@pytest.fixture
def executor():
    return RemoteExecutor(HomelabSettings(ssh_key_file="/keys/id", ssh_timeout=5, command_timeout=60))


def install(monkeypatch, fake):
    monkeypatch.setattr("homelab.services.remote.executor.subprocess.run", fake)
    return fake


def test_connection_uses_batch_ssh(monkeypatch, executor, node):
    fake = install(monkeypatch, FakeRun())

    executor.test_connection(node)

    argv, kwargs = fake.calls[0]
    assert argv[0] == "ssh"
    assert "BatchMode=yes" in argv
    assert "ConnectTimeout=5" in argv
    assert argv[-2:] == ["admin@192.168.1.101", "true"]
    assert kwargs['timeout'] == 10


def test_connection_timeout(monkeypatch, executor, node):
    install(monkeypatch, FakeRun(raises=subprocess.TimeoutExpired("ssh", 10)))
    with pytest.raises(RemoteConnectivityError, match="timed out"):
        executor.test_connection(node)


def test_connection_refused(monkeypatch, executor, node):
    install(monkeypatch, FakeRun(returncode=255, stderr="ssh: connect to host 192.168.1.101 port 22: Connection refused\n"))
    with pytest.raises(RemoteConnectivityError) as exc_info:
        executor.test_connection(node)
    assert exc_info.value.machine == "node-01"
    assert "Connection refused" in exc_info.value.reason


def test_run_returns_stdout(monkeypatch, executor, node):
    install(monkeypatch, FakeRun(stdout="mariadb\n"))
    assert executor.run(node, "docker ps") == "mariadb\n"


def test_run_failure_uses_error_class(monkeypatch, executor, node):
    install(monkeypatch, FakeRun(returncode=1, stderr="pull access denied\n"))
    with pytest.raises(RemoteApplyError) as exc_info:
        executor.run(node, "docker compose up -d", step="apply", error_cls=RemoteApplyError)
    assert str(exc_info.value) == "node-01: apply failed: pull access denied"
    assert isinstance(exc_info.value, RemoteCommandError)


def test_local_machine_runs_in_bash(monkeypatch, executor):
    fake = install(monkeypatch, FakeRun())
    local = Machine(key="driver", ip="127.0.0.1")

    executor.run(local, "echo hi")
    executor.test_connection(local)

    assert [argv for argv, _ in fake.calls] == [["bash", "-c", "echo hi"]]


def test_copy_creates_directory_then_scp(monkeypatch, executor, node, tmp_path):
    fake = install(monkeypatch, FakeRun())

    executor.copy(node, tmp_path, "/opt/homelab")

    mkdir_argv = fake.calls[0][0]
    scp_argv = fake.calls[1][0]
    assert mkdir_argv[-1] == "mkdir -p /opt/homelab"
    assert scp_argv[:3] == ["scp", "-r", "-q"]
    assert scp_argv[-1] == "admin@192.168.1.101:/opt/homelab"


def test_mock_mode_runs_nothing(monkeypatch, node, tmp_path):
    fake = install(monkeypatch, FakeRun())
    executor = RemoteExecutor(HomelabSettings(), mock=True)

    executor.test_connection(node)
    executor.copy(node, tmp_path, "/opt/homelab")
    assert executor.run(node, "docker ps") == ""
    assert fake.calls == []


def test_run_without_ssh_client(monkeypatch, executor, node):
    install(monkeypatch, FakeRun(raises=FileNotFoundError(2, "No such file or directory", "ssh")))
    with pytest.raises(RemoteConnectivityError, match="ssh not installed"):
        executor.run(node, "docker ps")


def test_copy_without_scp_client(monkeypatch, executor, node, tmp_path):
    fake = FakeRun()

    def run(argv, **kwargs):
        if argv[0] == "scp":
            raise FileNotFoundError(2, "No such file or directory", "scp")
        return fake(argv, **kwargs)

    install(monkeypatch, run)
    with pytest.raises(RemoteConnectivityError, match="scp client not installed"):
        executor.copy(node, tmp_path, "/opt/homelab")


def test_local_copy_failure_is_a_copy_error(executor, tmp_path):
    """Filesystem errors during a local copy surface as a failed copy step."""
    source = tmp_path / "bundle"
    source.mkdir()
    (source / "docker-compose.yaml").write_text("services: {}\n")
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory")
    local = Machine(key="driver", ip="127.0.0.1")

    with pytest.raises(RemoteCommandError) as exc_info:
        executor.copy(local, source, str(blocker / "sub"))

    assert exc_info.value.machine == "driver"
    assert exc_info.value.step == "copy"
