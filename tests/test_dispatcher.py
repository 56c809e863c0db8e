"""Tests for per-machine deployment."""
import subprocess

import pytest

from homelab.core.config import HomelabSettings
from homelab.models.errors import ConfigSchemaError, RemoteApplyError, RemoteConnectivityError
from homelab.services.deploy import (
    DRIVER_LOCAL_ARTIFACTS,
    DeployMode,
    DeploymentDispatcher,
    StepStatus,
)
from homelab.services.remote import RemoteExecutor


class FakeExecutor:
    """Records calls; failures are configured per (machine, step)."""

    mock = False

    def __init__(self, running=None, fail=None, interrupt=None):
        self.running = running or {}
        self.fail = fail or {}
        self.interrupt = interrupt
        self.calls = []

    def _maybe_fail(self, machine, step):
        if self.interrupt == (machine.key, step):
            raise KeyboardInterrupt
        error = self.fail.get((machine.key, step))
        if error is not None:
            raise error

    def test_connection(self, machine):
        self.calls.append((machine.key, "connectivity", None))
        self._maybe_fail(machine, "connectivity")

    def copy(self, machine, local_dir, remote_dir):
        self.calls.append((machine.key, "copy", str(local_dir)))
        self._maybe_fail(machine, "copy")

    def run(self, machine, command, step="run", timeout=None, error_cls=None):
        self.calls.append((machine.key, step, command))
        self._maybe_fail(machine, step)
        if step == "verify":
            return "\n".join(self.running.get(machine.key, []))
        return ""

    def steps_for(self, machine_key):
        return [step for key, step, _ in self.calls if key == machine_key]


RUNNING = {'manager': ['actual'], 'node-01': ['mariadb', 'photoprism']}


@pytest.fixture
def bundle_root(tmp_path):
    root = tmp_path / "generated"
    for machine in ("manager", "node-01"):
        (root / "docker-compose" / machine).mkdir(parents=True)
    (root / "docker-swarm").mkdir(parents=True)
    return root


def make_dispatcher(config, executor, bundle_root, **kwargs):
    return DeploymentDispatcher(config, executor, bundle_root, settings=HomelabSettings(), **kwargs)


def test_deploys_every_machine(homelab_config, bundle_root):
    executor = FakeExecutor(running=RUNNING)
    report = make_dispatcher(homelab_config, executor, bundle_root).deploy()

    assert report.ok
    assert report.succeeded == ['manager', 'node-01']
    assert executor.steps_for('node-01') == ['connectivity', 'copy', 'apply', 'verify']
    result = report.results[1]
    assert result.services == ['mariadb', 'photoprism']
    assert [step.status for step in result.steps] == [StepStatus.OK] * 4


def test_failure_on_one_machine_does_not_stop_others(homelab_config, bundle_root):
    """A machine that cannot be reached fails alone; later machines still deploy."""
    executor = FakeExecutor(
        running=RUNNING,
        fail={('manager', 'connectivity'): RemoteConnectivityError('manager', 'Connection refused')},
    )
    report = make_dispatcher(homelab_config, executor, bundle_root).deploy()

    assert report.failed == ['manager']
    assert report.succeeded == ['node-01']
    assert executor.steps_for('manager') == ['connectivity']
    manager = report.results[0]
    assert manager.failed_step.name == 'connectivity'
    assert "Connection refused" in manager.summary


def test_apply_failure_recorded(homelab_config, bundle_root):
    error = RemoteApplyError('node-01', 'apply', 'docker compose up', 1, 'no space left on device')
    executor = FakeExecutor(running=RUNNING, fail={('node-01', 'apply'): error})
    report = make_dispatcher(homelab_config, executor, bundle_root).deploy()

    node = report.results[1]
    assert not node.ok
    assert [step.name for step in node.steps] == ['connectivity', 'copy', 'apply']
    assert node.steps[-1].status is StepStatus.FAILED
    assert "no space left on device" in node.summary


def test_verify_reports_missing_services(homelab_config, bundle_root):
    executor = FakeExecutor(running={'manager': ['actual'], 'node-01': ['mariadb']})
    report = make_dispatcher(homelab_config, executor, bundle_root).deploy()

    assert report.failed == ['node-01']
    assert "not running: photoprism" in report.results[1].summary


def test_dry_run_only_checks_connectivity(homelab_config, bundle_root):
    executor = FakeExecutor()
    report = make_dispatcher(homelab_config, executor, bundle_root).deploy(mode=DeployMode.DRY_RUN)

    assert report.ok
    assert {step for _, step, _ in executor.calls} == {'connectivity'}
    statuses = [step.status for step in report.results[0].steps]
    assert statuses == [StepStatus.OK, StepStatus.PLANNED, StepStatus.PLANNED, StepStatus.PLANNED]


def test_specific_machines(homelab_config, bundle_root):
    executor = FakeExecutor(running=RUNNING)
    report = make_dispatcher(homelab_config, executor, bundle_root).deploy(['node-01'], DeployMode.SPECIFIC)

    assert [r.machine for r in report.results] == ['node-01']
    assert executor.steps_for('manager') == []


def test_specific_mode_needs_machines(homelab_config, bundle_root):
    with pytest.raises(ConfigSchemaError):
        make_dispatcher(homelab_config, FakeExecutor(), bundle_root).deploy([], DeployMode.SPECIFIC)


def test_unknown_machine_rejected(homelab_config, bundle_root):
    with pytest.raises(ConfigSchemaError, match="ghost"):
        make_dispatcher(homelab_config, FakeExecutor(), bundle_root).deploy(['ghost'], DeployMode.SPECIFIC)


def test_interrupt_marks_remaining_machines(homelab_config, bundle_root):
    """Ctrl-C mid-apply leaves the current machine incomplete and the rest not attempted."""
    executor = FakeExecutor(running=RUNNING, interrupt=('manager', 'apply'))
    report = make_dispatcher(homelab_config, executor, bundle_root).deploy()

    assert report.interrupted
    assert not report.ok
    manager, node = report.results
    assert not manager.ok
    assert manager.steps[-1].detail == "interrupted"
    assert manager.steps[-1].name == "apply"
    assert not node.ok
    assert node.steps[0].status is StepStatus.NOT_RUN
    assert executor.steps_for('node-01') == []


def test_skip_driver_copy(homelab_config, bundle_root):
    executor = FakeExecutor(running=RUNNING)
    dispatcher = make_dispatcher(homelab_config, executor, bundle_root, skip_driver_copy=True)

    report = dispatcher.deploy()

    manager = report.results[0]
    assert manager.steps[1].status is StepStatus.SKIPPED
    assert manager.steps[1].detail == DRIVER_LOCAL_ARTIFACTS
    assert 'copy' not in executor.steps_for('manager')
    apply_command = [cmd for key, step, cmd in executor.calls if key == 'manager' and step == 'apply'][0]
    assert str((bundle_root / "docker-compose" / "manager").resolve()) in apply_command
    assert 'copy' in executor.steps_for('node-01')


def test_missing_bundle_fails_copy(homelab_config, tmp_path):
    executor = FakeExecutor(running=RUNNING)
    report = make_dispatcher(homelab_config, executor, tmp_path / "empty").deploy()

    assert report.failed == ['manager', 'node-01']
    assert "not found" in report.results[0].summary


def test_swarm_deploys_from_manager(homelab_config, bundle_root):
    running = {'manager': ['homelab_mariadb', 'homelab_photoprism', 'homelab_actual']}
    executor = FakeExecutor(running=running)
    report = make_dispatcher(homelab_config, executor, bundle_root, runtime='swarm').deploy()

    assert report.ok
    assert [r.machine for r in report.results] == ['manager']
    apply_command = [cmd for _, step, cmd in executor.calls if step == 'apply'][0]
    assert "docker stack deploy -c docker-stack.yaml --with-registry-auth homelab" in apply_command
    assert executor.calls[1][2] == str(bundle_root / "docker-swarm")


def test_compose_apply_command(homelab_config, bundle_root):
    dispatcher = make_dispatcher(homelab_config, FakeExecutor(), bundle_root)
    command = dispatcher.apply_command(homelab_config.machines['node-01'])
    assert command == (
        "cd /opt/homelab && docker compose -p homelab pull && "
        "docker compose -p homelab up -d --remove-orphans"
    )


def test_unknown_runtime(homelab_config, bundle_root):
    with pytest.raises(ValueError, match="kubernetes"):
        make_dispatcher(homelab_config, FakeExecutor(), bundle_root, runtime='kubernetes')


def test_local_copy_failure_does_not_stop_others(make_config, tmp_path, monkeypatch):
    """A filesystem error on a local machine is recorded and the next machine still deploys."""
    config = make_config(
        {
            'tools': {'image': 'tools', 'enabled': True, 'deploy': 'local'},
            'app': {'image': 'app', 'enabled': True, 'deploy': 'node-01'},
        },
        machines={
            'local': {'ip': '192.168.1.50', 'local': True, 'driver': True},
            'node-01': {'ip': '192.168.1.101'},
        },
    )
    root = tmp_path / "generated"
    for machine in ("local", "node-01"):
        bundle = root / "docker-compose" / machine
        bundle.mkdir(parents=True)
        (bundle / "docker-compose.yaml").write_text("services: {}\n")
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory")

    def run(argv, **kwargs):
        return subprocess.CompletedProcess(argv, 0, "app\n", "")

    monkeypatch.setattr("homelab.services.remote.executor.subprocess.run", run)
    settings = HomelabSettings(remote_path=str(blocker / "sub"))
    dispatcher = DeploymentDispatcher(config, RemoteExecutor(settings), root, settings=settings)

    report = dispatcher.deploy()

    assert report.failed == ['local']
    assert report.results[0].failed_step.name == 'copy'
    assert report.succeeded == ['node-01']


def test_dry_run_without_generated_bundle(homelab_config, tmp_path):
    """A dry run plans the copy even when nothing has been written yet."""
    executor = FakeExecutor()
    report = make_dispatcher(homelab_config, executor, tmp_path / "empty").deploy(mode=DeployMode.DRY_RUN)

    assert report.ok
    copy = report.results[0].steps[1]
    assert copy.status is StepStatus.PLANNED
    assert "not generated yet" in copy.detail
