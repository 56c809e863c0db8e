"""
Push generated bundles to machines and apply them.

Machines are processed one at a time in document order. Each machine runs
four steps:

1. connectivity - the machine answers over SSH
2. copy - the machine's bundle is copied to the remote path
3. apply - the container runtime pulls images and starts services
4. verify - the expected services are running

A failure stops the remaining steps for that machine only; the outcome of
every machine is recorded in a DeploymentReport.
"""
import shlex
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional, Tuple

from homelab.core.config import HomelabSettings, get_settings
from homelab.core.logger import get_logger
from homelab.core.placement import DeploymentTargetSet, resolve_targets
from homelab.models.deploy_target import SpecificMachine
from homelab.models.errors import ConfigSchemaError, DeploymentError, RemoteApplyError
from homelab.models.homelab import HomelabConfig
from homelab.models.machine import Machine

logger = get_logger(__name__)

STEPS = ("connectivity", "copy", "apply", "verify")

# The driver already holds its generated bundle; skipping its copy is opt-in.
DRIVER_LOCAL_ARTIFACTS = "driver-local-artifacts"

RUNTIMES = ("compose", "swarm")


class DeployMode(Enum):
    """How a deployment run selects and treats machines."""
    ALL = "all"                # every machine with services
    DRY_RUN = "dry_run"        # no mutating calls
    SPECIFIC = "specific"      # only the named machines


class StepStatus(Enum):
    OK = "ok"
    FAILED = "failed"
    SKIPPED = "skipped"
    PLANNED = "planned"
    NOT_RUN = "not_run"


@dataclass
class StepResult:
    name: str
    status: StepStatus
    detail: str = ""


@dataclass
class MachineResult:
    """Outcome of one machine's deployment."""
    machine: str
    services: List[str] = field(default_factory=list)
    steps: List[StepResult] = field(default_factory=list)
    interrupted: bool = False

    @property
    def ok(self) -> bool:
        """True only when every step ran to completion without failing."""
        if self.interrupted or len(self.steps) < len(STEPS):
            return False
        return all(step.status is not StepStatus.FAILED for step in self.steps)

    @property
    def failed_step(self) -> Optional[StepResult]:
        for step in self.steps:
            if step.status in (StepStatus.FAILED, StepStatus.NOT_RUN):
                return step
        return None

    @property
    def summary(self) -> str:
        if self.ok:
            return "ok"
        step = self.failed_step
        if self.interrupted and step is None:
            return "incomplete: interrupted"
        if step is None:
            return "incomplete"
        return f"{step.name}: {step.detail}"


@dataclass
class DeploymentReport:
    mode: DeployMode
    runtime: str = "compose"
    results: List[MachineResult] = field(default_factory=list)
    interrupted: bool = False

    @property
    def succeeded(self) -> List[str]:
        return [r.machine for r in self.results if r.ok]

    @property
    def failed(self) -> List[str]:
        return [r.machine for r in self.results if not r.ok]

    @property
    def ok(self) -> bool:
        return not self.interrupted and not self.failed


class DeploymentDispatcher:
    """Deploys generated bundles to machines through an executor.

    The executor provides ``test_connection(machine)``, ``copy(machine,
    local_dir, remote_dir)`` and ``run(machine, command, step=..., error_cls=...)``;
    see RemoteExecutor.
    """

    def __init__(
        self,
        config: HomelabConfig,
        executor,
        bundle_root: Path,
        settings: Optional[HomelabSettings] = None,
        runtime: str = "compose",
        skip_driver_copy: bool = False,
        targets: Optional[DeploymentTargetSet] = None,
    ):
        if runtime not in RUNTIMES:
            raise ValueError(f"Unknown runtime '{runtime}' (expected one of {', '.join(RUNTIMES)})")
        self.config = config
        self.executor = executor
        self.bundle_root = Path(bundle_root)
        self.settings = settings or get_settings()
        self.runtime = runtime
        self.skip_driver_copy = skip_driver_copy
        self.targets = targets if targets is not None else resolve_targets(config)

    @property
    def project(self) -> str:
        return self.settings.project_name

    def plan_machines(self, mode: DeployMode, machines: Optional[List[str]] = None) -> List[str]:
        """Machine keys to deploy, in document order."""
        if mode is DeployMode.SPECIFIC and not machines:
            raise ConfigSchemaError("deploy: specific mode needs at least one machine")

        if machines:
            unknown = [key for key in machines if key not in self.config.machines]
            if unknown:
                raise ConfigSchemaError([f"machines.{key}: no such machine" for key in unknown])

        if self.runtime == "swarm":
            manager = self.config.manager
            if manager is None:
                raise ConfigSchemaError("machines: swarm deployment needs a manager machine")
            if machines and manager.key not in machines:
                logger.warning(f"⚠ Swarm stacks are deployed from the manager ({manager.key})")
            return [manager.key]

        active = self.targets.active_machines()
        if machines:
            for key in machines:
                if key not in active:
                    logger.warning(f"⚠ {key}: no enabled services assigned, skipping")
            return [key for key in self.config.machines if key in machines and key in active]
        return active

    def expected_services(self, machine_key: str) -> List[str]:
        if self.runtime == "swarm":
            return [
                key for key, svc in self.config.enabled_services().items()
                if not (isinstance(svc.target, SpecificMachine) and svc.target.key not in self.config.machines)
            ]
        return self.targets.services_for(machine_key)

    def bundle_dir(self, machine: Machine) -> Path:
        if self.runtime == "swarm":
            return self.bundle_root / "docker-swarm"
        return self.bundle_root / "docker-compose" / machine.key

    def deploy(self, machines: Optional[List[str]] = None, mode: DeployMode = DeployMode.ALL) -> DeploymentReport:
        """Deploy to every planned machine and report per-machine outcomes.

        A KeyboardInterrupt stops the run: the machine in progress is marked
        incomplete and the remaining machines as not attempted.
        """
        keys = self.plan_machines(mode, machines)
        report = DeploymentReport(mode=mode, runtime=self.runtime)
        dry_run = mode is DeployMode.DRY_RUN

        pending = list(keys)
        current: Optional[MachineResult] = None
        try:
            while pending:
                key = pending.pop(0)
                current = MachineResult(machine=key, services=self.expected_services(key))
                report.results.append(current)
                logger.info(f"Deploying to {key} ({len(current.services)} services)")
                self._deploy_machine(self.config.machines[key], current, dry_run)
                current = None
        except KeyboardInterrupt:
            report.interrupted = True
            if current is not None:
                current.interrupted = True
                step = STEPS[min(len(current.steps), len(STEPS) - 1)]
                current.steps.append(StepResult(step, StepStatus.FAILED, "interrupted"))
            for key in pending:
                report.results.append(MachineResult(
                    machine=key,
                    services=self.expected_services(key),
                    steps=[StepResult(STEPS[0], StepStatus.NOT_RUN, "not attempted: interrupted")],
                    interrupted=True,
                ))
            logger.warning("⚠ Deployment interrupted")

        for result in report.results:
            if result.ok:
                logger.info(f"✓ {result.machine}: deployed")
            else:
                logger.error(f"✗ {result.machine}: {result.summary}")
        return report

    def _deploy_machine(self, machine: Machine, result: MachineResult, dry_run: bool):
        steps: List[Tuple[str, Callable]] = [
            ("connectivity", self._check_connectivity),
            ("copy", self._copy_bundle),
            ("apply", self._apply),
            ("verify", self._verify),
        ]
        for name, action in steps:
            try:
                status, detail = action(machine, result, dry_run)
            except (DeploymentError, OSError) as exc:
                result.steps.append(StepResult(name, StepStatus.FAILED, str(exc)))
                return
            result.steps.append(StepResult(name, status, detail))

    def _uses_local_bundle(self, machine: Machine) -> bool:
        driver = self.config.driver
        return self.skip_driver_copy and driver is not None and driver.key == machine.key

    def _working_dir(self, machine: Machine) -> str:
        if self._uses_local_bundle(machine):
            return str(self.bundle_dir(machine).resolve())
        return self.settings.remote_path

    def _check_connectivity(self, machine: Machine, result: MachineResult, dry_run: bool):
        self.executor.test_connection(machine)
        return StepStatus.OK, "reachable"

    def _copy_bundle(self, machine: Machine, result: MachineResult, dry_run: bool):
        source = self.bundle_dir(machine)
        if not dry_run and not source.is_dir():
            raise DeploymentError(f"{machine.key}: bundle {source} not found, run 'homelab generate' first")
        if self._uses_local_bundle(machine):
            return StepStatus.SKIPPED, DRIVER_LOCAL_ARTIFACTS

        destination = self.settings.remote_path
        if dry_run:
            logger.info(f"Would copy {source} to {machine.key}:{destination}")
            detail = f"would copy {source} to {destination}"
            if not source.is_dir():
                detail += " (not generated yet)"
            return StepStatus.PLANNED, detail

        self.executor.copy(machine, source, destination)
        return StepStatus.OK, f"copied to {destination}"

    def apply_command(self, machine: Machine) -> str:
        workdir = shlex.quote(self._working_dir(machine))
        project = shlex.quote(self.project)
        if self.runtime == "swarm":
            return (
                f"cd {workdir} && "
                f"docker stack deploy -c docker-stack.yaml --with-registry-auth {project}"
            )
        return (
            f"cd {workdir} && "
            f"docker compose -p {project} pull && "
            f"docker compose -p {project} up -d --remove-orphans"
        )

    def _apply(self, machine: Machine, result: MachineResult, dry_run: bool):
        command = self.apply_command(machine)
        if dry_run:
            logger.info(f"Would run on {machine.key}: {command}")
            return StepStatus.PLANNED, f"would run: {command}"

        self.executor.run(machine, command, step="apply", error_cls=RemoteApplyError)
        return StepStatus.OK, "applied"

    def _verify(self, machine: Machine, result: MachineResult, dry_run: bool):
        if dry_run:
            return StepStatus.PLANNED, f"would verify {len(result.services)} services"

        workdir = shlex.quote(self._working_dir(machine))
        project = shlex.quote(self.project)
        if self.runtime == "swarm":
            command = f"docker stack services {project} --format '{{{{.Name}}}}'"
            expected = {f"{self.project}_{key}": key for key in result.services}
        else:
            command = f"cd {workdir} && docker compose -p {project} ps --services --filter status=running"
            expected = {key: key for key in result.services}

        output = self.executor.run(machine, command, step="verify")
        running = {line.strip() for line in (output or "").splitlines() if line.strip()}
        missing = [key for name, key in expected.items() if name not in running]
        if missing and not getattr(self.executor, 'mock', False):
            raise DeploymentError(f"{machine.key}: not running: {', '.join(missing)}")
        return StepStatus.OK, f"{len(expected)} services running"
