"""Error taxonomy for homelab configuration and deployment."""
from typing import List, Optional, Sequence, Tuple


class HomelabError(Exception):
    """Base class for all homelab errors."""


class ConfigError(HomelabError):
    """Problem with the configuration document itself.

    Configuration errors are fatal for generation: they are raised before any
    artifact is written.
    """


class ConfigNotFound(ConfigError):
    """The configuration file does not exist."""

    def __init__(self, path):
        self.path = path
        super().__init__(f"Config file not found: {path}")


class ConfigParseError(ConfigError):
    """The configuration file is not valid YAML or not a mapping."""


class ConfigSchemaError(ConfigError):
    """One or more entries do not match the expected schema.

    Attributes:
        problems: Every schema problem found, each naming its key path.
    """

    def __init__(self, problems):
        if isinstance(problems, str):
            problems = [problems]
        self.problems: List[str] = list(problems)
        if len(self.problems) == 1:
            message = self.problems[0]
        else:
            message = "Invalid configuration:\n  " + "\n  ".join(self.problems)
        super().__init__(message)


class CircularDependencyError(ConfigError):
    """The service dependency graph contains at least one cycle."""

    def __init__(self, cycles: Sequence[Sequence[str]]):
        self.cycles: List[List[str]] = [list(cycle) for cycle in cycles]
        rendered = "; ".join(" -> ".join(cycle) for cycle in self.cycles)
        super().__init__(f"Circular dependency detected: {rendered}")


class DuplicateDomainError(ConfigError):
    """Two or more services resolve to the same fully-qualified domain.

    Attributes:
        conflicts: (domain, service keys) for every duplicated domain.
    """

    def __init__(self, conflicts: Sequence[Tuple[str, Sequence[str]]]):
        self.conflicts: List[Tuple[str, List[str]]] = [
            (domain, list(keys)) for domain, keys in conflicts
        ]
        rendered = "; ".join(
            f"{domain} ({', '.join(keys)})" for domain, keys in self.conflicts
        )
        super().__init__(f"Duplicate domains: {rendered}")


class ConfigValidationError(ConfigError):
    """Several independent configuration problems found in one pass."""

    def __init__(self, problems: Sequence[ConfigError]):
        self.problems: List[ConfigError] = list(problems)
        super().__init__(
            "Configuration validation failed:\n  "
            + "\n  ".join(str(problem) for problem in self.problems)
        )


class DeploymentError(HomelabError):
    """Problem with the environment a deployment runs against."""


class RemoteConnectivityError(DeploymentError):
    """A machine could not be reached (refused, unreachable or timed out)."""

    def __init__(self, machine: str, reason: str):
        self.machine = machine
        self.reason = reason
        super().__init__(f"{machine}: cannot connect ({reason})")


class RemoteCommandError(DeploymentError):
    """A remote command exited with a non-zero status."""

    def __init__(
        self,
        machine: str,
        step: str,
        command: str,
        returncode: Optional[int] = None,
        stderr: str = "",
    ):
        self.machine = machine
        self.step = step
        self.command = command
        self.returncode = returncode
        self.stderr = stderr
        detail = stderr.strip().splitlines()[-1] if stderr.strip() else f"exit code {returncode}"
        super().__init__(f"{machine}: {step} failed: {detail}")


class RemoteApplyError(RemoteCommandError):
    """The container runtime rejected the apply command."""


class DnsApiError(DeploymentError):
    """The DNS provider API returned an error or could not be reached."""


class RecordAlreadyExistsNotice(HomelabError):
    """The DNS provider reports that a record already exists.

    Not a failure: the applier counts the record as present.
    """


class UnknownDeployTargetWarning(UserWarning):
    """A service deploys to a machine key that is not defined."""
