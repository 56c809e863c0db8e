"""Multi-machine deployment."""

from .dispatcher import (
    DRIVER_LOCAL_ARTIFACTS,
    DeployMode,
    DeploymentDispatcher,
    DeploymentReport,
    MachineResult,
    StepResult,
    StepStatus,
)

__all__ = [
    "DRIVER_LOCAL_ARTIFACTS",
    "DeployMode",
    "DeploymentDispatcher",
    "DeploymentReport",
    "MachineResult",
    "StepResult",
    "StepStatus",
]
