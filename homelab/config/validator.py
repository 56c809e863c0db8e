"""Cross-entry validation of a loaded homelab configuration."""
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from homelab.core.dependency_resolver import DependencyResolver
from homelab.core.domains import domain_conflicts, env_name_collisions, validate_domain_patterns
from homelab.core.logger import get_logger
from homelab.models.deploy_target import SpecificMachine
from homelab.models.errors import (
    CircularDependencyError,
    ConfigError,
    ConfigSchemaError,
    ConfigValidationError,
    DuplicateDomainError,
)
from homelab.models.homelab import HomelabConfig

logger = get_logger(__name__)


@dataclass
class ValidationReport:
    errors: List[ConfigError] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    def raise_for_errors(self) -> None:
        """Raise the single error, or an aggregate when there are several."""
        if not self.errors:
            return
        if len(self.errors) == 1:
            raise self.errors[0]
        raise ConfigValidationError(self.errors)


class HomelabValidator:
    """Checks that span several entries: references, cycles, domains, targets.

    All checks run even when an earlier one fails, so a single pass reports
    every problem.
    """

    def __init__(self, config: HomelabConfig, base_domain: Optional[str] = None):
        self.config = config
        self.base_domain = base_domain or config.base_domain

    def validate(self) -> ValidationReport:
        report = ValidationReport()
        self._check_dependencies(report)
        self._check_domains(report)
        self._check_targets(report)
        self._check_references(report)
        for warning in report.warnings:
            logger.debug(f"validation warning: {warning}")
        return report

    def _check_dependencies(self, report: ValidationReport):
        resolver = DependencyResolver(self.config.services)
        missing = resolver.missing_dependencies()
        if missing:
            report.errors.append(ConfigSchemaError([
                f"services.{key}.depends_on: unknown service '{dep}'" for key, dep in missing
            ]))
        cycles = resolver.find_cycles()
        if cycles:
            report.errors.append(CircularDependencyError(cycles))

        services = self.config.services
        for key, service in services.items():
            if not service.enabled:
                continue
            for dep in service.depends_on:
                if dep in services and not services[dep].enabled:
                    report.warnings.append(f"services.{key}.depends_on: '{dep}' is not enabled")

    def _check_domains(self, report: ValidationReport):
        services = list(self.config.services.values())
        errors, warnings = validate_domain_patterns(services)
        if errors:
            report.errors.append(ConfigSchemaError(errors))
        report.warnings.extend(warnings)
        conflicts = domain_conflicts(services, self.base_domain)
        if conflicts:
            report.errors.append(DuplicateDomainError(conflicts))
        collisions = env_name_collisions(services)
        if collisions:
            report.errors.append(ConfigSchemaError(collisions))

    def _check_targets(self, report: ValidationReport):
        for key, service in self.config.services.items():
            target = service.target
            if isinstance(target, SpecificMachine) and target.key not in self.config.machines:
                report.warnings.append(f"services.{key}.deploy: unknown machine '{target.key}'")

    def _check_references(self, report: ValidationReport):
        config = self.config
        base_dir = config.source_path.parent if config.source_path else Path.cwd()
        for key, service in config.services.items():
            if config.categories and service.category and service.category not in config.categories:
                report.warnings.append(f"services.{key}.category: '{service.category}' is not a declared category")
            for secret in service.secrets:
                if config.secrets and secret not in config.secrets:
                    report.warnings.append(f"services.{key}.secrets: '{secret}' is not declared, assuming external")
            template = service.nginx.template_file
            if template and not (base_dir / template).exists():
                report.warnings.append(f"services.{key}.nginx.template_file: {template} not found")
