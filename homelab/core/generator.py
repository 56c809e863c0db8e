"""Assemble and write every generated artifact for a configuration.

Everything is rendered in memory after validation succeeds; nothing touches
the output directory until the whole bundle has been built.
"""
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Set

from homelab.config.validator import HomelabValidator, ValidationReport
from homelab.core.config import HomelabSettings, get_settings
from homelab.core.dependency_resolver import DependencyResolver
from homelab.core.domains import (
    ResolvedDomains,
    render_domain_mapping,
    render_domains_file,
    resolve_domains,
)
from homelab.core.logger import get_logger
from homelab.core.placement import resolve_targets
from homelab.core.rendering import render_yaml
from homelab.models.errors import ConfigSchemaError
from homelab.models.homelab import HomelabConfig
from homelab.services.docker_compose import ALL_SCOPE, ComposeTranslator
from homelab.services.nginx import NginxGenerator
from homelab.services.swarm import SwarmTranslator, validate_stack
from homelab.services.swarm.translator import CERTIFICATE_SECRET, CERTIFICATE_KEY_SECRET

logger = get_logger(__name__)

COMPOSE_DIR = "docker-compose"
SWARM_DIR = "docker-swarm"
TARGETS = ("compose", "swarm", "all")


@dataclass
class ArtifactBundle:
    """Relative path -> file content for one generation run."""

    files: Dict[str, str] = field(default_factory=dict)
    executable: Set[str] = field(default_factory=set)
    warnings: List[str] = field(default_factory=list)

    def add(self, path: str, content: str, executable: bool = False):
        self.files[path] = content
        if executable:
            self.executable.add(path)

    def write(self, output_dir: Path) -> List[Path]:
        """Write every file atomically; unchanged files are left untouched.

        Returns:
            Paths whose content changed.
        """
        output_dir = Path(output_dir)
        changed: List[Path] = []
        for relative, content in self.files.items():
            path = output_dir / relative
            path.parent.mkdir(parents=True, exist_ok=True)
            mode = 0o755 if relative in self.executable else 0o644
            if path.exists() and path.read_text() == content:
                continue
            fd, temp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent))
            try:
                with os.fdopen(fd, 'w') as f:
                    f.write(content)
                os.chmod(temp_name, mode)
                os.replace(temp_name, path)
            except OSError:
                if os.path.exists(temp_name):
                    os.unlink(temp_name)
                raise
            changed.append(path)
        logger.debug(f"Wrote {len(changed)} of {len(self.files)} files to {output_dir}")
        return changed


class HomelabGenerator:
    """Builds the artifact bundle for compose, swarm or both."""

    def __init__(
        self,
        config: HomelabConfig,
        base_domain: Optional[str] = None,
        settings: Optional[HomelabSettings] = None,
    ):
        self.config = config
        self.base_domain = base_domain or config.base_domain
        self.settings = settings or get_settings()
        self.source = config.source_name

    def validate(self) -> ValidationReport:
        return HomelabValidator(self.config, self.base_domain).validate()

    def resolve_domains(self) -> ResolvedDomains:
        return resolve_domains(self.config.enabled_services().values(), self.base_domain)

    def build(self, target: str = "all") -> ArtifactBundle:
        """Validate and render every artifact for a target.

        Raises:
            ConfigError: Validation failed; nothing has been rendered.
        """
        if target not in TARGETS:
            raise ValueError(f"Unknown target '{target}' (expected one of {', '.join(TARGETS)})")

        report = self.validate()
        report.raise_for_errors()

        bundle = ArtifactBundle(warnings=list(report.warnings))
        domains = self.resolve_domains()
        enabled = self.config.enabled_services()

        bundle.add(".domains", render_domains_file(domains, self.source))
        bundle.add("DOMAINS.md", render_domain_mapping(domains, self.config.services, self.source))

        resolver = DependencyResolver(self.config.services)
        bundle.add("dependency-graph.md", resolver.render_graph_markdown(self.source))
        bundle.add("startup-services.sh", resolver.render_startup_script(enabled, self.source), executable=True)
        bundle.add("shutdown-services.sh", resolver.render_shutdown_script(enabled, self.source), executable=True)

        if target in ("compose", "all"):
            self._add_compose(bundle, domains)
        if target in ("swarm", "all"):
            self._add_swarm(bundle, domains)
        return bundle

    def _add_compose(self, bundle: ArtifactBundle, domains: ResolvedDomains):
        targets = resolve_targets(self.config)
        bundle.warnings.extend(targets.unplaced.values())
        translator = ComposeTranslator(self.config, domains, targets)
        nginx = NginxGenerator(source=self.source)

        bundle.add("docker-compose.yaml", render_yaml(translator.translate(ALL_SCOPE), self.source))
        for machine_key in targets.active_machines():
            prefix = f"{COMPOSE_DIR}/{machine_key}"
            document = translator.translate(machine_key)
            bundle.add(f"{prefix}/docker-compose.yaml", render_yaml(document, self.source))
            bundle.add(f"{prefix}/.domains", render_domains_file(domains, self.source))

            scope_services = translator.scope_services(machine_key)
            if any(service.web_exposed for service in scope_services):
                for relative, content in nginx.generate_all(scope_services).files().items():
                    bundle.add(f"{prefix}/nginx/{relative}", content)

    def _add_swarm(self, bundle: ArtifactBundle, domains: ResolvedDomains):
        translator = SwarmTranslator(self.config, domains)
        stack = translator.translate()
        problems = validate_stack(stack)
        if problems:
            raise ConfigSchemaError([f"docker-stack.yaml: {problem}" for problem in problems])

        bundle.add(f"{SWARM_DIR}/docker-stack.yaml", render_yaml(stack, self.source))
        bundle.add(f"{SWARM_DIR}/.domains", render_domains_file(domains, self.source))

        nginx = NginxGenerator(
            source=self.source,
            certificate=f"/run/secrets/{CERTIFICATE_SECRET}",
            certificate_key=f"/run/secrets/{CERTIFICATE_KEY_SECRET}",
        )
        placed = [
            service for key, service in self.config.enabled_services().items()
            if key in stack['services']
        ]
        if any(service.web_exposed for service in placed):
            for relative, content in nginx.generate_all(placed).files().items():
                bundle.add(f"{SWARM_DIR}/nginx/{relative}", content)
