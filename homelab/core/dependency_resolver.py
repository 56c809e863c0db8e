"""Service dependency graph: ordering, cycle detection and reverse lookups."""
from typing import Dict, Iterable, List, Mapping, Optional, Set, Tuple

from homelab.core.logger import get_logger
from homelab.core.rendering import generated_header, render_template
from homelab.models.errors import CircularDependencyError, ConfigSchemaError
from homelab.models.service import Service

logger = get_logger(__name__)

_WHITE, _GRAY, _BLACK = 0, 1, 2

STARTUP_SCRIPT = """#!/usr/bin/env bash
{{ header }}
# Starts services in dependency order.
set -euo pipefail

cd "$(dirname "$0")"
COMPOSE_FILE="${COMPOSE_FILE:-docker-compose.yaml}"

{% for service in services %}
echo "Starting {{ service.key }} (priority {{ service.priority }})"
docker compose -f "$COMPOSE_FILE" up -d {{ service.key }}
{% endfor %}
echo "All services started"
"""

SHUTDOWN_SCRIPT = """#!/usr/bin/env bash
{{ header }}
# Stops services in reverse dependency order.
set -euo pipefail

cd "$(dirname "$0")"
COMPOSE_FILE="${COMPOSE_FILE:-docker-compose.yaml}"

{% for service in services %}
echo "Stopping {{ service.key }}"
docker compose -f "$COMPOSE_FILE" stop {{ service.key }}
{% endfor %}
echo "All services stopped"
"""

GRAPH_MARKDOWN = """{{ header }}
# Service Dependency Graph

| Service | Dependencies | Dependents | Priority |
|---------|--------------|------------|----------|
{% for row in rows %}
| {{ row.key }} | {{ row.dependencies }} | {{ row.dependents }} | {{ row.priority }} |
{% endfor %}

## Startup Order

{% for key in order %}
{{ loop.index }}. {{ key }}
{% endfor %}
"""


class DependencyResolver:
    """Dependency graph over services, edges pointing from a service to what it needs."""

    def __init__(self, services: Mapping[str, Service]):
        self.services = dict(services)
        self.graph: Dict[str, List[str]] = {
            key: list(service.depends_on) for key, service in self.services.items()
        }
        self.reverse: Dict[str, List[str]] = {key: [] for key in self.services}
        for key, deps in self.graph.items():
            for dep in deps:
                if dep in self.reverse and key not in self.reverse[dep]:
                    self.reverse[dep].append(key)

    def missing_dependencies(self) -> List[Tuple[str, str]]:
        """Return (service, dependency) pairs naming undefined services."""
        return [
            (key, dep)
            for key, deps in self.graph.items()
            for dep in deps
            if dep not in self.services
        ]

    def find_cycles(self) -> List[List[str]]:
        """Return every cycle found by a depth-first walk, as closed paths.

        A cycle between ``a`` and ``b`` is reported as ``['a', 'b', 'a']``.
        """
        color = {key: _WHITE for key in self.graph}
        cycles: List[List[str]] = []
        seen: Set[frozenset] = set()

        def visit(key: str, stack: List[str]):
            color[key] = _GRAY
            stack.append(key)
            for dep in self.graph[key]:
                if dep not in color:
                    continue
                if color[dep] == _GRAY:
                    cycle = stack[stack.index(dep):] + [dep]
                    signature = frozenset(cycle)
                    if signature not in seen:
                        seen.add(signature)
                        cycles.append(cycle)
                elif color[dep] == _WHITE:
                    visit(dep, stack)
            stack.pop()
            color[key] = _BLACK

        for key in sorted(self.graph):
            if color[key] == _WHITE:
                visit(key, [])
        return cycles

    def detect_circular_dependencies(self) -> None:
        """Raise CircularDependencyError if the graph has a cycle."""
        cycles = self.find_cycles()
        if cycles:
            raise CircularDependencyError(cycles)

    def resolve_order(self, keys: Optional[Iterable[str]] = None) -> List[str]:
        """Topological startup order.

        Services at the same dependency depth are ordered by ascending
        startup_priority (default 10), then by key.

        Args:
            keys: Restrict the result to these services (ordering still
                considers the whole graph).

        Raises:
            ConfigSchemaError: A dependency names an undefined service.
            CircularDependencyError: The graph has a cycle.
        """
        missing = self.missing_dependencies()
        if missing:
            raise ConfigSchemaError([
                f"services.{key}.depends_on: unknown service '{dep}'" for key, dep in missing
            ])
        self.detect_circular_dependencies()

        depth: Dict[str, int] = {}

        def depth_of(key: str) -> int:
            if key not in depth:
                deps = self.graph[key]
                depth[key] = 1 + max((depth_of(dep) for dep in deps), default=-1)
            return depth[key]

        order = sorted(
            self.graph,
            key=lambda key: (depth_of(key), self.services[key].priority, key),
        )
        if keys is not None:
            wanted = set(keys)
            order = [key for key in order if key in wanted]
        return order

    def shutdown_order(self, keys: Optional[Iterable[str]] = None) -> List[str]:
        """Reverse of the startup order."""
        return list(reversed(self.resolve_order(keys)))

    def dependents_of(self, key: str, transitive: bool = False) -> List[str]:
        """Services that depend on ``key`` (what breaks if it stops)."""
        return self._walk(key, self.reverse, transitive)

    def dependencies_of(self, key: str, transitive: bool = False) -> List[str]:
        """Services that ``key`` needs running."""
        return self._walk(key, self.graph, transitive)

    def _walk(self, key: str, edges: Dict[str, List[str]], transitive: bool) -> List[str]:
        if key not in self.services:
            raise ConfigSchemaError(f"services.{key}: no such service")
        if not transitive:
            return list(edges.get(key, []))

        found: List[str] = []
        pending = list(edges.get(key, []))
        while pending:
            current = pending.pop(0)
            if current in found or current == key:
                continue
            found.append(current)
            pending.extend(edges.get(current, []))
        return found

    def render_graph_markdown(self, source: str = "homelab.yaml") -> str:
        order = self.resolve_order()
        rows = [
            {
                'key': key,
                'dependencies': ", ".join(self.graph[key]) or "-",
                'dependents': ", ".join(self.reverse[key]) or "-",
                'priority': self.services[key].priority,
            }
            for key in order
        ]
        return render_template(
            GRAPH_MARKDOWN,
            header=generated_header(source, comment="<!--").rstrip("\n"),
            rows=rows,
            order=order,
        )

    def render_startup_script(self, keys: Optional[Iterable[str]] = None, source: str = "homelab.yaml") -> str:
        services = [self.services[key] for key in self.resolve_order(keys)]
        return render_template(
            STARTUP_SCRIPT, header=generated_header(source).rstrip("\n"), services=services
        )

    def render_shutdown_script(self, keys: Optional[Iterable[str]] = None, source: str = "homelab.yaml") -> str:
        services = [self.services[key] for key in self.shutdown_order(keys)]
        return render_template(
            SHUTDOWN_SCRIPT, header=generated_header(source).rstrip("\n"), services=services
        )
