from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from typing import Dict, List, Sequence

from dynorm.core.errors import CyclicDependencyError, MissingDependencyError, ValidationError, VersionMismatchError
from dynorm.core.modules.models import ModuleManifest
from dynorm.core.modules.versions import parse_dependency


@dataclass
class DependencyGraph:
    """
    Batch-local dependency graph. Edges point from a dependency to its dependents.
    """

    nodes: List[str] = field(default_factory=list)
    dependents: Dict[str, List[str]] = field(default_factory=dict)
    indegree: Dict[str, int] = field(default_factory=dict)

    def add_node(self, name: str) -> None:
        if name in self.dependents:
            return
        self.nodes.append(name)
        self.dependents[name] = []
        self.indegree[name] = 0

    def add_edge(self, dependency: str, dependent: str) -> None:
        targets = self.dependents[dependency]
        if dependent in targets:
            return
        targets.append(dependent)
        self.indegree[dependent] = self.indegree.get(dependent, 0) + 1

    def topological_order(self) -> List[str]:
        """
        Kahn's algorithm. Ready nodes are processed FIFO, seeded in batch order.
        Raises CyclicDependencyError naming the nodes that could not be ordered.
        """
        indegree = dict(self.indegree)
        queue = deque(n for n in self.nodes if indegree[n] == 0)
        order: List[str] = []
        while queue:
            n = queue.popleft()
            order.append(n)
            for m in self.dependents[n]:
                indegree[m] -= 1
                if indegree[m] == 0:
                    queue.append(m)
        if len(order) != len(self.nodes):
            ordered = set(order)
            raise CyclicDependencyError([n for n in self.nodes if n not in ordered])
        return order


def build_dependency_graph(manifests: Sequence[ModuleManifest]) -> DependencyGraph:
    by_name: Dict[str, ModuleManifest] = {}
    graph = DependencyGraph()
    for m in manifests:
        name = m.module.name
        if name in by_name:
            raise ValidationError(f"Module {name} appears more than once in the batch", module=name)
        by_name[name] = m
        graph.add_node(name)

    for m in manifests:
        name = m.module.name
        for raw in m.depends_on or []:
            dep = parse_dependency(raw)
            other = by_name.get(dep.name)
            if other is None:
                raise MissingDependencyError(dep.name, name)
            if not dep.satisfied_by(other.module.version):
                raise VersionMismatchError(dep.name, dep.render(), other.module.version, name)
            graph.add_edge(dep.name, name)
    return graph


def resolve_order(manifests: Sequence[ModuleManifest]) -> List[ModuleManifest]:
    """
    Order a batch so that every dependency precedes its dependents.

    Dependencies must be part of the same batch; modules installed by an earlier
    call are not consulted.
    """
    manifests = list(manifests)
    graph = build_dependency_graph(manifests)
    by_name = {m.module.name: m for m in manifests}
    return [by_name[n] for n in graph.topological_order()]
