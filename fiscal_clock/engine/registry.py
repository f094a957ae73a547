"""
Metric registry and dependency graph.

Uses NetworkX for:
- Unknown-dependency and cycle validation
- Topological order and generations (metrics with no path between them share
  a generation and may resolve concurrently)
"""

from __future__ import annotations

from typing import Iterable, Iterator

import networkx as nx
from networkx import DiGraph

from ..errors import ConfigurationError
from ..types import MetricDefinition, MetricKind, TileState


class MetricRegistry:
    """
    Owns the metric definitions and their TileStates.

    Lifecycle: create -> register_all (once) -> ... -> teardown.
    """

    def __init__(self) -> None:
        self._definitions: dict[str, MetricDefinition] = {}
        self._states: dict[str, TileState] = {}
        self._graph: DiGraph = nx.DiGraph()
        self._names: list[str] = []
        self._order: list[str] = []
        self._generations: list[list[str]] = []
        self._sealed = False

    def register_all(self, definitions: Iterable[MetricDefinition]) -> None:
        """
        Validate and register the whole metric set.

        Raises ConfigurationError on duplicate names, unknown dependencies,
        leaves with dependencies, or cycles. Nothing is registered on failure.
        """
        if self._sealed:
            raise ConfigurationError("Metrics are already registered")

        definitions = list(definitions)
        by_name: dict[str, MetricDefinition] = {}
        for definition in definitions:
            if definition.name in by_name:
                raise ConfigurationError(f"Duplicate metric name: {definition.name!r}")
            if definition.kind is MetricKind.LEAF and definition.dependencies:
                raise ConfigurationError(f"Leaf metric {definition.name!r} cannot have dependencies")
            if definition.kind is MetricKind.DERIVED and not definition.dependencies:
                raise ConfigurationError(f"Derived metric {definition.name!r} has no dependencies")
            by_name[definition.name] = definition

        graph: DiGraph = nx.DiGraph()
        for definition in definitions:
            graph.add_node(definition.name)
        for definition in definitions:
            for dep in definition.dependencies:
                if dep not in by_name:
                    raise ConfigurationError(
                        f"Metric {definition.name!r} depends on unregistered metric {dep!r}"
                    )
                # Edge points from dependency to dependent
                graph.add_edge(dep, definition.name)

        if not nx.is_directed_acyclic_graph(graph):
            try:
                cycle = nx.find_cycle(graph)
                cycle_str = " -> ".join(f"{u}" for u, v in cycle)
                raise ConfigurationError(f"Metric dependencies contain a cycle: {cycle_str}")
            except nx.NetworkXNoCycle:
                raise ConfigurationError("Metric dependencies contain a cycle") from None

        # Keep registration order among peers so resolution order is stable
        position = {d.name: i for i, d in enumerate(definitions)}
        self._generations = [
            sorted(generation, key=position.__getitem__)
            for generation in nx.topological_generations(graph)
        ]
        self._order = [name for generation in self._generations for name in generation]
        self._names = [d.name for d in definitions]
        self._definitions = by_name
        self._states = {d.name: TileState(d.name) for d in definitions}
        self._graph = graph
        self._sealed = True

    def teardown(self) -> None:
        self._definitions.clear()
        self._states.clear()
        self._graph = nx.DiGraph()
        self._names = []
        self._order = []
        self._generations = []
        self._sealed = False

    @property
    def is_registered(self) -> bool:
        return self._sealed

    @property
    def names(self) -> list[str]:
        """All metric names in registration (display) order."""
        return list(self._names)

    @property
    def order(self) -> list[str]:
        """All metric names, dependencies before dependents."""
        return list(self._order)

    @property
    def generations(self) -> list[list[str]]:
        return [list(g) for g in self._generations]

    def definition(self, name: str) -> MetricDefinition:
        try:
            return self._definitions[name]
        except KeyError:
            raise KeyError(f"Unknown metric: {name}") from None

    def state(self, name: str) -> TileState:
        try:
            return self._states[name]
        except KeyError:
            raise KeyError(f"Unknown metric: {name}") from None

    def states(self) -> Iterator[TileState]:
        for name in self._order:
            yield self._states[name]

    def leaves(self) -> list[str]:
        return [n for n in self._order if self._definitions[n].kind is MetricKind.LEAF]

    def dependents(self, name: str) -> set[str]:
        """Every metric downstream of `name`."""
        return set(nx.descendants(self._graph, name))

    def __contains__(self, name: object) -> bool:
        return name in self._definitions

    def __len__(self) -> int:
        return len(self._definitions)
