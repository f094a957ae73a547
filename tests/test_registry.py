# tests/test_registry.py
"""Tests for MetricRegistry validation and ordering."""

import pytest

from conftest import Switch, derived, leaf, snap
from fiscal_clock.engine.registry import MetricRegistry
from fiscal_clock.errors import ConfigurationError
from fiscal_clock.types import MetricDefinition, MetricKind, MetricStatus


def passthrough(deps):
    return next(iter(deps.values()))


class TestRegistration:
    def test_cycle_detected_at_registration(self) -> None:
        registry = MetricRegistry()

        with pytest.raises(ConfigurationError, match="cycle"):
            registry.register_all([
                derived("A", ("B",), passthrough),
                derived("B", ("A",), passthrough),
            ])

        assert not registry.is_registered
        assert len(registry) == 0

    def test_unknown_dependency_rejected(self) -> None:
        registry = MetricRegistry()

        with pytest.raises(ConfigurationError, match="unregistered"):
            registry.register_all([derived("per", ("debt", "pop"), passthrough), leaf("debt", Switch())])

    def test_duplicate_name_rejected(self) -> None:
        with pytest.raises(ConfigurationError, match="Duplicate"):
            MetricRegistry().register_all([leaf("debt", Switch()), leaf("debt", Switch())])

    def test_leaf_with_dependencies_rejected(self) -> None:
        bad = MetricDefinition("x", MetricKind.LEAF, ("y",), Switch(), str)

        with pytest.raises(ConfigurationError):
            MetricRegistry().register_all([leaf("y", Switch()), bad])

    def test_derived_without_dependencies_rejected(self) -> None:
        with pytest.raises(ConfigurationError):
            MetricRegistry().register_all([derived("x", (), passthrough)])

    def test_second_registration_rejected(self) -> None:
        registry = MetricRegistry()
        registry.register_all([leaf("debt", Switch())])

        with pytest.raises(ConfigurationError):
            registry.register_all([leaf("pop", Switch())])


class TestOrdering:
    def build(self) -> MetricRegistry:
        registry = MetricRegistry()
        registry.register_all([
            derived("debt_per", ("debt", "pop"), passthrough),
            leaf("debt", Switch()),
            derived("deep", ("debt_per",), passthrough),
            leaf("pop", Switch()),
        ])
        return registry

    def test_dependencies_before_dependents(self) -> None:
        order = self.build().order

        assert order.index("debt") < order.index("debt_per") < order.index("deep")
        assert order.index("pop") < order.index("debt_per")

    def test_generations_group_independent_metrics(self) -> None:
        assert self.build().generations == [["debt", "pop"], ["debt_per"], ["deep"]]

    def test_names_keep_registration_order(self) -> None:
        assert self.build().names == ["debt_per", "debt", "deep", "pop"]

    def test_leaves_and_dependents(self) -> None:
        registry = self.build()

        assert registry.leaves() == ["debt", "pop"]
        assert registry.dependents("debt") == {"debt_per", "deep"}

    def test_states_start_idle_and_empty(self) -> None:
        for state in self.build().states():
            assert state.status is MetricStatus.IDLE
            assert state.snapshot is None

    def test_teardown_clears_everything(self) -> None:
        registry = self.build()
        registry.state("debt").mark_success(snap(1.0))

        registry.teardown()

        assert len(registry) == 0
        assert registry.names == []
        assert "debt" not in registry
        registry.register_all([leaf("debt", Switch())])
        assert registry.state("debt").snapshot is None

    def test_unknown_metric_lookup(self) -> None:
        with pytest.raises(KeyError):
            self.build().state("nope")
