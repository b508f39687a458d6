"""Tests for the breadth-first change propagator and shared traversal."""

import asyncio

import pytest
from hypothesis import given, settings, strategies as st
from pydantic import ValidationError

from conftest import PROJECT, InMemoryGraphRepository
from factorygraph.graph.propagator import ChangePropagator, PropagatorConfig
from factorygraph.graph.traversal import breadth_first
from factorygraph.storage.models import DriftAlertStatus, DriftSeverity, DriftType, GraphEdgeType, GraphEntityType

DOC = GraphEntityType.document


def _chain(repo, *names, edge_type=GraphEdgeType.derives_from):
    nodes = [repo.seed_node(DOC, name, label=name) for name in names]
    for source, target in zip(nodes, nodes[1:]):
        repo.seed_edge(source, target, edge_type)
    return nodes


def test_config_rejects_non_positive_values():
    with pytest.raises(ValidationError):
        PropagatorConfig(max_depth=0)
    with pytest.raises(ValidationError):
        PropagatorConfig(batch_size=0)


@pytest.mark.asyncio
async def test_document_chain_alerts_decay_by_depth(repo):
    a, b, c, d = _chain(repo, "A", "B", "C", "D")

    result = await ChangePropagator(repo, PropagatorConfig(max_depth=3)).propagate(PROJECT, a.id)

    assert result.source_node_id == a.id
    assert result.total_affected == 3
    assert result.alerts_created == 3
    assert result.affected_by_depth == {1: [b.id], 2: [c.id], 3: [d.id]}

    severities = {repo.nodes[x.target_node_id].label: x.severity for x in repo.alerts.values()}
    assert severities == {"B": DriftSeverity.high, "C": DriftSeverity.medium, "D": DriftSeverity.low}
    assert all(x.source_node_id == a.id for x in repo.alerts.values())
    assert all(x.drift_type == DriftType.requirements_drift for x in repo.alerts.values())


@pytest.mark.asyncio
async def test_default_depth_is_two(repo):
    a, b, c, d = _chain(repo, "A", "B", "C", "D")

    result = await ChangePropagator(repo).propagate(PROJECT, a.id)

    assert result.total_affected == 2
    assert d.id not in {x.target_node_id for x in repo.alerts.values()}


@pytest.mark.asyncio
async def test_unknown_source_returns_empty_result(repo):
    result = await ChangePropagator(repo).propagate(PROJECT, "missing")

    assert result.total_affected == 0
    assert result.alerts_created == 0
    assert result.affected_by_depth == {}


@pytest.mark.asyncio
async def test_cycle_visits_each_node_once(repo):
    a, b, c = _chain(repo, "A", "B", "C")
    repo.seed_edge(c, a, GraphEdgeType.derives_from)

    result = await ChangePropagator(repo, PropagatorConfig(max_depth=10)).propagate(PROJECT, a.id)

    assert result.total_affected == 2
    assert a.id not in {x.target_node_id for x in repo.alerts.values()}


@pytest.mark.asyncio
async def test_unclassifiable_edges_are_traversed_without_alerts(repo):
    feature = repo.seed_node(GraphEntityType.feature, "f")
    doc = repo.seed_node(DOC, "d")
    wo = repo.seed_node(GraphEntityType.work_order, "wo")
    repo.seed_edge(feature, doc, GraphEdgeType.parent_of)
    repo.seed_edge(doc, wo, GraphEdgeType.derives_from)

    result = await ChangePropagator(repo).propagate(PROJECT, feature.id)

    assert result.total_affected == 2
    # Classified on the hop (doc -> work_order), raised against the root
    assert result.alerts_created == 1
    alert = next(iter(repo.alerts.values()))
    assert alert.drift_type == DriftType.work_order_drift
    assert alert.source_node_id == feature.id
    assert alert.severity == DriftSeverity.medium


@pytest.mark.asyncio
async def test_small_batches_reach_the_same_nodes(repo):
    root = repo.seed_node(DOC, "root")
    children = [repo.seed_node(DOC, f"child-{i}") for i in range(7)]
    for child in children:
        repo.seed_edge(root, child, GraphEdgeType.derives_from)

    result = await ChangePropagator(repo, PropagatorConfig(batch_size=2)).propagate(PROJECT, root.id)

    assert result.affected_by_depth[1] == [child.id for child in children]
    assert result.alerts_created == 7


@pytest.mark.asyncio
async def test_dedupe_skips_unresolved_alerts(repo):
    a, b = _chain(repo, "A", "B")
    propagator = ChangePropagator(repo, PropagatorConfig(dedupe_open_alerts=True))

    first = await propagator.propagate(PROJECT, a.id)
    second = await propagator.propagate(PROJECT, a.id)
    assert (first.alerts_created, second.alerts_created) == (1, 0)

    only = next(iter(repo.alerts.values()))
    only.status = DriftAlertStatus.dismissed
    third = await propagator.propagate(PROJECT, a.id)
    assert third.alerts_created == 1


@pytest.mark.asyncio
async def test_propagate_batch_does_not_dedupe_across_roots(repo):
    a, b, c = _chain(repo, "A", "B", "C")

    results = await ChangePropagator(repo).propagate_batch(PROJECT, [a.id, b.id, "missing"])

    assert [r.alerts_created for r in results] == [2, 1, 0]
    targets = [x.target_node_id for x in repo.alerts.values()]
    assert targets.count(c.id) == 2


# =============================================================================
# Property: BFS terminates and never revisits, on any graph
# =============================================================================

edge_lists = st.lists(
    st.tuples(st.integers(min_value=0, max_value=7), st.integers(min_value=0, max_value=7)),
    max_size=30,
)


@settings(max_examples=75, deadline=None)
@given(edges=edge_lists, max_depth=st.integers(min_value=1, max_value=6))
def test_propagation_visits_each_node_at_most_once(edges, max_depth):
    async def run_test():
        repo = InMemoryGraphRepository()
        nodes = [repo.seed_node(DOC, f"n{i}") for i in range(8)]
        seen = set()
        for s, t in edges:
            if (s, t) in seen:
                continue
            seen.add((s, t))
            repo.seed_edge(nodes[s], nodes[t], GraphEdgeType.derives_from)

        result = await ChangePropagator(repo, PropagatorConfig(max_depth=max_depth)).propagate(PROJECT, nodes[0].id)

        reached = [node_id for ids in result.affected_by_depth.values() for node_id in ids]
        assert len(reached) == len(set(reached))
        assert nodes[0].id not in reached
        assert max(result.affected_by_depth, default=0) <= max_depth
        assert result.total_affected == len(reached)
        assert result.alerts_created <= result.total_affected

    asyncio.run(run_test())


@settings(max_examples=75, deadline=None)
@given(edges=edge_lists, max_depth=st.integers(min_value=1, max_value=6))
def test_traversal_layers_are_disjoint_and_bounded(edges, max_depth):
    async def run_test():
        repo = InMemoryGraphRepository()
        nodes = [repo.seed_node(DOC, f"n{i}") for i in range(8)]
        seen = set()
        for s, t in edges:
            if (s, t) in seen:
                continue
            seen.add((s, t))
            repo.seed_edge(nodes[s], nodes[t], GraphEdgeType.references)

        result = await breadth_first(repo, nodes[0], "both", max_depth)

        ids = [n.id for layer in result.layers for n in layer.nodes]
        assert len(ids) == len(set(ids))
        assert nodes[0].id not in ids
        assert len(result.layers) <= max_depth
        assert all(layer.nodes for layer in result.layers)
        assert result.node_count == len(ids)

    asyncio.run(run_test())
