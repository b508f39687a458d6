"""Tests for drift classification and severity helpers."""

from itertools import product
from types import SimpleNamespace

import pytest
from hypothesis import given, strategies as st

from factorygraph.graph.classifier import (
    SEVERITY_RANK,
    classify_drift,
    describe_drift,
    severity_for_depth,
    severity_for_drift_type,
    suggest_action,
)
from factorygraph.storage.models import DriftSeverity, DriftType, GraphEdgeType, GraphEntityType


def _expected(source: GraphEntityType, target: GraphEntityType, edge: GraphEdgeType) -> DriftType | None:
    if source == GraphEntityType.codebase_file and edge == GraphEdgeType.implements:
        return DriftType.code_drift
    if source == GraphEntityType.document and target == GraphEntityType.document and edge == GraphEdgeType.derives_from:
        return DriftType.requirements_drift
    if edge == GraphEdgeType.shared_context:
        return DriftType.foundation_drift
    if source == GraphEntityType.document and target == GraphEntityType.work_order and edge == GraphEdgeType.derives_from:
        return DriftType.work_order_drift
    return None


def test_classifier_covers_every_enum_combination():
    for source, target, edge in product(GraphEntityType, GraphEntityType, GraphEdgeType):
        assert classify_drift(source, target, edge) == _expected(source, target, edge), (source, target, edge)


def test_first_match_wins_for_code_file_over_shared_context():
    # codebase_file --implements--> anything is code drift even when target is a document
    assert classify_drift("codebase_file", "document", "implements") == DriftType.code_drift
    # shared_context from a codebase_file is foundation drift, not code drift
    assert classify_drift("codebase_file", "feature", "shared_context") == DriftType.foundation_drift


def test_classifier_accepts_string_values():
    assert classify_drift("document", "work_order", "derives_from") == DriftType.work_order_drift
    assert classify_drift("feature", "feature", "blocks") is None


def test_unknown_string_raises_value_error():
    with pytest.raises(ValueError):
        classify_drift("spreadsheet", "document", "derives_from")


@pytest.mark.parametrize(
    ("depth", "expected"),
    [(1, DriftSeverity.high), (2, DriftSeverity.medium), (3, DriftSeverity.low), (7, DriftSeverity.low)],
)
def test_severity_for_depth(depth, expected):
    assert severity_for_depth(depth) == expected


@given(st.integers(min_value=1, max_value=50), st.integers(min_value=1, max_value=50))
def test_severity_never_increases_with_depth(a, b):
    shallow, deep = sorted((a, b))
    assert SEVERITY_RANK[severity_for_depth(shallow)] >= SEVERITY_RANK[severity_for_depth(deep)]


def test_severity_for_drift_type():
    assert severity_for_drift_type(DriftType.code_drift) == DriftSeverity.high
    assert severity_for_drift_type(DriftType.requirements_drift) == DriftSeverity.high
    assert severity_for_drift_type(DriftType.foundation_drift) == DriftSeverity.medium
    assert severity_for_drift_type(DriftType.work_order_drift) == DriftSeverity.medium


def test_descriptions_name_both_nodes_and_hop_distance():
    source = SimpleNamespace(label="PRD")
    target = SimpleNamespace(label="Checkout blueprint")

    scan_text = describe_drift(source, target, DriftType.requirements_drift)
    assert "PRD" in scan_text and "Checkout blueprint" in scan_text

    assert "directly" in describe_drift(source, target, DriftType.requirements_drift, 1)
    assert "3 hops away" in describe_drift(source, target, DriftType.requirements_drift, 3)

    for drift_type in DriftType:
        assert "Checkout blueprint" in suggest_action(source, target, drift_type)
