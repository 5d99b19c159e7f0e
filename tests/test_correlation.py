from datetime import UTC, datetime

import pytest

from correlate.correlation import (
    Incident,
    find_correlations,
    jaccard_similarity,
    list_correlations,
    record_incident,
    run_correlation_analysis,
)


NOW = datetime(2025, 5, 1, 12, 0, 0, tzinfo=UTC)


def test_jaccard_similarity() -> None:
    assert jaccard_similarity({"a", "b"}, {"a", "b"}) == 1.0
    assert jaccard_similarity({"a", "b"}, {"c"}) == 0.0
    assert jaccard_similarity(set(), set()) == 0.0
    assert jaccard_similarity({"a", "b", "c"}, {"a", "b", "d"}) == pytest.approx(0.5)


def test_similar_incidents_are_correlated() -> None:
    edges = find_correlations(
        [
            Incident("i1", "Gas leak reported on Main Street", "evacuation under way"),
            Incident("i2", "Gas leak reported on Main Street", "evacuation under way today"),
        ]
    )
    assert len(edges) == 1
    edge = edges[0]
    assert (edge.primary_incident_id, edge.related_incident_id) == ("i1", "i2")
    assert edge.correlation_type == "semantic"
    assert edge.confidence_score == pytest.approx(9 / 10)


def test_unrelated_incidents_are_not_correlated() -> None:
    edges = find_correlations(
        [
            Incident("i1", "Gas leak reported on Main Street"),
            Incident("i2", "Ferry service cancelled due to fog"),
        ]
    )
    assert edges == []


def test_threshold_is_strict() -> None:
    # 7 shared words out of 10 distinct: exactly 0.7
    a = Incident("a", "one two three four five six seven eight")
    b = Incident("b", "one two three four five six seven nine ten")
    assert find_correlations([a, b], threshold=0.7) == []
    assert len(find_correlations([a, b], threshold=0.69)) == 1


def test_no_op_for_zero_or_one_incident(db) -> None:
    assert run_correlation_analysis(db, now=NOW) == 0
    record_incident(db, incident_id="solo", title="Lonely", timestamp="2025-05-01T11:00:00Z")
    assert run_correlation_analysis(db, now=NOW) == 0
    assert list_correlations(db) == []


def test_repeated_runs_upsert_edges(db) -> None:
    for incident_id in ("x1", "x2"):
        record_incident(
            db,
            incident_id=incident_id,
            title="Power outage across the east end",
            timestamp="2025-05-01T09:00:00Z",
        )
    record_incident(
        db,
        incident_id="old",
        title="Power outage across the east end",
        timestamp="2025-04-29T09:00:00Z",
    )

    assert run_correlation_analysis(db, now=NOW) == 1
    assert run_correlation_analysis(db, now=NOW) == 1
    edges = list_correlations(db)
    assert len(edges) == 1
    assert {edges[0].primary_incident_id, edges[0].related_incident_id} == {"x1", "x2"}
    assert edges[0].confidence_score == 1.0
