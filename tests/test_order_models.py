"""Tests for order models and the transition table."""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from tasklynk.orders import (
    ORDER_TRANSITIONS,
    TERMINAL_STATUSES,
    VALID_ORDER_TRANSITIONS,
    Artifact,
    ArtifactType,
    Order,
    OrderEvent,
    OrderStatus,
    can_transition,
    target_status,
    unmet_requirements,
)

NOW = datetime(2025, 3, 14, 9, 0, tzinfo=timezone.utc)


def _order(**overrides) -> Order:
    params = dict(
        client_id=10,
        title="Essay",
        instructions="Write it",
        catalog_key="essay",
        work_type="Essay",
        amount=Decimal("1000.00"),
        deadline=NOW,
        freelancer_deadline=NOW,
        id=1,
        pages=4,
    )
    params.update(overrides)
    return Order(**params)


def _artifacts(*types: ArtifactType):
    return [
        Artifact(order_id=1, uploaded_by=20, artifact_type=t.value, file_name="f", file_url="u")
        for t in types
    ]


class TestTransitionTable:
    def test_happy_path_edges(self):
        path = [
            (OrderStatus.PENDING, OrderEvent.ADMIN_APPROVE, OrderStatus.APPROVED),
            (OrderStatus.APPROVED, OrderEvent.ASSIGN, OrderStatus.ASSIGNED),
            (OrderStatus.ASSIGNED, OrderEvent.START_WORK, OrderStatus.IN_PROGRESS),
            (OrderStatus.IN_PROGRESS, OrderEvent.SUBMIT, OrderStatus.EDITING),
            (OrderStatus.EDITING, OrderEvent.ADMIN_DELIVER, OrderStatus.DELIVERED),
            (OrderStatus.DELIVERED, OrderEvent.CLIENT_APPROVE, OrderStatus.COMPLETED),
        ]
        for current, event, expected in path:
            assert target_status(current.value, event) == expected

    def test_revision_loop(self):
        assert target_status("editing", OrderEvent.ADMIN_REJECT) == OrderStatus.REVISION
        assert target_status("delivered", OrderEvent.REQUEST_REVISION) == OrderStatus.REVISION
        assert target_status("revision", OrderEvent.SUBMIT) == OrderStatus.EDITING

    def test_submit_straight_from_assigned(self):
        assert target_status("assigned", OrderEvent.SUBMIT) == OrderStatus.EDITING

    def test_cancel_from_every_non_terminal_status(self):
        for status in OrderStatus:
            expected = None if status in TERMINAL_STATUSES else OrderStatus.CANCELLED
            assert target_status(status.value, OrderEvent.CANCEL) == expected

    def test_terminal_statuses_have_no_exits(self):
        for status in TERMINAL_STATUSES:
            assert VALID_ORDER_TRANSITIONS[status] == frozenset()
            for event in OrderEvent:
                assert target_status(status.value, event) is None

    def test_completed_only_from_delivered(self):
        sources = [
            s for s in OrderStatus if OrderStatus.COMPLETED in VALID_ORDER_TRANSITIONS[s]
        ]
        assert sources == [OrderStatus.DELIVERED]

    def test_can_transition_matches_table(self):
        for event, (sources, target) in ORDER_TRANSITIONS.items():
            for source in sources:
                assert can_transition(source.value, target.value)
        assert not can_transition("pending", "delivered")
        assert not can_transition("completed", "pending")

    def test_unknown_status_raises(self):
        with pytest.raises(ValueError):
            target_status("archived", OrderEvent.CANCEL)


class TestOrder:
    def test_quantity_from_set_field(self):
        assert _order().quantity == 4
        assert _order(pages=None, slides=12).quantity == 12
        assert _order(pages=None, units=2).quantity == 2

    def test_is_terminal(self):
        assert not _order().is_terminal
        assert _order(status="cancelled").is_terminal
        assert _order(status="paid").is_terminal

    def test_to_dict_serializes_money_as_string(self):
        data = _order().to_dict()
        assert data["amount"] == "1000.00"
        assert data["deadline"] == NOW.isoformat()
        assert data["completed_at"] is None


class TestSubmissionGate:
    def test_nothing_uploaded(self):
        assert unmet_requirements(_order(), []) == [
            "draft",
            "final_document",
            "plagiarism_report",
            "ai_report",
        ]

    def test_missing_ai_report(self):
        uploaded = _artifacts(
            ArtifactType.DRAFT, ArtifactType.FINAL_DOCUMENT, ArtifactType.PLAGIARISM_REPORT
        )
        assert unmet_requirements(_order(), uploaded) == ["ai_report"]

    def test_draft_and_final_without_reports(self):
        uploaded = _artifacts(ArtifactType.DRAFT, ArtifactType.FINAL_DOCUMENT)
        assert unmet_requirements(_order(), uploaded) == ["plagiarism_report", "ai_report"]

    def test_completed_paper_counts_as_final(self):
        uploaded = _artifacts(
            ArtifactType.DRAFT,
            ArtifactType.COMPLETED_PAPER,
            ArtifactType.PLAGIARISM_REPORT,
            ArtifactType.AI_REPORT,
        )
        assert unmet_requirements(_order(), uploaded) == []

    def test_reports_not_required(self):
        uploaded = _artifacts(ArtifactType.DRAFT, ArtifactType.FINAL_DOCUMENT)
        assert unmet_requirements(_order(requires_reports=False), uploaded) == []

    def test_other_types_do_not_count(self):
        uploaded = _artifacts(ArtifactType.ADDITIONAL, ArtifactType.ABSTRACT, ArtifactType.REVISION)
        assert len(unmet_requirements(_order(), uploaded)) == 4
