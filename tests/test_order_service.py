"""Tests for the order service (lifecycle state machine)."""

from datetime import timedelta
from decimal import Decimal
from unittest.mock import patch

import pytest

from tasklynk.errors import (
    AmountBelowMinimumError,
    ErrorCode,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    TransitionError,
    UnknownServiceError,
)
from tasklynk.events import EventType
from tasklynk.orders import ArtifactType, OrderChanges, OrderEvent, OrderStatus
from tasklynk.payments import PaymentMethod

# =============================================================================
# Create
# =============================================================================


class TestCreateOrder:
    def test_defaults_to_catalog_minimum(self, make_order, clock):
        order = make_order()

        assert order.status == OrderStatus.PENDING.value
        assert order.amount == Decimal("1000.00")
        assert order.custom_amount is False
        assert order.pages == 4
        assert order.slides is None and order.units is None
        assert order.work_type == "Essay"
        assert order.freelancer_deadline == clock.now + timedelta(hours=12)

    def test_urgent_order(self, make_order, clock):
        order = make_order(deadline=clock.now + timedelta(hours=3))
        assert order.amount == Decimal("1300.00")

    def test_display_ids_are_sequential(self, make_order):
        first = make_order()
        second = make_order()

        assert first.display_id == "#25000001"
        assert second.display_id == "#25000002"

    def test_slide_order_sets_slides(self, make_order):
        order = make_order(catalog_key="presentation", quantity=12)
        assert order.slides == 12
        assert order.pages is None

    def test_custom_amount(self, make_order):
        order = make_order(custom_amount=Decimal("1500"))
        assert order.amount == Decimal("1500.00")
        assert order.custom_amount is True

    def test_custom_amount_below_minimum(self, make_order):
        with pytest.raises(AmountBelowMinimumError) as exc:
            make_order(custom_amount=Decimal("999"))
        assert exc.value.minimum == Decimal("1000.00")

    def test_unknown_service(self, make_order):
        with pytest.raises(UnknownServiceError):
            make_order(catalog_key="haiku")

    def test_deadline_in_past(self, make_order, clock):
        with pytest.raises(ValueError):
            make_order(deadline=clock.now - timedelta(minutes=1))

    def test_naive_deadline_rejected(self, make_order, clock):
        with pytest.raises(ValueError):
            make_order(deadline=(clock.now + timedelta(days=1)).replace(tzinfo=None))

    def test_blank_title(self, make_order):
        with pytest.raises(ValueError):
            make_order(title="   ")

    def test_only_clients_place_orders(self, make_order, freelancer):
        with pytest.raises(ForbiddenError):
            make_order(client=freelancer)

    def test_records_creation_and_emits(self, make_order, order_service, notifier, client_actor):
        order = make_order()

        history = order_service.get_transitions(order.id)
        assert [(t.from_status, t.to_status, t.event) for t in history] == [
            (None, "pending", "create")
        ]
        assert history[0].actor_id == client_actor.id
        assert len(notifier.of_type(EventType.ORDER_CREATED)) == 1


# =============================================================================
# Edit
# =============================================================================


class TestEditOrder:
    def test_switch_page_to_slide_service(self, make_order, order_service, client_actor):
        order = make_order()

        updated = order_service.edit_order(
            order.id, client_actor, OrderChanges(catalog_key="presentation", quantity=10)
        )

        assert updated.pages is None
        assert updated.slides == 10
        assert updated.amount == Decimal("1500.00")
        assert updated.work_type == "Presentation"
        stored = order_service.get_order(order.id)
        assert stored.pages is None and stored.slides == 10

    def test_switch_unit_requires_quantity(self, make_order, order_service, client_actor):
        order = make_order()
        with pytest.raises(ValueError):
            order_service.edit_order(
                order.id, client_actor, OrderChanges(catalog_key="presentation")
            )

    def test_same_unit_keeps_quantity(self, make_order, order_service, client_actor):
        order = make_order()
        updated = order_service.edit_order(
            order.id, client_actor, OrderChanges(catalog_key="dissertation")
        )
        assert updated.pages == 4
        assert updated.amount == Decimal("1200.00")

    def test_new_deadline_recomputes_amount(self, make_order, order_service, client_actor, clock):
        order = make_order()
        updated = order_service.edit_order(
            order.id, client_actor, OrderChanges(deadline=clock.now + timedelta(hours=4))
        )
        assert updated.amount == Decimal("1300.00")
        assert updated.freelancer_deadline == clock.now + timedelta(hours=2, minutes=24)

    def test_custom_amount_is_frozen(self, make_order, order_service, client_actor):
        order = make_order(custom_amount=Decimal("2000"))
        updated = order_service.edit_order(order.id, client_actor, OrderChanges(quantity=5))
        assert updated.amount == Decimal("2000.00")
        assert updated.custom_amount is True

    def test_custom_amount_revalidated(self, make_order, order_service, client_actor):
        order = make_order(custom_amount=Decimal("1100"))
        with pytest.raises(AmountBelowMinimumError):
            order_service.edit_order(order.id, client_actor, OrderChanges(quantity=5))

    def test_only_owner_edits(self, make_order, order_service, other_client):
        order = make_order()
        with pytest.raises(ForbiddenError):
            order_service.edit_order(order.id, other_client, OrderChanges(quantity=5))

    def test_only_while_pending(self, make_order, order_service, client_actor, admin):
        order = make_order()
        order_service.request_transition(order.id, OrderEvent.ADMIN_APPROVE, admin)
        with pytest.raises(InvalidStateError):
            order_service.edit_order(order.id, client_actor, OrderChanges(quantity=5))

    def test_emits_edit_event(self, make_order, order_service, client_actor, notifier):
        order = make_order()
        order_service.edit_order(order.id, client_actor, OrderChanges(title="New title"))
        events = notifier.of_type(EventType.ORDER_EDITED)
        assert events[0].payload["title"] == "New title"


# =============================================================================
# Transitions
# =============================================================================


class TestTransitions:
    @pytest.mark.asyncio
    async def test_full_lifecycle(
        self, make_order, order_service, engine, upload_all, admin, client_actor, freelancer
    ):
        order = make_order()
        order_service.request_transition(order.id, OrderEvent.ADMIN_APPROVE, admin)
        order_service.request_transition(
            order.id, OrderEvent.ASSIGN, admin, freelancer_id=freelancer.id
        )
        order_service.request_transition(order.id, OrderEvent.START_WORK, freelancer)
        upload_all(order.id, freelancer)
        order_service.request_transition(order.id, OrderEvent.SUBMIT, freelancer)
        order_service.request_transition(order.id, OrderEvent.ADMIN_DELIVER, admin)

        payment = await engine.initiate_payment(
            order.id, client_actor.id, order.amount, PaymentMethod.DIRECT
        )
        engine.admin_confirm(payment.id, admin, "BANK-0001")

        done = order_service.request_transition(order.id, OrderEvent.CLIENT_APPROVE, client_actor)

        assert done.status == "completed"
        assert done.client_approved is True
        assert done.completed_at is not None

    def test_illegal_edge_leaves_order_untouched(self, make_order, order_service, admin):
        order = make_order()

        with pytest.raises(TransitionError) as exc:
            order_service.request_transition(order.id, OrderEvent.ADMIN_DELIVER, admin)

        assert exc.value.code == ErrorCode.INVALID_STATE
        assert exc.value.current_state == "pending"
        assert exc.value.attempted_event == "admin_deliver"
        assert order_service.get_order(order.id).status == "pending"
        assert len(order_service.get_transitions(order.id)) == 1

    def test_admin_only_events(self, make_order, order_service, client_actor):
        order = make_order()
        with pytest.raises(TransitionError) as exc:
            order_service.request_transition(order.id, OrderEvent.ADMIN_APPROVE, client_actor)
        assert exc.value.code == ErrorCode.FORBIDDEN

    def test_client_may_assign_own_order(self, make_order, order_service, admin, client_actor):
        order = make_order()
        order_service.request_transition(order.id, OrderEvent.ADMIN_APPROVE, admin)

        assigned = order_service.request_transition(
            order.id, OrderEvent.ASSIGN, client_actor, freelancer_id=20
        )

        assert assigned.status == "assigned"
        assert assigned.assigned_freelancer_id == 20

    def test_assign_needs_freelancer(self, make_order, order_service, admin):
        order = make_order()
        order_service.request_transition(order.id, OrderEvent.ADMIN_APPROVE, admin)
        with pytest.raises(ValueError):
            order_service.request_transition(order.id, OrderEvent.ASSIGN, admin)

    def test_only_assignee_starts_work(
        self, make_order, order_service, admin, freelancer, other_freelancer
    ):
        order = make_order()
        order_service.request_transition(order.id, OrderEvent.ADMIN_APPROVE, admin)
        order_service.request_transition(
            order.id, OrderEvent.ASSIGN, admin, freelancer_id=freelancer.id
        )
        with pytest.raises(TransitionError) as exc:
            order_service.request_transition(order.id, OrderEvent.START_WORK, other_freelancer)
        assert exc.value.code == ErrorCode.FORBIDDEN

    def test_submission_gate_lists_unmet(
        self, make_order, order_service, upload_all, admin, freelancer
    ):
        order = make_order()
        order_service.request_transition(order.id, OrderEvent.ADMIN_APPROVE, admin)
        order_service.request_transition(
            order.id, OrderEvent.ASSIGN, admin, freelancer_id=freelancer.id
        )
        upload_all(
            order.id,
            freelancer,
            types=(
                ArtifactType.DRAFT,
                ArtifactType.FINAL_DOCUMENT,
                ArtifactType.PLAGIARISM_REPORT,
            ),
        )

        with pytest.raises(TransitionError) as exc:
            order_service.request_transition(order.id, OrderEvent.SUBMIT, freelancer)

        assert exc.value.code == ErrorCode.SUBMISSION_INCOMPLETE
        assert exc.value.unmet_requirements == ["ai_report"]
        assert order_service.get_order(order.id).status == "assigned"

    def test_payment_required_for_client_approval(self, delivered_order, order_service, client_actor):
        with pytest.raises(TransitionError) as exc:
            order_service.request_transition(
                delivered_order.id, OrderEvent.CLIENT_APPROVE, client_actor
            )
        assert exc.value.code == ErrorCode.PAYMENT_REQUIRED
        assert order_service.get_order(delivered_order.id).status == "delivered"

    def test_payment_required_for_mark_paid(self, delivered_order, order_service, admin):
        with pytest.raises(TransitionError) as exc:
            order_service.request_transition(delivered_order.id, OrderEvent.MARK_PAID, admin)
        assert exc.value.code == ErrorCode.PAYMENT_REQUIRED

    def test_request_revision_and_resubmit(
        self, delivered_order, order_service, client_actor, freelancer
    ):
        revised = order_service.request_transition(
            delivered_order.id, OrderEvent.REQUEST_REVISION, client_actor, note="Add sources"
        )
        assert revised.status == "revision"

        resubmitted = order_service.request_transition(
            delivered_order.id, OrderEvent.SUBMIT, freelancer
        )
        assert resubmitted.status == "editing"
        assert order_service.get_transitions(delivered_order.id)[-2].note == "Add sources"

    def test_client_cancels_pending(self, make_order, order_service, client_actor):
        order = make_order()
        cancelled = order_service.request_transition(order.id, OrderEvent.CANCEL, client_actor)
        assert cancelled.status == "cancelled"
        assert cancelled.cancelled_at is not None

    def test_client_cannot_cancel_after_approval(
        self, make_order, order_service, admin, client_actor
    ):
        order = make_order()
        order_service.request_transition(order.id, OrderEvent.ADMIN_APPROVE, admin)
        with pytest.raises(TransitionError) as exc:
            order_service.request_transition(order.id, OrderEvent.CANCEL, client_actor)
        assert exc.value.code == ErrorCode.FORBIDDEN

    def test_cancelled_is_terminal(self, make_order, order_service, admin):
        order = make_order()
        order_service.request_transition(order.id, OrderEvent.CANCEL, admin)
        for event in (OrderEvent.ADMIN_APPROVE, OrderEvent.CANCEL):
            with pytest.raises(TransitionError) as exc:
                order_service.request_transition(order.id, event, admin)
            assert exc.value.code == ErrorCode.INVALID_STATE

    def test_lost_race_reports_conflict(self, make_order, order_service, storage, admin):
        order = make_order()

        with patch.object(storage, "update_order", return_value=False):
            with pytest.raises(TransitionError) as exc:
                order_service.request_transition(order.id, OrderEvent.ADMIN_APPROVE, admin)

        assert exc.value.code == ErrorCode.CONFLICT
        assert len(order_service.get_transitions(order.id)) == 1

    def test_emits_transition_event(self, make_order, order_service, admin, notifier):
        order = make_order()
        order_service.request_transition(order.id, OrderEvent.ADMIN_APPROVE, admin)

        payload = notifier.of_type(EventType.ORDER_TRANSITIONED)[0].payload
        assert payload["from_status"] == "pending"
        assert payload["to_status"] == "approved"
        assert payload["actor_id"] == admin.id

    def test_notifier_failure_does_not_break_transition(
        self, make_order, order_service, notifier, admin
    ):
        order = make_order()
        with patch.object(notifier, "emit", side_effect=RuntimeError("bus down")):
            approved = order_service.request_transition(order.id, OrderEvent.ADMIN_APPROVE, admin)
        assert approved.status == "approved"

    def test_missing_order(self, order_service, admin):
        with pytest.raises(NotFoundError):
            order_service.request_transition(999, OrderEvent.ADMIN_APPROVE, admin)


# =============================================================================
# Artifacts
# =============================================================================


class TestArtifacts:
    def _assigned(self, make_order, order_service, admin, freelancer):
        order = make_order()
        order_service.request_transition(order.id, OrderEvent.ADMIN_APPROVE, admin)
        order_service.request_transition(
            order.id, OrderEvent.ASSIGN, admin, freelancer_id=freelancer.id
        )
        return order

    def test_versions_count_per_type(self, make_order, order_service, admin, freelancer):
        order = self._assigned(make_order, order_service, admin, freelancer)

        first = order_service.record_artifact(order.id, freelancer, "draft", "d1", "u1")
        second = order_service.record_artifact(order.id, freelancer, "draft", "d2", "u2")
        final = order_service.record_artifact(order.id, freelancer, "final_document", "f", "u")

        assert (first.version, second.version, final.version) == (1, 2, 1)

    def test_other_freelancer_refused(
        self, make_order, order_service, admin, freelancer, other_freelancer
    ):
        order = self._assigned(make_order, order_service, admin, freelancer)
        with pytest.raises(ForbiddenError):
            order_service.record_artifact(order.id, other_freelancer, "draft", "d", "u")

    def test_client_may_add_reference_material_only(
        self, make_order, order_service, client_actor
    ):
        order = make_order()
        added = order_service.record_artifact(order.id, client_actor, "additional", "brief", "u")
        assert added.artifact_type == "additional"
        with pytest.raises(ForbiddenError):
            order_service.record_artifact(order.id, client_actor, "final_document", "f", "u")

    def test_no_uploads_on_terminal_orders(self, make_order, order_service, admin):
        order = make_order()
        order_service.request_transition(order.id, OrderEvent.CANCEL, admin)
        with pytest.raises(InvalidStateError):
            order_service.record_artifact(order.id, admin, "draft", "d", "u")

    def test_unknown_artifact_type(self, make_order, order_service, admin):
        order = make_order()
        with pytest.raises(ValueError):
            order_service.record_artifact(order.id, admin, "selfie", "d", "u")

    def test_submission_status(self, make_order, order_service, admin, freelancer):
        order = self._assigned(make_order, order_service, admin, freelancer)
        order_service.record_artifact(order.id, freelancer, "draft", "d", "u")
        assert order_service.submission_status(order.id) == [
            "final_document",
            "plagiarism_report",
            "ai_report",
        ]
