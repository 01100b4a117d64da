"""Integration tests for production_orchestrator.py.

Tests cover:
- Order creation and validation
- Every command, including failure envelopes
- The full start -> hold -> resume -> check -> complete lifecycle
- Replay of the timeline against the stored status
- Version checks for concurrent updates
- No side effects on rejected commands
"""

from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from src.models import Priority, ProductionStatus, TimelineEventType
from src.services import production_order_repository as repository
from src.services import production_orchestrator as orchestrator
from src.services import timeline_service
from src.utils.datetime_utils import utc_now

S = ProductionStatus


def _order(order_id):
    result = orchestrator.get_production_workflow(order_id)
    assert result.success, result.error
    return result.data["order"]


def _timeline(order_id):
    return timeline_service.list_entries(order_id)


class TestCreateProductionOrder:
    def test_creates_pending_order(self, test_db):
        result = orchestrator.create_production_order(
            quantity=3,
            priority=Priority.HIGH,
            unit_value=Decimal("20.00"),
            reference="BOM-7",
            actor="planner",
        )

        assert result.success
        order = result.data
        assert order["status"] == "Pending"
        assert order["version"] == 1
        assert order["priority"] == "High"
        assert order["total_value"] == "60.00"
        assert order["progress_percentage"] == 0
        assert order["last_modified_by"] == "planner"
        assert _timeline(order["id"]) == []

    def test_rejects_non_positive_quantity(self, test_db):
        result = orchestrator.create_production_order(quantity=0)
        assert not result.success
        assert result.error_kind == "ValidationError"
        assert "Quantity" in result.error

    def test_rejects_negative_unit_value(self, test_db):
        result = orchestrator.create_production_order(unit_value="-1")
        assert result.error_kind == "ValidationError"

    def test_rejects_unknown_priority(self, test_db):
        result = orchestrator.create_production_order(priority="Urgent")
        assert result.error_kind == "ValidationError"

    def test_envelope_to_dict(self, test_db):
        result = orchestrator.create_production_order(quantity=-5)
        assert result.to_dict() == {
            "success": False,
            "error": result.error,
            "error_kind": "ValidationError",
        }


class TestStartProduction:
    def test_start_with_assignee(self, pending_order):
        result = orchestrator.start_production(pending_order, assigned_to="alice", actor="lead")

        assert result.success, result.error
        order = result.data
        assert order["status"] == "InProgress"
        assert order["previous_status"] == "Pending"
        assert order["assigned_to"] == "alice"
        assert order["assigned_by"] == "lead"
        assert order["started_at"] is not None
        assert order["version"] == 2

        entries = _timeline(pending_order)
        assert len(entries) == 1
        assert entries[0].from_status == S.PENDING
        assert entries[0].to_status == S.IN_PROGRESS
        assert entries[0].command == "StartProduction"
        assert entries[0].actor == "lead"

    def test_start_estimates_completion_from_default_rate(self, create_order):
        order_id = create_order(quantity=3)
        before = utc_now()

        result = orchestrator.start_production(order_id)

        estimate = datetime.fromisoformat(result.data["estimated_completion"])
        # 3 units at the default 2.0 hours per unit
        assert before + timedelta(hours=6) <= estimate <= utc_now() + timedelta(hours=6)

    def test_start_keeps_given_estimate(self, pending_order):
        target = utc_now() + timedelta(days=3)
        result = orchestrator.start_production(pending_order, estimated_completion=target)
        assert result.data["estimated_completion"] == target.isoformat()

    def test_start_without_actor_records_system(self, pending_order):
        orchestrator.start_production(pending_order)
        assert _timeline(pending_order)[0].actor == "System"

    def test_start_twice_is_invalid(self, pending_order):
        orchestrator.start_production(pending_order)
        result = orchestrator.start_production(pending_order)

        assert not result.success
        assert result.error_kind == "InvalidTransition"
        assert len(_timeline(pending_order)) == 1

    def test_missing_order(self, test_db):
        result = orchestrator.start_production(99999)
        assert result.error_kind == "OrderNotFound"
        assert "99999" in result.error


class TestAssignProduction:
    def test_assign_keeps_status_and_appends_entry(self, pending_order):
        result = orchestrator.assign_production(pending_order, "bob", actor="lead")

        assert result.success
        assert result.data["status"] == "Pending"
        assert result.data["assigned_to"] == "bob"
        assert result.data["version"] == 2

        entries = _timeline(pending_order)
        assert len(entries) == 1
        assert entries[0].from_status == entries[0].to_status == S.PENDING
        assert entries[0].event_type == TimelineEventType.ASSIGNMENT_CHANGED

    def test_reassign_same_worker_still_bumps_version(self, pending_order):
        orchestrator.assign_production(pending_order, "bob")
        result = orchestrator.assign_production(pending_order, "bob")
        assert result.data["version"] == 3

    def test_empty_assignee(self, pending_order):
        result = orchestrator.assign_production(pending_order, "  ")
        assert result.error_kind == "ValidationError"

    def test_closed_order(self, pending_order, drive_to):
        drive_to(pending_order, S.CANCELLED)
        result = orchestrator.assign_production(pending_order, "bob")
        assert result.error_kind == "OrderClosed"


class TestHoldAndResume:
    def test_hold_requires_reason(self, pending_order, drive_to):
        drive_to(pending_order, S.IN_PROGRESS)
        result = orchestrator.put_on_hold(pending_order, "")
        assert result.error_kind == "ValidationError"
        assert _order(pending_order)["status"] == "InProgress"

    def test_hold_sets_reason_and_resume_clears_it(self, pending_order, drive_to):
        drive_to(pending_order, S.IN_PROGRESS)

        held = orchestrator.put_on_hold(pending_order, "parts delay", actor="lead")
        assert held.data["status"] == "OnHold"
        assert held.data["hold_reason"] == "parts delay"
        assert held.data["progress_percentage"] is None

        resumed = orchestrator.resume_from_hold(pending_order)
        assert resumed.data["status"] == "InProgress"
        assert resumed.data["hold_reason"] is None

    def test_resume_keeps_original_start_time(self, pending_order, drive_to):
        drive_to(pending_order, S.ON_HOLD)
        started_at = _order(pending_order)["started_at"]
        orchestrator.resume_from_hold(pending_order)
        assert _order(pending_order)["started_at"] == started_at

    def test_resume_when_not_on_hold(self, pending_order, drive_to):
        drive_to(pending_order, S.IN_PROGRESS)
        result = orchestrator.resume_from_hold(pending_order)
        assert result.error_kind == "NoOpTransition"

    def test_material_shortage_prefixes_reason(self, pending_order, drive_to):
        drive_to(pending_order, S.IN_PROGRESS)
        result = orchestrator.handle_material_shortage(pending_order, "steel sheet")
        assert result.data["hold_reason"] == "Material shortage: steel sheet"
        assert _timeline(pending_order)[-1].reason == "Material shortage: steel sheet"

    def test_equipment_issue_prefixes_reason(self, pending_order, drive_to):
        drive_to(pending_order, S.IN_PROGRESS)
        result = orchestrator.handle_equipment_issue(pending_order, "press down")
        assert result.data["hold_reason"] == "Equipment issue: press down"

    def test_hold_helper_without_reason(self, pending_order, drive_to):
        drive_to(pending_order, S.IN_PROGRESS)
        result = orchestrator.handle_material_shortage(pending_order, "")
        assert result.error_kind == "ValidationError"


class TestQualityCheck:
    def test_pass_completes_order(self, pending_order, drive_to):
        drive_to(pending_order, S.QUALITY_CHECK_PENDING)

        result = orchestrator.complete_quality_check(
            pending_order, True, notes="all good", checker_id="qc-9"
        )

        order = result.data
        assert order["status"] == "Completed"
        assert order["quality_check_passed"] is True
        assert order["quality_check_notes"] == "all good"
        assert order["quality_checker_id"] == "qc-9"
        assert order["completed_at"] is not None
        assert order["duration_hours"] is not None
        assert _timeline(pending_order)[-1].event_type == TimelineEventType.QUALITY_CHECK_COMPLETED

    def test_fail_sends_to_rework(self, pending_order, drive_to):
        drive_to(pending_order, S.QUALITY_CHECK_PENDING)

        result = orchestrator.complete_quality_check(pending_order, False, actor="qc")

        assert result.data["status"] == "Rework"
        assert result.data["quality_check_passed"] is False
        assert result.data["quality_checker_id"] == "qc"
        assert result.data["completed_at"] is None
        assert _timeline(pending_order)[-1].event_type == TimelineEventType.QUALITY_CHECK_FAILED

    def test_rework_loops_back(self, pending_order, drive_to):
        drive_to(pending_order, S.REWORK)

        assert orchestrator.update_production_status(pending_order, S.IN_PROGRESS).success
        assert orchestrator.update_production_status(pending_order, S.QUALITY_CHECK_PENDING).success
        assert orchestrator.complete_quality_check(pending_order, True).success
        assert timeline_service.verify_replay(pending_order)

    @pytest.mark.parametrize(
        "status", [S.PENDING, S.IN_PROGRESS, S.ON_HOLD, S.REWORK, S.COMPLETED, S.CANCELLED]
    )
    def test_rejected_outside_quality_check_pending(self, pending_order, drive_to, status):
        drive_to(pending_order, status)
        before = _order(pending_order)

        result = orchestrator.complete_quality_check(pending_order, True, checker_id="qc-1")

        assert result.error_kind == "InvalidTransition"
        after = _order(pending_order)
        assert after["quality_check_passed"] == before["quality_check_passed"]
        assert after["quality_checker_id"] == before["quality_checker_id"]
        assert after["version"] == before["version"]


class TestUpdateProductionStatus:
    def test_notes_are_recorded(self, pending_order, drive_to):
        drive_to(pending_order, S.IN_PROGRESS)
        result = orchestrator.update_production_status(
            pending_order, S.QUALITY_CHECK_PENDING, notes="ready for QC"
        )
        assert result.data["notes"] == "ready for QC"
        assert _timeline(pending_order)[-1].notes == "ready for QC"

    def test_accepts_status_value(self, pending_order, drive_to):
        drive_to(pending_order, S.IN_PROGRESS)
        result = orchestrator.update_production_status(pending_order, "QualityCheckPending")
        assert result.success

    def test_unknown_status(self, pending_order):
        result = orchestrator.update_production_status(pending_order, "Shipped")
        assert result.error_kind == "ValidationError"

    def test_hold_via_update_requires_reason(self, pending_order, drive_to):
        drive_to(pending_order, S.IN_PROGRESS)
        result = orchestrator.update_production_status(pending_order, S.ON_HOLD)
        assert result.error_kind == "ValidationError"

    def test_hold_via_update_sets_reason(self, pending_order, drive_to):
        drive_to(pending_order, S.IN_PROGRESS)
        result = orchestrator.update_production_status(pending_order, S.ON_HOLD, reason="tooling")
        assert result.data["hold_reason"] == "tooling"

    def test_invalid_edge_has_no_side_effects(self, pending_order):
        before = _order(pending_order)

        result = orchestrator.update_production_status(pending_order, S.QUALITY_CHECK_PENDING)

        assert result.error_kind == "InvalidTransition"
        after = _order(pending_order)
        assert after["status"] == "Pending"
        assert after["version"] == before["version"]
        assert _timeline(pending_order) == []

    def test_noop_is_distinct_from_invalid(self, pending_order):
        result = orchestrator.update_production_status(pending_order, S.PENDING)
        assert result.error_kind == "NoOpTransition"

    def test_generic_start_skips_completion_estimate(self, pending_order):
        result = orchestrator.update_production_status(pending_order, S.IN_PROGRESS)

        assert result.success
        assert result.data["status"] == "InProgress"
        assert result.data["started_at"] is not None
        assert result.data["estimated_completion"] is None


class TestCancelProduction:
    @pytest.mark.parametrize(
        "status", [S.PENDING, S.IN_PROGRESS, S.ON_HOLD, S.QUALITY_CHECK_PENDING, S.REWORK]
    )
    def test_cancel_from_every_active_status(self, create_order, drive_to, status):
        order_id = drive_to(create_order(), status)
        orchestrator.assign_production(order_id, "alice")

        result = orchestrator.cancel_production(order_id, "customer withdrew")

        assert result.success, result.error
        assert result.data["status"] == "Cancelled"
        assert result.data["assigned_to"] is None
        assert result.data["hold_reason"] is None
        assert timeline_service.verify_replay(order_id)

    @pytest.mark.parametrize("status", [S.COMPLETED, S.CANCELLED])
    def test_cancel_closed_order(self, create_order, drive_to, status):
        order_id = drive_to(create_order(), status)
        result = orchestrator.cancel_production(order_id, "again")
        assert result.error_kind == "OrderClosed"

    def test_cancel_requires_reason(self, pending_order):
        result = orchestrator.cancel_production(pending_order, None)
        assert result.error_kind == "ValidationError"


class TestEndToEnd:
    def test_full_lifecycle(self, pending_order):
        oid = pending_order

        result = orchestrator.start_production(oid, assigned_to="alice")
        assert result.data["status"] == "InProgress"
        assert len(_timeline(oid)) == 1

        result = orchestrator.put_on_hold(oid, "parts delay")
        assert result.data["status"] == "OnHold"
        assert result.data["hold_reason"] == "parts delay"
        assert len(_timeline(oid)) == 2

        result = orchestrator.resume_from_hold(oid)
        assert result.data["status"] == "InProgress"
        assert result.data["hold_reason"] is None
        assert len(_timeline(oid)) == 3

        result = orchestrator.update_production_status(oid, S.QUALITY_CHECK_PENDING)
        assert result.data["status"] == "QualityCheckPending"
        assert len(_timeline(oid)) == 4

        result = orchestrator.complete_quality_check(oid, True)
        assert result.data["status"] == "Completed"
        assert result.data["version"] == 6
        assert len(_timeline(oid)) == 5

        result = orchestrator.cancel_production(oid, "too late")
        assert result.error_kind == "OrderClosed"
        assert len(_timeline(oid)) == 5

        entries = _timeline(oid)
        assert timeline_service.replay_status(entries) == S.COMPLETED
        assert [e.to_status for e in entries] == [
            S.IN_PROGRESS,
            S.ON_HOLD,
            S.IN_PROGRESS,
            S.QUALITY_CHECK_PENDING,
            S.COMPLETED,
        ]

    @pytest.mark.parametrize("status", list(ProductionStatus))
    def test_replay_matches_stored_status(self, create_order, drive_to, status):
        order_id = drive_to(create_order(), status)
        orchestrator.assign_production(order_id, "carol")
        assert timeline_service.verify_replay(order_id)
        assert timeline_service.replay_status(_timeline(order_id)) == status


class TestOptimisticConcurrency:
    def test_stale_update_is_rejected(self, pending_order, drive_to):
        drive_to(pending_order, S.IN_PROGRESS)
        version = _order(pending_order)["version"]

        first = orchestrator.update_production_status(
            pending_order, S.QUALITY_CHECK_PENDING, expected_version=version
        )
        second = orchestrator.update_production_status(
            pending_order, S.ON_HOLD, reason="late hold", expected_version=version
        )

        assert first.success
        assert not second.success
        assert second.error_kind == "ConcurrencyConflict"

        order = _order(pending_order)
        assert order["status"] == "QualityCheckPending"
        assert order["version"] == version + 1
        assert len(_timeline(pending_order)) == 2

    def test_matching_version_succeeds(self, pending_order):
        result = orchestrator.start_production(pending_order, expected_version=1)
        assert result.data["version"] == 2

    def test_every_command_bumps_version_once(self, pending_order):
        versions = [_order(pending_order)["version"]]
        for command in (
            lambda: orchestrator.start_production(pending_order),
            lambda: orchestrator.assign_production(pending_order, "dan"),
            lambda: orchestrator.put_on_hold(pending_order, "waiting"),
            lambda: orchestrator.resume_from_hold(pending_order),
            lambda: orchestrator.update_production_status(pending_order, S.QUALITY_CHECK_PENDING),
            lambda: orchestrator.complete_quality_check(pending_order, False),
        ):
            result = command()
            assert result.success, result.error
            versions.append(result.data["version"])
        assert versions == list(range(1, 8))

    def test_interleaved_writer_gets_conflict(self, file_db, monkeypatch):
        """A writer that commits between another command's load and save wins."""
        order_id = orchestrator.create_production_order(quantity=2).data["id"]
        assert orchestrator.start_production(order_id).success

        real_load = repository.load_order
        competing = []

        def load_then_compete(oid, session):
            order = real_load(oid, session)
            if not competing:
                competing.append(orchestrator.put_on_hold(oid, "parts delay"))
            return order

        monkeypatch.setattr(repository, "load_order", load_then_compete)

        result = orchestrator.update_production_status(order_id, S.QUALITY_CHECK_PENDING)

        assert competing[0].success
        assert not result.success
        assert result.error_kind == "ConcurrencyConflict"

        order = _order(order_id)
        assert order["status"] == "OnHold"
        assert order["version"] == 3
        entries = _timeline(order_id)
        assert [e.to_status for e in entries] == [S.IN_PROGRESS, S.ON_HOLD]


class TestDatetimeInputs:
    def test_create_accepts_iso_string(self, test_db):
        result = orchestrator.create_production_order(
            estimated_completion="2030-01-15T08:00:00+00:00"
        )
        assert result.success
        assert result.data["estimated_completion"].startswith("2030-01-15T08:00:00")

    def test_create_rejects_bad_timestamp(self, test_db):
        result = orchestrator.create_production_order(estimated_completion="next week")
        assert result.error_kind == "ValidationError"
        assert "estimated_completion" in result.error

    def test_start_rejects_non_datetime(self, pending_order):
        result = orchestrator.start_production(pending_order, estimated_completion=12345)

        assert result.error_kind == "ValidationError"
        assert _order(pending_order)["status"] == "Pending"
        assert _timeline(pending_order) == []

    def test_dashboard_rejects_bad_window(self, test_db):
        result = orchestrator.get_wip_dashboard(from_date="not-a-date")
        assert not result.success
        assert result.error_kind == "ValidationError"

    def test_dashboard_accepts_iso_window(self, pending_order):
        result = orchestrator.get_wip_dashboard(from_date="2000-01-01", to_date="2999-01-01")
        assert result.success
        assert result.data["statistics"]["total_active"] == 1


class TestQueries:
    def test_workflow_projection(self, pending_order, drive_to):
        drive_to(pending_order, S.QUALITY_CHECK_PENDING)

        result = orchestrator.get_production_workflow(pending_order)

        assert result.data["order"]["status"] == "QualityCheckPending"
        assert len(result.data["timeline"]) == 2
        assert result.data["valid_next_statuses"] == ["Completed", "Cancelled", "Rework"]

    def test_valid_next_statuses(self, pending_order, drive_to):
        drive_to(pending_order, S.QUALITY_CHECK_PENDING)
        result = orchestrator.get_valid_next_statuses(pending_order)
        assert set(result.data) == {"Completed", "Rework", "Cancelled"}

    def test_valid_next_statuses_for_terminal_order(self, pending_order, drive_to):
        drive_to(pending_order, S.COMPLETED)
        assert orchestrator.get_valid_next_statuses(pending_order).data == []

    def test_queries_report_missing_order(self, test_db):
        for result in (
            orchestrator.get_production_workflow(404),
            orchestrator.get_production_timeline(404),
            orchestrator.get_valid_next_statuses(404),
        ):
            assert not result.success
            assert result.error_kind == "OrderNotFound"

    def test_active_productions_rejects_unknown_status(self, test_db):
        result = orchestrator.get_active_productions(status="Shipped")
        assert result.error_kind == "ValidationError"

    def test_dashboard_envelope(self, pending_order):
        result = orchestrator.get_wip_dashboard()
        assert result.success
        assert result.data["statistics"]["total_active"] == 1
