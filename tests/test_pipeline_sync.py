"""
Tests for the pipeline synchronizer: best-effort stage moves, history entries,
savepoint isolation and optimistic concurrency on leads.
"""

import pytest
from datetime import timedelta
from sqlalchemy import text
from sqlalchemy.exc import OperationalError

from app.core.clock import utcnow
from app.core.events import AppointmentCreatedEvent, EventDispatcher, EventType
from app.core.exceptions import ValidationError
from app.core.pipeline import HistoryType, StageKey, SyncOutcome
from app.repositories.lead_history import LeadHistoryRepository
from app.services.pipeline_sync import PipelineSynchronizer, build_event_dispatcher, coerce_history_type


@pytest.mark.unit
class TestHistoryTypes:
    """Test history type validation."""

    def test_known_type_is_accepted(self):
        assert coerce_history_type("stage_change") == HistoryType.STAGE_CHANGE
        assert coerce_history_type(HistoryType.EDIT) == HistoryType.EDIT

    def test_unknown_type_is_a_validation_error(self):
        with pytest.raises(ValidationError) as exc_info:
            coerce_history_type("teleported")
        assert "teleported" in exc_info.value.message
        assert "stage_change" in exc_info.value.details["allowed"]

    def test_every_type_has_a_label(self):
        assert HistoryType.SERVICE_ORDER_CREATED.label == "OS Created"
        assert all(t.label for t in HistoryType)


@pytest.mark.integration
class TestPipelineSynchronizer:
    """Test synchronizer outcomes against a real database session."""

    async def test_update_lead_status_moves_and_records(self, db_session, organization, test_factory):
        lead = await test_factory.create_lead(db_session, organization.id)
        negotiation = await test_factory.stage(db_session, organization.id, StageKey.NEGOTIATION.value)

        sync = PipelineSynchronizer()
        result = await sync.update_lead_status(
            db_session, lead.id, negotiation.id, HistoryType.STAGE_CHANGE, "Moved to negotiation", user_id=3
        )

        assert result.ok
        assert result.outcome == SyncOutcome.OK
        assert await test_factory.current_stage_key(db_session, lead.id) == "negotiation"

        entries = await LeadHistoryRepository().list_for_lead(db_session, lead.id)
        assert [e.type for e in entries] == [HistoryType.STAGE_CHANGE, HistoryType.CREATION]
        assert entries[0].description == "Moved to negotiation"
        assert entries[0].user_id == 3

    async def test_unknown_lead_is_not_found(self, db_session, organization, test_factory):
        stage = await test_factory.stage(db_session, organization.id, StageKey.SCHEDULED.value)
        sync = PipelineSynchronizer()

        moved = await sync.update_lead_status(db_session, 999, stage.id, HistoryType.STAGE_CHANGE, "x")
        noted = await sync.add_lead_history_entry(db_session, 999, HistoryType.EDIT, "x")
        by_key = await sync.move_lead_to_stage(db_session, 999, StageKey.SCHEDULED, HistoryType.STAGE_CHANGE, "x")

        assert moved.outcome == SyncOutcome.NOT_FOUND
        assert noted.outcome == SyncOutcome.NOT_FOUND
        assert by_key.outcome == SyncOutcome.NOT_FOUND
        assert not moved

    async def test_stage_of_another_organization_is_not_found(self, db_session, organization, test_factory):
        other = await test_factory.create_organization(db_session, "Other Shop")
        foreign_stage = await test_factory.stage(db_session, other.id, StageKey.CLOSED.value)
        lead = await test_factory.create_lead(db_session, organization.id)

        result = await PipelineSynchronizer().update_lead_status(
            db_session, lead.id, foreign_stage.id, HistoryType.STAGE_CHANGE, "x"
        )

        assert result.outcome == SyncOutcome.NOT_FOUND
        assert await test_factory.current_stage_key(db_session, lead.id) == "prospect"
        assert await LeadHistoryRepository().count_for_lead(db_session, lead.id) == 1

    async def test_missing_stage_key_is_not_found(self, db_session, organization, test_factory):
        from app.services.kanban import KanbanService

        lead = await test_factory.create_lead(db_session, organization.id)
        scheduled = await test_factory.stage(db_session, organization.id, StageKey.SCHEDULED.value)
        await KanbanService().delete_column(db_session, organization.id, scheduled.id, confirm=lambda prompt: True)

        result = await PipelineSynchronizer().move_lead_to_stage(
            db_session, lead.id, StageKey.SCHEDULED, HistoryType.APPOINTMENT_CREATED, "x"
        )

        assert result.outcome == SyncOutcome.NOT_FOUND
        assert "scheduled" in result.message

    async def test_invalid_history_type_raises(self, db_session, organization, test_factory):
        lead = await test_factory.create_lead(db_session, organization.id)

        with pytest.raises(ValidationError):
            await PipelineSynchronizer().add_lead_history_entry(db_session, lead.id, "bogus", "x")

        assert await LeadHistoryRepository().count_for_lead(db_session, lead.id) == 1

    async def test_concurrent_update_is_a_conflict(self, db_session, organization, test_factory):
        lead = await test_factory.create_lead(db_session, organization.id)
        scheduled = await test_factory.stage(db_session, organization.id, StageKey.SCHEDULED.value)

        # Another writer bumps the row version behind the loaded lead
        await db_session.execute(
            text("UPDATE lead SET version_id = version_id + 1 WHERE id = :id"), {"id": lead.id}
        )

        sync = PipelineSynchronizer()
        result = await sync.update_lead_status(db_session, lead.id, scheduled.id, HistoryType.STAGE_CHANGE, "x")

        assert result.outcome == SyncOutcome.CONFLICT
        assert await LeadHistoryRepository().count_for_lead(db_session, lead.id) == 1

        fresh = await sync.get_lead_by_id(db_session, lead.id)
        assert fresh.column_id != scheduled.id
        assert [entry.type for entry in fresh.history] == [HistoryType.CREATION]

        # A retry on the fresh row succeeds
        retry = await sync.update_lead_status(db_session, lead.id, scheduled.id, HistoryType.STAGE_CHANGE, "x")
        assert retry.ok

    async def test_storage_error_leaves_session_usable(self, db_session, organization, test_factory, monkeypatch):
        lead = await test_factory.create_lead(db_session, organization.id)
        scheduled = await test_factory.stage(db_session, organization.id, StageKey.SCHEDULED.value)
        sync = PipelineSynchronizer()

        async def failing_append(*args, **kwargs):
            raise OperationalError("INSERT INTO lead_history", {}, Exception("disk I/O error"))

        monkeypatch.setattr(sync.history, "append", failing_append)
        result = await sync.update_lead_status(db_session, lead.id, scheduled.id, HistoryType.STAGE_CHANGE, "x")

        assert result.outcome == SyncOutcome.STORAGE_ERROR
        assert await test_factory.current_stage_key(db_session, lead.id) == "prospect"

        # The outer transaction keeps working
        other = await test_factory.create_lead(db_session, organization.id, name="Still Works")
        await db_session.commit()
        assert other.id is not None

    async def test_history_timestamps_never_go_backwards(self, db_session, organization, test_factory):
        lead = await test_factory.create_lead(db_session, organization.id)
        history = LeadHistoryRepository()
        future = utcnow() + timedelta(hours=1)
        await history.append(db_session, lead_id=lead.id, type=HistoryType.EDIT, description="future", timestamp=future)

        result = await PipelineSynchronizer().add_lead_history_entry(db_session, lead.id, HistoryType.EDIT, "now")

        assert result.ok
        entries = await history.list_for_lead(db_session, lead.id)
        assert entries[0].description == "now"
        assert entries[0].timestamp >= future

    async def test_get_lead_by_id_returns_none_for_missing(self, db_session):
        assert await PipelineSynchronizer().get_lead_by_id(db_session, 12345) is None


@pytest.mark.integration
class TestEventDispatch:
    """Test event publication through the dispatcher."""

    def test_synchronizer_subscribes_to_every_event(self):
        dispatcher = build_event_dispatcher()
        for event_type in EventType:
            assert len(dispatcher.handlers_for(event_type)) == 1

    async def test_published_event_moves_lead(self, db_session, organization, test_factory):
        lead = await test_factory.create_lead(db_session, organization.id)
        dispatcher = build_event_dispatcher()

        event = AppointmentCreatedEvent(1, lead.id, organization.id, utcnow().date(), "10:00", "Oil Change", 5)
        results = await dispatcher.publish(db_session, event)

        assert len(results) == 1
        assert results[0].ok
        assert await test_factory.current_stage_key(db_session, lead.id) == "scheduled"
        entries = await LeadHistoryRepository().list_for_lead(db_session, lead.id)
        assert entries[0].description.endswith("at 10:00 (Oil Change)")
        assert entries[0].user_id == 5

    async def test_handler_errors_propagate(self, db_session):
        dispatcher = EventDispatcher()

        async def broken(session, event):
            raise RuntimeError("handler failed")

        dispatcher.subscribe(EventType.APPOINTMENT_CREATED, broken)
        event = AppointmentCreatedEvent(1, 2, 3, utcnow().date(), "10:00")

        with pytest.raises(RuntimeError):
            await dispatcher.publish(db_session, event)
