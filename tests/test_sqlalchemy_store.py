"""
Tests de los stores SQLAlchemy sobre SQLite (aiosqlite)

Verifican el mapeo real: filas de asistentes y entradas en orden,
índice único (event_id, user_id) y consultas agregadas.
"""
from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from shared.database.connection import Base
from shared.database import models  # noqa: F401
from services.registrations.errors import DuplicateAttendeeError, RegistrationValidationError
from services.registrations.models.domain import RegistrationDraft, ResolvedRegistration
from services.registrations.services.qr_code_service import QrCodeService
from services.registrations.services.registration_service import RegistrationService
from services.registrations.stores.sqlalchemy_store import SqlAlchemyReferenceStore, SqlAlchemyRegistrationStore
from tests.fakes import make_event, make_ticket_type, make_user, make_venue


@pytest.fixture
async def session_maker(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'eventgate.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
async def seeded(session_maker):
    venue = make_venue(capacity=3)
    event = make_event(venue)
    users = [make_user() for _ in range(4)]
    general = make_ticket_type(event, price="15.00", name="General")
    vip = make_ticket_type(event, price="40.00", name="VIP")
    async with session_maker() as db:
        db.add_all([venue, event, *users, general, vip])
        await db.commit()
    return venue, event, users, general, vip


def _service(db, tmp_path):
    return RegistrationService(
        SqlAlchemyReferenceStore(db),
        SqlAlchemyRegistrationStore(db),
        QrCodeService(str(tmp_path / "qr")),
    )


def _draft(venue, event, owner, attendees, ticket_types):
    return RegistrationDraft(
        event_id=event.id,
        user_id=owner.id,
        buyer_id=owner.id,
        venue_id=venue.id,
        ticket_type_ids=[t.id for t in ticket_types],
        bought_for_ids=[a.id for a in attendees],
        no_of_tickets=len(attendees),
    )


@pytest.mark.asyncio
async def test_created_registration_reloads_in_order(session_maker, seeded, tmp_path):
    venue, event, users, general, vip = seeded
    registration_id = uuid4()

    async with session_maker() as db:
        await _service(db, tmp_path).create_registration(
            _draft(venue, event, users[0], [users[0], users[1]], [vip, general]), registration_id
        )

    async with session_maker() as db:
        registration = await SqlAlchemyRegistrationStore(db).get(registration_id)

    assert registration.bought_for_ids == [users[0].id, users[1].id]
    assert registration.ticket_type_ids == [vip.id, general.id]
    assert registration.total_cost == Decimal("55.00")
    assert registration.tickets[0].ticket_type.name == "VIP"
    assert registration.qr_code == f"qrcode-{registration_id}.png"
    assert registration.event.title == event.title


@pytest.mark.asyncio
async def test_aggregates(session_maker, seeded, tmp_path):
    venue, event, users, general, vip = seeded
    async with session_maker() as db:
        await _service(db, tmp_path).create_registration(
            _draft(venue, event, users[0], [users[0], users[1]], [general, general]), uuid4()
        )

    async with session_maker() as db:
        store = SqlAlchemyRegistrationStore(db)
        assert await store.sum_tickets_for_event(event.id) == 2
        assert await store.sum_tickets_for_event(uuid4()) == 0
        assert set(await store.find_registered_attendees(event.id, [users[1].id, users[2].id])) == {users[1].id}
        assert len(await store.list_for_user(users[1].id)) == 1
        assert await store.list_for_user(users[3].id) == []


@pytest.mark.asyncio
async def test_capacity_enforced_against_database(session_maker, seeded, tmp_path):
    venue, event, users, general, vip = seeded
    async with session_maker() as db:
        await _service(db, tmp_path).create_registration(
            _draft(venue, event, users[0], [users[0], users[1]], [general, general]), uuid4()
        )

    async with session_maker() as db:
        with pytest.raises(RegistrationValidationError) as exc_info:
            await _service(db, tmp_path).create_registration(
                _draft(venue, event, users[2], [users[2], users[3]], [general, general]), uuid4()
            )

    assert "Available: 1, Requested: 2" in exc_info.value.message


@pytest.mark.asyncio
async def test_unique_index_rejects_attendee_written_twice(session_maker, seeded):
    """Escritura directa sin validación previa: el índice único es la última barrera"""
    venue, event, users, general, vip = seeded

    async with session_maker() as db:
        references = SqlAlchemyReferenceStore(db)
        store = SqlAlchemyRegistrationStore(db)
        owner = await references.get_user(users[0].id)
        db_event = await references.get_event(event.id)
        db_venue = await references.get_venue(venue.id)
        db_general = await references.get_ticket_type(general.id)

        def resolved():
            return ResolvedRegistration(
                registration_id=uuid4(), event=db_event, user=owner, buyer=owner, venue=db_venue,
                attendees=[owner], ticket_types=[db_general], unit_prices=[Decimal("15.00")],
                total_cost=Decimal("15.00"), no_of_tickets=1,
            )

        async with store.reservation(event.id):
            await store.add(resolved())

        with pytest.raises(DuplicateAttendeeError):
            async with store.reservation(event.id):
                await store.add(resolved())

        assert await store.sum_tickets_for_event(event.id) == 1


@pytest.mark.asyncio
async def test_cancel_frees_attendee_rows(session_maker, seeded, tmp_path):
    venue, event, users, general, vip = seeded
    registration_id = uuid4()
    async with session_maker() as db:
        await _service(db, tmp_path).create_registration(
            _draft(venue, event, users[0], [users[0], users[1]], [general, vip]), registration_id
        )

    async with session_maker() as db:
        updated = await _service(db, tmp_path).cancel_tickets(registration_id, [users[1].id])
        assert updated.total_cost == Decimal("15.00")

    async with session_maker() as db:
        store = SqlAlchemyRegistrationStore(db)
        assert await store.find_registered_attendees(event.id, [users[1].id]) == []
        assert await store.sum_tickets_for_event(event.id) == 1


@pytest.mark.asyncio
async def test_soft_deleted_user_is_not_a_reference(session_maker, seeded):
    venue, event, users, general, vip = seeded
    async with session_maker() as db:
        references = SqlAlchemyReferenceStore(db)
        user = await references.get_user(users[3].id)
        user.deleted_at = datetime.now(timezone.utc)
        await db.commit()

        assert await references.get_user(users[3].id) is None
        found = await references.find_users([users[3].id, users[2].id])
        assert [u.id for u in found] == [users[2].id]


@pytest.mark.asyncio
async def test_delete_removes_child_rows(session_maker, seeded, tmp_path):
    venue, event, users, general, vip = seeded
    registration_id = uuid4()
    async with session_maker() as db:
        await _service(db, tmp_path).create_registration(
            _draft(venue, event, users[0], [users[0]], [general]), registration_id
        )

    async with session_maker() as db:
        await _service(db, tmp_path).delete_registration(registration_id)

    async with session_maker() as db:
        store = SqlAlchemyRegistrationStore(db)
        assert await store.get(registration_id) is None
        assert await store.find_registered_attendees(event.id, [users[0].id]) == []


@pytest.mark.asyncio
async def test_only_first_of_two_scanners_marks_attendance(session_maker, seeded, tmp_path):
    """Dos sesiones leen el registro sin asistir; solo la primera actualización cuenta"""
    venue, event, users, general, vip = seeded
    registration_id = uuid4()
    async with session_maker() as db:
        await _service(db, tmp_path).create_registration(
            _draft(venue, event, users[0], [users[0]], [general]), registration_id
        )

    async with session_maker() as first_db, session_maker() as second_db:
        first, second = _service(first_db, tmp_path), _service(second_db, tmp_path)
        first_view = await first.get_registration(registration_id)
        second_view = await second.get_registration(registration_id)
        assert first_view.attended is False and second_view.attended is False

        await first.mark_attended(first_view)
        with pytest.raises(RegistrationValidationError) as exc_info:
            await second.mark_attended(second_view)

    assert exc_info.value.status_code == 409
    async with session_maker() as db:
        stored = await SqlAlchemyRegistrationStore(db).get(registration_id)
        assert stored.attended is True
        assert stored.check_date is not None


@pytest.mark.asyncio
async def test_mark_attended_returns_false_when_already_marked(session_maker, seeded, tmp_path):
    venue, event, users, general, vip = seeded
    registration_id = uuid4()
    async with session_maker() as db:
        await _service(db, tmp_path).create_registration(
            _draft(venue, event, users[0], [users[0]], [general]), registration_id
        )

    async with session_maker() as db:
        store = SqlAlchemyRegistrationStore(db)
        now = datetime.now(timezone.utc)
        assert await store.mark_attended(registration_id, now) is True
        assert await store.mark_attended(registration_id, now) is False
        assert await store.mark_attended(uuid4(), now) is False


@pytest.mark.asyncio
async def test_transfer_moves_attendee_row(session_maker, seeded, tmp_path):
    venue, event, users, general, vip = seeded
    registration_id = uuid4()
    async with session_maker() as db:
        await _service(db, tmp_path).create_registration(
            _draft(venue, event, users[0], [users[0], users[1]], [general, vip]), registration_id
        )

    async with session_maker() as db:
        await _service(db, tmp_path).transfer_ticket(registration_id, users[1].id, users[2].id)

    async with session_maker() as db:
        store = SqlAlchemyRegistrationStore(db)
        registration = await store.get(registration_id)
        assert registration.bought_for_ids == [users[0].id, users[2].id]
        assert registration.ticket_type_ids == [general.id, vip.id]
        assert await store.find_registered_attendees(event.id, [users[1].id]) == []


@pytest.mark.asyncio
async def test_transfer_to_user_of_another_registration_rejected(session_maker, seeded, tmp_path):
    venue, event, users, general, vip = seeded
    registration_id = uuid4()
    async with session_maker() as db:
        service = _service(db, tmp_path)
        await service.create_registration(
            _draft(venue, event, users[0], [users[0], users[1]], [general, general]), registration_id
        )
        await service.create_registration(_draft(venue, event, users[2], [users[2]], [general]), uuid4())

    async with session_maker() as db:
        with pytest.raises(RegistrationValidationError):
            await _service(db, tmp_path).transfer_ticket(registration_id, users[1].id, users[2].id)

    async with session_maker() as db:
        registration = await SqlAlchemyRegistrationStore(db).get(registration_id)
        assert registration.bought_for_ids == [users[0].id, users[1].id]


@pytest.mark.asyncio
async def test_add_tickets_checks_capacity_then_appends(session_maker, seeded, tmp_path):
    """Capacidad 3 con 2 reservadas: dos nuevas se rechazan, una entra"""
    venue, event, users, general, vip = seeded
    registration_id = uuid4()
    async with session_maker() as db:
        await _service(db, tmp_path).create_registration(
            _draft(venue, event, users[0], [users[0], users[1]], [general, general]), registration_id
        )

    async with session_maker() as db:
        with pytest.raises(RegistrationValidationError) as exc_info:
            await _service(db, tmp_path).add_tickets(registration_id, [users[2].id, users[3].id], [vip.id, vip.id])
    assert "Available: 1, Requested: 2" in exc_info.value.message

    async with session_maker() as db:
        await _service(db, tmp_path).add_tickets(registration_id, [users[2].id], [vip.id])

    async with session_maker() as db:
        store = SqlAlchemyRegistrationStore(db)
        registration = await store.get(registration_id)
        assert registration.bought_for_ids == [users[0].id, users[1].id, users[2].id]
        assert registration.ticket_type_ids == [general.id, general.id, vip.id]
        assert registration.no_of_tickets == 3
        assert registration.total_cost == Decimal("70.00")
        assert await store.sum_tickets_for_event(event.id) == 3
