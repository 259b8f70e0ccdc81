"""
Unit tests for RegistrationValidationService

Covers id integrity, capacity, duplicate attendees, ticket type
availability and cost calculation against the in-memory stores.
"""
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from services.registrations.models.domain import RegistrationDraft, ResolvedRegistration
from services.registrations.services.validation_service import (
    INTERNAL_VALIDATION_MESSAGE,
    MAX_TICKETS_PER_REGISTRATION,
    RegistrationValidationService,
    is_within_window,
)
from services.registrations.stores.interfaces import build_registration
from tests.fakes import make_event, make_ticket_type, make_user, make_venue


@pytest.fixture
def validator(references, registrations):
    return RegistrationValidationService(references, registrations)


def _draft(world, **overrides) -> RegistrationDraft:
    values = dict(
        event_id=world.event.id,
        user_id=world.alice.id,
        buyer_id=world.alice.id,
        venue_id=world.venue.id,
        ticket_type_ids=[world.general.id, world.general.id],
        bought_for_ids=[world.alice.id, world.bob.id],
        no_of_tickets=2,
    )
    values.update(overrides)
    return RegistrationDraft(**values)


def _commit_registration(registrations, world, attendees, no_of_tickets=None):
    """Put a registration straight into the fake store"""
    count = no_of_tickets or len(attendees)
    registration = build_registration(ResolvedRegistration(
        registration_id=uuid4(),
        event=world.event,
        user=attendees[0],
        buyer=attendees[0],
        venue=world.venue,
        attendees=attendees,
        ticket_types=[world.general] * count,
        unit_prices=[Decimal("50.00")] * count,
        total_cost=Decimal("50.00") * count,
        no_of_tickets=count,
    ))
    registrations.registrations[registration.id] = registration
    return registration


class TestValidateRegistrationIds:

    @pytest.mark.asyncio
    async def test_valid_draft_passes(self, validator, world):
        result = await validator.validate_registration_ids(_draft(world))

        assert result.valid is True
        assert result.errors == []
        assert result.internal_error is False

    @pytest.mark.asyncio
    async def test_reports_every_failure_without_short_circuit(self, validator, world):
        """Missing event, unknown venue and count mismatch all surface together"""
        # Arrange
        missing_venue = uuid4()
        draft = _draft(world, event_id=None, venue_id=missing_venue, no_of_tickets=3)

        # Act
        result = await validator.validate_registration_ids(draft)

        # Assert
        assert result.valid is False
        assert "Event ID is required." in result.errors
        assert f"Venue with ID '{missing_venue}' does not exist." in result.errors
        assert "Number of boughtForIds (2) must match noOfTickets (3)." in result.errors
        assert result.message.startswith("Validation failed: ")
        assert len(result.errors) >= 3

    @pytest.mark.asyncio
    async def test_unknown_event_named_by_value(self, validator, world):
        ghost = uuid4()
        result = await validator.validate_registration_ids(_draft(world, event_id=ghost))

        assert result.errors == [f"Event with ID '{ghost}' does not exist."]

    @pytest.mark.asyncio
    async def test_unknown_buyer_and_attendee(self, validator, world):
        ghost_buyer, ghost_attendee = uuid4(), uuid4()
        draft = _draft(world, buyer_id=ghost_buyer, bought_for_ids=[world.alice.id, ghost_attendee])

        result = await validator.validate_registration_ids(draft)

        assert f"Buyer with ID '{ghost_buyer}' does not exist." in result.errors
        assert any(str(ghost_attendee) in error and "boughtForIds" in error for error in result.errors)

    @pytest.mark.asyncio
    async def test_user_must_be_among_attendees(self, validator, world):
        draft = _draft(world, bought_for_ids=[world.bob.id, world.carol.id])

        result = await validator.validate_registration_ids(draft)

        assert result.valid is False
        assert "The account owner (userId) must be included in 'boughtForIds'." in result.errors

    @pytest.mark.asyncio
    async def test_empty_bought_for_ids_rejected(self, validator, world):
        result = await validator.validate_registration_ids(_draft(world, bought_for_ids=[]))

        assert "'boughtForIds' must contain at least one attendee." in result.errors

    @pytest.mark.asyncio
    async def test_repeated_ticket_type_is_checked_once_but_counted_per_entry(self, validator, references, world):
        """Two entries of one type and noOfTickets=3 fails on count, not on existence"""
        draft = _draft(
            world,
            no_of_tickets=3,
            bought_for_ids=[world.alice.id, world.bob.id, world.carol.id],
            ticket_type_ids=[world.general.id, world.general.id],
        )

        result = await validator.validate_registration_ids(draft)

        assert result.errors == ["Number of ticket type entries (2) must match noOfTickets (3)."]

    @pytest.mark.asyncio
    async def test_unknown_ticket_type_reported(self, validator, world):
        ghost = uuid4()
        draft = _draft(world, ticket_type_ids=[world.general.id, ghost])

        result = await validator.validate_registration_ids(draft)

        assert result.errors == [f"Ticket Type with ID '{ghost}' does not exist."]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("bad_value", [0, -1, True, None, "2"])
    async def test_no_of_tickets_must_be_positive_integer(self, validator, world, bad_value):
        result = await validator.validate_registration_ids(_draft(world, no_of_tickets=bad_value))

        assert "Number of tickets must be a positive integer." in result.errors

    @pytest.mark.asyncio
    async def test_venue_must_be_the_event_venue(self, validator, references, world):
        stadium = make_venue(capacity=1000, name="Stadium")
        references.add(stadium)

        result = await validator.validate_registration_ids(_draft(world, venue_id=stadium.id))

        assert result.errors == [f"Venue with ID '{stadium.id}' is not the venue of event '{world.event.id}'."]

    @pytest.mark.asyncio
    async def test_store_failure_is_internal_error(self, validator, references, world):
        references.fail = True

        result = await validator.validate_registration_ids(_draft(world))

        assert result.valid is False
        assert result.internal_error is True
        assert result.message == INTERNAL_VALIDATION_MESSAGE


class TestValidateEventCapacity:

    @pytest.mark.asyncio
    async def test_no_registrations_means_full_capacity(self, validator, world):
        result = await validator.validate_event_capacity(world.event.id, world.venue.id, 10)

        assert result.valid is True

    @pytest.mark.asyncio
    async def test_rejects_when_request_exceeds_remaining(self, validator, registrations, world):
        """capacity 10, 5 already reserved, request 6 -> reject"""
        _commit_registration(registrations, world, [world.bob], no_of_tickets=5)

        result = await validator.validate_event_capacity(world.event.id, world.venue.id, 6)

        assert result.valid is False
        assert "Available: 5, Requested: 6" in result.message

    @pytest.mark.asyncio
    async def test_exact_fit_is_allowed(self, validator, registrations, world):
        _commit_registration(registrations, world, [world.bob], no_of_tickets=5)

        result = await validator.validate_event_capacity(world.event.id, world.venue.id, 5)

        assert result.valid is True

    @pytest.mark.asyncio
    async def test_event_venue_governs_over_given_venue(self, validator, references, registrations, world):
        """A larger venue id passed in does not change the event's own capacity"""
        stadium = make_venue(capacity=1000, name="Stadium")
        references.add(stadium)
        _commit_registration(registrations, world, [world.bob], no_of_tickets=9)

        result = await validator.validate_event_capacity(world.event.id, stadium.id, 2)

        assert result.valid is False
        assert "Available: 1, Requested: 2" in result.message

    @pytest.mark.asyncio
    async def test_event_without_venue_uses_given_venue(self, validator, references, world):
        roaming = make_event()
        references.add(roaming)

        result = await validator.validate_event_capacity(roaming.id, world.venue.id, 10)

        assert result.valid is True


class TestValidateAdditionalTickets:

    @pytest.fixture
    def registration(self, registrations, world):
        return _commit_registration(registrations, world, [world.alice, world.bob])

    @pytest.mark.asyncio
    async def test_new_attendee_passes(self, validator, registration, world):
        result = await validator.validate_additional_tickets(registration, [world.carol.id], [world.student.id])

        assert result.valid is True

    @pytest.mark.asyncio
    async def test_attendee_already_on_registration_rejected(self, validator, registration, world):
        result = await validator.validate_additional_tickets(registration, [world.bob.id], [world.general.id])

        assert result.errors == [f"User(s) {world.bob.id} already hold a ticket in this registration."]

    @pytest.mark.asyncio
    async def test_unknown_user_and_count_mismatch(self, validator, registration, world):
        ghost = uuid4()

        result = await validator.validate_additional_tickets(
            registration, [world.carol.id, ghost], [world.general.id]
        )

        assert any(str(ghost) in error for error in result.errors)
        assert "Number of ticket type entries (1) must match the number of new attendees (2)." in result.errors

    @pytest.mark.asyncio
    async def test_repeated_new_attendee_rejected(self, validator, registration, world):
        result = await validator.validate_additional_tickets(
            registration, [world.carol.id, world.carol.id], [world.general.id] * 2
        )

        assert "'boughtForIds' must not contain the same attendee twice." in result.errors

    @pytest.mark.asyncio
    async def test_registration_size_capped(self, validator, references, registration, world):
        crowd = [make_user() for _ in range(MAX_TICKETS_PER_REGISTRATION - 1)]
        references.add(*crowd)

        result = await validator.validate_additional_tickets(
            registration, [u.id for u in crowd], [world.general.id] * len(crowd)
        )

        assert result.valid is False
        assert any(f"at most {MAX_TICKETS_PER_REGISTRATION} tickets" in error for error in result.errors)

    @pytest.mark.asyncio
    async def test_store_failure_is_internal_error(self, validator, references, registration, world):
        references.fail = True

        result = await validator.validate_additional_tickets(registration, [world.carol.id], [world.general.id])

        assert result.internal_error is True


class TestValidateDuplicateRegistration:

    @pytest.mark.asyncio
    async def test_overlapping_attendee_rejected(self, validator, registrations, world):
        """bob already holds a ticket; alice buying for bob is a duplicate"""
        _commit_registration(registrations, world, [world.bob])

        result = await validator.validate_duplicate_registration(
            world.event.id, world.alice.id, [world.alice.id, world.bob.id]
        )

        assert result.valid is False
        assert str(world.bob.id) in result.message
        assert str(world.alice.id) not in result.message

    @pytest.mark.asyncio
    async def test_primary_attendee_counts(self, validator, registrations, world):
        _commit_registration(registrations, world, [world.alice])

        result = await validator.validate_duplicate_registration(world.event.id, world.alice.id, [world.alice.id])

        assert result.valid is False

    @pytest.mark.asyncio
    async def test_other_event_does_not_conflict(self, validator, registrations, world):
        _commit_registration(registrations, world, [world.bob])

        result = await validator.validate_duplicate_registration(uuid4(), world.bob.id, [world.bob.id])

        assert result.valid is True


class TestTicketTypeAvailability:

    @pytest.mark.asyncio
    async def test_inactive_type_rejected(self, validator, references, world):
        world.student.is_active = False

        result = await validator.validate_ticket_type_availability(world.event.id, [world.student.id])

        assert result.valid is False
        assert "not active" in result.errors[0]

    @pytest.mark.asyncio
    async def test_type_of_other_event_rejected(self, validator, references, world):
        other = make_event(world.venue)
        foreign = make_ticket_type(other)
        references.add(other, foreign)

        result = await validator.validate_ticket_type_availability(world.event.id, [foreign.id])

        assert "does not belong to event" in result.errors[0]

    @pytest.mark.asyncio
    async def test_outside_window_rejected(self, validator, references, world):
        now = datetime(2026, 5, 1, tzinfo=timezone.utc)
        late = make_ticket_type(world.event, available_from=now + timedelta(days=1))
        references.add(late)

        result = await validator.validate_ticket_type_availability(world.event.id, [late.id], now=now)

        assert result.valid is False
        assert "not available for sale" in result.errors[0]

    def test_window_bounds_are_inclusive_and_open_when_null(self, world):
        start = datetime(2026, 1, 1, tzinfo=timezone.utc)
        end = datetime(2026, 2, 1, tzinfo=timezone.utc)
        bounded = make_ticket_type(world.event, available_from=start, available_until=end)
        unbounded = make_ticket_type(world.event)

        assert is_within_window(bounded, start) is True
        assert is_within_window(bounded, end) is True
        assert is_within_window(bounded, end + timedelta(seconds=1)) is False
        assert is_within_window(unbounded, start) is True

    def test_naive_datetimes_treated_as_utc(self, world):
        bounded = make_ticket_type(world.event, available_until=datetime(2026, 1, 1))

        assert is_within_window(bounded, datetime(2025, 12, 31, tzinfo=timezone.utc)) is True


class TestCalculateTicketCost:

    @pytest.mark.asyncio
    async def test_repeats_priced_per_entry(self, validator, world):
        """[T1, T1, T2] costs price(T1) * 2 + price(T2)"""
        result = await validator.calculate_ticket_cost([world.general.id, world.general.id, world.student.id])

        assert result.valid is True
        assert result.total_cost == Decimal("120.50")
        assert result.unit_prices == [Decimal("50.00"), Decimal("50.00"), Decimal("20.50")]

    @pytest.mark.asyncio
    async def test_missing_type_fails_with_ids(self, validator, world):
        ghost = uuid4()

        result = await validator.calculate_ticket_cost([world.general.id, ghost])

        assert result.valid is False
        assert result.missing_ids == [ghost]
        assert str(ghost) in result.message

    @pytest.mark.asyncio
    async def test_display_amount_rounds_half_up(self, validator, references, world):
        odd = make_ticket_type(world.event, price="0.005")
        references.add(odd)

        result = await validator.calculate_ticket_cost([odd.id])

        assert result.total_cost == Decimal("0.005")
        assert result.display_amount() == Decimal("0.01")

    @pytest.mark.asyncio
    async def test_empty_list_fails(self, validator):
        result = await validator.calculate_ticket_cost([])

        assert result.valid is False
