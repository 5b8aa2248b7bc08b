"""
Tests for group bookings: capacity ledger, waitlist promotion and the orchestrator results.
"""

from datetime import timedelta
from uuid import UUID, uuid4

import pytest
from httpx import AsyncClient
from sqlalchemy import select, update

from arts_booking.core.clock import utcnow
from arts_booking.models.participant import GroupBookingParticipant
from arts_booking.models.waitlist import WaitlistEntry
from arts_booking.services import booking_service, group_booking_service, waitlist_service
from arts_booking.services.spots import ParticipantInfo, load_group_booking
from conftest import at, headers_for


async def waitlist_statuses(db_session, booking_id: UUID) -> dict:
    result = await db_session.execute(
        select(WaitlistEntry).where(WaitlistEntry.booking_id == booking_id).order_by(WaitlistEntry.position)
    )
    return {entry.user_id: entry.status for entry in result.scalars().all()}


async def active_participants(db_session, booking_id: UUID) -> set:
    result = await db_session.execute(
        select(GroupBookingParticipant.user_id).where(
            GroupBookingParticipant.booking_id == booking_id,
            GroupBookingParticipant.status == "confirmed",
        )
    )
    return set(result.scalars().all())


@pytest.mark.asyncio
async def test_create_group_booking(db_session, group_booking_factory, ledger, organizer):
    booking_id = await group_booking_factory(capacity=5, waitlist_enabled=True)

    booking = await ledger(booking_id)
    assert booking.status == "pending"
    assert booking.is_group_booking is True
    assert booking.available_spots == 5
    assert booking.current_participants == 0
    assert booking.group_size == 5
    assert booking.group_organizer_id == organizer.user_id


@pytest.mark.asyncio
async def test_create_group_booking_rejects_zero_capacity(client: AsyncClient, auth_headers):
    response = await client.post(
        "/api/group-bookings",
        json={
            "organization_id": "org-1",
            "resource_id": "room-1",
            "title": "Empty",
            "start_time": at(18).isoformat(),
            "end_time": at(20).isoformat(),
            "capacity": 0,
        },
        headers=auth_headers,
    )
    assert response.status_code == 400
    assert "capacity" in response.json()["error"]


@pytest.mark.asyncio
async def test_capacity_two_with_waitlist_scenario(db_session, group_booking_factory, ledger, alice, bob, carol):
    """A and B fill the booking, C waits, A leaves and C takes the spot."""
    booking_id = await group_booking_factory(capacity=2, waitlist_enabled=True)

    a = await group_booking_service.add_participant(db_session, booking_id, alice)
    assert a.success
    assert (a.data["status"], a.data["available_spots"]) == ("confirmed", 1)

    b = await group_booking_service.add_participant(db_session, booking_id, bob)
    assert (b.data["status"], b.data["available_spots"]) == ("confirmed", 0)

    c = await group_booking_service.add_participant(db_session, booking_id, carol)
    assert c.success
    assert (c.data["status"], c.data["position"]) == ("waitlisted", 1)
    assert (await ledger(booking_id)).available_spots == 0

    left = await group_booking_service.remove_participant(db_session, booking_id, alice.user_id, alice)
    assert left.success
    assert left.data["promoted_user_id"] == carol.user_id
    assert left.data["waitlist_position"] == 1
    assert left.data["available_spots"] == 0

    booking = await ledger(booking_id)
    assert booking.current_participants == 2
    assert await active_participants(db_session, booking_id) == {bob.user_id, carol.user_id}
    assert await waitlist_statuses(db_session, booking_id) == {carol.user_id: "converted"}


@pytest.mark.asyncio
async def test_leave_twice_does_not_double_increment(db_session, group_booking_factory, ledger, alice, bob):
    booking_id = await group_booking_factory(capacity=3)
    await group_booking_service.add_participant(db_session, booking_id, alice)
    await group_booking_service.add_participant(db_session, booking_id, bob)

    first = await group_booking_service.remove_participant(db_session, booking_id, alice.user_id, alice)
    second = await group_booking_service.remove_participant(db_session, booking_id, alice.user_id, alice)

    assert first.success
    assert first.data["available_spots"] == 2
    assert not second.success
    assert second.error_code == "NOT_FOUND"
    assert second.status_code == 404
    booking = await ledger(booking_id)
    assert booking.available_spots == 2
    assert booking.current_participants == 1


@pytest.mark.asyncio
async def test_full_booking_without_waitlist_fails(db_session, group_booking_factory, ledger, alice, bob):
    booking_id = await group_booking_factory(capacity=1, waitlist_enabled=False)
    await group_booking_service.add_participant(db_session, booking_id, alice)

    result = await group_booking_service.add_participant(db_session, booking_id, bob)

    assert not result.success
    assert result.error_code == "INSUFFICIENT_CAPACITY"
    assert result.status_code == 409
    assert (await ledger(booking_id)).current_participants == 1
    assert await active_participants(db_session, booking_id) == {alice.user_id}


@pytest.mark.asyncio
async def test_waitlist_promotes_in_arrival_order(db_session, group_booking_factory, ledger, organizer, alice, bob, carol):
    booking_id = await group_booking_factory(capacity=1, waitlist_enabled=True)
    await group_booking_service.add_participant(db_session, booking_id, organizer)
    a = await group_booking_service.add_participant(db_session, booking_id, alice)
    b = await group_booking_service.add_participant(db_session, booking_id, bob)
    c = await group_booking_service.add_participant(db_session, booking_id, carol)
    assert [a.data["position"], b.data["position"], c.data["position"]] == [1, 2, 3]

    first = await group_booking_service.remove_participant(db_session, booking_id, organizer.user_id, organizer)
    assert first.data["promoted_user_id"] == alice.user_id

    second = await group_booking_service.remove_participant(db_session, booking_id, alice.user_id, alice)
    assert second.data["promoted_user_id"] == bob.user_id

    await ledger(booking_id)
    assert await waitlist_statuses(db_session, booking_id) == {
        alice.user_id: "converted",
        bob.user_id: "converted",
        carol.user_id: "waiting",
    }


@pytest.mark.asyncio
async def test_expired_waitlist_entry_is_skipped(db_session, group_booking_factory, ledger, organizer, alice, bob):
    booking_id = await group_booking_factory(capacity=1, waitlist_enabled=True)
    await group_booking_service.add_participant(db_session, booking_id, organizer)
    await group_booking_service.add_participant(db_session, booking_id, alice)
    await group_booking_service.add_participant(db_session, booking_id, bob)

    await db_session.execute(
        update(WaitlistEntry)
        .where(WaitlistEntry.booking_id == booking_id, WaitlistEntry.user_id == alice.user_id)
        .values(expires_at=utcnow() - timedelta(hours=1))
    )
    await db_session.commit()

    result = await group_booking_service.remove_participant(db_session, booking_id, organizer.user_id, organizer)

    assert result.data["promoted_user_id"] == bob.user_id
    await ledger(booking_id)
    assert await waitlist_statuses(db_session, booking_id) == {alice.user_id: "expired", bob.user_id: "converted"}


@pytest.mark.asyncio
async def test_leave_with_only_expired_entries_frees_the_spot(db_session, group_booking_factory, ledger, organizer, alice):
    booking_id = await group_booking_factory(capacity=1, waitlist_enabled=True)
    await group_booking_service.add_participant(db_session, booking_id, organizer)
    await group_booking_service.add_participant(db_session, booking_id, alice)
    await db_session.execute(
        update(WaitlistEntry).where(WaitlistEntry.booking_id == booking_id).values(expires_at=utcnow() - timedelta(minutes=1))
    )
    await db_session.commit()

    result = await group_booking_service.remove_participant(db_session, booking_id, organizer.user_id, organizer)

    assert result.success
    assert result.data["promoted_user_id"] is None
    assert (await ledger(booking_id)).available_spots == 1
    assert await waitlist_statuses(db_session, booking_id) == {alice.user_id: "expired"}


@pytest.mark.asyncio
async def test_leaving_the_waitlist_keeps_counters(db_session, group_booking_factory, ledger, organizer, alice):
    booking_id = await group_booking_factory(capacity=1, waitlist_enabled=True)
    await group_booking_service.add_participant(db_session, booking_id, organizer)
    await group_booking_service.add_participant(db_session, booking_id, alice)

    result = await group_booking_service.remove_participant(db_session, booking_id, alice.user_id, alice)

    assert result.success
    assert result.data["left_waitlist"] is True
    booking = await ledger(booking_id)
    assert booking.current_participants == 1
    assert await waitlist_statuses(db_session, booking_id) == {alice.user_id: "cancelled"}


@pytest.mark.asyncio
async def test_duplicate_join_conflicts(db_session, group_booking_factory, ledger, alice):
    booking_id = await group_booking_factory(capacity=3)
    await group_booking_service.add_participant(db_session, booking_id, alice)

    result = await group_booking_service.add_participant(db_session, booking_id, alice)

    assert not result.success
    assert result.error_code == "BOOKING_CONFLICT"
    assert (await ledger(booking_id)).current_participants == 1


@pytest.mark.asyncio
async def test_rejoin_after_leaving(db_session, group_booking_factory, ledger, alice):
    booking_id = await group_booking_factory(capacity=2)
    await group_booking_service.add_participant(db_session, booking_id, alice)
    await group_booking_service.remove_participant(db_session, booking_id, alice.user_id, alice)

    result = await group_booking_service.add_participant(db_session, booking_id, alice)

    assert result.success
    assert result.data["status"] == "confirmed"
    assert (await ledger(booking_id)).current_participants == 1


@pytest.mark.asyncio
async def test_invite_only_rejects_direct_join(db_session, group_booking_factory, organizer, alice):
    booking_id = await group_booking_factory(capacity=2, group_booking_type="invite_only")

    stranger = await group_booking_service.add_participant(db_session, booking_id, alice)
    host = await group_booking_service.add_participant(db_session, booking_id, organizer)

    assert not stranger.success
    assert stranger.status_code == 400
    assert host.success


@pytest.mark.asyncio
async def test_join_cancelled_booking_fails(db_session, group_booking_factory, alice):
    booking_id = await group_booking_factory(capacity=2)
    await booking_service.cancel_booking(db_session, booking_id)
    await db_session.commit()

    result = await group_booking_service.add_participant(db_session, booking_id, alice)

    assert not result.success
    assert result.error_code == "VALIDATION_ERROR"


@pytest.mark.asyncio
async def test_leaving_a_cancelled_booking_promotes_nobody(db_session, group_booking_factory, ledger, alice, bob):
    booking_id = await group_booking_factory(capacity=1, waitlist_enabled=True)
    await group_booking_service.add_participant(db_session, booking_id, alice)
    waiting = await group_booking_service.add_participant(db_session, booking_id, bob)
    assert waiting.data["status"] == "waitlisted"
    await booking_service.cancel_booking(db_session, booking_id)
    await db_session.commit()

    result = await group_booking_service.remove_participant(db_session, booking_id, alice.user_id, alice)

    assert result.success
    assert result.data["promoted_user_id"] is None
    assert result.data["available_spots"] == 1
    booking = await ledger(booking_id)
    assert booking.status == "cancelled"
    assert booking.current_participants == 0
    assert await active_participants(db_session, booking_id) == set()
    assert await waitlist_statuses(db_session, booking_id) == {bob.user_id: "waiting"}


@pytest.mark.asyncio
async def test_manual_promotion_on_cancelled_booking_fails(db_session, group_booking_factory, ledger, organizer, alice, bob):
    booking_id = await group_booking_factory(capacity=2, waitlist_enabled=True)
    await group_booking_service.add_participant(db_session, booking_id, alice)
    booking = await load_group_booking(db_session, booking_id)
    entry = await waitlist_service.enqueue(
        db_session, booking, ParticipantInfo(user_id=bob.user_id, name="Bob", email=bob.email)
    )
    entry_id = entry.id
    await booking_service.cancel_booking(db_session, booking_id)
    await db_session.commit()

    result = await group_booking_service.promote_waitlist_participant(db_session, booking_id, entry_id, organizer)

    assert not result.success
    assert result.error_code == "VALIDATION_ERROR"
    assert result.details == {"status": "cancelled"}
    assert (await ledger(booking_id)).current_participants == 1
    assert await waitlist_statuses(db_session, booking_id) == {bob.user_id: "waiting"}


@pytest.mark.asyncio
async def test_unknown_group_booking_is_not_found(db_session, alice):
    join = await group_booking_service.add_participant(db_session, uuid4(), alice)
    details = await group_booking_service.get_details(db_session, uuid4())

    assert join.status_code == 404
    assert details.status_code == 404


@pytest.mark.asyncio
async def test_slot_booking_is_not_a_group_booking(db_session, booking_factory):
    booking = await booking_factory(at(10), at(11))

    result = await group_booking_service.get_details(db_session, booking.id)

    assert not result.success
    assert result.error == "Group booking not found"


@pytest.mark.asyncio
async def test_manual_promotion(db_session, group_booking_factory, ledger, organizer, alice, bob):
    booking_id = await group_booking_factory(capacity=2, waitlist_enabled=True)
    await group_booking_service.add_participant(db_session, booking_id, alice)
    booking = await load_group_booking(db_session, booking_id)
    entry = await waitlist_service.enqueue(
        db_session, booking, ParticipantInfo(user_id=bob.user_id, name="Bob", email=bob.email)
    )
    await db_session.commit()
    entry_id = entry.id

    denied = await group_booking_service.promote_waitlist_participant(db_session, booking_id, entry_id, alice)
    promoted = await group_booking_service.promote_waitlist_participant(db_session, booking_id, entry_id, organizer)

    assert not denied.success
    assert promoted.success
    assert promoted.data["user_id"] == bob.user_id
    assert promoted.data["available_spots"] == 0
    assert (await ledger(booking_id)).current_participants == 2
    assert await active_participants(db_session, booking_id) == {alice.user_id, bob.user_id}


@pytest.mark.asyncio
async def test_manual_promotion_honours_position_order(db_session, group_booking_factory, ledger, organizer, alice, bob, carol):
    booking_id = await group_booking_factory(capacity=2, waitlist_enabled=True)
    await group_booking_service.add_participant(db_session, booking_id, alice)
    booking = await load_group_booking(db_session, booking_id)
    await waitlist_service.enqueue(db_session, booking, ParticipantInfo(user_id=bob.user_id, name="Bob", email=bob.email))
    later = await waitlist_service.enqueue(
        db_session, booking, ParticipantInfo(user_id=carol.user_id, name="Carol", email=carol.email)
    )
    await db_session.commit()
    later_id = later.id

    result = await group_booking_service.promote_waitlist_participant(db_session, booking_id, later_id, organizer)

    assert not result.success
    assert result.error_code == "BOOKING_CONFLICT"
    assert result.details["blocking_position"] == 1
    assert (await ledger(booking_id)).current_participants == 1


@pytest.mark.asyncio
async def test_manual_promotion_of_expired_entry_moves_on(db_session, group_booking_factory, ledger, organizer, alice, bob, carol):
    booking_id = await group_booking_factory(capacity=2, waitlist_enabled=True)
    await group_booking_service.add_participant(db_session, booking_id, alice)
    booking = await load_group_booking(db_session, booking_id)
    first = await waitlist_service.enqueue(
        db_session, booking, ParticipantInfo(user_id=bob.user_id, name="Bob", email=bob.email)
    )
    await waitlist_service.enqueue(db_session, booking, ParticipantInfo(user_id=carol.user_id, name="Carol", email=carol.email))
    first_id = first.id
    await db_session.execute(update(WaitlistEntry).where(WaitlistEntry.id == first_id).values(expires_at=utcnow() - timedelta(hours=2)))
    await db_session.commit()

    result = await group_booking_service.promote_waitlist_participant(db_session, booking_id, first_id, organizer)

    assert result.success
    assert result.data["user_id"] == carol.user_id
    assert result.data["expired_waitlist_ids"] == [str(first_id)]
    await ledger(booking_id)
    assert await waitlist_statuses(db_session, booking_id) == {bob.user_id: "expired", carol.user_id: "converted"}


@pytest.mark.asyncio
async def test_manual_promotion_when_full_fails(db_session, group_booking_factory, ledger, organizer, alice, bob):
    booking_id = await group_booking_factory(capacity=1, waitlist_enabled=True)
    await group_booking_service.add_participant(db_session, booking_id, alice)
    waiting = await group_booking_service.add_participant(db_session, booking_id, bob)

    result = await group_booking_service.promote_waitlist_participant(
        db_session, booking_id, UUID(waiting.data["waitlist_id"]), organizer
    )

    assert not result.success
    assert result.error_code == "INSUFFICIENT_CAPACITY"
    assert (await ledger(booking_id)).current_participants == 1


@pytest.mark.asyncio
async def test_ledger_stays_balanced_over_a_mixed_sequence(db_session, group_booking_factory, ledger, organizer, alice, bob, carol):
    booking_id = await group_booking_factory(capacity=2, waitlist_enabled=True)
    users = {u.user_id: u for u in (organizer, alice, bob, carol)}
    steps = [
        ("join", alice), ("join", bob), ("join", carol), ("join", organizer),
        ("leave", bob), ("leave", bob), ("leave", alice), ("join", bob),
        ("leave", carol), ("leave", organizer), ("join", alice), ("join", carol),
    ]

    for action, user in steps:
        if action == "join":
            await group_booking_service.add_participant(db_session, booking_id, users[user.user_id])
        else:
            await group_booking_service.remove_participant(db_session, booking_id, user.user_id, user)
        await ledger(booking_id)

    booking = await ledger(booking_id)
    assert booking.current_participants == len(await active_participants(db_session, booking_id))


@pytest.mark.asyncio
async def test_get_details_aggregates_everything(db_session, group_booking_factory, organizer, alice, bob):
    booking_id = await group_booking_factory(capacity=1, waitlist_enabled=True)
    await group_booking_service.add_participant(db_session, booking_id, alice)
    await group_booking_service.add_participant(db_session, booking_id, bob)
    await group_booking_service.send_invitation(db_session, booking_id, organizer, "friend@example.com")

    result = await group_booking_service.get_details(db_session, booking_id)

    assert result.success
    details = result.data["booking"]
    assert details["id"] == str(booking_id)
    assert [p["user_id"] for p in details["participants"]] == [alice.user_id]
    assert [w["user_id"] for w in details["waitlist"]] == [bob.user_id]
    assert [i["invited_email"] for i in details["invitations"]] == ["friend@example.com"]


@pytest.mark.asyncio
async def test_list_available_group_bookings(db_session, group_booking_factory, alice):
    open_id = await group_booking_factory(capacity=2, title="Open", start_time=at(10), end_time=at(12))
    full_id = await group_booking_factory(capacity=1, title="Full", start_time=at(13), end_time=at(14))
    await group_booking_factory(capacity=2, title="Pending", start_time=at(15), end_time=at(16))
    for booking_id in (open_id, full_id):
        await booking_service.confirm_booking(db_session, booking_id)
    await db_session.commit()
    await group_booking_service.add_participant(db_session, full_id, alice)

    result = await group_booking_service.list_available_group_bookings(db_session, "org-1")

    assert result.success
    assert result.data["cached"] is False
    assert [b["title"] for b in result.data["bookings"]] == ["Open"]


@pytest.mark.asyncio
async def test_group_booking_http_flow(client: AsyncClient, auth_headers, alice, bob):
    created = await client.post(
        "/api/group-bookings",
        json={
            "organization_id": "org-1",
            "resource_id": "room-1",
            "title": "Printmaking Circle",
            "start_time": at(18).isoformat(),
            "end_time": at(20).isoformat(),
            "capacity": 1,
            "waitlist_enabled": True,
            "price": 25,
        },
        headers=auth_headers,
    )
    assert created.status_code == 201
    booking_id = created.json()["booking_id"]

    joined = await client.post(f"/api/group-bookings/{booking_id}/participants", headers=headers_for(alice))
    waiting = await client.post(
        f"/api/group-bookings/{booking_id}/participants",
        json={"participant_phone": "555-0100"},
        headers=headers_for(bob),
    )
    assert joined.status_code == 201
    assert joined.json()["status"] == "confirmed"
    assert waiting.json()["status"] == "waitlisted"

    left = await client.delete(f"/api/group-bookings/{booking_id}/participants/me", headers=headers_for(alice))
    assert left.status_code == 200
    assert left.json()["promoted_user_id"] == bob.user_id

    again = await client.delete(f"/api/group-bookings/{booking_id}/participants/me", headers=headers_for(alice))
    assert again.status_code == 404
    assert again.json()["success"] is False

    details = await client.get(f"/api/group-bookings/{booking_id}")
    body = details.json()["booking"]
    assert body["current_participants"] == 1
    assert body["available_spots"] == 0
    assert body["price"] == 25


@pytest.mark.asyncio
async def test_participant_cannot_remove_someone_else(client: AsyncClient, group_booking_factory, db_session, alice, bob):
    booking_id = await group_booking_factory(capacity=2)
    await group_booking_service.add_participant(db_session, booking_id, alice)

    response = await client.delete(
        f"/api/group-bookings/{booking_id}/participants/{alice.user_id}", headers=headers_for(bob)
    )

    assert response.status_code == 400
    assert response.json()["error"] == "Only the group organizer can remove other participants"


@pytest.mark.asyncio
async def test_organizer_can_remove_a_participant(client: AsyncClient, group_booking_factory, db_session, ledger, auth_headers, alice):
    booking_id = await group_booking_factory(capacity=2)
    await group_booking_service.add_participant(db_session, booking_id, alice)

    response = await client.delete(f"/api/group-bookings/{booking_id}/participants/{alice.user_id}", headers=auth_headers)

    assert response.status_code == 200
    assert (await ledger(booking_id)).current_participants == 0
