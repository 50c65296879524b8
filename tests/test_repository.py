"""Tests for the delivery repository against a SQLite store.

Covers:
- create/get round trip and NotFound
- guarded transitions (status and rider preconditions)
- invariant checks on mutations
- the one-active-delivery-per-rider index
- concurrent transitions: at most one commits
- timeouts and outages surfacing as RepositoryUnavailableError
- shielded writes surviving caller cancellation
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from datetime import UTC, datetime, timedelta
from unittest.mock import MagicMock
from uuid import uuid4

import pytest
from sqlalchemy.exc import OperationalError

from flashdash.db.models.base import DeliveryStatus
from flashdash.services.errors import (
    ConflictError,
    InvariantViolationError,
    NotFoundError,
    RepositoryUnavailableError,
)
from flashdash.services.repository import (
    VALID_TRANSITIONS,
    DeliveryRepository,
    is_valid_transition,
)
from tests.factories import create_address_snapshot

T0 = datetime(2026, 10, 19, 8, 0, tzinfo=UTC)


async def create(repository: DeliveryRepository, parties, *, created_at=None, **overrides):
    fields = {
        "sender_id": parties.sender.user_id,
        "receiver_id": parties.receiver.user_id,
        "sender_address": create_address_snapshot("Pickup"),
        "receiver_address": create_address_snapshot("Drop-off"),
        "item_description": "Guitar",
        "item_image_ref": "img://guitar.jpg",
        "created_at": created_at,
    }
    fields.update(overrides)
    return await repository.create_pending(**fields)


async def accept(repository: DeliveryRepository, delivery_id, rider_id: str):
    return await repository.transition(
        delivery_id,
        expected_status=DeliveryStatus.PENDING,
        mutation={
            "status": DeliveryStatus.ACCEPTED,
            "rider_id": rider_id,
            "accepted_at": datetime.now(UTC),
        },
    )


class TestCreateAndGet:
    @pytest.mark.asyncio
    async def test_new_delivery_is_pending_without_rider(self, repository, parties):
        delivery_id = await create(repository, parties, rider_note_image_ref="img://note.jpg")

        record = await repository.get(delivery_id)

        assert record.status is DeliveryStatus.PENDING
        assert record.rider_id is None
        assert record.sender_id == parties.sender.user_id
        assert record.receiver_address["detail"] == "Drop-off"
        assert record.rider_note_image_ref == "img://note.jpg"
        assert record.pickup_image_ref is None
        assert record.version == 1
        assert record.created_at.tzinfo is not None

    @pytest.mark.asyncio
    async def test_unknown_id_is_not_found(self, repository, parties):
        with pytest.raises(NotFoundError):
            await repository.get(uuid4())

    @pytest.mark.asyncio
    async def test_unknown_sender_violates_foreign_key(self, repository, parties):
        with pytest.raises(ConflictError) as exc_info:
            await create(repository, parties, sender_id="nobody")
        assert exc_info.value.reason == ConflictError.INTEGRITY


class TestTransition:
    @pytest.mark.asyncio
    async def test_applies_mutation_and_bumps_version(self, repository, parties):
        delivery_id = await create(repository, parties)

        record = await accept(repository, delivery_id, parties.rider_a.user_id)

        assert record.status is DeliveryStatus.ACCEPTED
        assert record.rider_id == parties.rider_a.user_id
        assert record.accepted_at is not None
        assert record.version == 2
        stored = await repository.get(delivery_id)
        assert stored.status is DeliveryStatus.ACCEPTED
        assert stored.rider_id == parties.rider_a.user_id
        assert stored.version == 2

    @pytest.mark.asyncio
    async def test_status_mismatch(self, repository, parties):
        delivery_id = await create(repository, parties)

        with pytest.raises(ConflictError) as exc_info:
            await repository.transition(
                delivery_id,
                expected_status=DeliveryStatus.ACCEPTED,
                mutation={"status": DeliveryStatus.PICKED_UP},
            )

        assert exc_info.value.reason == ConflictError.STATUS_MISMATCH
        assert (await repository.get(delivery_id)).status is DeliveryStatus.PENDING

    @pytest.mark.asyncio
    async def test_rider_mismatch(self, repository, parties):
        delivery_id = await create(repository, parties)
        await accept(repository, delivery_id, parties.rider_a.user_id)

        with pytest.raises(ConflictError) as exc_info:
            await repository.transition(
                delivery_id,
                expected_status=DeliveryStatus.ACCEPTED,
                required_rider_id=parties.rider_b.user_id,
                mutation={
                    "status": DeliveryStatus.PICKED_UP,
                    "pickup_image_ref": "img://p.jpg",
                },
            )

        assert exc_info.value.reason == ConflictError.RIDER_MISMATCH
        record = await repository.get(delivery_id)
        assert record.status is DeliveryStatus.ACCEPTED
        assert record.pickup_image_ref is None

    @pytest.mark.asyncio
    async def test_missing_delivery(self, repository, parties):
        with pytest.raises(NotFoundError):
            await accept(repository, uuid4(), parties.rider_a.user_id)

    @pytest.mark.asyncio
    async def test_callback_conflict_aborts_transaction(self, repository, parties):
        delivery_id = await create(repository, parties)

        def refuse(current):
            raise ConflictError(ConflictError.STATUS_MISMATCH, "changed my mind")

        with pytest.raises(ConflictError, match="changed my mind"):
            await repository.with_transaction(delivery_id, refuse)

        assert (await repository.get(delivery_id)).version == 1


class TestInvariants:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "changes",
        [
            pytest.param({"sender_id": "someone-else"}, id="immutable-field"),
            pytest.param({"item_description": "Other"}, id="immutable-payload"),
            pytest.param(
                {"status": DeliveryStatus.PICKED_UP, "rider_id": "rider-a"}, id="skip-stage"
            ),
            pytest.param({"status": DeliveryStatus.ACCEPTED}, id="accept-without-rider"),
            pytest.param({"rider_id": "rider-a"}, id="rider-while-pending"),
            pytest.param({"status": "accepted", "rider_id": "rider-a"}, id="raw-status-string"),
            pytest.param(
                {
                    "status": DeliveryStatus.ACCEPTED,
                    "rider_id": "rider-a",
                    "pickup_image_ref": "img://early.jpg",
                },
                id="image-outside-stage",
            ),
        ],
    )
    async def test_pending_delivery_rejects(self, repository, parties, changes):
        delivery_id = await create(repository, parties)

        with pytest.raises(InvariantViolationError):
            await repository.with_transaction(delivery_id, lambda current: changes)

        record = await repository.get(delivery_id)
        assert record.status is DeliveryStatus.PENDING
        assert record.rider_id is None
        assert record.version == 1

    @pytest.mark.asyncio
    async def test_rider_cannot_change_once_set(self, repository, parties):
        delivery_id = await create(repository, parties)
        await accept(repository, delivery_id, parties.rider_a.user_id)

        with pytest.raises(InvariantViolationError, match="rider cannot change"):
            await repository.with_transaction(
                delivery_id,
                lambda current: {
                    "status": DeliveryStatus.PICKED_UP,
                    "rider_id": parties.rider_b.user_id,
                    "pickup_image_ref": "img://p.jpg",
                },
            )

    @pytest.mark.asyncio
    async def test_status_cannot_move_backwards(self, repository, parties):
        delivery_id = await create(repository, parties)
        await accept(repository, delivery_id, parties.rider_a.user_id)

        with pytest.raises(InvariantViolationError, match="cannot move"):
            await repository.with_transaction(
                delivery_id,
                lambda current: {"status": DeliveryStatus.PENDING, "rider_id": None},
            )

    @pytest.mark.asyncio
    async def test_delivered_is_final(self, repository, parties):
        delivery_id = await create(repository, parties)
        rider_id = parties.rider_a.user_id
        await accept(repository, delivery_id, rider_id)
        for expected, target, image in [
            (DeliveryStatus.ACCEPTED, DeliveryStatus.PICKED_UP, "pickup_image_ref"),
            (DeliveryStatus.PICKED_UP, DeliveryStatus.DELIVERED, "delivered_image_ref"),
        ]:
            await repository.transition(
                delivery_id,
                expected_status=expected,
                required_rider_id=rider_id,
                mutation={"status": target, image: "img://proof.jpg"},
            )

        with pytest.raises(InvariantViolationError, match="cannot move from delivered"):
            await repository.with_transaction(
                delivery_id, lambda current: {"status": DeliveryStatus.PICKED_UP}
            )

        assert (await repository.get(delivery_id)).status is DeliveryStatus.DELIVERED


class TestTransitionTable:
    @pytest.mark.parametrize(
        ("from_status", "to_status"),
        [
            (DeliveryStatus.PENDING, DeliveryStatus.ACCEPTED),
            (DeliveryStatus.ACCEPTED, DeliveryStatus.PICKED_UP),
            (DeliveryStatus.PICKED_UP, DeliveryStatus.DELIVERED),
        ],
    )
    def test_forward_steps_allowed(self, from_status, to_status):
        assert is_valid_transition(from_status, to_status)

    @pytest.mark.parametrize(
        ("from_status", "to_status"),
        [
            (DeliveryStatus.PENDING, DeliveryStatus.PICKED_UP),
            (DeliveryStatus.ACCEPTED, DeliveryStatus.DELIVERED),
            (DeliveryStatus.PICKED_UP, DeliveryStatus.ACCEPTED),
            (DeliveryStatus.DELIVERED, DeliveryStatus.PENDING),
            (DeliveryStatus.ACCEPTED, DeliveryStatus.ACCEPTED),
        ],
    )
    def test_skips_and_backwards_rejected(self, from_status, to_status):
        assert not is_valid_transition(from_status, to_status)

    def test_only_delivered_has_no_way_out(self):
        final = [status for status, targets in VALID_TRANSITIONS.items() if not targets]
        assert final == [DeliveryStatus.DELIVERED]
        assert set(VALID_TRANSITIONS) == set(DeliveryStatus)


class TestActiveRiderIndex:
    @pytest.mark.asyncio
    async def test_rider_cannot_hold_two_active_deliveries(self, repository, parties):
        first = await create(repository, parties)
        second = await create(repository, parties)
        await accept(repository, first, parties.rider_a.user_id)

        with pytest.raises(ConflictError) as exc_info:
            await accept(repository, second, parties.rider_a.user_id)

        assert exc_info.value.reason == ConflictError.RIDER_BUSY
        assert (await repository.get(second)).status is DeliveryStatus.PENDING

    @pytest.mark.asyncio
    async def test_delivered_delivery_frees_the_rider(self, repository, parties):
        first = await create(repository, parties)
        rider_id = parties.rider_a.user_id
        await accept(repository, first, rider_id)
        await repository.transition(
            first,
            expected_status=DeliveryStatus.ACCEPTED,
            required_rider_id=rider_id,
            mutation={"status": DeliveryStatus.PICKED_UP, "pickup_image_ref": "img://p"},
        )
        await repository.transition(
            first,
            expected_status=DeliveryStatus.PICKED_UP,
            required_rider_id=rider_id,
            mutation={"status": DeliveryStatus.DELIVERED, "delivered_image_ref": "img://d"},
        )

        second = await create(repository, parties)
        record = await accept(repository, second, rider_id)

        assert record.rider_id == rider_id
        assert (await repository.list_active_for_rider(rider_id)).delivery_id == second


class TestListing:
    @pytest.mark.asyncio
    async def test_pending_oldest_first(self, repository, parties):
        later = await create(repository, parties, created_at=T0 + timedelta(minutes=5))
        earlier = await create(repository, parties, created_at=T0)
        taken = await create(repository, parties, created_at=T0 - timedelta(minutes=5))
        await accept(repository, taken, parties.rider_a.user_id)

        pending = await repository.list_by_status(DeliveryStatus.PENDING)

        assert [record.delivery_id for record in pending] == [earlier, later]

    @pytest.mark.asyncio
    async def test_sender_and_receiver_newest_first(self, repository, parties):
        older = await create(repository, parties, created_at=T0)
        newer = await create(repository, parties, created_at=T0 + timedelta(hours=1))

        sent = await repository.list_by_sender(parties.sender.user_id)
        received = await repository.list_by_receiver(parties.receiver.user_id)

        assert [record.delivery_id for record in sent] == [newer, older]
        assert [record.delivery_id for record in received] == [newer, older]
        assert await repository.list_by_sender(parties.receiver.user_id) == []

    @pytest.mark.asyncio
    async def test_active_for_rider(self, repository, parties):
        delivery_id = await create(repository, parties)
        assert await repository.list_active_for_rider(parties.rider_a.user_id) is None

        await accept(repository, delivery_id, parties.rider_a.user_id)

        active = await repository.list_active_for_rider(parties.rider_a.user_id)
        assert active.delivery_id == delivery_id
        assert await repository.list_active_for_rider(parties.rider_b.user_id) is None


class TestConcurrency:
    @pytest.mark.asyncio
    async def test_at_most_one_concurrent_transition_commits(
        self, repository, directory, parties
    ):
        from tests.factories import next_phone

        riders = [parties.rider_a.user_id, parties.rider_b.user_id]
        for index in range(3):
            rider = await directory.register_rider(
                f"rider-extra-{index}",
                name=f"Extra {index}",
                phone=next_phone(),
                vehicle_registration=f"EX-{index}",
            )
            riders.append(rider.user_id)
        delivery_id = await create(repository, parties)

        results = await asyncio.gather(
            *(accept(repository, delivery_id, rider_id) for rider_id in riders),
            return_exceptions=True,
        )

        winners = [result for result in results if not isinstance(result, Exception)]
        losers = [result for result in results if isinstance(result, Exception)]
        assert len(winners) == 1
        assert len(losers) == len(riders) - 1
        assert all(isinstance(error, ConflictError) for error in losers)

        stored = await repository.get(delivery_id)
        assert stored.rider_id == winners[0].rider_id
        assert stored.version == 2


def fake_session_factory(session=None):
    @asynccontextmanager
    async def factory():
        yield session or MagicMock()

    return factory


class TestStoreFailures:
    @pytest.mark.asyncio
    async def test_timeout_is_unavailable(self):
        repository = DeliveryRepository(fake_session_factory(), operation_timeout=0.05)

        async def slow(session):
            await asyncio.sleep(1)

        with pytest.raises(RepositoryUnavailableError) as exc_info:
            await repository._run("slow_read", slow)

        assert exc_info.value.retryable is True
        assert exc_info.value.operation == "slow_read"

    @pytest.mark.asyncio
    async def test_operational_error_is_unavailable(self):
        repository = DeliveryRepository(fake_session_factory())

        async def broken(session):
            raise OperationalError("SELECT 1", {}, Exception("connection refused"))

        with pytest.raises(RepositoryUnavailableError, match="OperationalError"):
            await repository._run("get", broken, shielded=True)

    @pytest.mark.asyncio
    async def test_shielded_write_survives_caller_cancellation(self, repository, parties):
        caller = asyncio.create_task(create(repository, parties))
        await asyncio.sleep(0)
        caller.cancel()
        with pytest.raises(asyncio.CancelledError):
            await caller

        while repository._inflight:
            await asyncio.sleep(0.01)

        pending = await repository.list_by_status(DeliveryStatus.PENDING)
        assert len(pending) == 1
