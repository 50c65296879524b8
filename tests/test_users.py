"""Tests for the user directory: profiles, riders and saved addresses."""

from __future__ import annotations

import asyncio
from uuid import uuid4

import pytest
from sqlalchemy.exc import IntegrityError

from flashdash.db.models.base import UserRole
from flashdash.services.errors import ConflictError, NotFoundError, ValidationError
from flashdash.services.users import (
    CustomerAccount,
    NewAddress,
    PublicProfile,
    RiderAccount,
    _conflict_from_registration,
)
from tests.factories import next_phone

HOME = NewAddress(detail="1 place de la Bastille, Paris", latitude=48.853, longitude=2.369)


class TestRegistration:
    @pytest.mark.asyncio
    async def test_register_customer_with_first_address(self, directory):
        account = await directory.register_customer(
            "cust-1", name="  Camille  ", phone="+33 6 12 34 56 78", address=HOME
        )

        assert isinstance(account, CustomerAccount)
        assert account.role is UserRole.CUSTOMER
        assert account.name == "Camille"
        assert account.phone == "+33612345678"
        assert len(account.addresses) == 1
        assert account.addresses[0].detail == HOME.detail

    @pytest.mark.asyncio
    async def test_register_rider(self, directory):
        account = await directory.register_rider(
            "rider-1",
            name="Rafael",
            phone=next_phone(),
            vehicle_registration="AB-123-CD",
            image_vehicle="img://scooter.jpg",
        )

        assert isinstance(account, RiderAccount)
        assert account.role is UserRole.RIDER
        assert account.vehicle_registration == "AB-123-CD"
        assert account.current_latitude is None
        assert account.addresses == ()

    @pytest.mark.asyncio
    async def test_duplicate_user_id(self, directory):
        await directory.register_customer("cust-1", name="A", phone=next_phone(), address=HOME)

        with pytest.raises(ConflictError) as exc_info:
            await directory.register_rider(
                "cust-1", name="B", phone=next_phone(), vehicle_registration="X"
            )

        assert exc_info.value.reason == ConflictError.DUPLICATE
        assert exc_info.value.message == "a profile already exists for this user"

    @pytest.mark.asyncio
    async def test_duplicate_phone(self, directory):
        phone = next_phone()
        await directory.register_customer("cust-1", name="A", phone=phone, address=HOME)

        with pytest.raises(ConflictError, match="phone"):
            await directory.register_customer("cust-2", name="B", phone=phone, address=HOME)

        with pytest.raises(NotFoundError):
            await directory.resolve_account("cust-2")

    @pytest.mark.asyncio
    async def test_concurrent_registrations_for_one_identity(self, directory):
        results = await asyncio.gather(
            directory.register_customer("cust-1", name="A", phone=next_phone(), address=HOME),
            directory.register_customer("cust-1", name="B", phone=next_phone(), address=HOME),
            return_exceptions=True,
        )

        accounts = [result for result in results if isinstance(result, CustomerAccount)]
        conflicts = [result for result in results if isinstance(result, ConflictError)]
        assert len(accounts) == 1
        assert len(conflicts) == 1
        assert conflicts[0].reason == ConflictError.DUPLICATE
        assert conflicts[0].message == "a profile already exists for this user"

    @pytest.mark.parametrize(
        ("driver_message", "expected"),
        [
            ("UNIQUE constraint failed: users.phone", "phone number is already registered"),
            (
                'duplicate key value violates unique constraint "uq_users_phone"',
                "phone number is already registered",
            ),
            ("UNIQUE constraint failed: users.user_id", "a profile already exists for this user"),
            (
                'duplicate key value violates unique constraint "pk_users"',
                "a profile already exists for this user",
            ),
        ],
    )
    def test_unique_violation_messages(self, driver_message, expected):
        exc = IntegrityError("INSERT INTO users", {}, Exception(driver_message))

        conflict = _conflict_from_registration(exc)

        assert conflict.reason == ConflictError.DUPLICATE
        assert conflict.message == expected

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("kwargs", "field"),
        [
            ({"name": "   "}, "name"),
            ({"phone": "12"}, "phone"),
            ({"address": NewAddress(detail="", latitude=0.0, longitude=0.0)}, "detail"),
            ({"address": NewAddress(detail="x", latitude=91.0, longitude=0.0)}, "latitude"),
            ({"address": NewAddress(detail="x", latitude=0.0, longitude=-181.0)}, "longitude"),
        ],
    )
    async def test_invalid_customer_fields(self, directory, kwargs, field):
        fields = {"name": "Valid", "phone": next_phone(), "address": HOME, **kwargs}

        with pytest.raises(ValidationError) as exc_info:
            await directory.register_customer("cust-1", **fields)

        assert exc_info.value.field == field

    @pytest.mark.asyncio
    async def test_rider_needs_vehicle_registration(self, directory):
        with pytest.raises(ValidationError) as exc_info:
            await directory.register_rider(
                "rider-1", name="R", phone=next_phone(), vehicle_registration=" "
            )
        assert exc_info.value.field == "vehicle_registration"


class TestLookup:
    @pytest.mark.asyncio
    async def test_resolve_account_returns_role_variant(self, directory, parties):
        assert isinstance(await directory.resolve_account("sender-1"), CustomerAccount)
        assert isinstance(await directory.resolve_account("rider-a"), RiderAccount)

    @pytest.mark.asyncio
    async def test_unregistered_identity(self, directory, parties):
        with pytest.raises(NotFoundError):
            await directory.resolve_account("stranger")

    @pytest.mark.asyncio
    async def test_find_by_phone_normalizes_input(self, directory):
        await directory.register_customer(
            "cust-1", name="Camille", phone="+33612345678", address=HOME
        )

        account = await directory.find_by_phone("+33 (6) 12-34-56-78")

        assert account.user_id == "cust-1"

    @pytest.mark.asyncio
    async def test_find_by_unknown_phone(self, directory, parties):
        with pytest.raises(NotFoundError):
            await directory.find_by_phone("+19999999999")

    @pytest.mark.asyncio
    async def test_public_profiles_skip_unknown_ids(self, directory, parties):
        profiles = await directory.get_public_profiles(["sender-1", "rider-a", "ghost", None])

        assert profiles == {
            "sender-1": PublicProfile(name="Sophie Sender", image_profile=None),
            "rider-a": PublicProfile(name="Rider A", image_profile="img://rider-a.jpg"),
        }
        assert await directory.get_public_profiles([]) == {}


class TestProfileUpdates:
    @pytest.mark.asyncio
    async def test_update_profile(self, directory, parties):
        account = await directory.update_profile(
            "sender-1", name="Sophie S.", image_profile="img://me.jpg"
        )

        assert account.name == "Sophie S."
        assert account.image_profile == "img://me.jpg"
        assert len(account.addresses) == 1

    @pytest.mark.asyncio
    async def test_update_rider_profile(self, directory, parties):
        account = await directory.update_rider_profile(
            "rider-a", vehicle_registration="ZZ-999-ZZ"
        )

        assert account.vehicle_registration == "ZZ-999-ZZ"
        assert account.name == "Rider A"

    @pytest.mark.asyncio
    async def test_customer_has_no_rider_profile(self, directory, parties):
        with pytest.raises(NotFoundError):
            await directory.update_rider_profile("sender-1", vehicle_registration="X")

    @pytest.mark.asyncio
    async def test_rider_location(self, directory, parties):
        account = await directory.update_rider_location(
            "rider-b", latitude=48.8584, longitude=2.2945
        )

        assert account.current_latitude == pytest.approx(48.8584)
        assert account.current_longitude == pytest.approx(2.2945)
        assert account.location_updated_at is not None

    @pytest.mark.asyncio
    async def test_rider_location_out_of_range(self, directory, parties):
        with pytest.raises(ValidationError):
            await directory.update_rider_location("rider-b", latitude=120.0, longitude=0.0)


class TestAddresses:
    @pytest.mark.asyncio
    async def test_add_and_list(self, directory, parties):
        added = await directory.add_address(
            "sender-1", NewAddress(detail="Gym", latitude=48.8, longitude=2.3)
        )

        addresses = await directory.list_addresses("sender-1")

        assert [address.address_id for address in addresses][-1] == added.address_id
        assert len(addresses) == 2

    @pytest.mark.asyncio
    async def test_update_own_address(self, directory, parties):
        updated = await directory.update_address(
            "sender-1", parties.sender_address_id, detail="12 rue de Rivoli, Paris"
        )

        assert updated.detail == "12 rue de Rivoli, Paris"
        assert updated.latitude == pytest.approx(48.856)

    @pytest.mark.asyncio
    async def test_foreign_address_is_not_found(self, directory, parties):
        with pytest.raises(NotFoundError):
            await directory.get_address("sender-1", parties.receiver_address_id)
        with pytest.raises(NotFoundError):
            await directory.update_address(
                "sender-1", parties.receiver_address_id, detail="Hijacked"
            )

        address = await directory.get_address("receiver-1", parties.receiver_address_id)
        assert address.detail == "5 avenue Foch, Paris"

    @pytest.mark.asyncio
    async def test_missing_address(self, directory, parties):
        with pytest.raises(NotFoundError):
            await directory.get_address("sender-1", uuid4())

    @pytest.mark.asyncio
    async def test_add_address_for_unknown_user(self, directory):
        with pytest.raises(NotFoundError):
            await directory.add_address("ghost", HOME)

    @pytest.mark.asyncio
    async def test_snapshot_shape(self, directory, parties):
        address = await directory.get_address("sender-1", parties.sender_address_id)

        assert address.snapshot() == {
            "address_id": str(parties.sender_address_id),
            "detail": "10 rue de Rivoli, Paris",
            "latitude": pytest.approx(48.856),
            "longitude": pytest.approx(2.352),
        }
