"""Diaspora transfer requests: required fields and the queued row"""

from unittest.mock import Mock

import pytest

from services.diaspora_service import DiasporaService
from utils import messages
from utils.exception_handler import ValidationError


@pytest.fixture
def notifications():
    return Mock()


@pytest.fixture
def service(fake_backend, notifications):
    return DiasporaService(fake_backend, notifications=notifications)


class TestCreateTransfer:

    @pytest.mark.asyncio
    async def test_row_matches_request_form(self, service, fake_backend, notifications):
        transfer = await service.create_transfer(
            "user-1", "0551 23 45 67", "150", "France", sender_city="Lyon", recipient_name="Karim D", note="  ",
        )

        table, row = fake_backend.inserted[0]
        assert table == "diaspora_transfers"
        assert row == {
            "sender_id": "user-1",
            "recipient_phone": "0551234567",
            "recipient_name": "Karim D",
            "amount": 150,
            "sender_country": "France",
            "sender_city": "Lyon",
            "note": None,
            "status": "pending",
        }
        assert transfer["id"] == "diaspora_transfers-1"
        assert notifications.fire.call_args[0][0] == "new_diaspora_transfer"

    @pytest.mark.asyncio
    async def test_optional_fields_default_to_none(self, service, fake_backend):
        await service.create_transfer("user-1", "+213551234567", "99.5", "Canada")
        row = fake_backend.inserted[0][1]
        assert row["recipient_phone"] == "0551234567"
        assert row["amount"] == 99.5
        assert row["sender_city"] is None
        assert row["recipient_name"] is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("phone, amount, country", [
        ("", "100", "France"),
        ("0551234567", "", "France"),
        ("0551234567", "100", "  "),
    ])
    async def test_required_fields(self, service, fake_backend, phone, amount, country):
        with pytest.raises(ValidationError) as exc:
            await service.create_transfer("user-1", phone, amount, country)
        assert exc.value.user_message == messages.DIASPORA_MISSING_FIELDS
        assert fake_backend.inserted == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", ["0", "-20", "abc"])
    async def test_amount_must_be_positive(self, service, fake_backend, amount):
        with pytest.raises(ValidationError) as exc:
            await service.create_transfer("user-1", "0551234567", amount, "France")
        assert exc.value.user_message == messages.INVALID_AMOUNT
        assert fake_backend.inserted == []

    @pytest.mark.asyncio
    async def test_short_recipient_phone(self, service, fake_backend):
        with pytest.raises(ValidationError) as exc:
            await service.create_transfer("user-1", "05512", "100", "France")
        assert exc.value.user_message == messages.INVALID_PHONE

    @pytest.mark.asyncio
    async def test_latest_transfer_by_sender(self, service, fake_backend):
        fake_backend.tables["diaspora_transfers"] = [{"id": "dt-1", "status": "pending"}]
        assert (await service.get_latest_transfer("user-1"))["id"] == "dt-1"
        assert fake_backend.calls[-1] == ("select", "diaspora_transfers", {"sender_id": "eq.user-1"})
