"""
CRUD App: Account Service Tests
===============================

What we test:
    ✅ Form value parsing (user id, balance; blank balance → 0 on create)
    ✅ Balance range [0, 999999999.99]
    ✅ Owner must exist and not be soft-deleted
    ✅ Update replaces owner, name and balance; unknown id → NotFoundError
    ✅ Listing is newest first
"""

from datetime import datetime, timedelta, timezone

import pytest

from crud.exceptions import NotFoundError, ValidationError
from crud.services.account_service import AccountService, parse_balance, parse_positive_id
from crud.services.user_service import UserService


class TestParsing:

    @pytest.mark.parametrize("raw, expected", [
        ("1", 1),
        (" 42 ", 42),
    ])
    def test_positive_id(self, raw, expected):
        assert parse_positive_id(raw, "Invalid user id", "user_id") == expected

    @pytest.mark.parametrize("raw", ["", None, "0", "-3", "abc", "1.5"])
    def test_invalid_id(self, raw):
        with pytest.raises(ValidationError) as exc_info:
            parse_positive_id(raw, "Invalid user id", "user_id")
        assert exc_info.value.message == "Invalid user id"
        assert exc_info.value.field == "user_id"

    @pytest.mark.parametrize("raw, expected", [
        ("", 0.0),
        (None, 0.0),
        ("0", 0.0),
        ("12.5", 12.5),
        ("10.004", 10.0),
        ("999999999.99", 999999999.99),
    ])
    def test_balance_values(self, raw, expected):
        assert parse_balance(raw, required=False) == pytest.approx(expected)

    @pytest.mark.parametrize("raw, message", [
        ("abc", "Invalid balance data"),
        ("nan", "Invalid balance data"),
        ("inf", "Invalid balance data"),
        ("-0.01", "balance cannot be negative"),
        ("1000000000", "balance cannot exceed 999999999.99"),
    ])
    def test_invalid_balance(self, raw, message):
        with pytest.raises(ValidationError) as exc_info:
            parse_balance(raw, required=False)
        assert exc_info.value.message == message

    def test_blank_balance_rejected_when_required(self):
        with pytest.raises(ValidationError) as exc_info:
            parse_balance("  ", required=True)
        assert exc_info.value.message == "Invalid balance data"


class TestAccountService:

    def setup_method(self):
        self.service = AccountService()
        self.users = UserService()

    async def _user(self, db, email="owner@example.com"):
        return await self.users.create_user(db, "Owner", email, "555-0100")

    @pytest.mark.asyncio
    async def test_create_with_blank_balance(self, db_session):
        owner = await self._user(db_session)
        account = await self.service.create_account(db_session, str(owner.id), "Savings", "")

        assert account.id is not None
        assert account.user_id == owner.id
        assert account.name == "Savings"
        assert account.balance == 0.0

    @pytest.mark.asyncio
    async def test_create_for_unknown_user(self, db_session):
        with pytest.raises(ValidationError) as exc_info:
            await self.service.create_account(db_session, "54321", "Savings", "10")
        assert exc_info.value.message == "Invalid user id"

    @pytest.mark.asyncio
    async def test_create_for_deleted_user(self, db_session):
        owner = await self._user(db_session)
        await self.users.delete_user(db_session, owner.id)
        with pytest.raises(ValidationError):
            await self.service.create_account(db_session, str(owner.id), "Savings", "10")

    @pytest.mark.asyncio
    async def test_create_requires_name(self, db_session):
        owner = await self._user(db_session)
        with pytest.raises(ValidationError) as exc_info:
            await self.service.create_account(db_session, str(owner.id), "  ", "10")
        assert exc_info.value.message == "name is required"

    @pytest.mark.asyncio
    async def test_update_replaces_fields(self, db_session):
        owner = await self._user(db_session)
        other = await self._user(db_session, email="other@example.com")
        account = await self.service.create_account(db_session, str(owner.id), "Savings", "10")

        updated = await self.service.update_account(
            db_session, account.id, str(other.id), "Checking", "250.75"
        )
        assert updated.id == account.id
        assert updated.user_id == other.id
        assert updated.name == "Checking"
        assert updated.balance == pytest.approx(250.75)

    @pytest.mark.asyncio
    async def test_update_unknown_account(self, db_session):
        owner = await self._user(db_session)
        with pytest.raises(NotFoundError) as exc_info:
            await self.service.update_account(db_session, 777, str(owner.id), "X", "1")
        assert exc_info.value.message == "Account not found"

    @pytest.mark.asyncio
    async def test_update_rejects_non_positive_id(self, db_session):
        with pytest.raises(ValidationError) as exc_info:
            await self.service.update_account(db_session, 0, "1", "X", "1")
        assert exc_info.value.message == "Invalid account id"

    @pytest.mark.asyncio
    async def test_update_requires_balance(self, db_session):
        owner = await self._user(db_session)
        account = await self.service.create_account(db_session, str(owner.id), "Savings", "10")
        with pytest.raises(ValidationError):
            await self.service.update_account(db_session, account.id, str(owner.id), "Savings", "")

    @pytest.mark.asyncio
    async def test_list_newest_first(self, db_session):
        owner = await self._user(db_session)
        older = await self.service.create_account(db_session, str(owner.id), "Older", "1")
        newer = await self.service.create_account(db_session, str(owner.id), "Newer", "2")
        older.created_at = datetime.now(timezone.utc) - timedelta(days=1)
        await db_session.flush()

        accounts = await self.service.list_accounts(db_session)
        assert [a.id for a in accounts] == [newer.id, older.id]
