"""Tests for UserService."""

from uuid import uuid4

import pytest

from milestone_kernel.exceptions import UserNotFoundError, ValidationError


class TestUpsertUser:

    def test_creates_user(self, user_service):
        user = user_service.upsert_user("bitcoincash:qnewuser")
        assert user.id is not None
        assert user.wallet_address == "bitcoincash:qnewuser"

    def test_idempotent(self, user_service):
        first = user_service.upsert_user("bitcoincash:qsame")
        second = user_service.upsert_user("  bitcoincash:qsame  ")
        assert first.id == second.id

    @pytest.mark.parametrize("wallet", ["", "   ", None])
    def test_requires_wallet(self, user_service, wallet):
        with pytest.raises(ValidationError):
            user_service.upsert_user(wallet)

    def test_logs_registration_once(self, user_service, captured_logs):
        user_service.upsert_user("bitcoincash:qlogged")
        user_service.upsert_user("bitcoincash:qlogged")
        assert [r["message"] for r in captured_logs()].count("user_registered") == 1


class TestLookups:

    def test_get_user_by_wallet(self, user_service):
        created = user_service.upsert_user("bitcoincash:qlookup")
        assert user_service.get_user_by_wallet("bitcoincash:qlookup") == created

    def test_get_user_by_unknown_wallet(self, user_service):
        assert user_service.get_user_by_wallet("bitcoincash:qnobody") is None
        assert user_service.get_user_by_wallet("") is None

    def test_get_user(self, user_service):
        created = user_service.upsert_user("bitcoincash:qbyid")
        assert user_service.get_user(created.id).wallet_address == "bitcoincash:qbyid"

    def test_get_unknown_user(self, user_service):
        with pytest.raises(UserNotFoundError):
            user_service.get_user(uuid4())
