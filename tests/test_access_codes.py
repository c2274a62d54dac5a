"""
Tests for access code issuing, validation and retirement.

Run with: pytest tests/test_access_codes.py -v
"""

from datetime import datetime, timedelta
from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError
from sqlmodel import select

from core.errors import SakanError
from models.models import AccessCode, AccessCodeAction
from services import access_codes
from services.access_codes import (
    CODE_ALPHABET,
    EMAIL_MISMATCH,
    EXPIRED,
    INVALID,
    LOCKED_OUT,
    USED,
)


@pytest.fixture
def issued_code(session, residence_setup):
    return access_codes.create_access_code(
        session,
        original_user_id=residence_setup.syndic.id,
        replacement_email="alice@example.com",
        residence_id=residence_setup.residence.id,
        action_type=AccessCodeAction.CHANGE_ROLE.value,
    )


def stored(session, code):
    return session.exec(select(AccessCode).where(AccessCode.code == code)).first()


class TestGeneration:
    def test_code_shape(self):
        for _ in range(200):
            code = access_codes.generate_access_code()
            assert len(code) == 8
            assert set(code) <= set(CODE_ALPHABET)

    def test_alphabet_excludes_confusable_symbols(self):
        assert len(CODE_ALPHABET) == 32
        assert not set("IO01") & set(CODE_ALPHABET)


class TestCreate:
    def test_persists_with_seven_day_expiry(self, session, issued_code, residence_setup):
        row = stored(session, issued_code.code)
        assert row.original_user_id == residence_setup.syndic.id
        assert row.replacement_email == "alice@example.com"
        assert row.action_type == "change_role"
        assert row.code_used is False
        assert row.failed_attempts == 0
        assert timedelta(days=6, hours=23) < row.expires_at - datetime.utcnow() <= timedelta(days=7)

    def test_regenerates_on_collision(self, session, issued_code, residence_setup):
        taken = issued_code.code
        with patch.object(access_codes, "generate_access_code", side_effect=[taken, taken, "ZZZZ2345"]):
            fresh = access_codes.create_access_code(
                session,
                original_user_id=residence_setup.syndic.id,
                replacement_email="bob@example.com",
                residence_id=residence_setup.residence.id,
                action_type=AccessCodeAction.DELETE_ACCOUNT.value,
            )
        assert fresh.code == "ZZZZ2345"
        assert len(session.exec(select(AccessCode)).all()) == 2

    def test_rejects_unknown_action(self, session, residence_setup):
        with pytest.raises(SakanError):
            access_codes.create_access_code(
                session, residence_setup.syndic.id, "alice@example.com", residence_setup.residence.id, "promote_to_admin"
            )


class TestValidate:
    def test_unknown_code(self, session):
        result = access_codes.validate_access_code(session, "NOPE2345")
        assert result.valid is False
        assert result.reason == INVALID
        assert result.message == "Invalid code"

    def test_valid_code_returns_payload(self, session, issued_code, residence_setup):
        result = access_codes.validate_access_code(session, issued_code.code, expected_email="alice@example.com")
        assert result.valid is True
        assert result.data == {
            "original_user_id": residence_setup.syndic.id,
            "replacement_email": "alice@example.com",
            "residence_id": residence_setup.residence.id,
            "action_type": "change_role",
        }

    def test_email_comparison_ignores_case_and_whitespace(self, session, issued_code):
        result = access_codes.validate_access_code(session, issued_code.code, expected_email="  ALICE@Example.com ")
        assert result.valid is True

    def test_validation_without_email_skips_the_check(self, session, issued_code):
        assert access_codes.validate_access_code(session, issued_code.code).valid is True

    def test_two_mismatches_then_success_resets_counter(self, session, issued_code):
        first = access_codes.validate_access_code(session, issued_code.code, expected_email="mallory@example.com")
        assert (first.valid, first.reason, first.attempts_remaining) == (False, EMAIL_MISMATCH, 2)

        second = access_codes.validate_access_code(session, issued_code.code, expected_email="eve@example.com")
        assert (second.valid, second.reason, second.attempts_remaining) == (False, EMAIL_MISMATCH, 1)
        assert stored(session, issued_code.code).failed_attempts == 2

        third = access_codes.validate_access_code(session, issued_code.code, expected_email="alice@example.com")
        assert third.valid is True
        assert stored(session, issued_code.code).failed_attempts == 0

    def test_third_mismatch_deletes_code(self, session, issued_code):
        code = issued_code.code
        for expected_remaining in (2, 1):
            result = access_codes.validate_access_code(session, code, expected_email="eve@example.com")
            assert result.attempts_remaining == expected_remaining
            assert stored(session, code).failed_attempts <= 3

        result = access_codes.validate_access_code(session, code, expected_email="eve@example.com")
        assert result.reason == LOCKED_OUT
        assert result.attempts_remaining == 0
        assert stored(session, code) is None

        # Gone for the rightful owner too
        assert access_codes.validate_access_code(session, code, expected_email="alice@example.com").reason == INVALID

    def test_counter_at_limit_locks_out_before_other_checks(self, session, issued_code):
        row = stored(session, issued_code.code)
        row.failed_attempts = 3
        row.code_used = True
        session.add(row)
        session.commit()

        result = access_codes.validate_access_code(session, issued_code.code, expected_email="alice@example.com")
        assert result.reason == LOCKED_OUT
        assert stored(session, issued_code.code) is None

    def test_used_code(self, session, issued_code):
        row = stored(session, issued_code.code)
        row.code_used = True
        session.add(row)
        session.commit()

        result = access_codes.validate_access_code(session, issued_code.code, expected_email="alice@example.com")
        assert result.reason == USED
        assert result.message == "This code has already been used"

    def test_expired_code_is_rejected_but_kept(self, session, issued_code):
        row = stored(session, issued_code.code)
        row.expires_at = datetime.utcnow() - timedelta(minutes=1)
        session.add(row)
        session.commit()

        result = access_codes.validate_access_code(session, issued_code.code, expected_email="alice@example.com")
        assert result.reason == EXPIRED
        assert stored(session, issued_code.code) is not None


class TestRetire:
    def test_mark_used_deletes_code(self, session, issued_code, residence_setup):
        assert access_codes.mark_access_code_as_used(session, issued_code.code, residence_setup.alice.id) is True
        assert stored(session, issued_code.code) is None

    def test_mark_used_is_idempotent(self, session, issued_code, residence_setup):
        access_codes.mark_access_code_as_used(session, issued_code.code, residence_setup.alice.id)
        assert access_codes.mark_access_code_as_used(session, issued_code.code, residence_setup.alice.id) is True

    def test_mark_used_never_raises(self, session, issued_code, residence_setup):
        failure = OperationalError("UPDATE access_codes", {}, Exception("disk I/O error"))
        with patch.object(session, "commit", side_effect=failure):
            assert access_codes.mark_access_code_as_used(session, issued_code.code, residence_setup.alice.id) is False

    def test_delete_and_status(self, session, issued_code):
        status = access_codes.check_access_code_status(session, issued_code.code)
        assert status["exists"] is True
        assert status["used"] is False
        assert status["expired"] is False
        assert status["failed_attempts"] == 0

        assert access_codes.delete_access_code(session, issued_code.code) is True
        assert access_codes.check_access_code_status(session, issued_code.code)["exists"] is False
        assert access_codes.delete_access_code(session, issued_code.code) is False


class TestPendingCodeForEmail:
    def test_finds_live_code_case_insensitively(self, session, issued_code):
        found = access_codes.find_pending_code_for_email(session, "Alice@Example.COM")
        assert found is not None
        assert found.code == issued_code.code

    def test_ignores_expired_codes_and_other_emails(self, session, issued_code):
        assert access_codes.find_pending_code_for_email(session, "bob@example.com") is None

        row = stored(session, issued_code.code)
        row.expires_at = datetime.utcnow() - timedelta(days=1)
        session.add(row)
        session.commit()
        assert access_codes.find_pending_code_for_email(session, "alice@example.com") is None

    def test_blank_email(self, session):
        assert access_codes.find_pending_code_for_email(session, "  ") is None
