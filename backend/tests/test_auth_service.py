"""
Authentication service tests: hashing, tokens, login, roles.
"""

from datetime import timedelta

import pytest

from invtrack.errors import DuplicateKeyError, InactiveAccountError, InvalidCredentialsError
from invtrack.services import auth_service, token_service
from invtrack.services.auth_service import PasswordValidationError

from conftest import PASSWORD


class TestPasswords:

    def test_hash_roundtrip(self, app):
        hashed = auth_service.hash_password(PASSWORD)
        assert hashed != PASSWORD
        assert auth_service.verify_password(PASSWORD, hashed)
        assert not auth_service.verify_password("wrong", hashed)

    def test_malformed_hash(self, app):
        assert auth_service.verify_password(PASSWORD, "not-a-hash") is False

    @pytest.mark.parametrize("weak", ["short1!", "alllowercase1!", "ALLUPPER1!", "NoDigits!!", "NoSpecial123"])
    def test_weak_passwords_rejected(self, db_session, weak):
        with pytest.raises(PasswordValidationError):
            auth_service.create_user(username="weak", password=weak)


class TestUsers:

    def test_duplicate_username(self, db_session, admin_user):
        with pytest.raises(DuplicateKeyError):
            auth_service.create_user(username="admin", password=PASSWORD)

    def test_duplicate_email(self, db_session, admin_user):
        with pytest.raises(DuplicateKeyError):
            auth_service.create_user(username="other", password=PASSWORD, email="admin@example.com")

    def test_password_not_serialized(self, db_session, admin_user):
        assert "password_hash" not in admin_user.to_dict()


class TestAuthenticate:

    def test_success_returns_token(self, db_session, staff_user):
        user, token = auth_service.authenticate("staff", PASSWORD)

        assert user.id == staff_user.id
        assert user.last_login is not None
        claims = token_service.verify_token(token)
        assert claims["sub"] == staff_user.id
        assert claims["role"] == "staff"

    def test_wrong_password(self, db_session, staff_user):
        with pytest.raises(InvalidCredentialsError):
            auth_service.authenticate("staff", "Wrong123!")

    def test_unknown_user(self, db_session):
        with pytest.raises(InvalidCredentialsError):
            auth_service.authenticate("ghost", PASSWORD)

    def test_inactive_user(self, db_session, staff_user):
        auth_service.set_user_active(staff_user.id, False)
        with pytest.raises(InactiveAccountError):
            auth_service.authenticate("staff", PASSWORD)


class TestTokens:

    def test_expired_token_rejected(self, db_session, staff_user):
        token = token_service.issue_token(staff_user, expires_delta=timedelta(seconds=-1))
        assert token_service.verify_token(token) is None
        assert auth_service.user_from_token(token) is None

    def test_tampered_token_rejected(self, db_session, staff_user):
        token = token_service.issue_token(staff_user)
        assert token_service.verify_token(token[:-2] + "xx") is None

    def test_deactivated_user_token_rejected(self, db_session, staff_user):
        token = token_service.issue_token(staff_user)
        assert auth_service.user_from_token(token).id == staff_user.id

        auth_service.set_user_active(staff_user.id, False)
        assert auth_service.user_from_token(token) is None


class TestRoles:

    @pytest.mark.parametrize(
        "role,minimum,allowed",
        [
            ("admin", "manager", True),
            ("manager", "manager", True),
            ("staff", "manager", False),
            ("manager", "admin", False),
            ("staff", "staff", True),
        ],
    )
    def test_role_hierarchy(self, db_session, role, minimum, allowed):
        user = auth_service.create_user(username=f"u_{role}", password=PASSWORD, role=role)
        assert auth_service.has_role(user, minimum) is allowed
