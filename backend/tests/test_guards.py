"""
Unit tests for the authorization gate, without HTTP.

Guards only read attributes, so transient (unsaved) User and SessionToken
objects are enough.
"""

import pytest

from pharmasys.errors import Forbidden, MFARequired, Unauthorized
from pharmasys.guards import (
    AuthenticatedGuard,
    GuardContext,
    GuardPipeline,
    MFAGuard,
    NoOpGuard,
    RoleGuard,
    build_pipeline,
)
from pharmasys.models import SessionToken, User


def _user(role="pharmacist", *, active=True, totp=False, email=False) -> User:
    return User(
        username="u",
        role=role,
        is_active=active,
        mfa_enabled=totp,
        email_mfa_enabled=email,
    )


def _session(verified=False) -> SessionToken:
    return SessionToken(mfa_verified=verified)


def test_authenticated_guard_needs_user_and_session():
    guard = AuthenticatedGuard()
    with pytest.raises(Unauthorized):
        guard.check(GuardContext(user=None, session=None))
    with pytest.raises(Unauthorized):
        guard.check(GuardContext(user=_user(), session=None))
    guard.check(GuardContext(user=_user(), session=_session()))


def test_authenticated_guard_rejects_inactive_user():
    with pytest.raises(Unauthorized):
        AuthenticatedGuard().check(GuardContext(user=_user(active=False), session=_session()))


def test_role_guard():
    guard = RoleGuard(["admin", "pharmacist"])
    guard.check(GuardContext(user=_user("pharmacist"), session=_session()))
    with pytest.raises(Forbidden):
        guard.check(GuardContext(user=_user("patient"), session=_session()))


@pytest.mark.parametrize("totp,email", [(True, False), (False, True), (True, True)])
def test_mfa_guard_requires_verified_session_when_factor_enabled(totp, email):
    user = _user(totp=totp, email=email)
    with pytest.raises(MFARequired) as exc:
        MFAGuard().check(GuardContext(user=user, session=_session(verified=False)))
    assert exc.value.to_dict()["mfa_required"] is True

    MFAGuard().check(GuardContext(user=user, session=_session(verified=True)))


def test_mfa_guard_passes_users_without_factor():
    MFAGuard().check(GuardContext(user=_user(), session=_session(verified=False)))


def test_noop_guard():
    NoOpGuard().check(GuardContext(user=None, session=None))


class TestPipelineOrder:

    def test_unauthenticated_wins_over_role(self):
        pipeline = build_pipeline(["admin"], mfa=True)
        with pytest.raises(Unauthorized):
            pipeline.check(GuardContext(user=None, session=None))

    def test_role_wins_over_mfa(self):
        pipeline = build_pipeline(["admin"], mfa=True)
        user = _user("pharmacist", totp=True)
        with pytest.raises(Forbidden) as exc:
            pipeline.check(GuardContext(user=user, session=_session(verified=False)))
        assert not isinstance(exc.value, MFARequired)

    def test_mfa_checked_last(self):
        pipeline = build_pipeline(["admin"], mfa=True)
        with pytest.raises(MFARequired):
            pipeline.check(GuardContext(user=_user("admin", totp=True), session=_session()))

    def test_mfa_not_checked_unless_requested(self):
        pipeline = build_pipeline(["admin"])
        pipeline.check(GuardContext(user=_user("admin", totp=True), session=_session()))

    def test_no_roles_means_any_authenticated_user(self):
        build_pipeline().check(GuardContext(user=_user("patient"), session=_session()))

    def test_custom_pipeline_stops_at_first_failure(self):
        calls = []

        class Recording(NoOpGuard):
            def check(self, context):
                calls.append("ran")

        pipeline = GuardPipeline([RoleGuard(["admin"]), Recording()])
        with pytest.raises(Forbidden):
            pipeline.check(GuardContext(user=_user("doctor"), session=_session()))
        assert calls == []
