# Overview: Framework-free authorization gate: composable guard objects and the pipeline that runs them.

"""
Authorization Gate

A guard inspects a GuardContext and either returns None (pass) or raises
one of Unauthorized, Forbidden, MFARequired. GuardPipeline runs guards in
order and stops at the first failure.

build_pipeline() always produces the fixed order

    authentication -> role -> MFA

so a request without a session is never told it lacks a role, and a
request with the wrong role is never prompted for a second factor.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Sequence

from .errors import Forbidden, MFARequired, Unauthorized
from .models import SessionToken, User


@dataclass(frozen=True)
class GuardContext:
    user: User | None
    session: SessionToken | None


class Guard:
    def check(self, context: GuardContext) -> None:
        raise NotImplementedError


class NoOpGuard(Guard):
    def check(self, context: GuardContext) -> None:
        return None


class AuthenticatedGuard(Guard):
    def check(self, context: GuardContext) -> None:
        if context.user is None or context.session is None:
            raise Unauthorized()
        if not context.user.is_active:
            raise Unauthorized()


class RoleGuard(Guard):
    def __init__(self, allowed_roles: Iterable[str]):
        self.allowed_roles = frozenset(allowed_roles)

    def check(self, context: GuardContext) -> None:
        if context.user is None or context.user.role not in self.allowed_roles:
            raise Forbidden()


class MFAGuard(Guard):
    """
    Require a verified second factor when the user has one enabled.

    Users without any factor pass: MFA is opt-in per account.
    """

    def check(self, context: GuardContext) -> None:
        user = context.user
        if user is None or not user.requires_mfa:
            return None
        if context.session is None or not context.session.mfa_verified:
            raise MFARequired()


class GuardPipeline(Guard):
    def __init__(self, guards: Sequence[Guard]):
        self.guards = tuple(guards)

    def check(self, context: GuardContext) -> None:
        for guard in self.guards:
            guard.check(context)


def build_pipeline(roles: Iterable[str] | None = None, mfa: bool = False) -> GuardPipeline:
    role_guard = RoleGuard(roles) if roles else NoOpGuard()
    mfa_guard = MFAGuard() if mfa else NoOpGuard()
    return GuardPipeline([AuthenticatedGuard(), role_guard, mfa_guard])
