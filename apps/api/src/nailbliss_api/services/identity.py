"""Signed-in identity for a customer device or a staff station."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Mapping

from loguru import logger


class Role(str, Enum):
    CUSTOMER = "customer"
    STAFF = "staff"


@dataclass(frozen=True)
class AuthSession:
    """Session handed over by the auth provider: who, and the bearer token to act as them."""

    user_id: str
    access_token: str | None = None


@dataclass(frozen=True)
class Profile:
    id: str
    email: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    username: str | None = None
    avatar_url: str | None = None
    role: Role = Role.CUSTOMER
    card_template: str | None = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Profile":
        try:
            role = Role(row.get("role") or Role.CUSTOMER.value)
        except ValueError:
            logger.warning("Unknown profile role; treating as customer", profile_id=row.get("id"), role=row.get("role"))
            role = Role.CUSTOMER
        return cls(
            id=str(row["id"]),
            email=row.get("email"),
            first_name=row.get("first_name"),
            last_name=row.get("last_name"),
            username=row.get("username"),
            avatar_url=row.get("avatar_url"),
            role=role,
            card_template=row.get("card_template"),
        )

    @property
    def display_name(self) -> str:
        if self.first_name and self.last_name:
            return f"{self.first_name} {self.last_name}"
        if self.username:
            return self.username
        if self.first_name:
            return self.first_name
        return "Customer"

    @property
    def initials(self) -> str:
        return "".join(word[0] for word in self.display_name.split() if word).upper()[:2]


IdentityListener = Callable[["IdentityContext"], None]


class IdentityContext:
    """Holds the current session and profile with an explicit sign-in/sign-out lifecycle.

    Consumers read through the properties and may subscribe to changes; nothing
    outside ``sign_in``/``sign_out`` mutates the held identity.
    """

    def __init__(self) -> None:
        self._session: AuthSession | None = None
        self._profile: Profile | None = None
        self._listeners: list[IdentityListener] = []

    @classmethod
    def signed_in(cls, session: AuthSession, profile: Profile) -> "IdentityContext":
        context = cls()
        context.sign_in(session, profile)
        return context

    @property
    def session(self) -> AuthSession | None:
        return self._session

    @property
    def profile(self) -> Profile | None:
        return self._profile

    @property
    def user_id(self) -> str | None:
        return self._session.user_id if self._session else None

    @property
    def access_token(self) -> str | None:
        return self._session.access_token if self._session else None

    @property
    def is_authenticated(self) -> bool:
        return self._session is not None

    @property
    def is_staff(self) -> bool:
        return self._session is not None and self._profile is not None and self._profile.role is Role.STAFF

    @property
    def is_customer(self) -> bool:
        return self._session is not None and self._profile is not None and self._profile.role is Role.CUSTOMER

    def sign_in(self, session: AuthSession, profile: Profile) -> None:
        if profile.id != session.user_id:
            raise ValueError("Profile does not belong to the session user")
        self._session = session
        self._profile = profile
        logger.info("Identity signed in", user_id=session.user_id, role=profile.role.value)
        self._notify()

    def sign_out(self) -> None:
        if self._session is None:
            return
        user_id = self._session.user_id
        self._session = None
        self._profile = None
        logger.info("Identity signed out", user_id=user_id)
        self._notify()

    def subscribe(self, listener: IdentityListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self)


__all__ = ["AuthSession", "IdentityContext", "IdentityListener", "Profile", "Role"]
