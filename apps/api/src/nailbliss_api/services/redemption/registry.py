"""One redemption coordinator per signed-in staff member."""

from __future__ import annotations

from loguru import logger

from nailbliss_api.observability.redemption import RedemptionObservabilityStore
from nailbliss_api.services.identity import AuthSession, IdentityContext, Profile
from nailbliss_api.services.tokens.codec import TokenCodec

from .coordinator import LoyaltyBackend, RedemptionCoordinator


class StationRegistry:
    def __init__(
        self,
        *,
        backend: LoyaltyBackend,
        codec: TokenCodec,
        store: RedemptionObservabilityStore | None = None,
    ) -> None:
        self._backend = backend
        self._codec = codec
        self._store = store
        self._stations: dict[str, RedemptionCoordinator] = {}

    def __len__(self) -> int:
        return len(self._stations)

    def get(self, user_id: str) -> RedemptionCoordinator | None:
        return self._stations.get(user_id)

    def station_for(self, session: AuthSession, profile: Profile) -> RedemptionCoordinator:
        """Return the user's coordinator, refreshing its identity from the latest session check."""

        coordinator = self._stations.get(session.user_id)
        if coordinator is None or coordinator.is_closed:
            identity = IdentityContext.signed_in(session, profile)
            coordinator = RedemptionCoordinator(
                identity,
                backend=self._backend,
                codec=self._codec,
                store=self._store,
            )
            self._stations[session.user_id] = coordinator
            logger.info("Redemption station opened", staff_id=session.user_id, role=profile.role.value)
            return coordinator

        identity = coordinator.identity
        if identity.session != session or identity.profile != profile:
            identity.sign_in(session, profile)
        return coordinator

    def release(self, user_id: str) -> None:
        coordinator = self._stations.pop(user_id, None)
        if coordinator is None:
            return
        coordinator.close()
        coordinator.identity.sign_out()
        logger.info("Redemption station closed", staff_id=user_id)

    def close_all(self) -> None:
        for user_id in list(self._stations):
            self.release(user_id)


__all__ = ["StationRegistry"]
