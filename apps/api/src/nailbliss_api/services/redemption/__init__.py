"""Staff-side stamp redemption."""

from .coordinator import (  # noqa: F401
    AttemptStatus,
    CoordinatorClosedError,
    LoyaltyBackend,
    RedemptionAttempt,
    RedemptionCoordinator,
    RedemptionOutcome,
    RedemptionState,
)
from .errors import (  # noqa: F401
    CreditingError,
    CustomerLookupError,
    InvalidTokenError,
    NoPendingAttemptError,
    Notice,
    NoticeKind,
    RedemptionBusyError,
    RedemptionError,
    StaffAuthorizationError,
)
from .registry import StationRegistry  # noqa: F401
