"""QR token protocol: codec, rendering, and the rotating presenter."""

from .codec import DecodedToken, TokenCodec
from .presenter import NoCustomerIdentityError, PresentedToken, TokenPresenter, issue_token
from .rendering import LocalQRRenderer, QRRenderer, RemoteQRRenderer, RenderedCode, build_renderer

__all__ = [
    "DecodedToken",
    "LocalQRRenderer",
    "NoCustomerIdentityError",
    "PresentedToken",
    "QRRenderer",
    "RemoteQRRenderer",
    "RenderedCode",
    "TokenCodec",
    "TokenPresenter",
    "build_renderer",
    "issue_token",
]
