"""QR image rendering for presented tokens."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Protocol
from urllib.parse import urlencode

import segno

from nailbliss_api.core.settings import Settings, settings as default_settings


@dataclass(frozen=True)
class RenderedCode:
    """Displayable reference to a QR image: a data URI or a remote image URL."""

    src: str
    media_type: str
    size: int


class QRRenderer(Protocol):
    def render(self, data: str) -> RenderedCode:  # pragma: no cover - protocol
        ...


class LocalQRRenderer:
    """Encode QR symbols in-process with segno."""

    def __init__(
        self,
        *,
        size: int = 200,
        border: int = 2,
        error: str = "m",
        kind: Literal["png", "svg"] = "png",
    ) -> None:
        self.size = size
        self.border = border
        self.error = error
        self.kind = kind

    def render(self, data: str) -> RenderedCode:
        qr = segno.make_qr(data, error=self.error)
        modules, _ = qr.symbol_size(scale=1, border=self.border)
        scale = max(1, self.size // modules)
        if self.kind == "svg":
            src = qr.svg_data_uri(scale=scale, border=self.border)
            media_type = "image/svg+xml"
        else:
            src = qr.png_data_uri(scale=scale, border=self.border)
            media_type = "image/png"
        return RenderedCode(src=src, media_type=media_type, size=modules * scale)


class RemoteQRRenderer:
    """Build an image URL for a hosted QR rendering service."""

    def __init__(self, *, base_url: str, size: int = 200) -> None:
        self.base_url = base_url
        self.size = size

    def render(self, data: str) -> RenderedCode:
        query = urlencode({"size": f"{self.size}x{self.size}", "data": data})
        return RenderedCode(src=f"{self.base_url}?{query}", media_type="image/png", size=self.size)


def build_renderer(config: Settings | None = None) -> QRRenderer:
    config = config or default_settings
    if config.qr_renderer == "remote":
        return RemoteQRRenderer(base_url=config.qr_remote_renderer_url, size=config.qr_image_size)
    return LocalQRRenderer(size=config.qr_image_size)


__all__ = ["LocalQRRenderer", "QRRenderer", "RemoteQRRenderer", "RenderedCode", "build_renderer"]
