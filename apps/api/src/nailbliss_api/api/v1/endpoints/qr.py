"""Customer QR tokens: a one-shot issue endpoint and a rotating WebSocket stream."""

from __future__ import annotations

import asyncio
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, WebSocket, WebSocketDisconnect, status
from loguru import logger
from pydantic import BaseModel

from nailbliss_api.api.dependencies.session import (
    get_codec,
    get_renderer,
    load_profile,
    parse_session,
    require_customer,
)
from nailbliss_api.services.identity import IdentityContext
from nailbliss_api.services.tokens import (
    PresentedToken,
    QRRenderer,
    TokenCodec,
    TokenPresenter,
    issue_token,
)


router = APIRouter(prefix="/qr", tags=["QR"])

# Application-defined WebSocket close codes mirroring the HTTP statuses.
WS_CLOSE_BAD_REQUEST = 4400
WS_CLOSE_UNAUTHORIZED = 4401
WS_CLOSE_FORBIDDEN = 4403
WS_CLOSE_NOT_FOUND = 4404
WS_CLOSE_BACKEND_UNAVAILABLE = 4502


class QRImageResponse(BaseModel):
    src: str
    mediaType: str
    size: int


class QRTokenResponse(BaseModel):
    token: str
    customerId: str
    issuedAt: int
    expiresAt: int
    refreshIntervalSeconds: float
    image: QRImageResponse

    @classmethod
    def from_presented(cls, presented: PresentedToken, *, refresh_interval_seconds: float) -> "QRTokenResponse":
        return cls(
            token=presented.token,
            customerId=presented.customer_id,
            issuedAt=presented.issued_at_ms,
            expiresAt=presented.expires_at_ms,
            refreshIntervalSeconds=refresh_interval_seconds,
            image=QRImageResponse(
                src=presented.image.src,
                mediaType=presented.image.media_type,
                size=presented.image.size,
            ),
        )


@router.get("/token", response_model=QRTokenResponse, summary="Issue a fresh QR token for the signed-in customer")
async def get_qr_token(
    identity: IdentityContext = Depends(require_customer),
    codec: TokenCodec = Depends(get_codec),
    renderer: QRRenderer = Depends(get_renderer),
) -> QRTokenResponse:
    presented = issue_token(identity, codec=codec, renderer=renderer)
    return QRTokenResponse.from_presented(presented, refresh_interval_seconds=codec.freshness_window_ms / 1000)


def _close_code_for(error: HTTPException) -> int:
    return {
        status.HTTP_400_BAD_REQUEST: WS_CLOSE_BAD_REQUEST,
        status.HTTP_401_UNAUTHORIZED: WS_CLOSE_UNAUTHORIZED,
        status.HTTP_403_FORBIDDEN: WS_CLOSE_FORBIDDEN,
        status.HTTP_404_NOT_FOUND: WS_CLOSE_NOT_FOUND,
    }.get(error.status_code, WS_CLOSE_BACKEND_UNAVAILABLE)


async def _authenticate(websocket: WebSocket, user: str | None, token: str | None) -> IdentityContext | None:
    """Resolve the connection's customer identity, closing the socket when it cannot be used."""

    try:
        session = parse_session(user, token)
        profile = await load_profile(websocket.app.state.backend, session)
    except HTTPException as error:
        logger.info("QR stream rejected", reason=error.detail, status_code=error.status_code)
        await websocket.close(code=_close_code_for(error), reason=str(error.detail))
        return None

    identity = IdentityContext.signed_in(session, profile)
    if not identity.is_customer:
        await websocket.close(code=WS_CLOSE_FORBIDDEN, reason="QR codes are only issued to customers")
        return None
    return identity


async def _pump(websocket: WebSocket, outbox: asyncio.Queue[dict[str, Any]]) -> None:
    try:
        while True:
            frame = await outbox.get()
            await websocket.send_json(frame)
    except (WebSocketDisconnect, RuntimeError) as exc:
        logger.debug("QR stream send stopped", error=str(exc))


async def _wait_for_disconnect(websocket: WebSocket) -> None:
    while True:
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            return


@router.websocket("/stream")
async def stream_qr_tokens(
    websocket: WebSocket,
    user: str | None = Query(None),
    token: str | None = Query(None),
) -> None:
    """Push a new token every freshness window plus a countdown tick every second.

    The presenter lives exactly as long as the connection.
    """

    await websocket.accept()
    identity = await _authenticate(websocket, user, token)
    if identity is None:
        return

    state = websocket.app.state
    outbox: asyncio.Queue[dict[str, Any]] = asyncio.Queue()

    def on_token(presented: PresentedToken) -> None:
        frame = QRTokenResponse.from_presented(
            presented,
            refresh_interval_seconds=presenter.refresh_interval_seconds,
        ).model_dump()
        outbox.put_nowait({"type": "token", **frame})

    def on_tick(countdown: int) -> None:
        outbox.put_nowait({"type": "tick", "countdown": countdown})

    presenter = TokenPresenter(
        identity,
        codec=state.codec,
        renderer=state.renderer,
        countdown_step_seconds=state.qr_countdown_step_seconds,
        on_token=on_token,
        on_tick=on_tick,
    )

    try:
        async with presenter:
            tasks = {
                asyncio.create_task(_pump(websocket, outbox), name="qr-stream-pump"),
                asyncio.create_task(_wait_for_disconnect(websocket), name="qr-stream-receive"),
                asyncio.create_task(presenter.wait_stopped(), name="qr-stream-stopped"),
            }
            done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
            for task in done:
                if not task.cancelled() and task.exception() is not None:
                    logger.warning("QR stream task failed", task=task.get_name(), error=str(task.exception()))
    finally:
        identity.sign_out()
