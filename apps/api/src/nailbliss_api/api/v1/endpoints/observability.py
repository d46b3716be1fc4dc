"""Observability endpoints for QR token and stamp redemption telemetry."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import PlainTextResponse

from nailbliss_api.api.dependencies.security import require_observability_api_key
from nailbliss_api.observability.redemption import get_redemption_store


router = APIRouter(prefix="/observability", tags=["Observability"])


@router.get(
    "/redemptions",
    dependencies=[Depends(require_observability_api_key)],
    summary="Redemption observability snapshot",
)
async def get_redemption_snapshot() -> dict[str, object]:
    """Aggregated scan, credit, and failure counters since process start."""
    return get_redemption_store().snapshot().as_dict()


def _format_metric(name: str, description: str, value: int | float, labels: dict[str, str] | None = None) -> list[str]:
    label_fragment = ""
    if labels:
        formatted = ",".join(f'{key}="{val}"' for key, val in sorted(labels.items()))
        label_fragment = f"{{{formatted}}}"
    return [
        f"# HELP {name} {description}",
        f"# TYPE {name} gauge",
        f"{name}{label_fragment} {value}",
    ]


@router.get(
    "/prometheus",
    dependencies=[Depends(require_observability_api_key)],
    summary="Prometheus-formatted observability metrics",
    response_class=PlainTextResponse,
)
async def get_prometheus_metrics() -> PlainTextResponse:
    snapshot = get_redemption_store().snapshot()

    lines: list[str] = []
    lines.extend(
        _format_metric("nailbliss_qr_tokens_issued_total", "QR tokens issued to customers", snapshot.tokens_issued)
    )
    for outcome, value in sorted(snapshot.scans.items()):
        lines.extend(
            _format_metric(
                "nailbliss_redemption_scans_total",
                "Scanned QR codes grouped by outcome",
                value,
                labels={"outcome": outcome},
            )
        )
    for result, value in sorted(snapshot.credits.items()):
        lines.extend(
            _format_metric(
                "nailbliss_redemption_credits_total",
                "Crediting procedure calls grouped by result",
                value,
                labels={"result": result},
            )
        )
    for kind, value in sorted(snapshot.failures.items()):
        lines.extend(
            _format_metric(
                "nailbliss_redemption_failures_total",
                "Redemption failures grouped by kind",
                value,
                labels={"kind": kind},
            )
        )

    return PlainTextResponse("\n".join(lines) + "\n")
