import base64
import json

import pytest

from nailbliss_api.services.tokens import DecodedToken, TokenCodec


CUSTOMER_ID = "4f6c1c64-0d0f-4b57-a0a4-8f1d1f3a2b77"
ISSUED_AT = 1_700_000_000_000


def _raw_token(document: str, key: str = "nailbliss-2024") -> str:
    return base64.b64encode((document + key).encode("utf-8")).decode("ascii")


def test_encode_matches_legacy_wire_format() -> None:
    codec = TokenCodec()

    token = codec.encode(CUSTOMER_ID, ISSUED_AT)

    decoded = base64.b64decode(token).decode("utf-8")
    assert decoded == json.dumps({"userId": CUSTOMER_ID, "timestamp": ISSUED_AT}, separators=(",", ":")) + "nailbliss-2024"


def test_encode_is_deterministic() -> None:
    codec = TokenCodec()
    assert codec.encode(CUSTOMER_ID, ISSUED_AT) == codec.encode(CUSTOMER_ID, ISSUED_AT)


def test_round_trip_within_window() -> None:
    codec = TokenCodec()
    token = codec.encode(CUSTOMER_ID, ISSUED_AT)

    assert codec.decode(token, now_ms=ISSUED_AT) == DecodedToken(CUSTOMER_ID, ISSUED_AT)
    assert codec.decode(token, now_ms=ISSUED_AT + 59_999) == DecodedToken(CUSTOMER_ID, ISSUED_AT)
    assert codec.decode(token, now_ms=ISSUED_AT + 60_000) is not None


def test_token_invalid_after_window() -> None:
    codec = TokenCodec()
    token = codec.encode(CUSTOMER_ID, ISSUED_AT)

    assert codec.decode(token, now_ms=ISSUED_AT + 60_001) is None


def test_decode_uses_injected_clock(clock) -> None:
    codec = TokenCodec(clock=clock)
    token = codec.issue(CUSTOMER_ID)

    clock.advance(30_000)
    assert codec.decode(token) is not None

    clock.advance(30_001)
    assert codec.decode(token) is None


def test_future_dated_tokens_are_accepted() -> None:
    codec = TokenCodec()
    token = codec.encode(CUSTOMER_ID, ISSUED_AT + 5_000)

    assert codec.decode(token, now_ms=ISSUED_AT) is not None


@pytest.mark.parametrize(
    "raw",
    [
        "",
        "   ",
        "hello world",
        "https://example.com/not-a-token",
        "!!!!",
        base64.b64encode(b"nailbliss-2024").decode(),
        _raw_token('{"userId": "abc"}'),
        _raw_token('{"timestamp": 1700000000000}'),
        _raw_token('{"userId": "", "timestamp": 1700000000000}'),
        _raw_token('{"userId": 42, "timestamp": 1700000000000}'),
        _raw_token('{"userId": "abc", "timestamp": "1700000000000"}'),
        _raw_token('{"userId": "abc", "timestamp": true}'),
        _raw_token('["abc", 1700000000000]'),
        _raw_token("not json at all"),
        _raw_token('{"userId": "abc", "timestamp": 1700000000000}', key="other-key"),
    ],
)
def test_non_codec_strings_decode_to_none(raw: str) -> None:
    codec = TokenCodec()
    assert codec.decode(raw, now_ms=ISSUED_AT) is None


def test_decode_never_raises_for_non_string_input() -> None:
    codec = TokenCodec()
    assert codec.decode(None, now_ms=ISSUED_AT) is None  # type: ignore[arg-type]
    assert codec.decode(b"bytes", now_ms=ISSUED_AT) is None  # type: ignore[arg-type]


def test_custom_window() -> None:
    codec = TokenCodec(freshness_window_ms=5_000)
    token = codec.encode(CUSTOMER_ID, ISSUED_AT)

    assert codec.decode(token, now_ms=ISSUED_AT + 5_000) is not None
    assert codec.decode(token, now_ms=ISSUED_AT + 5_001) is None


def test_rejects_non_positive_window() -> None:
    with pytest.raises(ValueError):
        TokenCodec(freshness_window_ms=0)


def test_encode_requires_customer_id() -> None:
    with pytest.raises(ValueError):
        TokenCodec().encode("", ISSUED_AT)


def test_signed_tokens_round_trip_and_reject_tampering() -> None:
    codec = TokenCodec(signing_secret="desk-secret")
    token = codec.encode(CUSTOMER_ID, ISSUED_AT)

    assert codec.is_signed
    assert "." in token
    assert codec.decode(token, now_ms=ISSUED_AT) == DecodedToken(CUSTOMER_ID, ISSUED_AT)

    payload, _, signature = token.rpartition(".")
    forged_payload = TokenCodec().encode("someone-else", ISSUED_AT)
    assert codec.decode(f"{forged_payload}.{signature}", now_ms=ISSUED_AT) is None
    assert codec.decode(payload, now_ms=ISSUED_AT) is None
    assert codec.decode(f"{payload}.é", now_ms=ISSUED_AT) is None


def test_signed_codec_rejects_tokens_from_other_secret() -> None:
    issuer = TokenCodec(signing_secret="one")
    verifier = TokenCodec(signing_secret="two")

    assert verifier.decode(issuer.encode(CUSTOMER_ID, ISSUED_AT), now_ms=ISSUED_AT) is None


def test_from_settings_reads_protocol_configuration() -> None:
    from nailbliss_api.core.settings import Settings

    config = Settings(qr_freshness_window_seconds=30, qr_obfuscation_key="k", qr_signing_secret="  ")
    codec = TokenCodec.from_settings(config)

    assert codec.freshness_window_ms == 30_000
    assert codec.obfuscation_key == "k"
    assert not codec.is_signed


def test_signing_without_secret_is_refused() -> None:
    codec = TokenCodec(clock=lambda: 0)

    with pytest.raises(RuntimeError):
        codec._sign("payload")
