from __future__ import annotations

from prompt_gateway.errors import STATUS_BY_KIND, ErrorKind, GenerationError, status_for


def test_status_map_is_fixed() -> None:
    assert {kind.value: status for kind, status in STATUS_BY_KIND.items()} == {
        "UNAUTHORIZED": 401,
        "FORBIDDEN": 403,
        "RATE_LIMITED": 429,
        "INVALID_REQUEST": 400,
        "PROMPT_NOT_FOUND": 404,
        "MODEL_NOT_FOUND": 404,
        "MODEL_DISABLED": 400,
        "MODEL_AUTH_ERROR": 401,
        "MODEL_RATE_LIMITED": 429,
        "INVALID_VARIABLES": 400,
        "MODEL_TIMEOUT": 504,
        "MODEL_UNAVAILABLE": 503,
        "PROVIDER_ERROR": 500,
        "INTERNAL_ERROR": 500,
    }


def test_unknown_kind_defaults_to_500() -> None:
    assert status_for("SOMETHING_ELSE") == 500


def test_envelope_serialises_request_id_alias() -> None:
    error = GenerationError(ErrorKind.MODEL_DISABLED, "nope", details={"model": "x"})

    payload = error.to_envelope("req-1").model_dump(mode="json", by_alias=True)

    assert payload == {
        "code": "MODEL_DISABLED",
        "message": "nope",
        "details": {"model": "x"},
        "requestId": "req-1",
    }


def test_envelope_generates_request_id_when_absent() -> None:
    envelope = GenerationError(ErrorKind.INTERNAL_ERROR, "boom").to_envelope()

    assert envelope.request_id


def test_provider_tag_stays_out_of_envelope() -> None:
    error = GenerationError(ErrorKind.MODEL_TIMEOUT, "slow", provider="anthropic")

    payload = error.to_envelope("req-2").model_dump(mode="json", by_alias=True)

    assert error.provider == "anthropic"
    assert "provider" not in payload
