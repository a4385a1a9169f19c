# [TESTER] v1

from __future__ import annotations

import pytest

from sealedbet.integration.callbacks import (
    CallbackEnvelope,
    callback_envelope_to_dict,
    parse_callback_envelope,
)


def _obj(**overrides):
    obj = {"request_id": 3, "cleartexts": "0x" + "00" * 31 + "4d", "proof": {"signatures": []}}
    obj.update(overrides)
    return obj


def test_parse_valid_envelope() -> None:
    env = parse_callback_envelope(_obj())
    assert env.request_id == 3
    assert env.cleartexts == b"\x00" * 31 + b"\x4d"
    assert env.proof == {"signatures": []}


def test_decimal_string_request_id() -> None:
    big = str(2**256 - 1)
    assert parse_callback_envelope(_obj(request_id=big)).request_id == 2**256 - 1


def test_to_dict_parses_back() -> None:
    env = CallbackEnvelope(request_id=9, cleartexts=b"\x01\x02", proof={"signatures": []})
    assert parse_callback_envelope(callback_envelope_to_dict(env)) == env


@pytest.mark.parametrize(
    "obj",
    [
        None,
        [],
        _obj(request_id=0),
        _obj(request_id=-1),
        _obj(request_id=True),
        _obj(request_id="0x10"),
        _obj(cleartexts=None),
        _obj(cleartexts="0xabc"),
        _obj(cleartexts="0xzz"),
        _obj(proof=[]),
        _obj(extra=1),
    ],
)
def test_malformed_envelopes_rejected(obj) -> None:
    with pytest.raises(ValueError):
        parse_callback_envelope(obj)


def test_cleartext_size_bounded() -> None:
    with pytest.raises(ValueError):
        parse_callback_envelope(_obj(cleartexts="0x" + "00" * 65), max_cleartext_bytes=64)
