# [TESTER] v1

from __future__ import annotations

import pytest

from sealedbet.core.winners import ToleranceWinnerPolicy
from sealedbet.state import Prediction

PLAIN = {"0x" + "01" * 32: 77, "0x" + "02" * 32: 75, "0x" + "03" * 32: 90}


def _predictions() -> list[Prediction]:
    return [
        Prediction(batch_id=1, actor="0x" + f"{i:02x}" * 20, handle=h, amount=1)
        for i, h in enumerate(PLAIN, start=1)
    ]


def _distance(handle: str, value: int) -> int:
    return abs(PLAIN[handle] - value)


def test_exact_match_by_default() -> None:
    assert ToleranceWinnerPolicy(_distance).count_winners(_predictions(), 77) == 1


def test_tolerance_widens_winners() -> None:
    assert ToleranceWinnerPolicy(_distance, tolerance=2).count_winners(_predictions(), 77) == 2
    assert ToleranceWinnerPolicy(_distance, tolerance=20).count_winners(_predictions(), 77) == 3


def test_no_predictions_no_winners() -> None:
    assert ToleranceWinnerPolicy(_distance).count_winners([], 77) == 0


def test_negative_tolerance_rejected() -> None:
    with pytest.raises(ValueError):
        ToleranceWinnerPolicy(_distance, tolerance=-1)
