# [TESTER] v1

from __future__ import annotations

import pytest
from hypothesis import given
from hypothesis import strategies as st

from sealedbet.state import ActionClass, CooldownTable, Role, RoleTable

OWNER = "0x" + "11" * 20
ALICE = "0x" + "aa" * 20
BOB = "0x" + "bb" * 20


class TestRoleTable:
    def test_requires_exactly_one_owner(self) -> None:
        with pytest.raises(ValueError):
            RoleTable(assignments={})
        with pytest.raises(ValueError):
            RoleTable(assignments={OWNER: Role.OWNER, ALICE: Role.OWNER})

    def test_rejects_non_canonical_actor(self) -> None:
        with pytest.raises(ValueError):
            RoleTable(assignments={"0x" + "AA" * 20: Role.OWNER})

    def test_with_owner_demotes_previous_owner(self) -> None:
        t = RoleTable.genesis(OWNER).with_owner(ALICE)
        assert t.owner == ALICE
        assert t.role_of(OWNER) is Role.PROVIDER
        assert t.providers() == (OWNER, ALICE)

    def test_without_provider_refuses_owner(self) -> None:
        with pytest.raises(ValueError):
            RoleTable.genesis(OWNER).without_provider(OWNER)

    def test_with_provider_is_idempotent(self) -> None:
        t = RoleTable.genesis(OWNER).with_provider(BOB)
        assert t.with_provider(BOB) is t
        assert t.with_provider(OWNER).owner == OWNER


class TestCooldownTable:
    def test_never_acted_is_ready(self) -> None:
        t = CooldownTable()
        assert not t.is_active(ALICE, ActionClass.SUBMISSION, 0, 60)
        assert t.ready_at(ALICE, ActionClass.SUBMISSION, 60) == 0

    def test_classes_are_independent(self) -> None:
        t = CooldownTable().stamped(ALICE, ActionClass.SUBMISSION, 100)
        assert t.is_active(ALICE, ActionClass.SUBMISSION, 101, 60)
        assert not t.is_active(ALICE, ActionClass.DECRYPTION_REQUEST, 101, 60)
        assert not t.is_active(BOB, ActionClass.SUBMISSION, 101, 60)

    @given(
        last=st.integers(min_value=0, max_value=10**9),
        cooldown=st.integers(min_value=1, max_value=10**6),
        elapsed=st.integers(min_value=0, max_value=2 * 10**6),
    )
    def test_boundary_is_inclusive(self, last: int, cooldown: int, elapsed: int) -> None:
        t = CooldownTable().stamped(ALICE, ActionClass.SUBMISSION, last)
        active = t.is_active(ALICE, ActionClass.SUBMISSION, last + elapsed, cooldown)
        assert active == (elapsed < cooldown)

    def test_stamp_rejects_negative_time(self) -> None:
        with pytest.raises(ValueError):
            CooldownTable().stamped(ALICE, ActionClass.SUBMISSION, -1)
