"""Tests for the reward ledger and soulbound certificate issuers."""

from decimal import Decimal

import pytest

from covenant.collaborators.certificates import SoulboundCertificateIssuer
from covenant.collaborators.ledger import InMemoryRewardLedger
from covenant.errors import (
    ScheduleFrozen,
    ScheduleNotFound,
    TransferForbidden,
    UnauthorizedCaller,
)


ENGINE = "engine"
ADMIN = "admin"


class TestRewardLedger:
    def test_mint_accumulates(self) -> None:
        ledger = InMemoryRewardLedger(minters=[ENGINE])
        ledger.mint("alice", Decimal("50"), caller=ENGINE)
        ledger.mint("alice", Decimal("0.5"), caller=ENGINE)
        assert ledger.balance_of("alice") == Decimal("50.5")
        assert ledger.total_supply == Decimal("50.5")

    def test_unauthorised_mint(self) -> None:
        ledger = InMemoryRewardLedger(minters=[ENGINE])
        with pytest.raises(UnauthorizedCaller):
            ledger.mint("alice", Decimal("1"), caller="mallory")

    def test_authorize(self) -> None:
        ledger = InMemoryRewardLedger()
        ledger.authorize(ADMIN)
        ledger.mint("alice", Decimal("1"), caller=ADMIN)
        assert ledger.balance_of("alice") == Decimal("1")

    def test_non_positive_mint(self) -> None:
        ledger = InMemoryRewardLedger(minters=[ENGINE])
        with pytest.raises(ValueError):
            ledger.mint("alice", Decimal("0"), caller=ENGINE)

    def test_unknown_balance_is_zero(self) -> None:
        assert InMemoryRewardLedger().balance_of("nobody") == Decimal("0")

    def test_rollback(self) -> None:
        ledger = InMemoryRewardLedger(minters=[ENGINE])
        ledger.mint("alice", Decimal("1"), caller=ENGINE)
        token = ledger.checkpoint()
        ledger.mint("alice", Decimal("5"), caller=ENGINE)
        ledger.rollback(token)
        assert ledger.balance_of("alice") == Decimal("1")

    def test_rollback_drops_new_holder(self) -> None:
        ledger = InMemoryRewardLedger(minters=[ENGINE])
        token = ledger.checkpoint()
        ledger.mint("bob", Decimal("5"), caller=ENGINE)
        ledger.rollback(token)
        assert ledger.balances() == {}


class TestBondCertificates:
    def test_sequential_ids(self) -> None:
        issuer = SoulboundCertificateIssuer("bond", minters=[ENGINE])
        first = issuer.mint_certificate("alice", {"partner": "bob"}, caller=ENGINE)
        second = issuer.mint_certificate("bob", {"partner": "alice"}, caller=ENGINE)
        assert (first, second) == (1, 2)
        assert issuer.get(1).owner == "alice"
        assert [c.token_id for c in issuer.tokens_of("bob")] == [2]

    def test_unauthorised_mint(self) -> None:
        issuer = SoulboundCertificateIssuer("bond", minters=[ENGINE])
        with pytest.raises(UnauthorizedCaller):
            issuer.mint_certificate("alice", {}, caller="mallory")

    def test_transfer_forbidden(self) -> None:
        issuer = SoulboundCertificateIssuer("bond", minters=[ENGINE])
        token = issuer.mint_certificate("alice", {}, caller=ENGINE)
        with pytest.raises(TransferForbidden):
            issuer.transfer(token, "bob", caller="alice")
        assert issuer.get(token).owner == "alice"


class TestMilestoneSchedule:
    def _issuer(self) -> SoulboundCertificateIssuer:
        return SoulboundCertificateIssuer(
            "anniversary", minters=[ENGINE], admin=ADMIN, milestone_key="period",
        )

    def test_ceiling_is_highest_defined_period(self) -> None:
        issuer = self._issuer()
        assert issuer.schedule_ceiling() == 0
        for period in (1, 2, 4):
            issuer.define_milestone(period, f"ipfs://{period}", caller=ADMIN)
        assert issuer.schedule_ceiling() == 4

    def test_gap_below_ceiling_cannot_be_minted(self) -> None:
        issuer = self._issuer()
        for period in (1, 2, 4):
            issuer.define_milestone(period, f"ipfs://{period}", caller=ADMIN)
        with pytest.raises(ScheduleNotFound):
            issuer.mint_certificate("alice", {"period": 3}, caller=ENGINE)

    def test_mint_attaches_uri(self) -> None:
        issuer = self._issuer()
        issuer.define_milestone(1, "ipfs://one", caller=ADMIN)
        token = issuer.mint_certificate("alice", {"period": 1}, caller=ENGINE)
        assert issuer.get(token).metadata == {"period": 1, "uri": "ipfs://one"}

    def test_mint_undefined_period(self) -> None:
        issuer = self._issuer()
        with pytest.raises(ScheduleNotFound):
            issuer.mint_certificate("alice", {"period": 1}, caller=ENGINE)
        assert issuer.count == 0

    def test_only_admin_edits(self) -> None:
        issuer = self._issuer()
        with pytest.raises(UnauthorizedCaller):
            issuer.define_milestone(1, "ipfs://one", caller=ENGINE)
        with pytest.raises(UnauthorizedCaller):
            issuer.freeze_schedule(caller=ENGINE)

    def test_freeze_is_permanent(self) -> None:
        issuer = self._issuer()
        issuer.define_milestone(1, "ipfs://one", caller=ADMIN)
        issuer.freeze_schedule(caller=ADMIN)
        assert issuer.frozen
        with pytest.raises(ScheduleFrozen):
            issuer.define_milestone(2, "ipfs://two", caller=ADMIN)

    def test_period_zero_rejected(self) -> None:
        with pytest.raises(ValueError):
            self._issuer().define_milestone(0, "ipfs://zero", caller=ADMIN)

    def test_rollback_restores_counter(self) -> None:
        issuer = self._issuer()
        issuer.define_milestone(1, "ipfs://one", caller=ADMIN)
        token = issuer.checkpoint()
        issuer.mint_certificate("alice", {"period": 1}, caller=ENGINE)
        issuer.rollback(token)
        assert issuer.count == 0
        assert issuer.mint_certificate("bob", {"period": 1}, caller=ENGINE) == 1

    def test_rollback_restores_schedule(self) -> None:
        issuer = self._issuer()
        issuer.define_milestone(1, "ipfs://one", caller=ADMIN)
        token = issuer.checkpoint()
        issuer.define_milestone(1, "ipfs://changed", caller=ADMIN)
        issuer.define_milestone(2, "ipfs://two", caller=ADMIN)
        issuer.freeze_schedule(caller=ADMIN)
        issuer.rollback(token)
        assert issuer.schedule() == {1: "ipfs://one"}
        assert not issuer.frozen
