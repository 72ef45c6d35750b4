"""Covenant service — unified facade for the bond lifecycle engine.

This is the primary interface for programmatic access to the engine.
It orchestrates all subsystems:
- Proposals (propose, accept, cancel) with proof-of-personhood checks
- Bond lifecycle (materialise on accept, dissolve on divorce)
- Yield accrual and claims
- Anniversary catch-up issuance
- Replay protection for proof nullifiers
- Persistence (event log, state store)

Every public operation runs inside a unit of work: all registry writes
are staged against a checkpoint, collaborators are called only after
every internal write is final (checks-effects-interactions), and any
failure rolls registries, collaborators that support checkpointing, and
the buffered event records back together. A failed operation leaves no
trace.

All operations produce typed results. Failures carry a stable
``error_kind`` taken from the covenant.errors taxonomy.
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Callable, Optional

from covenant.collaborators.certificates import CertificateIssuer, SoulboundCertificateIssuer
from covenant.collaborators.ledger import InMemoryRewardLedger, RewardLedger
from covenant.engine.accrual import ZERO, pending_yield, split_evenly
from covenant.engine.milestones import plan_catch_up
from covenant.engine.unit_of_work import UnitOfWork
from covenant.errors import (
    AlreadyBonded,
    BondError,
    InvalidTarget,
    NoActiveBond,
    NotProposedToYou,
    NotYourBond,
    NothingToClaim,
    ProposalExists,
    SelfTarget,
    VerificationFailed,
)
from covenant.identity.nullifier_guard import NullifierGuard
from covenant.identity.pairing import (
    action_domain_id,
    is_null,
    pair_key,
    signal_for,
    to_identity,
)
from covenant.identity.verifier import IdentityVerifier, Proof
from covenant.models.bond import Bond, Dashboard, PairView, Proposal
from covenant.persistence.event_log import EventKind, EventLog, EventRecord
from covenant.persistence.state_store import StateStore
from covenant.policy.resolver import BondPolicy
from covenant.registry.bonds import BondRegistry
from covenant.registry.proposals import ProposalRegistry

logger = logging.getLogger(__name__)

ENGINE_ID = "covenant:engine"


@dataclass(frozen=True)
class ServiceResult:
    """Result of a service operation."""
    success: bool
    errors: list[str] = field(default_factory=list)
    data: dict[str, Any] = field(default_factory=dict)
    error_kind: Optional[str] = None


class BondService:
    """Bond lifecycle facade.

    Usage:
        policy = BondPolicy.from_config_dir(config_dir)
        service = BondService(policy, verifier, ledger, bond_issuer, anniversary_issuer)

        service.propose(alice, bob, root, nullifier, proof)
        service.accept(bob, alice, root, nullifier, proof)
        service.claim_yield(alice, bob)
        service.manual_check_and_mint(bob, alice)
        service.divorce(alice, bob)

    Persistence (optional):
        service = BondService(..., event_log=log, state_store=store)
        # State is persisted after each committed operation and loaded
        # on construction.
    """

    def __init__(
        self,
        policy: BondPolicy,
        verifier: IdentityVerifier,
        reward_ledger: RewardLedger,
        bond_issuer: CertificateIssuer,
        anniversary_issuer: CertificateIssuer,
        minter_id: str = ENGINE_ID,
        event_log: Optional[EventLog] = None,
        state_store: Optional[StateStore] = None,
    ) -> None:
        self._policy = policy
        self._verifier = verifier
        self._ledger = reward_ledger
        self._bond_issuer = bond_issuer
        self._anniversary_issuer = anniversary_issuer
        self._minter_id = minter_id
        self._event_log = event_log
        self._state_store = state_store

        self._accrual_period = policy.accrual_period()
        self._unit_reward = policy.unit_reward()
        self._milestone_period = policy.milestone_period()
        self._initial_grant = policy.initial_grant()

        # Action domains are fixed for the lifetime of the service
        self._domains = {
            action: action_domain_id(policy.app_id(), policy.action_name(action))
            for action in ("propose", "accept")
        }

        if state_store is not None:
            self._proposals = state_store.load_proposals()
            self._bonds = state_store.load_bonds()
            self._nullifiers: Optional[NullifierGuard] = (
                state_store.load_nullifiers() if policy.replay_guard_enabled() else None
            )
            if isinstance(reward_ledger, InMemoryRewardLedger):
                state_store.load_ledger_into(reward_ledger)
            for name, issuer in self._issuers().items():
                if isinstance(issuer, SoulboundCertificateIssuer):
                    state_store.load_certificates_into(name, issuer)
        else:
            self._proposals = ProposalRegistry()
            self._bonds = BondRegistry()
            self._nullifiers = NullifierGuard() if policy.replay_guard_enabled() else None

        self._uow = UnitOfWork(
            [
                self._proposals,
                self._bonds,
                self._nullifiers,
                self._ledger,
                self._bond_issuer,
                self._anniversary_issuer,
            ],
            on_commit=self._flush_events,
        )
        # Initialize counter from persisted log to avoid ID collision on restart
        self._event_counter = event_log.count if event_log is not None else 0
        self._persistence_degraded: bool = False

    # ------------------------------------------------------------------
    # Proposals
    # ------------------------------------------------------------------

    def propose(
        self,
        proposer: str,
        proposed: str,
        root: int,
        nullifier: int,
        proof: Proof,
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        """Open a proposal from ``proposer`` to ``proposed``."""
        def _op(now: datetime) -> dict[str, Any]:
            caller = _caller_identity(proposer)
            target = _target_identity(proposed)
            if is_null(target):
                raise InvalidTarget("Cannot propose to the null identity")
            if target == caller:
                raise SelfTarget("Cannot propose to yourself")
            if self._proposals.has_proposal(caller):
                raise ProposalExists(f"{caller} already has a live proposal")
            if self._bonds.is_bonded(caller) or self._bonds.is_bonded(target):
                raise AlreadyBonded("Proposer or target is already in an active bond")

            domain = self._domains["propose"]
            if self._nullifiers is not None:
                self._nullifiers.check(domain, nullifier)
            self._verify(root, domain, caller, nullifier, proof)

            self._consume_nullifier(domain, "propose", caller, nullifier, now)
            self._proposals.add(Proposal(
                proposer=caller,
                proposed=target,
                proposer_nullifier=nullifier,
                created_at=now,
            ))
            self._emit(EventKind.PROPOSAL_CREATED, caller, {"proposed": target}, now)
            logger.info("Proposal created: %s → %s", caller, target)
            return {
                "proposer": caller,
                "proposed": target,
                "incoming_position": self._proposals.position(caller),
            }

        return self._run(_op, now)

    def accept(
        self,
        acceptor: str,
        proposer: str,
        root: int,
        nullifier: int,
        proof: Proof,
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        """Accept ``proposer``'s proposal and materialise the bond.

        The acceptor's own outgoing proposal, if any, is deleted as well.
        """
        def _op(now: datetime) -> dict[str, Any]:
            caller = _caller_identity(acceptor)
            partner = _target_identity(proposer)
            proposal = self._proposals.get(partner)
            if proposal is None or proposal.proposed != caller:
                raise NotProposedToYou(f"{partner} has not proposed to {caller}")
            if self._bonds.is_bonded(caller) or self._bonds.is_bonded(partner):
                raise AlreadyBonded("Acceptor or proposer is already in an active bond")

            domain = self._domains["accept"]
            if self._nullifiers is not None:
                self._nullifiers.check(domain, nullifier)
            self._verify(root, domain, caller, nullifier, proof)

            key = pair_key(partner, caller)
            # The record at this key may be stale from an earlier bond
            if self._bonds.is_active(key):
                raise AlreadyBonded(f"Bond {key} is already active")

            # Effects
            self._consume_nullifier(domain, "accept", caller, nullifier, now)
            self._proposals.mark_accepted(partner)
            self._bonds.activate(key, Bond(
                partner_a=partner,
                partner_b=caller,
                nullifier_a=proposal.proposer_nullifier,
                nullifier_b=nullifier,
                bond_start=now,
                last_claim=now,
            ))
            superseded = self._proposals.discard(caller)
            self._proposals.remove(partner)
            self._emit(
                EventKind.PROPOSAL_ACCEPTED,
                caller,
                {"proposer": partner, "pair_key": key},
                now,
            )
            if superseded is not None:
                self._emit(
                    EventKind.PROPOSAL_CANCELLED,
                    caller,
                    {"proposed": superseded.proposed, "reason": "accepted_other"},
                    now,
                )

            # Interactions
            certificates = []
            for owner, other in ((partner, caller), (caller, partner)):
                certificates.append(self._bond_issuer.mint_certificate(
                    owner,
                    {"partner": other, "pair_key": key, "bond_start": _iso(now)},
                    caller=self._minter_id,
                ))
            if self._initial_grant > ZERO:
                for owner in (partner, caller):
                    self._ledger.mint(owner, self._initial_grant, caller=self._minter_id)

            logger.info("Bond %s formed between %s and %s", key, partner, caller)
            return {
                "pair_key": key,
                "partner_a": partner,
                "partner_b": caller,
                "certificates": certificates,
            }

        return self._run(_op, now)

    def cancel_proposal(self, proposer: str, now: Optional[datetime] = None) -> ServiceResult:
        """Withdraw the caller's live proposal."""
        def _op(now: datetime) -> dict[str, Any]:
            caller = _caller_identity(proposer)
            proposal = self._proposals.remove(caller)
            self._emit(
                EventKind.PROPOSAL_CANCELLED,
                caller,
                {"proposed": proposal.proposed, "reason": "withdrawn"},
                now,
            )
            logger.info("Proposal cancelled: %s → %s", caller, proposal.proposed)
            return {"proposer": caller, "proposed": proposal.proposed}

        return self._run(_op, now)

    # ------------------------------------------------------------------
    # Bond lifecycle
    # ------------------------------------------------------------------

    def claim_yield(
        self, caller: str, partner: str, now: Optional[datetime] = None,
    ) -> ServiceResult:
        """Pay out accrued yield, split evenly between both partners."""
        def _op(now: datetime) -> dict[str, Any]:
            key, bond = self._active_bond_for(caller, partner)
            reward = pending_yield(bond, now, self._accrual_period, self._unit_reward)
            if reward <= ZERO:
                raise NothingToClaim("No yield has accrued since the last claim")

            self._bonds.record_claim(key, now)
            share = split_evenly(reward)
            self._emit(
                EventKind.YIELD_CLAIMED,
                _caller_identity(caller),
                {"pair_key": key, "amount": str(reward), "share": str(share)},
                now,
            )

            for owner in (bond.partner_a, bond.partner_b):
                self._ledger.mint(owner, share, caller=self._minter_id)

            logger.info("Yield claimed on %s: %s", key, reward)
            return {"pair_key": key, "amount": str(reward), "share": str(share)}

        return self._run(_op, now)

    def divorce(
        self, caller: str, partner: str, now: Optional[datetime] = None,
    ) -> ServiceResult:
        """Settle pending yield and dissolve the bond.

        Both partners are free to propose and accept again afterwards,
        including to each other.
        """
        def _op(now: datetime) -> dict[str, Any]:
            key, bond = self._active_bond_for(caller, partner)
            reward = pending_yield(bond, now, self._accrual_period, self._unit_reward)

            self._bonds.deactivate(key, now)
            share = split_evenly(reward) if reward > ZERO else ZERO
            self._emit(
                EventKind.BOND_DISSOLVED,
                _caller_identity(caller),
                {"pair_key": key, "settled": str(reward), "share": str(share)},
                now,
            )

            if reward > ZERO:
                for owner in (bond.partner_a, bond.partner_b):
                    self._ledger.mint(owner, share, caller=self._minter_id)

            logger.info("Bond %s dissolved (settled %s)", key, reward)
            return {"pair_key": key, "settled": str(reward), "share": str(share)}

        return self._run(_op, now)

    def manual_check_and_mint(
        self, caller: str, partner: str, now: Optional[datetime] = None,
    ) -> ServiceResult:
        """Issue every anniversary certificate the bond is owed.

        Each outstanding period from ``last_milestone + 1`` up to the
        lesser of the elapsed periods and the schedule ceiling gets one
        certificate per partner and one achievement record.
        """
        def _op(now: datetime) -> dict[str, Any]:
            key, bond = self._active_bond_for(caller, partner)
            plan = plan_catch_up(
                bond, now, self._milestone_period,
                self._anniversary_issuer.schedule_ceiling(),
            )

            self._bonds.record_milestone(key, plan.ceiling)
            for period in plan.periods:
                self._emit(
                    EventKind.ANNIVERSARY_ACHIEVED,
                    _caller_identity(caller),
                    {"pair_key": key, "period": period},
                    now,
                )

            certificates = []
            for period in plan.periods:
                for owner, other in (
                    (bond.partner_a, bond.partner_b),
                    (bond.partner_b, bond.partner_a),
                ):
                    certificates.append(self._anniversary_issuer.mint_certificate(
                        owner,
                        {"partner": other, "pair_key": key, "period": period},
                        caller=self._minter_id,
                    ))

            logger.info(
                "Anniversaries %d..%d issued on %s%s",
                plan.start, plan.ceiling, key, " (capped)" if plan.capped else "",
            )
            return {
                "pair_key": key,
                "periods": list(plan.periods),
                "last_milestone": plan.ceiling,
                "capped": plan.capped,
                "certificates": certificates,
            }

        return self._run(_op, now)

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @staticmethod
    def pair_key(a: str, b: str) -> str:
        return pair_key(a, b)

    def action_domain(self, action: str) -> int:
        return self._domains[action]

    def get_proposal(self, proposer: str) -> Optional[Proposal]:
        proposal = self._proposals.get(to_identity(proposer))
        return dataclasses.replace(proposal) if proposal is not None else None

    def incoming_proposers(self, target: str) -> list[str]:
        return self._proposals.incoming(to_identity(target))

    def incoming_position(self, proposer: str) -> Optional[int]:
        return self._proposals.position(to_identity(proposer))

    def get_bond(self, key: str) -> Optional[Bond]:
        bond = self._bonds.get(key)
        return dataclasses.replace(bond) if bond is not None else None

    def active_pair_key(self, identity: str) -> Optional[str]:
        return self._bonds.active_key(to_identity(identity))

    def pending_yield(self, key: str, now: Optional[datetime] = None) -> Decimal:
        """Accrued yield for a pair key; zero for inactive or unknown bonds."""
        bond = self._bonds.get(key)
        if bond is None:
            return ZERO
        return pending_yield(bond, _as_utc(now), self._accrual_period, self._unit_reward)

    def pair_view(self, a: str, b: str, now: Optional[datetime] = None) -> PairView:
        key = pair_key(a, b)
        return PairView(
            pair_key=key,
            bond=self.get_bond(key),
            pending_yield=self.pending_yield(key, now),
        )

    def dashboard(self, identity: str, now: Optional[datetime] = None) -> Dashboard:
        who = to_identity(identity)
        key = self._bonds.active_key(who)
        partner = None
        pending = ZERO
        if key is not None:
            bond = self._bonds.get(key)
            partner = bond.partner_of(who)
            pending = self.pending_yield(key, now)
        return Dashboard(
            identity=who,
            is_bonded=key is not None,
            partner=partner,
            pending_yield=pending,
            has_outgoing_proposal=self._proposals.has_proposal(who),
            balance=self._ledger.balance_of(who),
        )

    def bond_history(self) -> list[str]:
        return self._bonds.history()

    def status(self) -> dict[str, Any]:
        """Return system-wide status summary."""
        return {
            "version": self._policy.version,
            "proposals": {"live": self._proposals.count},
            "bonds": {
                "total": len(self._bonds.all_bonds()),
                "active": self._bonds.active_count,
                "formed": len(self._bonds.history()),
            },
            "replay_guard": self._nullifiers is not None,
            "milestone_ceiling": self._anniversary_issuer.schedule_ceiling(),
            "events": self._event_log.count if self._event_log is not None else None,
            "persistence_degraded": self._persistence_degraded,
        }

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _issuers(self) -> dict[str, CertificateIssuer]:
        return {"bond": self._bond_issuer, "anniversary": self._anniversary_issuer}

    def _run(
        self,
        op: Callable[[datetime], dict[str, Any]],
        now: Optional[datetime],
    ) -> ServiceResult:
        """Execute ``op`` as one unit of work and wrap the outcome.

        Nested calls (a collaborator re-entering the service) share the
        outer unit's commit and persistence.
        """
        outermost = self._uow.depth == 0
        # Discarded records give their IDs back so the log stays gapless
        counter_mark = self._event_counter
        try:
            with self._uow:
                data = op(_as_utc(now))
        except BondError as e:
            self._event_counter = counter_mark
            return ServiceResult(success=False, errors=[str(e)], error_kind=e.kind)
        except ValueError as e:
            self._event_counter = counter_mark
            return ServiceResult(success=False, errors=[str(e)], error_kind="invalid_request")
        except OSError as e:
            self._event_counter = counter_mark
            return ServiceResult(
                success=False, errors=[f"Event log failure: {e}"], error_kind="audit_failure",
            )
        except Exception:
            self._event_counter = counter_mark
            raise

        if outermost:
            warning = self._safe_persist_post_audit()
            if warning:
                data["warning"] = warning
        return ServiceResult(success=True, data=data)

    def _active_bond_for(self, caller: str, partner: str) -> tuple[str, Bond]:
        who = _caller_identity(caller)
        key = pair_key(who, _target_identity(partner))
        bond = self._bonds.get(key)
        if bond is None or not bond.active:
            raise NoActiveBond(f"No active bond for pair {key}")
        if not bond.has_participant(who):
            raise NotYourBond(f"{who} is not a partner in bond {key}")
        return key, bond

    def _verify(
        self, root: int, domain: int, caller: str, nullifier: int, proof: Proof,
    ) -> None:
        result = self._verifier.verify(root, domain, signal_for(caller), nullifier, proof)
        if not result.passed:
            raise VerificationFailed(f"Proof rejected: {result.reason or 'verification failed'}")

    def _consume_nullifier(
        self, domain: int, action: str, caller: str, nullifier: int, now: datetime,
    ) -> None:
        if self._nullifiers is None:
            return
        self._nullifiers.consume(domain, nullifier)
        self._emit(
            EventKind.NULLIFIER_CONSUMED,
            caller,
            {"action": action, "nullifier": hex(nullifier)},
            now,
        )

    def _next_event_id(self) -> str:
        """Generate a monotonically increasing unique event ID."""
        self._event_counter += 1
        return f"EVT-{self._event_counter:08d}"

    def _emit(
        self, kind: EventKind, actor_id: str, payload: dict[str, Any], now: datetime,
    ) -> None:
        self._uow.emit(EventRecord.create(
            event_id=self._next_event_id(),
            event_kind=kind,
            actor_id=actor_id,
            payload=payload,
            timestamp_utc=now,
        ))

    def _flush_events(self, records: list[EventRecord]) -> None:
        if self._event_log is not None:
            self._event_log.append_batch(records)

    def _persist_state(self) -> None:
        """Persist current state to the state store (if wired)."""
        if self._state_store is None:
            return
        self._state_store.save_core(self._proposals, self._bonds, self._nullifiers)
        if isinstance(self._ledger, InMemoryRewardLedger):
            self._state_store.save_ledger(self._ledger)
        for name, issuer in self._issuers().items():
            if isinstance(issuer, SoulboundCertificateIssuer):
                self._state_store.save_certificates(name, issuer)

    def _safe_persist_post_audit(self) -> Optional[str]:
        """Persist state after audit events have been committed.

        MUST NOT rollback in-memory state — the audit trail is already
        durable. If persist fails, in-memory state remains correct
        (aligned with audit events), but StateStore is stale.
        """
        try:
            self._persist_state()
            return None
        except OSError as e:
            self._persistence_degraded = True
            logger.warning("State store write failed: %s", e)
            return f"Persistence degraded: {e} — state committed in audit trail but StateStore is stale"


def _as_utc(now: Optional[datetime]) -> datetime:
    """Current time when ``now`` is None; naive values are taken as UTC."""
    if now is None:
        return datetime.now(timezone.utc)
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now.astimezone(timezone.utc)


def _iso(ts: datetime) -> str:
    return ts.strftime("%Y-%m-%dT%H:%M:%SZ")


def _caller_identity(value: str) -> str:
    try:
        return to_identity(value)
    except ValueError as e:
        raise InvalidTarget(f"Invalid caller: {e}") from e


def _target_identity(value: str) -> str:
    try:
        return to_identity(value)
    except ValueError as e:
        raise InvalidTarget(str(e)) from e
