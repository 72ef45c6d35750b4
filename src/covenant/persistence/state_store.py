"""State store — JSON-based persistence for covenant runtime state.

Stores and recovers:
- Live proposals, with each target's incoming list in slot order
- Bond records by pair key and the bond history
- Consumed proof nullifiers per action domain
- Reward balances of the in-memory ledger
- Issued certificates and milestone schedules of the in-memory issuers

The active-bond index and the proposer → slot map are derived on load,
so they can never disagree with the records they index.

This is a simple file-based store suitable for single-node deployment.
Production deployments would replace this with a database backend
while keeping the same interface.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Any, Optional

from covenant.collaborators.certificates import Certificate, SoulboundCertificateIssuer
from covenant.collaborators.ledger import InMemoryRewardLedger
from covenant.identity.nullifier_guard import NullifierGuard
from covenant.models.bond import Bond, Proposal
from covenant.registry.bonds import BondRegistry
from covenant.registry.proposals import ProposalRegistry


def _ts(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat()


def _parse_ts(value: str) -> datetime:
    return datetime.fromisoformat(value)


class StateStore:
    """JSON file-based state persistence.

    Usage:
        store = StateStore(Path("data/state.json"))
        store.save_core(proposals, bonds, nullifiers)

        # On recovery:
        proposals = store.load_proposals()
        bonds = store.load_bonds()
    """

    def __init__(self, storage_path: Path) -> None:
        self._path = storage_path
        self._state: dict[str, Any] = {}
        if storage_path.exists():
            self._load()

    def _load(self) -> None:
        with self._path.open("r", encoding="utf-8") as f:
            self._state = json.load(f)

    def _save(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with self._path.open("w", encoding="utf-8") as f:
            json.dump(self._state, f, indent=2, sort_keys=True, ensure_ascii=False)

    # ------------------------------------------------------------------
    # Core registries
    # ------------------------------------------------------------------

    def save_core(
        self,
        proposals: ProposalRegistry,
        bonds: BondRegistry,
        nullifiers: Optional[NullifierGuard],
    ) -> None:
        """Serialize proposals, bonds, and nullifiers in one write."""
        self._state["proposals"] = [
            {
                "proposer": p.proposer,
                "proposed": p.proposed,
                "proposer_nullifier": hex(p.proposer_nullifier),
                "created_at": _ts(p.created_at),
            }
            for p in proposals.all_proposals()
        ]
        self._state["incoming"] = proposals.incoming_lists()
        self._state["bonds"] = {
            key: {
                "partner_a": b.partner_a,
                "partner_b": b.partner_b,
                "nullifier_a": hex(b.nullifier_a),
                "nullifier_b": hex(b.nullifier_b),
                "bond_start": _ts(b.bond_start),
                "last_claim": _ts(b.last_claim),
                "last_milestone": b.last_milestone,
                "active": b.active,
            }
            for key, b in bonds.all_bonds().items()
        }
        self._state["bond_history"] = bonds.history()
        if nullifiers is not None:
            self._state["nullifiers"] = {
                hex(domain): [hex(n) for n in values]
                for domain, values in nullifiers.consumed().items()
            }
        self._save()

    def load_proposals(self) -> ProposalRegistry:
        proposals = [
            Proposal(
                proposer=data["proposer"],
                proposed=data["proposed"],
                proposer_nullifier=int(data["proposer_nullifier"], 16),
                created_at=_parse_ts(data["created_at"]),
            )
            for data in self._state.get("proposals", [])
        ]
        return ProposalRegistry.restore(proposals, self._state.get("incoming", {}))

    def load_bonds(self) -> BondRegistry:
        bonds = {
            key: Bond(
                partner_a=data["partner_a"],
                partner_b=data["partner_b"],
                nullifier_a=int(data["nullifier_a"], 16),
                nullifier_b=int(data["nullifier_b"], 16),
                bond_start=_parse_ts(data["bond_start"]),
                last_claim=_parse_ts(data["last_claim"]),
                last_milestone=data["last_milestone"],
                active=data["active"],
            )
            for key, data in self._state.get("bonds", {}).items()
        }
        return BondRegistry.restore(bonds, self._state.get("bond_history", []))

    def load_nullifiers(self) -> NullifierGuard:
        return NullifierGuard.restore({
            int(domain, 16): [int(n, 16) for n in values]
            for domain, values in self._state.get("nullifiers", {}).items()
        })

    # ------------------------------------------------------------------
    # Collaborators
    # ------------------------------------------------------------------

    def save_ledger(self, ledger: InMemoryRewardLedger) -> None:
        self._state["ledger"] = {
            owner: str(amount) for owner, amount in ledger.balances().items()
        }
        self._save()

    def load_ledger_into(self, ledger: InMemoryRewardLedger) -> None:
        ledger.load_balances({
            owner: Decimal(amount)
            for owner, amount in self._state.get("ledger", {}).items()
        })

    def save_certificates(self, name: str, issuer: SoulboundCertificateIssuer) -> None:
        certificates = self._state.setdefault("certificates", {})
        certificates[name] = {
            "tokens": [
                {"token_id": c.token_id, "owner": c.owner, "metadata": c.metadata}
                for c in issuer.all_tokens()
            ],
            "schedule": {str(period): uri for period, uri in issuer.schedule().items()},
            "frozen": issuer.frozen,
        }
        self._save()

    def load_certificates_into(self, name: str, issuer: SoulboundCertificateIssuer) -> None:
        data = self._state.get("certificates", {}).get(name)
        if data is None:
            return
        issuer.load(
            tokens=[
                Certificate(token_id=t["token_id"], owner=t["owner"], metadata=t["metadata"])
                for t in data["tokens"]
            ],
            schedule={int(period): uri for period, uri in data["schedule"].items()},
            frozen=data["frozen"],
        )
