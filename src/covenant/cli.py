"""Covenant CLI — command-line interface for the bond lifecycle engine.

Usage:
    python -m covenant.cli status
    python -m covenant.cli pair-key 0xAlice... 0xBob...
    python -m covenant.cli issue-proof --action propose --identity 0xAlice... --nullifier 0x01
    python -m covenant.cli propose --proposer 0xAlice... --target 0xBob... --nullifier 0x01 --proof 0x...
    python -m covenant.cli accept --acceptor 0xBob... --proposer 0xAlice... --nullifier 0x02 --proof 0x...
    python -m covenant.cli claim --caller 0xAlice... --partner 0xBob...
    python -m covenant.cli mint-milestones --caller 0xAlice... --partner 0xBob...
    python -m covenant.cli divorce --caller 0xAlice... --partner 0xBob...
    python -m covenant.cli check-invariants

Environment (read from .env when present):
    COVENANT_CONFIG_DIR    config directory (default: config/)
    COVENANT_DATA_DIR      state and event log directory (default: data/)
    COVENANT_ATTESTER_KEY  private key of the trusted proof attester
    COVENANT_ADMIN         administrator identity (mints, milestone schedule)
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from dataclasses import asdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv

from covenant.collaborators.certificates import SoulboundCertificateIssuer
from covenant.collaborators.ledger import InMemoryRewardLedger
from covenant.errors import BondError
from covenant.identity.pairing import NULL_IDENTITY, pair_key, signal_for, to_identity
from covenant.identity.verifier import ProofAttester, SignedProofVerifier
from covenant.persistence.event_log import EventLog
from covenant.persistence.state_store import StateStore
from covenant.policy.invariants import check_config_dir
from covenant.policy.resolver import BondPolicy
from covenant.service import ENGINE_ID, BondService, ServiceResult


DEFAULT_CONFIG = Path(__file__).resolve().parents[2] / "config"
DEFAULT_DATA = Path(__file__).resolve().parents[2] / "data"


class _Runtime:
    """Service plus the in-memory collaborators it was wired with."""

    def __init__(self, config_dir: Path, data_dir: Path) -> None:
        data_dir.mkdir(parents=True, exist_ok=True)
        self.policy = BondPolicy.from_config_dir(config_dir)
        self.admin = os.getenv("COVENANT_ADMIN") or ENGINE_ID

        key = os.getenv("COVENANT_ATTESTER_KEY")
        self.attester: Optional[ProofAttester] = ProofAttester(key) if key else None
        # Without an attester nothing can recover to the zero address,
        # so every proof is rejected.
        attester_address = self.attester.address if self.attester else NULL_IDENTITY

        minters = {ENGINE_ID, self.admin}
        self.ledger = InMemoryRewardLedger(minters=minters)
        self.bond_issuer = SoulboundCertificateIssuer("bond", minters=minters, admin=self.admin)
        self.anniversary_issuer = SoulboundCertificateIssuer(
            "anniversary", minters=minters, admin=self.admin, milestone_key="period",
        )
        self.store = StateStore(storage_path=data_dir / "state.json")
        self.service = BondService(
            self.policy,
            SignedProofVerifier(attester_address),
            self.ledger,
            self.bond_issuer,
            self.anniversary_issuer,
            event_log=EventLog(storage_path=data_dir / "events.jsonl"),
            state_store=self.store,
        )


def _runtime(args: argparse.Namespace) -> _Runtime:
    return _Runtime(args.config, args.data_dir)


def _int(value: str) -> int:
    return int(value, 0)


def _now(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    ts = datetime.fromisoformat(value)
    return ts if ts.tzinfo else ts.replace(tzinfo=timezone.utc)


def _print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, default=str))


def _report(result: ServiceResult) -> int:
    if result.success:
        _print_json(result.data)
        return 0
    print(f"Failed ({result.error_kind}): {'; '.join(result.errors)}", file=sys.stderr)
    return 1


def _invalid_identity(error: ValueError) -> int:
    print(f"Failed (invalid_target): {error}", file=sys.stderr)
    return 1


# ---------------------------------------------------------------------------
# Read-only commands
# ---------------------------------------------------------------------------

def cmd_status(args: argparse.Namespace) -> int:
    _print_json(_runtime(args).service.status())
    return 0


def cmd_pair_key(args: argparse.Namespace) -> int:
    try:
        key = pair_key(args.a, args.b)
    except ValueError as e:
        return _invalid_identity(e)
    print(key)
    return 0


def cmd_dashboard(args: argparse.Namespace) -> int:
    service = _runtime(args).service
    now = _now(args.now)
    try:
        view = service.dashboard(args.identity, now=now)
    except ValueError as e:
        return _invalid_identity(e)
    _print_json(asdict(view))
    return 0


def cmd_pair(args: argparse.Namespace) -> int:
    service = _runtime(args).service
    now = _now(args.now)
    try:
        view = service.pair_view(args.a, args.b, now=now)
    except ValueError as e:
        return _invalid_identity(e)
    _print_json(asdict(view))
    return 0


def cmd_incoming(args: argparse.Namespace) -> int:
    service = _runtime(args).service
    try:
        proposers = service.incoming_proposers(args.identity)
    except ValueError as e:
        return _invalid_identity(e)
    _print_json(proposers)
    return 0


def cmd_issue_proof(args: argparse.Namespace) -> int:
    """Sign a proof as the configured attester (development use)."""
    rt = _runtime(args)
    if rt.attester is None:
        print("Failed: COVENANT_ATTESTER_KEY is not set", file=sys.stderr)
        return 1
    try:
        identity = to_identity(args.identity)
    except ValueError as e:
        return _invalid_identity(e)
    proof = rt.attester.attest(
        args.root,
        rt.service.action_domain(args.action),
        signal_for(identity),
        args.nullifier,
    )
    _print_json({
        "identity": identity,
        "action": args.action,
        "root": hex(args.root),
        "nullifier": hex(args.nullifier),
        "proof": proof,
    })
    return 0


# ---------------------------------------------------------------------------
# Lifecycle commands
# ---------------------------------------------------------------------------

def cmd_propose(args: argparse.Namespace) -> int:
    result = _runtime(args).service.propose(
        args.proposer, args.target, args.root, args.nullifier, args.proof,
        now=_now(args.now),
    )
    return _report(result)


def cmd_accept(args: argparse.Namespace) -> int:
    result = _runtime(args).service.accept(
        args.acceptor, args.proposer, args.root, args.nullifier, args.proof,
        now=_now(args.now),
    )
    return _report(result)


def cmd_cancel(args: argparse.Namespace) -> int:
    return _report(_runtime(args).service.cancel_proposal(args.proposer, now=_now(args.now)))


def cmd_claim(args: argparse.Namespace) -> int:
    return _report(_runtime(args).service.claim_yield(
        args.caller, args.partner, now=_now(args.now),
    ))


def cmd_divorce(args: argparse.Namespace) -> int:
    return _report(_runtime(args).service.divorce(
        args.caller, args.partner, now=_now(args.now),
    ))


def cmd_mint_milestones(args: argparse.Namespace) -> int:
    return _report(_runtime(args).service.manual_check_and_mint(
        args.caller, args.partner, now=_now(args.now),
    ))


def cmd_define_milestone(args: argparse.Namespace) -> int:
    """Administrator: add a period to the anniversary schedule."""
    rt = _runtime(args)
    try:
        rt.anniversary_issuer.define_milestone(args.period, args.uri, caller=rt.admin)
        if args.freeze:
            rt.anniversary_issuer.freeze_schedule(caller=rt.admin)
    except BondError as e:
        print(f"Failed ({e.kind}): {e}", file=sys.stderr)
        return 1
    rt.store.save_certificates("anniversary", rt.anniversary_issuer)
    _print_json({
        "schedule_ceiling": rt.anniversary_issuer.schedule_ceiling(),
        "frozen": rt.anniversary_issuer.frozen,
    })
    return 0


def cmd_check_invariants(args: argparse.Namespace) -> int:
    """Run config invariant checks."""
    errors = check_config_dir(args.config)
    if errors:
        for error in errors:
            print(f"FAIL: {error}", file=sys.stderr)
        return 1
    print("All bond config invariants hold.")
    return 0


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="covenant",
        description="Covenant — proof-of-personhood bond engine CLI",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=Path(os.getenv("COVENANT_CONFIG_DIR", DEFAULT_CONFIG)),
        help="Path to config directory (default: config/)",
    )
    parser.add_argument(
        "--data-dir",
        type=Path,
        default=Path(os.getenv("COVENANT_DATA_DIR", DEFAULT_DATA)),
        help="Directory for state.json and events.jsonl (default: data/)",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Log at DEBUG level")
    sub = parser.add_subparsers(dest="command")

    # status
    sub.add_parser("status", help="Show system status")

    # pair-key
    p_key = sub.add_parser("pair-key", help="Compute the symmetric pair key")
    p_key.add_argument("a")
    p_key.add_argument("b")

    # dashboard
    p_dash = sub.add_parser("dashboard", help="Per-identity dashboard")
    p_dash.add_argument("identity")
    p_dash.add_argument("--now", help="ISO timestamp (default: current time)")

    # pair
    p_pair = sub.add_parser("pair", help="Bond record and pending yield for a pair")
    p_pair.add_argument("a")
    p_pair.add_argument("b")
    p_pair.add_argument("--now", help="ISO timestamp (default: current time)")

    # incoming
    p_in = sub.add_parser("incoming", help="List proposers addressing an identity")
    p_in.add_argument("identity")

    # issue-proof
    p_proof = sub.add_parser("issue-proof", help="Sign a proof as the attester")
    p_proof.add_argument("--action", required=True, choices=["propose", "accept"])
    p_proof.add_argument("--identity", required=True, help="Identity the proof is for")
    p_proof.add_argument("--nullifier", required=True, type=_int, help="Nullifier (int or 0x hex)")
    p_proof.add_argument("--root", type=_int, default=0, help="Identity set root (default: 0)")

    # propose
    p_prop = sub.add_parser("propose", help="Propose a bond")
    p_prop.add_argument("--proposer", required=True)
    p_prop.add_argument("--target", required=True)
    p_prop.add_argument("--nullifier", required=True, type=_int)
    p_prop.add_argument("--proof", required=True)
    p_prop.add_argument("--root", type=_int, default=0)
    p_prop.add_argument("--now")

    # accept
    p_acc = sub.add_parser("accept", help="Accept a proposal")
    p_acc.add_argument("--acceptor", required=True)
    p_acc.add_argument("--proposer", required=True)
    p_acc.add_argument("--nullifier", required=True, type=_int)
    p_acc.add_argument("--proof", required=True)
    p_acc.add_argument("--root", type=_int, default=0)
    p_acc.add_argument("--now")

    # cancel
    p_cancel = sub.add_parser("cancel", help="Cancel your outstanding proposal")
    p_cancel.add_argument("--proposer", required=True)
    p_cancel.add_argument("--now")

    # claim / divorce / mint-milestones share the pair arguments
    for name, help_text in (
        ("claim", "Claim accrued yield"),
        ("divorce", "Dissolve a bond"),
        ("mint-milestones", "Issue outstanding anniversary certificates"),
    ):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("--caller", required=True)
        p.add_argument("--partner", required=True)
        p.add_argument("--now")

    # define-milestone
    p_ms = sub.add_parser("define-milestone", help="Define anniversary metadata for a period")
    p_ms.add_argument("--period", required=True, type=int)
    p_ms.add_argument("--uri", required=True)
    p_ms.add_argument("--freeze", action="store_true", help="Freeze the schedule afterwards")

    # check-invariants
    sub.add_parser("check-invariants", help="Run config invariant checks")

    return parser


def main(argv: list[str] | None = None) -> int:
    load_dotenv()
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if args.command is None:
        parser.print_help()
        return 0

    commands = {
        "status": cmd_status,
        "pair-key": cmd_pair_key,
        "dashboard": cmd_dashboard,
        "pair": cmd_pair,
        "incoming": cmd_incoming,
        "issue-proof": cmd_issue_proof,
        "propose": cmd_propose,
        "accept": cmd_accept,
        "cancel": cmd_cancel,
        "claim": cmd_claim,
        "divorce": cmd_divorce,
        "mint-milestones": cmd_mint_milestones,
        "define-milestone": cmd_define_milestone,
        "check-invariants": cmd_check_invariants,
    }

    handler = commands.get(args.command)
    if handler is None:
        print(f"Unknown command: {args.command}", file=sys.stderr)
        return 1

    return handler(args)


if __name__ == "__main__":
    raise SystemExit(main())
