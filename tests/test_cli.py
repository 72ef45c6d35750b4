"""Tests for Covenant CLI — proves CLI dispatches correctly."""

import json
from pathlib import Path

import pytest

from covenant.cli import build_parser, main


CONFIG_DIR = Path(__file__).resolve().parents[1] / "config"
ATTESTER_KEY = "0x" + "01" * 32
ADMIN = "0x" + "ad" * 20
ALICE = "0x" + "aa" * 20
BOB = "0x" + "bb" * 20


@pytest.fixture
def env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    monkeypatch.setenv("COVENANT_ATTESTER_KEY", ATTESTER_KEY)
    monkeypatch.setenv("COVENANT_ADMIN", ADMIN)
    monkeypatch.chdir(tmp_path)
    return tmp_path


def _run(env: Path, *argv: str) -> int:
    return main(["--config", str(CONFIG_DIR), "--data-dir", str(env / "data"), *argv])


def _proof(env: Path, capsys, action: str, identity: str, nullifier: str) -> str:
    assert _run(env, "issue-proof", "--action", action,
                "--identity", identity, "--nullifier", nullifier) == 0
    return json.loads(capsys.readouterr().out)["proof"]


class TestCLIParsing:
    def test_status_command(self) -> None:
        args = build_parser().parse_args(["status"])
        assert args.command == "status"

    def test_propose_command(self) -> None:
        args = build_parser().parse_args([
            "propose", "--proposer", ALICE, "--target", BOB,
            "--nullifier", "0x10", "--proof", "0xabc",
        ])
        assert args.nullifier == 16
        assert args.root == 0
        assert args.now is None

    def test_pair_commands_share_arguments(self) -> None:
        for command in ("claim", "divorce", "mint-milestones"):
            args = build_parser().parse_args([command, "--caller", ALICE, "--partner", BOB])
            assert args.caller == ALICE


class TestCLIExecution:
    def test_no_command_shows_help(self) -> None:
        assert main([]) == 0

    def test_status_runs(self, env: Path, capsys) -> None:
        assert _run(env, "status") == 0
        assert json.loads(capsys.readouterr().out)["bonds"]["active"] == 0

    def test_check_invariants_runs(self, env: Path) -> None:
        assert _run(env, "check-invariants") == 0

    def test_pair_key(self, capsys) -> None:
        assert main(["pair-key", BOB, ALICE]) == 0
        assert capsys.readouterr().out.strip().startswith("0x")

    def test_pair_key_malformed_address(self, capsys) -> None:
        assert main(["pair-key", "0x1234", ALICE]) == 1
        assert capsys.readouterr().err.startswith("Failed (invalid_target)")

    @pytest.mark.parametrize("argv", [
        ("dashboard", "not-an-address"),
        ("pair", ALICE, "0x1234"),
        ("incoming", "0xzz"),
        ("issue-proof", "--action", "propose", "--identity", "bob", "--nullifier", "1"),
    ])
    def test_view_commands_reject_malformed_address(self, env: Path, capsys, argv) -> None:
        assert _run(env, *argv) == 1
        assert capsys.readouterr().err.startswith("Failed (invalid_target)")

    def test_issue_proof_requires_key(self, env: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("COVENANT_ATTESTER_KEY")
        assert _run(env, "issue-proof", "--action", "propose",
                    "--identity", ALICE, "--nullifier", "1") == 1

    def test_rejected_proof_fails(self, env: Path) -> None:
        assert _run(env, "propose", "--proposer", ALICE, "--target", BOB,
                    "--nullifier", "1", "--proof", "0x" + "00" * 65) == 1

    def test_full_lifecycle(self, env: Path, capsys) -> None:
        proof = _proof(env, capsys, "propose", ALICE, "1")
        assert _run(env, "propose", "--proposer", ALICE, "--target", BOB,
                    "--nullifier", "1", "--proof", proof,
                    "--now", "2026-01-01T00:00:00+00:00") == 0
        capsys.readouterr()

        assert _run(env, "incoming", BOB) == 0
        assert len(json.loads(capsys.readouterr().out)) == 1

        proof = _proof(env, capsys, "accept", BOB, "2")
        assert _run(env, "accept", "--acceptor", BOB, "--proposer", ALICE,
                    "--nullifier", "2", "--proof", proof,
                    "--now", "2026-01-01T00:00:00+00:00") == 0
        capsys.readouterr()

        assert _run(env, "claim", "--caller", ALICE, "--partner", BOB,
                    "--now", "2026-01-01T01:40:00+00:00") == 0
        assert json.loads(capsys.readouterr().out)["amount"] == "100"

        assert _run(env, "define-milestone", "--period", "1", "--uri", "ipfs://one") == 0
        capsys.readouterr()
        assert _run(env, "mint-milestones", "--caller", BOB, "--partner", ALICE,
                    "--now", "2027-01-02T00:00:00+00:00") == 0
        assert json.loads(capsys.readouterr().out)["periods"] == [1]

        assert _run(env, "divorce", "--caller", BOB, "--partner", ALICE,
                    "--now", "2027-01-02T00:00:00") == 0
        capsys.readouterr()

        assert _run(env, "dashboard", ALICE) == 0
        view = json.loads(capsys.readouterr().out)
        assert view["is_bonded"] is False
        assert (env / "data" / "events.jsonl").exists()

    def test_define_milestone_after_freeze(self, env: Path) -> None:
        assert _run(env, "define-milestone", "--period", "1", "--uri", "ipfs://one", "--freeze") == 0
        assert _run(env, "define-milestone", "--period", "2", "--uri", "ipfs://two") == 1
