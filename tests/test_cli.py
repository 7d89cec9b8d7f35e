"""Tests for the command line interface."""

import json

import pytest
from solders.pubkey import Pubkey

from anchorgen import cli
from conftest import FIXTURES, VAULT_PROGRAM_ID

VAULT_IDL = str(FIXTURES / "vault.json")


def parse(*argv: str):
    return cli.create_parser().parse_args(list(argv))


@pytest.fixture(autouse=True)
def isolated_env(tmp_path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep .env files and ANCHORGEN_* variables of the caller out of the tests."""
    monkeypatch.chdir(tmp_path)
    for name in ("ANCHORGEN_LIBRARY_NAME", "ANCHORGEN_DERIVE_PDAS_FROM_ARGUMENTS", "ANCHORGEN_FORMAT_CODE"):
        monkeypatch.delenv(name, raising=False)


def test_generate(tmp_path) -> None:
    out = tmp_path / "out"

    assert cli.run_generate(parse("generate", VAULT_IDL, "-o", str(out), "--name", "vault_client")) == 0
    assert (out / "vault_client" / "instructions" / "initialize.py").is_file()
    assert (out / "pyproject.toml").is_file()


def test_generate_missing_file(tmp_path) -> None:
    assert cli.run_generate(parse("generate", str(tmp_path / "nope.json"))) == 1


def test_generate_reports_failures(tmp_path, vault_idl, capsys: pytest.CaptureFixture) -> None:
    vault_idl["instructions"][0]["args"].append({"name": "bad", "type": {"defined": {"name": "Missing"}}})
    idl = tmp_path / "broken.json"
    idl.write_text(json.dumps(vault_idl))

    assert cli.run_generate(parse("generate", str(idl), "-o", str(tmp_path / "out"))) == 1
    assert "Failed Units" in capsys.readouterr().out


def test_inspect(capsys: pytest.CaptureFixture) -> None:
    assert cli.run_inspect(parse("inspect", VAULT_IDL)) == 0
    out = capsys.readouterr().out
    assert "vault" in out
    assert "set_config" in out


def test_discriminator(capsys: pytest.CaptureFixture) -> None:
    assert cli.run_discriminator(parse("discriminator", "global", "initialize")) == 0
    assert "afaf6d1f0d989bed" in capsys.readouterr().out


def test_pda(capsys: pytest.CaptureFixture) -> None:
    owner = Pubkey.new_unique()
    expected, _ = Pubkey.find_program_address([b"vault", bytes(owner)], Pubkey.from_string(VAULT_PROGRAM_ID))

    assert cli.run_pda(parse("pda", VAULT_IDL, "vault", "--seed", f"owner={owner}")) == 0
    assert str(expected) in capsys.readouterr().out


def test_pda_missing_seed() -> None:
    assert cli.run_pda(parse("pda", VAULT_IDL, "vault")) == 1


def test_pda_unknown_name() -> None:
    assert cli.run_pda(parse("pda", VAULT_IDL, "nothing")) == 1
