"""Tests for the Anchor IDL parser."""

import json
import logging

import httpx
import pytest

from anchorgen.errors import InvalidIdlError
from anchorgen.idl import IDLParser
from anchorgen.idl.models import (
    AccountValueNode,
    ArgumentValueNode,
    BytesValueNode,
    ConstantDiscriminatorNode,
    PdaValueNode,
    PublicKeyValueNode,
    StringValueNode,
)
from anchorgen.idl.types import (
    ArrayTypeNode,
    DefinedTypeLinkNode,
    EnumStructVariantTypeNode,
    EnumTupleVariantTypeNode,
    MapTypeNode,
    NumberFormat,
    NumberTypeNode,
    OptionTypeNode,
    PublicKeyTypeNode,
    SetTypeNode,
    TupleTypeNode,
    UnsupportedTypeNode,
)

VAULT_PROGRAM_ID = "Fg6PaFpoGXkYsidMpWTK6W2BeZ7FEfcYkg476zPFsLnS"


class TestNewFormat:
    """Anchor >= 0.30 IDLs."""

    def test_program_metadata(self, vault_program) -> None:
        """Name, address and version come from the top level and metadata."""
        assert vault_program.name == "vault"
        assert vault_program.public_key == VAULT_PROGRAM_ID
        assert vault_program.version == "0.1.0"

    def test_accounts_read_their_type(self, vault_program) -> None:
        """Account data is looked up in the types section."""
        vault = vault_program.get_account("Vault")

        assert [f.name for f in vault.data.fields] == ["owner", "balance", "bump", "status"]
        assert isinstance(vault.data.fields[0].type, PublicKeyTypeNode)
        assert isinstance(vault.discriminators[0], ConstantDiscriminatorNode)
        assert vault.discriminators[0].value.data == bytes([211, 8, 232, 43, 2, 152, 117, 119])

    def test_account_structs_are_not_defined_types(self, vault_program) -> None:
        """Types that only describe account data are not rendered twice."""
        assert [t.name for t in vault_program.defined_types] == ["VaultStatus", "Settings"]

    def test_enum_variants(self, vault_program) -> None:
        """Named fields give struct variants and bare types give tuple variants."""
        variants = vault_program.get_defined_type("VaultStatus").type.variants

        assert [v.name for v in variants] == ["Active", "Frozen", "Closing"]
        assert isinstance(variants[1], EnumStructVariantTypeNode)
        assert isinstance(variants[2], EnumTupleVariantTypeNode)

    def test_instruction_accounts(self, vault_program) -> None:
        """Flags and fixed addresses are read from each account."""
        initialize = vault_program.get_instruction("initialize")
        vault, owner, system_program = initialize.accounts

        assert vault.is_writable and not vault.is_signer
        assert owner.is_signer
        assert system_program.default_value.public_key == "11111111111111111111111111111111"
        assert isinstance(system_program.default_value, PublicKeyValueNode)

    def test_pda_is_lifted(self, vault_program) -> None:
        """PDA blocks become program-level PDAs linked from the account."""
        default = vault_program.get_instruction("initialize").accounts[0].default_value
        pda = vault_program.get_pda("vault")

        assert isinstance(default, PdaValueNode)
        assert default.pda.name == "vault"
        assert isinstance(default.get_seed_value("owner"), AccountValueNode)
        assert isinstance(pda.seeds[0].value, BytesValueNode)
        assert pda.seeds[0].value.data == b"vault"
        assert pda.seeds[1].name == "owner"

    def test_identical_pdas_are_shared(self, vault_program) -> None:
        """The same seeds in two instructions give one PDA."""
        assert [p.name for p in vault_program.pdas] == ["vault", "config"]
        assert vault_program.get_instruction("deposit").accounts[0].default_value.pda.name == "vault"

    def test_argument_seed_takes_argument_type(self, vault_program) -> None:
        """An argument seed is typed like the argument and bound to it."""
        pda = vault_program.get_pda("config")
        default = vault_program.get_instruction("set_config").accounts[0].default_value

        assert isinstance(pda.seeds[1].type, NumberTypeNode)
        assert pda.seeds[1].type.format is NumberFormat.U64
        assert isinstance(default.get_seed_value("seed"), ArgumentValueNode)

    def test_runtime_program_pda_is_not_lifted(self, vault_program) -> None:
        """A PDA derived under a program known only at runtime has no default."""
        owner_token = vault_program.get_instruction("deposit").get_account("owner_token")

        assert owner_token.default_value is None

    def test_optional_account(self, vault_program) -> None:
        assert vault_program.get_instruction("deposit").get_account("referrer").is_optional

    def test_errors(self, vault_program) -> None:
        assert [(e.code, e.name, e.message) for e in vault_program.errors] == [
            (6000, "InsufficientFunds", "Insufficient funds"),
            (6001, "VaultFrozen", "Vault is frozen"),
        ]


class TestLegacyFormat:
    """Pre-0.30 IDLs."""

    def test_program_metadata(self, legacy_root) -> None:
        program = legacy_root.program

        assert program.name == "counter"
        assert program.public_key == VAULT_PROGRAM_ID
        assert program.version == "0.2.0"

    def test_account_groups_are_flattened(self, legacy_root) -> None:
        """Nested account groups keep their leaves in order."""
        increment = legacy_root.program.get_instruction("increment")

        assert [a.name for a in increment.accounts] == ["counter", "authority", "systemProgram"]
        assert increment.accounts[0].is_writable
        assert increment.accounts[1].is_signer

    def test_legacy_seeds(self, legacy_root) -> None:
        """Typed constant seeds keep their value kind."""
        pda = legacy_root.program.get_pda("counter")

        assert isinstance(pda.seeds[0].value, StringValueNode)
        assert pda.seeds[0].value.string == "counter"
        assert isinstance(pda.seeds[1].type, PublicKeyTypeNode)

    def test_no_discriminators(self, legacy_root) -> None:
        """Legacy accounts carry no discriminator bytes."""
        assert legacy_root.program.get_account("Counter").discriminators == ()

    def test_generic_type_degrades(self, legacy_idl, caplog: pytest.LogCaptureFixture) -> None:
        """Unknown types are kept as unsupported nodes with a warning."""
        with caplog.at_level(logging.WARNING):
            root = IDLParser().parse(legacy_idl)

        payload = root.program.get_defined_type("Snapshot").type.get_field("payload")
        assert isinstance(payload.type, UnsupportedTypeNode)
        assert payload.type.type_kind == "generic"
        assert "generic" in caplog.text


class TestTypeMapping:
    """IDL type expressions."""

    @pytest.fixture
    def parser(self) -> IDLParser:
        return IDLParser()

    def test_collections(self, parser: IDLParser) -> None:
        fixed = parser._parse_type({"array": ["u8", 4]})
        assert isinstance(fixed, ArrayTypeNode) and fixed.count == 4
        assert parser._parse_type({"vec": "u64"}).count is None
        assert isinstance(parser._parse_type({"hashMap": ["string", "u8"]}), MapTypeNode)
        assert isinstance(parser._parse_type({"bTreeSet": "u8"}), SetTypeNode)
        assert isinstance(parser._parse_type({"tuple": ["u8", "bool"]}), TupleTypeNode)

    def test_coption_has_wide_tag(self, parser: IDLParser) -> None:
        node = parser._parse_type({"coption": "pubkey"})

        assert isinstance(node, OptionTypeNode)
        assert node.prefix is NumberFormat.U32

    def test_defined_forms(self, parser: IDLParser) -> None:
        """Both the legacy string and the new object form link by name."""
        legacy = parser._parse_type({"defined": "Settings"})
        new = parser._parse_type({"defined": {"name": "Settings", "generics": []}})

        assert isinstance(legacy, DefinedTypeLinkNode) and legacy.name == "Settings"
        assert isinstance(new, DefinedTypeLinkNode) and new.name == "Settings"

    def test_public_key_spellings(self, parser: IDLParser) -> None:
        assert isinstance(parser._parse_type("publicKey"), PublicKeyTypeNode)
        assert isinstance(parser._parse_type("pubkey"), PublicKeyTypeNode)


class TestPdaNames:
    """Lifting PDAs with conflicting names."""

    def test_conflicting_seeds_get_instruction_prefix(self) -> None:
        """Same account name, different seeds: the later PDA is renamed."""
        def instruction(name: str, seed: str) -> dict:
            return {
                "name": name,
                "accounts": [{
                    "name": "state",
                    "writable": True,
                    "pda": {"seeds": [{"kind": "const", "value": list(seed.encode())}]},
                }],
                "args": [],
            }

        idl = {
            "address": VAULT_PROGRAM_ID,
            "metadata": {"name": "demo"},
            "instructions": [instruction("open", "one"), instruction("close", "two")],
        }
        program = IDLParser().parse(idl).program

        assert [p.name for p in program.pdas] == ["state", "close_state"]
        assert program.get_instruction("close").accounts[0].default_value.pda.name == "close_state"


class TestErrors:
    """Invalid input."""

    def test_not_an_object(self) -> None:
        with pytest.raises(InvalidIdlError):
            IDLParser().parse([])

    def test_missing_name(self) -> None:
        with pytest.raises(InvalidIdlError):
            IDLParser().parse({"instructions": []})

    def test_missing_file(self, tmp_path) -> None:
        with pytest.raises(FileNotFoundError):
            IDLParser().parse_file(tmp_path / "missing.json")

    def test_bad_json(self, tmp_path) -> None:
        path = tmp_path / "bad.json"
        path.write_text("{not json")

        with pytest.raises(InvalidIdlError):
            IDLParser().parse_file(path)


class TestParseUrl:
    """Fetching IDLs over HTTP."""

    def test_fetches_and_parses(self, vault_idl, monkeypatch: pytest.MonkeyPatch) -> None:
        def fake_get(url, **kwargs):
            return httpx.Response(200, content=json.dumps(vault_idl), request=httpx.Request("GET", url))

        monkeypatch.setattr(httpx, "get", fake_get)
        root = IDLParser().parse_url("https://example.com/idl.json")

        assert root.program.name == "vault"

    def test_http_error(self, monkeypatch: pytest.MonkeyPatch) -> None:
        def fake_get(url, **kwargs):
            return httpx.Response(404, request=httpx.Request("GET", url))

        monkeypatch.setattr(httpx, "get", fake_get)

        with pytest.raises(InvalidIdlError):
            IDLParser().parse_url("https://example.com/missing.json")
