"""Tests for PDA seed resolution and derivation."""

import pytest
from solders.pubkey import Pubkey

from anchorgen.codegen.fragments.pda_page import inline_derivation, pda_function_lines
from anchorgen.codegen.pda import PdaSeedResolver, SeedKind, references_only_accounts
from anchorgen.config import GeneratorConfig
from anchorgen.idl.models import (
    AccountValueNode,
    ArgumentValueNode,
    ConstantPdaSeedNode,
    NumberValueNode,
    PdaNode,
    PdaSeedValueNode,
    ProgramIdValueNode,
    StringValueNode,
    VariablePdaSeedNode,
)
from anchorgen.idl.types import PublicKeyTypeNode, StringTypeNode, number

PROGRAM_ID = Pubkey.from_string("Fg6PaFpoGXkYsidMpWTK6W2BeZ7FEfcYkg476zPFsLnS")


@pytest.fixture
def vault_pda() -> PdaNode:
    return PdaNode(
        name="vault",
        seeds=(
            ConstantPdaSeedNode(StringValueNode("vault")),
            VariablePdaSeedNode("owner", PublicKeyTypeNode()),
        ),
    )


@pytest.fixture
def resolver() -> PdaSeedResolver:
    return PdaSeedResolver()


class TestSeedExpressions:
    """Seed order and kinds."""

    def test_constant_then_account(self, vault_pda: PdaNode, resolver: PdaSeedResolver) -> None:
        """Two seeds give two expressions in declared order."""
        resolution = resolver.resolve_seeds(vault_pda, [PdaSeedValueNode("owner", AccountValueNode("owner"))])

        assert [e.kind for e in resolution.expressions] == [SeedKind.CONSTANT, SeedKind.ACCOUNT]
        assert resolution.expressions[0].value == b"vault"
        assert resolution.expressions[0].source == "b'vault'"
        assert resolution.expressions[1].parameter == "owner"
        assert resolution.expressions[1].render("owner") == "bytes(owner)"
        assert resolution.is_auto_derivable
        assert resolution.parameters == ()

    def test_empty_seeds(self, resolver: PdaSeedResolver) -> None:
        """A PDA without seeds resolves to no expressions and is derivable."""
        pda = PdaNode(name="global_state")
        resolution = resolver.resolve_seeds(pda)

        assert resolution.expressions == ()
        assert resolution.is_auto_derivable
        assert resolution.derive(PROGRAM_ID) == Pubkey.find_program_address([], PROGRAM_ID)

    def test_unbound_seed_is_a_parameter(self, vault_pda: PdaNode, resolver: PdaSeedResolver) -> None:
        """Seeds with no binding must be supplied by the caller."""
        resolution = resolver.resolve_seeds(vault_pda)

        assert not resolution.is_auto_derivable
        assert [e.kind for e in resolution.parameters] == [SeedKind.PARAMETER]
        assert resolution.parameters[0].target_type == "Pubkey"

    def test_program_id_seed(self, resolver: PdaSeedResolver) -> None:
        """The program id seed uses the derivation program."""
        pda = PdaNode(name="meta", seeds=(ConstantPdaSeedNode(ProgramIdValueNode()),))
        resolution = resolver.resolve_seeds(pda)

        assert resolution.expressions[0].kind is SeedKind.PROGRAM_ID
        assert resolution.seed_bytes(PROGRAM_ID) == [bytes(PROGRAM_ID)]

    def test_typed_number_constant(self, resolver: PdaSeedResolver) -> None:
        """Number constants are serialised with their declared type."""
        pda = PdaNode(name="slot", seeds=(ConstantPdaSeedNode(NumberValueNode(258), type=number("u16")),))

        assert resolver.resolve_seeds(pda).expressions[0].value == b"\x02\x01"

    def test_literal_binding_becomes_constant(self, resolver: PdaSeedResolver) -> None:
        """A seed bound to a literal is inlined."""
        pda = PdaNode(name="named", seeds=(VariablePdaSeedNode("label", StringTypeNode()),))
        resolution = resolver.resolve_seeds(pda, {"label": StringValueNode("main")})

        assert resolution.expressions[0].kind is SeedKind.CONSTANT
        assert resolution.expressions[0].value == b"main"
        assert resolution.is_auto_derivable


class TestDerivability:
    """Only account-bound seeds are auto-derivable by default."""

    @pytest.fixture
    def config_pda(self) -> PdaNode:
        return PdaNode(
            name="config",
            seeds=(
                ConstantPdaSeedNode(StringValueNode("config")),
                VariablePdaSeedNode("seed", number("u64")),
            ),
        )

    def test_argument_seed_is_not_derivable(self, config_pda: PdaNode, resolver: PdaSeedResolver) -> None:
        """Argument-bound seeds make the caller pass the account."""
        resolution = resolver.resolve_seeds(config_pda, {"seed": ArgumentValueNode("seed")})

        assert not resolution.is_auto_derivable
        assert [e.kind for e in resolution.parameters] == [SeedKind.ARGUMENT]

    def test_relaxed_mode_allows_arguments(self, config_pda: PdaNode) -> None:
        """With derivation from arguments enabled, argument seeds are accepted."""
        resolver = PdaSeedResolver(config=GeneratorConfig(derive_pdas_from_arguments=True))
        resolution = resolver.resolve_seeds(config_pda, {"seed": ArgumentValueNode("seed")})

        assert resolution.is_auto_derivable
        assert resolution.parameters == ()
        assert resolution.expressions[1].render("args.seed") == 'args.seed.to_bytes(8, "little")'

    def test_account_outside_instruction(self, vault_pda: PdaNode) -> None:
        """A seed bound to an account the instruction lacks is not derivable."""
        bindings = {"owner": AccountValueNode("owner")}

        assert references_only_accounts(vault_pda, bindings)
        assert references_only_accounts(vault_pda, bindings, accounts=["owner", "vault"])
        assert not references_only_accounts(vault_pda, bindings, accounts=["vault"])

    def test_predicate_matches_resolution(self, config_pda: PdaNode, resolver: PdaSeedResolver) -> None:
        """The predicate and the resolver agree."""
        bindings = {"seed": ArgumentValueNode("seed")}

        assert references_only_accounts(config_pda, bindings) == resolver.resolve_seeds(
            config_pda, bindings
        ).is_auto_derivable
        assert references_only_accounts(config_pda, bindings, allow_arguments=True)


class TestDerive:
    """Addresses computed from seed values."""

    def test_matches_solders(self, vault_pda: PdaNode, resolver: PdaSeedResolver) -> None:
        """Derivation hashes the seeds in order under the program id."""
        owner = Pubkey.new_unique()
        resolution = resolver.resolve_seeds(vault_pda)

        assert resolution.derive(PROGRAM_ID, {"owner": owner}) == Pubkey.find_program_address(
            [b"vault", bytes(owner)], PROGRAM_ID
        )

    def test_accepts_base58_strings(self, vault_pda: PdaNode, resolver: PdaSeedResolver) -> None:
        """Public key seeds and the program id may be given as strings."""
        owner = Pubkey.new_unique()
        resolution = resolver.resolve_seeds(vault_pda)

        assert resolution.derive(str(PROGRAM_ID), {"owner": str(owner)}) == resolution.derive(
            PROGRAM_ID, {"owner": owner}
        )

    def test_integer_seed_is_little_endian(self, resolver: PdaSeedResolver) -> None:
        """u64 seeds are encoded as 8 little-endian bytes."""
        pda = PdaNode(name="round", seeds=(VariablePdaSeedNode("round", number("u64")),))
        resolution = resolver.resolve_seeds(pda)

        assert resolution.seed_bytes(PROGRAM_ID, {"round": 5}) == [(5).to_bytes(8, "little")]

    def test_missing_value(self, vault_pda: PdaNode, resolver: PdaSeedResolver) -> None:
        """Deriving without a required seed value fails."""
        with pytest.raises(KeyError):
            resolver.resolve_seeds(vault_pda).derive(PROGRAM_ID, {})

    def test_foreign_program(self, resolver: PdaSeedResolver) -> None:
        """A PDA declared under another program derives under that program."""
        other = Pubkey.new_unique()
        pda = PdaNode(name="ext", seeds=(ConstantPdaSeedNode(StringValueNode("ext")),), program_id=str(other))

        assert resolver.resolve_seeds(pda).derive(PROGRAM_ID) == Pubkey.find_program_address([b"ext"], other)

    def test_program_id_seed_under_foreign_program(self, resolver: PdaSeedResolver) -> None:
        """The program-id seed is the calling program, whichever program owns the address."""
        other = Pubkey.new_unique()
        pda = PdaNode(
            name="meta",
            seeds=(ConstantPdaSeedNode(StringValueNode("m")), ConstantPdaSeedNode(ProgramIdValueNode())),
            program_id=str(other),
        )
        resolution = resolver.resolve_seeds(pda)
        expected = Pubkey.find_program_address([b"m", bytes(PROGRAM_ID)], other)

        assert resolution.derive(PROGRAM_ID) == expected

        namespace = {"Pubkey": Pubkey, "VAULT_PROGRAM_ID": PROGRAM_ID}
        lines, _ = pda_function_lines("find_meta_pda", resolution, "VAULT_PROGRAM_ID")
        exec("\n".join(lines), namespace)
        assert namespace["find_meta_pda"]() == expected

        inline = inline_derivation(resolution, lambda e: e.parameter)
        assert eval(inline, {"Pubkey": Pubkey, "program_id": PROGRAM_ID}) == expected[0]
