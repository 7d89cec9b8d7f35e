"""
Data models for a program interface description.

These models represent the accounts, instructions, defined types, PDAs and
errors of one or more Solana programs, independently of the IDL flavour
they were read from.
"""

from dataclasses import dataclass, field
from typing import Any, List, Optional, Tuple, Union

from .types import StructFieldTypeNode, StructTypeNode, TypeNode


# ---------------------------------------------------------------------------
# Value nodes
# ---------------------------------------------------------------------------


class ValueNode:
    """Base class of literal and reference values."""
    kind = "valueNode"


@dataclass(frozen=True, eq=False)
class BytesValueNode(ValueNode):
    data: bytes
    kind = "bytesValueNode"


@dataclass(frozen=True, eq=False)
class StringValueNode(ValueNode):
    string: str
    kind = "stringValueNode"


@dataclass(frozen=True, eq=False)
class NumberValueNode(ValueNode):
    number: Union[int, float]
    kind = "numberValueNode"


@dataclass(frozen=True, eq=False)
class BooleanValueNode(ValueNode):
    boolean: bool
    kind = "booleanValueNode"


@dataclass(frozen=True, eq=False)
class PublicKeyValueNode(ValueNode):
    public_key: str
    kind = "publicKeyValueNode"


@dataclass(frozen=True, eq=False)
class ProgramIdValueNode(ValueNode):
    kind = "programIdValueNode"


@dataclass(frozen=True, eq=False)
class ArrayValueNode(ValueNode):
    items: Tuple[ValueNode, ...] = ()
    kind = "arrayValueNode"


@dataclass(frozen=True, eq=False)
class AccountValueNode(ValueNode):
    """Reference to another account of the same instruction."""
    name: str
    kind = "accountValueNode"


@dataclass(frozen=True, eq=False)
class ArgumentValueNode(ValueNode):
    """Reference to an argument of the same instruction."""
    name: str
    kind = "argumentValueNode"


# ---------------------------------------------------------------------------
# PDAs
# ---------------------------------------------------------------------------


@dataclass(frozen=True, eq=False)
class ConstantPdaSeedNode:
    """A seed whose bytes are known statically (string, bytes or program id)."""
    value: ValueNode
    # Serialisation type for number values; strings and bytes ignore it
    type: Optional[TypeNode] = None
    kind = "constantPdaSeedNode"


@dataclass(frozen=True, eq=False)
class VariablePdaSeedNode:
    """A seed supplied at derivation time, serialised with its type."""
    name: str
    type: TypeNode
    docs: Tuple[str, ...] = ()
    kind = "variablePdaSeedNode"


PdaSeedNode = Union[ConstantPdaSeedNode, VariablePdaSeedNode]


@dataclass(frozen=True, eq=False)
class PdaNode:
    name: str
    seeds: Tuple[PdaSeedNode, ...] = ()
    program_id: Optional[str] = None  # Derive under another program
    docs: Tuple[str, ...] = ()
    kind = "pdaNode"

    @property
    def variable_seeds(self) -> List[VariablePdaSeedNode]:
        return [s for s in self.seeds if isinstance(s, VariablePdaSeedNode)]


@dataclass(frozen=True, eq=False)
class PdaLinkNode:
    name: str
    kind = "pdaLinkNode"


@dataclass(frozen=True, eq=False)
class PdaSeedValueNode:
    """Binds a variable seed to an account or argument of an instruction."""
    name: str
    value: ValueNode
    kind = "pdaSeedValueNode"


@dataclass(frozen=True, eq=False)
class PdaValueNode(ValueNode):
    pda: Union[PdaNode, PdaLinkNode]
    seeds: Tuple[PdaSeedValueNode, ...] = ()
    kind = "pdaValueNode"

    def get_seed_value(self, name: str) -> Optional[ValueNode]:
        for seed in self.seeds:
            if seed.name == name:
                return seed.value
        return None


# ---------------------------------------------------------------------------
# Discriminators
# ---------------------------------------------------------------------------


@dataclass(frozen=True, eq=False)
class ConstantDiscriminatorNode:
    value: ValueNode
    offset: int = 0
    kind = "constantDiscriminatorNode"


@dataclass(frozen=True, eq=False)
class FieldDiscriminatorNode:
    name: str
    offset: int = 0
    kind = "fieldDiscriminatorNode"


DiscriminatorNode = Union[ConstantDiscriminatorNode, FieldDiscriminatorNode]


# ---------------------------------------------------------------------------
# Program items
# ---------------------------------------------------------------------------


@dataclass(frozen=True, eq=False)
class DefinedTypeNode:
    name: str
    type: TypeNode
    docs: Tuple[str, ...] = ()
    kind = "definedTypeNode"


@dataclass(frozen=True, eq=False)
class AccountNode:
    name: str
    data: StructTypeNode = field(default_factory=StructTypeNode)
    discriminators: Tuple[DiscriminatorNode, ...] = ()
    size: Optional[int] = None
    docs: Tuple[str, ...] = ()
    kind = "accountNode"


@dataclass(frozen=True, eq=False)
class InstructionAccountNode:
    name: str
    is_writable: bool = False
    is_signer: bool = False
    is_optional: bool = False
    default_value: Optional[ValueNode] = None
    docs: Tuple[str, ...] = ()
    kind = "instructionAccountNode"


@dataclass(frozen=True, eq=False)
class InstructionArgumentNode:
    name: str
    type: TypeNode
    default_value: Optional[ValueNode] = None
    docs: Tuple[str, ...] = ()
    kind = "instructionArgumentNode"


@dataclass(frozen=True, eq=False)
class InstructionNode:
    name: str
    accounts: Tuple[InstructionAccountNode, ...] = ()
    arguments: Tuple[InstructionArgumentNode, ...] = ()
    discriminators: Tuple[DiscriminatorNode, ...] = ()
    docs: Tuple[str, ...] = ()
    kind = "instructionNode"

    def get_argument(self, name: str) -> Optional[InstructionArgumentNode]:
        for argument in self.arguments:
            if argument.name == name:
                return argument
        return None

    def get_account(self, name: str) -> Optional[InstructionAccountNode]:
        for account in self.accounts:
            if account.name == name:
                return account
        return None

    def arguments_struct(self) -> StructTypeNode:
        """View the arguments as a struct so they resolve like account data."""
        return StructTypeNode(fields=tuple(
            StructFieldTypeNode(
                name=arg.name,
                type=arg.type,
                docs=arg.docs,
                default_value=arg.default_value,
            )
            for arg in self.arguments
        ))


@dataclass(frozen=True, eq=False)
class ErrorNode:
    code: int
    name: str
    message: str = ""
    docs: Tuple[str, ...] = ()
    kind = "errorNode"


@dataclass(frozen=True, eq=False)
class ProgramNode:
    name: str
    public_key: Optional[str] = None
    version: Optional[str] = None
    accounts: Tuple[AccountNode, ...] = ()
    instructions: Tuple[InstructionNode, ...] = ()
    defined_types: Tuple[DefinedTypeNode, ...] = ()
    pdas: Tuple[PdaNode, ...] = ()
    errors: Tuple[ErrorNode, ...] = ()
    docs: Tuple[str, ...] = ()
    kind = "programNode"

    def get_defined_type(self, name: str) -> Optional[DefinedTypeNode]:
        for defined_type in self.defined_types:
            if defined_type.name == name:
                return defined_type
        return None

    def get_pda(self, name: str) -> Optional[PdaNode]:
        for pda in self.pdas:
            if pda.name == name:
                return pda
        return None

    def get_account(self, name: str) -> Optional[AccountNode]:
        for account in self.accounts:
            if account.name == name:
                return account
        return None

    def get_instruction(self, name: str) -> Optional[InstructionNode]:
        """Get instruction by name."""
        for ix in self.instructions:
            if ix.name.lower() == name.lower():
                return ix
        return None


@dataclass(frozen=True, eq=False)
class RootNode:
    programs: Tuple[ProgramNode, ...] = ()
    kind = "rootNode"

    @property
    def program(self) -> Optional[ProgramNode]:
        """The main program, when there is one."""
        return self.programs[0] if self.programs else None

    def summary(self) -> str:
        """Return a human-readable summary."""
        lines = []
        for program in self.programs:
            lines.append(f"Program: {program.name} ({program.public_key or 'no address'})")
            lines.append(f"  Accounts: {len(program.accounts)}")
            lines.append(f"  Instructions: {len(program.instructions)}")
            lines.append(f"  Types: {len(program.defined_types)}")
            lines.append(f"  PDAs: {len(program.pdas)}")
            lines.append(f"  Errors: {len(program.errors)}")
        return "\n".join(lines)


ProgramItem = Union[AccountNode, InstructionNode, DefinedTypeNode, PdaNode, ErrorNode]


def resolve_pda(value: PdaValueNode, program: ProgramNode) -> Optional[PdaNode]:
    """Return the PDA a value points to, following links within the program."""
    if isinstance(value.pda, PdaNode):
        return value.pda
    return program.get_pda(value.pda.name)


def to_bytes_value(value: Any) -> Optional[bytes]:
    """Extract raw bytes from a bytes value or an array of number values."""
    if isinstance(value, BytesValueNode):
        return value.data
    if isinstance(value, ArrayValueNode) and all(isinstance(i, NumberValueNode) for i in value.items):
        return bytes(int(i.number) for i in value.items)
    return None
