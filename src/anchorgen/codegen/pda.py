"""
PDA seed resolution.

Turns the seeds of a PDA into ordered byte expressions, both as Python
source for the generated package and as values that can be evaluated
here, and decides whether an instruction can derive the address itself.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, Mapping, Optional, Sequence, Tuple, Union

from solders.pubkey import Pubkey

from ..config import GeneratorConfig
from ..errors import GenerationError
from ..idl.models import (
    AccountValueNode,
    ArgumentValueNode,
    BooleanValueNode,
    ConstantPdaSeedNode,
    NumberValueNode,
    PdaNode,
    PdaSeedValueNode,
    ProgramIdValueNode,
    PublicKeyValueNode,
    StringValueNode,
    ValueNode,
    VariablePdaSeedNode,
    to_bytes_value,
)
from ..idl.types import NumberFormat, NumberTypeNode
from .fragments.common import encode_value
from .imports import ImportSet
from .layouts import layout_expression, layout_imports, to_construct
from .manifest import CodecDescriptor, CodecKind, CodecShape
from .names import DEFAULT_NAME_API, NameApi
from .type_manifest import TypeManifestResolver

logger = logging.getLogger(__name__)

PLACEHOLDER = "{value}"
MAX_SEED_LENGTH = 32


class SeedKind(Enum):
    CONSTANT = "constant"
    PROGRAM_ID = "program-id"
    ACCOUNT = "account"
    ARGUMENT = "argument"
    PARAMETER = "parameter"


@dataclass(frozen=True)
class SeedExpression:
    """
    One seed of a PDA, in order.

    `template` is Python source with `{value}` standing for the seed
    variable; constants have no placeholder.
    """
    kind: SeedKind
    template: str
    value: Optional[bytes] = None
    parameter: Optional[str] = None
    seed_name: Optional[str] = None
    bound_to: Optional[str] = None
    target_type: Optional[str] = None
    codec: Optional[CodecDescriptor] = None
    imports: ImportSet = field(default_factory=ImportSet)

    @property
    def source(self) -> str:
        return self.render(self.parameter or "")

    @property
    def is_variable(self) -> bool:
        return self.kind not in (SeedKind.CONSTANT, SeedKind.PROGRAM_ID)

    def render(self, expression: str) -> str:
        return self.template.replace(PLACEHOLDER, expression)

    def evaluate(self, program_id: Union[Pubkey, str], values: Optional[Mapping[str, Any]] = None) -> bytes:
        """Compute the seed bytes."""
        if self.kind is SeedKind.CONSTANT:
            return self.value
        if self.kind is SeedKind.PROGRAM_ID:
            return bytes(_as_pubkey(program_id))
        values = values or {}
        for key in (self.seed_name, self.parameter, self.bound_to):
            if key is not None and key in values:
                return seed_bytes(self.codec, values[key])
        raise KeyError(f"Missing value for seed '{self.seed_name}'")


@dataclass(frozen=True)
class PdaResolution:
    pda: PdaNode
    expressions: Tuple[SeedExpression, ...]
    is_auto_derivable: bool
    # Seeds the caller has to supply
    parameters: Tuple[SeedExpression, ...] = ()

    @property
    def imports(self) -> ImportSet:
        return ImportSet().merge(*(e.imports for e in self.expressions))

    def seed_bytes(self, program_id, values=None):
        return [e.evaluate(program_id, values) for e in self.expressions]

    def derive(self, program_id: Union[Pubkey, str], values: Optional[Mapping[str, Any]] = None) -> Tuple[Pubkey, int]:
        """
        Find the address and bump for the given seed values.

        `program_id` is the calling program: program-id seeds always use it,
        while the address is derived under the PDA's own program when it has one.
        """
        seeds = self.seed_bytes(program_id, values)
        return Pubkey.find_program_address(seeds, _as_pubkey(self.pda.program_id or program_id))


def _as_pubkey(value: Union[Pubkey, str]) -> Pubkey:
    return value if isinstance(value, Pubkey) else Pubkey.from_string(value)


def seed_bytes(codec: CodecDescriptor, value: Any) -> bytes:
    """Serialise a seed value: strings without length prefix, numbers little endian."""
    if codec is None:
        return bytes(value)
    if codec.kind is CodecKind.UTF8_STRING or codec.shape is CodecShape.STRING:
        return value.encode("utf-8") if isinstance(value, str) else bytes(value)
    if codec.shape is CodecShape.PUBLIC_KEY:
        return bytes(_as_pubkey(value))
    if codec.kind is CodecKind.FIXED_WIDTH_INT and codec.byte_width is not None:
        return int(value).to_bytes(codec.byte_width, "little", signed=codec.number_format.is_signed)
    if codec.kind in (CodecKind.RAW_BYTES, CodecKind.FIXED_BYTES):
        return bytes(value)
    if codec.kind is CodecKind.BOOL:
        return bytes([1 if value else 0])
    return to_construct(codec).build(value)


def seed_template(codec: CodecDescriptor) -> str:
    """Python source turning `{value}` into seed bytes."""
    if codec.kind is CodecKind.UTF8_STRING or codec.shape is CodecShape.STRING:
        return f'{PLACEHOLDER}.encode("utf-8")'
    if codec.shape is CodecShape.PUBLIC_KEY or codec.kind in (CodecKind.RAW_BYTES, CodecKind.FIXED_BYTES):
        return f"bytes({PLACEHOLDER})"
    if codec.kind is CodecKind.FIXED_WIDTH_INT and codec.byte_width is not None:
        signed = ", signed=True" if codec.number_format.is_signed else ""
        return f'{PLACEHOLDER}.to_bytes({codec.byte_width}, "little"{signed})'
    if codec.kind is CodecKind.BOOL:
        return f"bytes([int({PLACEHOLDER})])"
    return f"{layout_expression(codec)}.build({encode_value(codec, PLACEHOLDER)})"


def seed_template_imports(codec: CodecDescriptor) -> ImportSet:
    if codec.kind in (CodecKind.FIXED_WIDTH_INT, CodecKind.BOOL, CodecKind.UTF8_STRING, CodecKind.RAW_BYTES,
                      CodecKind.FIXED_BYTES):
        if codec.number_format is not NumberFormat.SHORT_U16:
            return ImportSet()
    return layout_imports(codec)


def references_only_accounts(
    pda: PdaNode,
    bindings: Mapping[str, ValueNode],
    accounts: Optional[Iterable[str]] = None,
    allow_arguments: bool = False,
) -> bool:
    """
    True when every variable seed is bound to an account.

    With `accounts`, bound accounts must be among them. `allow_arguments`
    also accepts seeds bound to instruction arguments.
    """
    available = set(accounts) if accounts is not None else None
    for seed in pda.variable_seeds:
        bound = bindings.get(seed.name)
        if isinstance(bound, AccountValueNode):
            if available is not None and bound.name not in available:
                return False
            continue
        if allow_arguments and isinstance(bound, ArgumentValueNode):
            continue
        if bound is not None and _is_literal(bound):
            continue
        return False
    return True


def _is_literal(value: ValueNode) -> bool:
    return isinstance(value, (StringValueNode, NumberValueNode, BooleanValueNode, PublicKeyValueNode)) or (
        to_bytes_value(value) is not None
    )


def _bindings(provided) -> Dict[str, ValueNode]:
    if provided is None:
        return {}
    if isinstance(provided, Mapping):
        return dict(provided)
    return {seed.name: seed.value for seed in provided}


class PdaSeedResolver:
    """Resolve PDA seeds into SeedExpressions."""

    def __init__(
        self,
        resolver: Optional[TypeManifestResolver] = None,
        name_api: NameApi = DEFAULT_NAME_API,
        config: Optional[GeneratorConfig] = None,
    ):
        self.config = config or GeneratorConfig()
        self.resolver = resolver or TypeManifestResolver(name_api=name_api, config=self.config)
        self.names = name_api

    def resolve_seeds(
        self,
        pda: PdaNode,
        provided: Union[Sequence[PdaSeedValueNode], Mapping[str, ValueNode], None] = None,
        accounts: Optional[Iterable[str]] = None,
        allow_arguments: Optional[bool] = None,
    ) -> PdaResolution:
        """
        Resolve `pda` with the seed bindings `provided`.

        Expressions keep the declared seed order. Unbound variable seeds
        become parameters and make the PDA not auto-derivable.
        """
        if allow_arguments is None:
            allow_arguments = self.config.derive_pdas_from_arguments
        bindings = _bindings(provided)
        expressions = []
        for seed in pda.seeds:
            if isinstance(seed, ConstantPdaSeedNode):
                expressions.append(self._constant(seed, pda))
            elif isinstance(seed, VariablePdaSeedNode):
                expressions.append(self._variable(seed, bindings.get(seed.name), allow_arguments))
            else:
                raise GenerationError(f"Unknown seed node in PDA '{pda.name}': {type(seed).__name__}")

        derivable = references_only_accounts(pda, bindings, accounts, allow_arguments)
        parameters = tuple(
            e for e in expressions
            if e.kind is SeedKind.PARAMETER or (e.kind is SeedKind.ARGUMENT and not allow_arguments)
        )
        return PdaResolution(
            pda=pda,
            expressions=tuple(expressions),
            is_auto_derivable=derivable,
            parameters=parameters,
        )

    def _constant(self, seed: ConstantPdaSeedNode, pda: PdaNode) -> SeedExpression:
        value = seed.value
        if isinstance(value, ProgramIdValueNode):
            return SeedExpression(kind=SeedKind.PROGRAM_ID, template="bytes(program_id)")
        data = self._literal_bytes(value, seed.type)
        if data is None:
            raise GenerationError(f"Unsupported constant seed in PDA '{pda.name}': {value.kind}")
        if len(data) > MAX_SEED_LENGTH:
            logger.warning("Seed of PDA '%s' is %d bytes, longer than %d", pda.name, len(data), MAX_SEED_LENGTH)
        return SeedExpression(kind=SeedKind.CONSTANT, template=repr(data), value=data)

    def _literal_bytes(self, value: ValueNode, type_node=None) -> Optional[bytes]:
        if isinstance(value, StringValueNode):
            return value.string.encode("utf-8")
        if isinstance(value, PublicKeyValueNode):
            return bytes(Pubkey.from_string(value.public_key))
        if isinstance(value, BooleanValueNode):
            return bytes([1 if value.boolean else 0])
        if isinstance(value, NumberValueNode):
            codec = self.resolver.resolve(type_node or NumberTypeNode(NumberFormat.U8)).codec
            return seed_bytes(codec, value.number)
        return to_bytes_value(value)

    def _variable(self, seed: VariablePdaSeedNode, bound: Optional[ValueNode], allow_arguments: bool) -> SeedExpression:
        manifest = self.resolver.resolve(seed.type)
        codec = manifest.codec
        template = seed_template(codec)
        common = dict(
            template=template,
            seed_name=seed.name,
            target_type=manifest.target_type,
            codec=codec,
            imports=manifest.imports.merge(seed_template_imports(codec)),
        )

        if isinstance(bound, AccountValueNode):
            return SeedExpression(
                kind=SeedKind.ACCOUNT,
                parameter=self.names.instruction_field(bound.name),
                bound_to=bound.name,
                **common,
            )
        if isinstance(bound, ArgumentValueNode):
            return SeedExpression(
                kind=SeedKind.ARGUMENT,
                parameter=self.names.instruction_field(bound.name),
                bound_to=bound.name,
                **common,
            )
        if bound is not None and _is_literal(bound):
            data = self._literal_bytes(bound, seed.type)
            return SeedExpression(kind=SeedKind.CONSTANT, template=repr(data), value=data, seed_name=seed.name)
        return SeedExpression(
            kind=SeedKind.PARAMETER,
            parameter=self.names.instruction_field(seed.name),
            **common,
        )
