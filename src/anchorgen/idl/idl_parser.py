"""
IDL Parser for Anchor programs.

Parses Anchor IDL JSON (the >=0.30 format and the legacy one) into the
program model used by the generator.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Set, Tuple, Union

import httpx
from solders.pubkey import Pubkey

from ..errors import InvalidIdlError
from .models import (
    AccountNode,
    AccountValueNode,
    ArgumentValueNode,
    BytesValueNode,
    ConstantDiscriminatorNode,
    ConstantPdaSeedNode,
    DefinedTypeNode,
    ErrorNode,
    InstructionAccountNode,
    InstructionArgumentNode,
    InstructionNode,
    NumberValueNode,
    PdaLinkNode,
    PdaNode,
    PdaSeedValueNode,
    PdaValueNode,
    ProgramNode,
    PublicKeyValueNode,
    RootNode,
    StringValueNode,
    VariablePdaSeedNode,
)
from .types import (
    ArrayTypeNode,
    BooleanTypeNode,
    BytesTypeNode,
    DefinedTypeLinkNode,
    EnumEmptyVariantTypeNode,
    EnumStructVariantTypeNode,
    EnumTupleVariantTypeNode,
    EnumTypeNode,
    MapTypeNode,
    NumberFormat,
    NumberTypeNode,
    OptionTypeNode,
    PublicKeyTypeNode,
    SetTypeNode,
    StringTypeNode,
    StructFieldTypeNode,
    StructTypeNode,
    TupleTypeNode,
    TypeNode,
    UnsupportedTypeNode,
)

logger = logging.getLogger(__name__)

FETCH_TIMEOUT = 30.0


class IDLParser:
    """
    Parser for Anchor IDL files.

    Maps accounts, instructions, types, errors and PDA seeds to a RootNode.
    PDA blocks of instruction accounts are lifted to program-level PDAs.
    """

    NUMBER_TYPES = {f.value for f in NumberFormat if f is not NumberFormat.SHORT_U16}

    def __init__(self):
        self.idl: Optional[Dict] = None

    def parse_file(self, path: Union[str, Path]) -> RootNode:
        """Parse an IDL file from disk."""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"IDL file not found: {path}")

        with open(path, "r") as f:
            try:
                idl_data = json.load(f)
            except json.JSONDecodeError as exc:
                raise InvalidIdlError(f"{path} is not valid JSON: {exc}") from exc

        return self.parse(idl_data)

    def parse_url(self, url: str) -> RootNode:
        """Fetch an IDL over HTTP and parse it."""
        try:
            response = httpx.get(url, timeout=FETCH_TIMEOUT, follow_redirects=True)
            response.raise_for_status()
            idl_data = response.json()
        except httpx.HTTPError as exc:
            raise InvalidIdlError(f"Could not fetch IDL from {url}: {exc}") from exc
        except ValueError as exc:
            raise InvalidIdlError(f"IDL at {url} is not valid JSON: {exc}") from exc
        return self.parse(idl_data)

    def parse(self, idl: Dict) -> RootNode:
        """Parse an IDL dictionary."""
        if not isinstance(idl, dict):
            raise InvalidIdlError("IDL must be a JSON object")
        self.idl = idl
        return RootNode(programs=(self._parse_program(idl),))

    def _parse_program(self, idl: Dict) -> ProgramNode:
        metadata = idl.get("metadata") or {}
        name = metadata.get("name") or idl.get("name")
        if not name:
            raise InvalidIdlError("IDL has no program name")

        raw_types = {t["name"]: t for t in idl.get("types", []) if "name" in t}
        account_names = {a.get("name") for a in idl.get("accounts", [])}

        accounts = tuple(self._parse_account(a, raw_types) for a in idl.get("accounts", []))

        # Account data structs of the new format are also listed under types
        referenced = _defined_names(idl.get("instructions", [])) | _defined_names(
            [t for t in idl.get("types", []) if t.get("name") not in account_names]
        )
        defined_types = tuple(
            self._parse_defined_type(t)
            for t in idl.get("types", [])
            if t.get("name") not in account_names or t.get("name") in referenced
        )

        pdas: Dict[str, PdaNode] = {}
        instructions = tuple(
            self._parse_instruction(ix, pdas, {a.name: a for a in accounts}) for ix in idl.get("instructions", [])
        )

        return ProgramNode(
            name=name,
            public_key=idl.get("address") or metadata.get("address"),
            version=metadata.get("version") or idl.get("version"),
            accounts=accounts,
            instructions=instructions,
            defined_types=defined_types,
            pdas=tuple(pdas.values()),
            errors=tuple(self._parse_error(e) for e in idl.get("errors", [])),
            docs=tuple(idl.get("docs", [])),
        )

    # ------------------------------------------------------------------
    # Accounts and types
    # ------------------------------------------------------------------

    def _parse_account(self, acc_data: Dict, raw_types: Dict[str, Dict]) -> AccountNode:
        """Parse a global account type definition."""
        name = acc_data.get("name", "unknown")
        type_def = acc_data.get("type") or raw_types.get(name, {}).get("type")
        if type_def is None:
            raise InvalidIdlError(f"Account '{name}' has no type definition")
        data = self._parse_type_def(type_def, name)
        if not isinstance(data, StructTypeNode):
            raise InvalidIdlError(f"Account '{name}' must be a struct")

        discriminators = ()
        if isinstance(acc_data.get("discriminator"), list):
            discriminators = (ConstantDiscriminatorNode(BytesValueNode(bytes(acc_data["discriminator"]))),)

        return AccountNode(
            name=name,
            data=data,
            discriminators=discriminators,
            docs=tuple(acc_data.get("docs") or raw_types.get(name, {}).get("docs") or ()),
        )

    def _parse_defined_type(self, type_data: Dict) -> DefinedTypeNode:
        name = type_data["name"]
        return DefinedTypeNode(
            name=name,
            type=self._parse_type_def(type_data.get("type", {}), name),
            docs=tuple(type_data.get("docs", [])),
        )

    def _parse_type_def(self, type_def: Dict, owner: str) -> TypeNode:
        kind = type_def.get("kind")
        if kind == "struct":
            fields = type_def.get("fields", [])
            if fields and not isinstance(fields[0], dict):
                return TupleTypeNode(items=tuple(self._parse_type(f) for f in fields))
            return StructTypeNode(fields=tuple(self._parse_field(f) for f in fields))
        if kind == "enum":
            return EnumTypeNode(variants=tuple(self._parse_variant(v) for v in type_def.get("variants", [])))
        if kind == "type" and "alias" in type_def:
            return self._parse_type(type_def["alias"])
        logger.warning("Type '%s' has unsupported kind '%s'", owner, kind)
        return UnsupportedTypeNode(type_kind=str(kind), raw=type_def)

    def _parse_field(self, field_data: Dict) -> StructFieldTypeNode:
        return StructFieldTypeNode(
            name=field_data["name"],
            type=self._parse_type(field_data["type"]),
            docs=tuple(field_data.get("docs", [])),
        )

    def _parse_variant(self, variant: Dict) -> TypeNode:
        name = variant["name"]
        fields = variant.get("fields")
        if not fields:
            return EnumEmptyVariantTypeNode(name=name)
        if isinstance(fields[0], dict) and "name" in fields[0]:
            return EnumStructVariantTypeNode(
                name=name,
                struct=StructTypeNode(fields=tuple(self._parse_field(f) for f in fields)),
            )
        return EnumTupleVariantTypeNode(
            name=name,
            tuple=TupleTypeNode(items=tuple(self._parse_type(f) for f in fields)),
        )

    def _parse_type(self, type_data: Any) -> TypeNode:
        """Map an IDL type (string or object) to a type node."""
        if isinstance(type_data, str):
            if type_data == "bool":
                return BooleanTypeNode()
            if type_data in self.NUMBER_TYPES:
                return NumberTypeNode(NumberFormat(type_data))
            if type_data == "string":
                return StringTypeNode()
            if type_data == "bytes":
                return BytesTypeNode()
            if type_data in ("publicKey", "pubkey"):
                return PublicKeyTypeNode()
            return self._unsupported(type_data, type_data)

        if isinstance(type_data, dict):
            if "vec" in type_data:
                return ArrayTypeNode(item=self._parse_type(type_data["vec"]))
            if "array" in type_data:
                item, count = type_data["array"]
                if not isinstance(count, int):
                    return self._unsupported("genericArray", type_data)
                return ArrayTypeNode(item=self._parse_type(item), count=count)
            if "option" in type_data:
                return OptionTypeNode(item=self._parse_type(type_data["option"]))
            if "coption" in type_data:
                return OptionTypeNode(item=self._parse_type(type_data["coption"]), prefix=NumberFormat.U32)
            if "defined" in type_data:
                defined = type_data["defined"]
                name = defined.get("name") if isinstance(defined, dict) else defined
                return DefinedTypeLinkNode(name=name)
            if "tuple" in type_data:
                return TupleTypeNode(items=tuple(self._parse_type(t) for t in type_data["tuple"]))
            for key in ("hashMap", "bTreeMap"):
                if key in type_data:
                    key_type, value_type = type_data[key]
                    return MapTypeNode(key=self._parse_type(key_type), value=self._parse_type(value_type))
            for key in ("hashSet", "bTreeSet"):
                if key in type_data:
                    return SetTypeNode(item=self._parse_type(type_data[key]))
            kind = next(iter(type_data), "unknown")
            return self._unsupported(kind, type_data)

        return self._unsupported(type(type_data).__name__, type_data)

    def _unsupported(self, kind: str, raw: Any) -> UnsupportedTypeNode:
        logger.warning("Unsupported IDL type '%s'", kind)
        return UnsupportedTypeNode(type_kind=kind, raw=raw)

    # ------------------------------------------------------------------
    # Instructions
    # ------------------------------------------------------------------

    def _parse_instruction(self, ix_data: Dict, pdas: Dict[str, PdaNode], accounts: Dict[str, AccountNode]) -> InstructionNode:
        """Parse a single instruction from IDL."""
        name = ix_data.get("name", "unknown")

        arguments = tuple(self._parse_argument(a) for a in ix_data.get("args", []))
        raw_accounts = _flatten_accounts(ix_data.get("accounts", []))
        account_types = {a.get("name"): a.get("account") for a in raw_accounts}

        ix_accounts = []
        for acc_data in raw_accounts:
            ix_accounts.append(self._parse_instruction_account(
                acc_data, name, arguments, account_types, accounts, pdas,
            ))

        # Extract discriminator if present
        discriminators = ()
        if isinstance(ix_data.get("discriminator"), list):
            discriminators = (ConstantDiscriminatorNode(BytesValueNode(bytes(ix_data["discriminator"]))),)

        return InstructionNode(
            name=name,
            accounts=tuple(ix_accounts),
            arguments=arguments,
            discriminators=discriminators,
            docs=tuple(ix_data.get("docs", [])),
        )

    def _parse_argument(self, arg_data: Dict) -> InstructionArgumentNode:
        """Parse an instruction argument."""
        return InstructionArgumentNode(
            name=arg_data.get("name", "arg"),
            type=self._parse_type(arg_data.get("type", "unknown")),
            docs=tuple(arg_data.get("docs", [])),
        )

    def _parse_instruction_account(
        self,
        acc_data: Dict,
        ix_name: str,
        arguments: Tuple[InstructionArgumentNode, ...],
        account_types: Dict[str, Optional[str]],
        accounts: Dict[str, AccountNode],
        pdas: Dict[str, PdaNode],
    ) -> InstructionAccountNode:
        """Parse an account from an instruction's account list."""
        # Old format: isMut, isSigner. New format: writable, signer
        name = acc_data.get("name", "unknown")
        is_writable = acc_data.get("writable", acc_data.get("isMut", False))
        is_signer = acc_data.get("signer", acc_data.get("isSigner", False))
        is_optional = acc_data.get("optional", acc_data.get("isOptional", False))

        default_value = None
        if acc_data.get("address"):
            default_value = PublicKeyValueNode(acc_data["address"])
        elif isinstance(acc_data.get("pda"), dict):
            default_value = self._lift_pda(acc_data["pda"], name, ix_name, arguments, account_types, accounts, pdas)

        return InstructionAccountNode(
            name=name,
            is_writable=bool(is_writable),
            is_signer=bool(is_signer),
            is_optional=bool(is_optional),
            default_value=default_value,
            docs=tuple(acc_data.get("docs", [])),
        )

    # ------------------------------------------------------------------
    # PDAs
    # ------------------------------------------------------------------

    def _lift_pda(self, pda_data, account_name, ix_name, arguments, account_types, accounts, pdas) -> Optional[PdaValueNode]:
        """Register the PDA at program level and return the value binding its seeds."""
        program_id = None
        program = pda_data.get("program")
        if program is not None:
            program_id = self._pda_program(program)
            if program_id is None:
                logger.debug("PDA of '%s.%s' uses a runtime program id, not lifted", ix_name, account_name)
                return None

        seeds = []
        bindings = []
        for seed in pda_data.get("seeds", []):
            kind = seed.get("kind")
            if kind == "const":
                seeds.append(self._const_seed(seed))
                continue
            path = seed.get("path", "")
            seed_name = path.replace(".", "_")
            if kind == "account":
                seed_type = self._account_seed_type(seed, path, account_types, accounts)
                seeds.append(VariablePdaSeedNode(name=seed_name, type=seed_type))
                if "." not in path:
                    bindings.append(PdaSeedValueNode(seed_name, AccountValueNode(path)))
            elif kind == "arg":
                seed_type = self._arg_seed_type(seed, path, arguments)
                seeds.append(VariablePdaSeedNode(name=seed_name, type=seed_type))
                if "." not in path:
                    bindings.append(PdaSeedValueNode(seed_name, ArgumentValueNode(path)))
            else:
                raise InvalidIdlError(f"Unknown seed kind '{kind}' in '{ix_name}.{account_name}'")

        pda = PdaNode(name=account_name, seeds=tuple(seeds), program_id=program_id)
        registered = self._register_pda(pda, ix_name, pdas)
        return PdaValueNode(pda=PdaLinkNode(registered.name), seeds=tuple(bindings))

    def _register_pda(self, pda: PdaNode, ix_name: str, pdas: Dict[str, PdaNode]) -> PdaNode:
        signature = _pda_signature(pda)
        for existing in pdas.values():
            if _pda_signature(existing) == signature and existing.name in (pda.name, f"{ix_name}_{pda.name}"):
                return existing
        name = pda.name
        if name in pdas:
            name = f"{ix_name}_{pda.name}"
        registered = PdaNode(name=name, seeds=pda.seeds, program_id=pda.program_id, docs=pda.docs)
        pdas[name] = registered
        return registered

    def _const_seed(self, seed: Dict) -> ConstantPdaSeedNode:
        value = seed.get("value")
        seed_type = seed.get("type")
        if isinstance(value, list):
            return ConstantPdaSeedNode(BytesValueNode(bytes(value)))
        if isinstance(value, str):
            if seed_type in ("publicKey", "pubkey"):
                return ConstantPdaSeedNode(PublicKeyValueNode(value))
            return ConstantPdaSeedNode(StringValueNode(value))
        if isinstance(value, int):
            type_node = self._parse_type(seed_type) if seed_type else NumberTypeNode(NumberFormat.U8)
            return ConstantPdaSeedNode(NumberValueNode(value), type=type_node)
        raise InvalidIdlError(f"Unsupported constant seed value: {value!r}")

    def _pda_program(self, program: Dict) -> Optional[str]:
        if program.get("kind") == "const":
            value = program.get("value")
            if isinstance(value, list):
                return str(Pubkey.from_bytes(bytes(value)))
            if isinstance(value, str):
                return value
        return None

    def _account_seed_type(self, seed, path, account_types, accounts) -> TypeNode:
        if seed.get("type"):
            return self._parse_type(seed["type"])
        if "." not in path:
            return PublicKeyTypeNode()
        # Field of another account's data, e.g. "config.authority"
        head, _, field_path = path.partition(".")
        account_type = seed.get("account") or account_types.get(head)
        account = accounts.get(account_type) if account_type else None
        if account is not None:
            found = account.data.get_field(field_path.split(".")[0])
            if found is not None:
                return found.type
        return PublicKeyTypeNode()

    def _arg_seed_type(self, seed, path, arguments) -> TypeNode:
        if seed.get("type"):
            return self._parse_type(seed["type"])
        head = path.split(".")[0]
        for argument in arguments:
            if argument.name == head and "." not in path:
                return argument.type
        return BytesTypeNode()

    def _parse_error(self, error: Dict) -> ErrorNode:
        return ErrorNode(
            code=int(error["code"]),
            name=error["name"],
            message=error.get("msg", ""),
            docs=tuple(error.get("docs", [])),
        )


def _flatten_accounts(raw_accounts: List[Dict]) -> List[Dict]:
    """Legacy IDLs nest account groups; keep the leaves in order."""
    flat = []
    for account in raw_accounts:
        if isinstance(account.get("accounts"), list):
            flat.extend(_flatten_accounts(account["accounts"]))
        else:
            flat.append(account)
    return flat


def _pda_signature(pda: PdaNode) -> tuple:
    parts = []
    for seed in pda.seeds:
        if isinstance(seed, ConstantPdaSeedNode):
            parts.append(("const", type(seed.value).__name__, repr(vars(seed.value))))
        else:
            parts.append(("var", seed.name))
    return tuple(parts), pda.program_id


def _defined_names(items: Any) -> Set[str]:
    """Every name used in a `defined` type anywhere inside `items`."""
    names = set()
    stack = [items]
    while stack:
        item = stack.pop()
        if isinstance(item, dict):
            defined = item.get("defined")
            if isinstance(defined, str):
                names.add(defined)
            elif isinstance(defined, dict) and "name" in defined:
                names.add(defined["name"])
            stack.extend(item.values())
        elif isinstance(item, list):
            stack.extend(item)
    return names
