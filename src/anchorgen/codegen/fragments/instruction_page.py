"""Source of an instruction builder module."""

from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from ..imports import ImportSet
from ..manifest import FieldManifest, TypeManifest
from .common import INDENT, docstring
from .type_page import nested_sources, struct_class


@dataclass
class AccountPlan:
    """How one instruction account becomes a builder parameter."""
    name: str
    is_signer: bool
    is_writable: bool
    is_optional: bool = False
    # Source assigned when the caller passes None
    default: Optional[str] = None
    docs: Sequence[str] = ()

    @property
    def is_required(self) -> bool:
        return self.default is None and not self.is_optional


def instruction_page(
    function_name: str,
    args_class: str,
    manifest: Optional[TypeManifest],
    fields: Sequence[FieldManifest],
    discriminator: bytes,
    accounts: Sequence[AccountPlan],
    program_module: str,
    program_constant: str,
    field_name,
    class_name_of,
    default_order: Optional[Sequence[str]] = None,
    docs: Sequence[str] = (),
) -> Tuple[List[str], ImportSet]:
    """
    The args dataclass (when there are arguments) and the builder function.

    `accounts` lists plans in instruction order. Defaults are assigned in
    `default_order` (plan names), so derived accounts come after the
    accounts their seeds use.
    """
    lines = [f"DISCRIMINATOR = {discriminator!r}", "", ""]
    imports = ImportSet().add("__future__", "annotations").add("typing")

    has_args = bool(fields)
    if has_args:
        nested, nested_imports = nested_sources(manifest.nested_declarations, field_name, class_name_of)
        lines.extend(nested)
        body, class_imports = struct_class(args_class, fields, manifest.codec, field_name)
        lines.extend(body)
        lines.extend(["", ""])
        imports = imports.merge(manifest.imports, nested_imports, class_imports)

    params = []
    if has_args:
        params.append(f"{INDENT}args: {args_class},")
    params.append(f"{INDENT}*,")
    for plan in accounts:
        if plan.is_required:
            params.append(f"{INDENT}{plan.name}: Pubkey,")
    for plan in accounts:
        if not plan.is_required:
            params.append(f"{INDENT}{plan.name}: typing.Optional[Pubkey] = None,")
    params.append(f"{INDENT}program_id: Pubkey = {program_constant},")
    params.append(f"{INDENT}remaining_accounts: typing.Optional[list[AccountMeta]] = None,")

    lines.append(f"def {function_name}(")
    lines.extend(params)
    lines.append(") -> Instruction:")
    lines.extend(docstring(list(docs)))

    by_name = {plan.name: plan for plan in accounts}
    ordered = [by_name[name] for name in default_order] if default_order is not None else accounts
    for plan in ordered:
        if plan.default is not None:
            lines.append(f"{INDENT}if {plan.name} is None:")
            lines.append(f"{INDENT * 2}{plan.name} = {plan.default}")

    lines.append(f"{INDENT}keys: list[AccountMeta] = [")
    for plan in accounts:
        meta = f"AccountMeta(pubkey={plan.name}, is_signer={plan.is_signer}, is_writable={plan.is_writable})"
        if plan.is_optional and plan.default is None:
            # Omitted optional accounts are passed as the program id
            meta = (
                f"{meta}\n{INDENT * 2}if {plan.name} is not None\n"
                f"{INDENT * 2}else AccountMeta(pubkey=program_id, is_signer=False, is_writable=False)"
            )
        lines.append(f"{INDENT * 2}{meta},")
    lines.append(f"{INDENT}]")
    lines.append(f"{INDENT}if remaining_accounts is not None:")
    lines.append(f"{INDENT * 2}keys += remaining_accounts")
    data = "DISCRIMINATOR + args.to_borsh()" if has_args else "DISCRIMINATOR"
    lines.append(f"{INDENT}data = {data}")
    lines.append(f"{INDENT}return Instruction(program_id, data, keys)")

    imports = (
        imports.add("solders.pubkey", "Pubkey")
        .add("solders.instruction", ["AccountMeta", "Instruction"])
        .add(program_module, program_constant)
    )
    return lines, imports
