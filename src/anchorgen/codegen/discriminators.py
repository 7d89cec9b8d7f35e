"""
Account and instruction discriminators.

Anchor prefixes account data and instruction data with 8 bytes that
identify the account type or the instruction. An explicit constant wins,
then bytes carried by a discriminator field, then the Anchor hash.
"""

import hashlib
from typing import Optional, Union

from ..idl.models import (
    AccountNode,
    ConstantDiscriminatorNode,
    FieldDiscriminatorNode,
    InstructionNode,
    to_bytes_value,
)

DISCRIMINATOR_SIZE = 8
DISCRIMINATOR_FIELD = "discriminator"

ACCOUNT_NAMESPACE = "account"
INSTRUCTION_NAMESPACE = "global"


def compute_anchor_discriminator(namespace: str, name: str) -> bytes:
    """First 8 bytes of sha256("<namespace>:<name>")."""
    return hashlib.sha256(f"{namespace}:{name}".encode("utf-8")).digest()[:DISCRIMINATOR_SIZE]


def extract_discriminator(item: Union[AccountNode, InstructionNode]) -> bytes:
    """Return the discriminator bytes for an account or an instruction."""
    constant = constant_discriminator(item)
    if constant is not None:
        return constant
    from_field = field_discriminator(item)
    if from_field is not None:
        return from_field
    namespace = ACCOUNT_NAMESPACE if isinstance(item, AccountNode) else INSTRUCTION_NAMESPACE
    return compute_anchor_discriminator(namespace, item.name)


def constant_discriminator(item) -> Optional[bytes]:
    for node in item.discriminators:
        if isinstance(node, ConstantDiscriminatorNode):
            data = to_bytes_value(node.value)
            if data is not None:
                return data
    return None


def field_discriminator(item) -> Optional[bytes]:
    """Bytes defaulted on the discriminator field or argument, if any."""
    names = [n.name for n in item.discriminators if isinstance(n, FieldDiscriminatorNode)]
    names.append(DISCRIMINATOR_FIELD)
    for name in names:
        default = _field_default(item, name)
        data = to_bytes_value(default) if default is not None else None
        if data is not None:
            return data
    return None


def discriminator_field_names(item) -> set:
    """Names of fields or arguments that carry the discriminator."""
    names = {n.name for n in item.discriminators if isinstance(n, FieldDiscriminatorNode)}
    if _field_default(item, DISCRIMINATOR_FIELD) is not None:
        names.add(DISCRIMINATOR_FIELD)
    return names


def _field_default(item, name: str):
    if isinstance(item, AccountNode):
        found = item.data.get_field(name)
    else:
        found = item.get_argument(name)
    return found.default_value if found is not None else None
