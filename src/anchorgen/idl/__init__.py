"""
Program model and IDL parsing.
"""

from .models import (
    AccountNode,
    DefinedTypeNode,
    ErrorNode,
    InstructionAccountNode,
    InstructionArgumentNode,
    InstructionNode,
    PdaNode,
    ProgramNode,
    RootNode,
)
from .idl_parser import IDLParser

__all__ = [
    "AccountNode",
    "DefinedTypeNode",
    "ErrorNode",
    "InstructionAccountNode",
    "InstructionArgumentNode",
    "InstructionNode",
    "PdaNode",
    "ProgramNode",
    "RootNode",
    "IDLParser",
]
