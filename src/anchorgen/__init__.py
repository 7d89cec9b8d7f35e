"""
anchorgen - Python client generator for Anchor programs.

Reads an Anchor IDL and renders a typed client package: account decoders,
instruction builders, defined types, PDA helpers and program errors.
"""

__version__ = "0.1.0"

from .config import GeneratorConfig
from .errors import GenerationError, InvalidIdlError, UnitFailure
from .idl import IDLParser, RootNode
from .codegen import RenderMap, RenderMapVisitor, render_to_directory

__all__ = [
    "GeneratorConfig",
    "GenerationError",
    "InvalidIdlError",
    "UnitFailure",
    "IDLParser",
    "RootNode",
    "RenderMap",
    "RenderMapVisitor",
    "render_to_directory",
]
