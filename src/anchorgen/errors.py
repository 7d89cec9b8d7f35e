"""
Exceptions raised while turning an IDL into client code.

Structural errors abort the unit being generated (an account, an
instruction, a type...) but never its siblings; the render visitor
collects them as unit failures.
"""

from dataclasses import dataclass
from typing import Optional


class GenerationError(Exception):
    """Base class for every error raised by the generator."""


class InvalidIdlError(GenerationError):
    """The IDL document could not be mapped to the program model."""


class UnsupportedNodeError(GenerationError):
    """A node kind has no handler and no fallback."""

    def __init__(self, node):
        self.node = node
        kind = getattr(node, "kind", type(node).__name__)
        super().__init__(f"Unsupported node kind: {kind}")


class MissingProgramError(GenerationError):
    """A program item was visited outside of any program."""

    def __init__(self, kind: str, name: str):
        self.item_kind = kind
        self.item_name = name
        super().__init__(f"{kind} '{name}' must be visited inside a program")


class UnknownDefinedTypeError(GenerationError):
    """A defined-type link points to a type the program does not declare."""

    def __init__(self, name: str, program: Optional[str] = None):
        self.type_name = name
        self.program_name = program
        where = f" in program '{program}'" if program else ""
        super().__init__(f"Unknown defined type '{name}'{where}")


class UnknownPdaError(GenerationError):
    """A PDA link points to a PDA the program does not declare."""

    def __init__(self, name: str):
        self.pda_name = name
        super().__init__(f"Unknown PDA '{name}'")


class OpaqueCodecError(GenerationError):
    """A degraded (opaque) codec was asked for a size or a binary layout."""


@dataclass
class UnitFailure:
    """A unit that could not be generated, and why."""
    path: str
    node_kind: str
    name: str
    message: str

    def __str__(self) -> str:
        return f"{self.path} ({self.node_kind} '{self.name}'): {self.message}"
