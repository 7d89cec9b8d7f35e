"""
Generator configuration.

Data tables that depend on the target ecosystem (builtin program
addresses, import aliases) live here so they can be overridden without
touching the resolver logic.
"""

import os
from dataclasses import dataclass, field
from typing import Dict, Optional

# Exact instruction-account names that default to a well-known address
DEFAULT_BUILTIN_PROGRAMS: Dict[str, str] = {
    "systemProgram": "11111111111111111111111111111111",
    "tokenProgram": "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA",
    "associatedTokenProgram": "ATokenGPvbdGVxr1b2hvZbsiqW5xWH25efTNsLJA8knL",
    "rent": "SysvarRent111111111111111111111111111111111",
    "clock": "SysvarC1ock11111111111111111111111111111111",
    "instructions": "Sysvar1nstructions1111111111111111111111111",
}

# Aliases usable as ImportSet modules, resolved when imports are rendered
DEFAULT_DEPENDENCY_MAP: Dict[str, str] = {
    "generated": "..",
    "generatedAccounts": "..accounts",
    "generatedErrors": "..errors",
    "generatedInstructions": "..instructions",
    "generatedPdas": "..pdas",
    "generatedPrograms": "..programs",
    "generatedTypes": "..types",
    "shared": "..shared",
    "borsh": "borsh_construct",
    "solders": "solders",
}


@dataclass
class GeneratorConfig:
    """Configuration for a generation run."""
    library_name: str = "generated"
    library_version: str = "0.1.0"
    # Import aliases merged over DEFAULT_DEPENDENCY_MAP
    dependency_map: Dict[str, str] = None
    # Account name -> address used when the caller omits the account
    builtin_programs: Dict[str, str] = None
    # Defined type name -> module path overriding `..types.<name>`
    link_overrides: Dict[str, str] = None
    # Let argument-bound seeds be read from the instruction arguments
    derive_pdas_from_arguments: bool = False
    delete_folder_before_rendering: bool = True
    format_code: bool = False
    formatter: str = "ruff"
    fallback_program_id: Optional[str] = None

    def __post_init__(self):
        self.dependency_map = {**DEFAULT_DEPENDENCY_MAP, **(self.dependency_map or {})}
        if self.builtin_programs is None:
            self.builtin_programs = dict(DEFAULT_BUILTIN_PROGRAMS)
        self.link_overrides = self.link_overrides or {}

    def get_builtin_program_address(self, account_name: str) -> Optional[str]:
        return self.builtin_programs.get(account_name)

    @classmethod
    def from_env(cls, **overrides) -> "GeneratorConfig":
        """Build a config from ANCHORGEN_* environment variables."""
        values = {}
        if os.getenv("ANCHORGEN_LIBRARY_NAME"):
            values["library_name"] = os.environ["ANCHORGEN_LIBRARY_NAME"]
        if os.getenv("ANCHORGEN_LIBRARY_VERSION"):
            values["library_version"] = os.environ["ANCHORGEN_LIBRARY_VERSION"]
        if os.getenv("ANCHORGEN_DERIVE_PDAS_FROM_ARGUMENTS"):
            values["derive_pdas_from_arguments"] = _env_flag("ANCHORGEN_DERIVE_PDAS_FROM_ARGUMENTS")
        if os.getenv("ANCHORGEN_FORMAT_CODE"):
            values["format_code"] = _env_flag("ANCHORGEN_FORMAT_CODE")
        if os.getenv("ANCHORGEN_FORMATTER"):
            values["formatter"] = os.environ["ANCHORGEN_FORMATTER"]
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)


def _env_flag(name: str) -> bool:
    return os.getenv(name, "").strip().lower() in ("1", "true", "yes", "on")
