"""Shared fixtures for the anchorgen tests."""

import json
from pathlib import Path

import pytest

from anchorgen.config import GeneratorConfig
from anchorgen.idl import IDLParser

FIXTURES = Path(__file__).parent / "fixtures"

VAULT_PROGRAM_ID = "Fg6PaFpoGXkYsidMpWTK6W2BeZ7FEfcYkg476zPFsLnS"


@pytest.fixture
def vault_idl() -> dict:
    with open(FIXTURES / "vault.json") as f:
        return json.load(f)


@pytest.fixture
def legacy_idl() -> dict:
    with open(FIXTURES / "counter_legacy.json") as f:
        return json.load(f)


@pytest.fixture
def vault_root(vault_idl):
    return IDLParser().parse(vault_idl)


@pytest.fixture
def vault_program(vault_root):
    return vault_root.program


@pytest.fixture
def legacy_root(legacy_idl):
    return IDLParser().parse(legacy_idl)


@pytest.fixture
def config() -> GeneratorConfig:
    return GeneratorConfig(library_name="vault_client")
