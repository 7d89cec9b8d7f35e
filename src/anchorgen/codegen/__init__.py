"""
Code generation: codec resolution, discriminators, PDA seeds and rendering.
"""

from .discriminators import compute_anchor_discriminator, extract_discriminator
from .imports import ImportSet
from .manifest import CodecDescriptor, TypeManifest
from .names import DEFAULT_NAME_API, NameApi
from .pda import PdaResolution, PdaSeedResolver, references_only_accounts
from .render_map import RenderMap, RenderMapVisitor
from .renderer import render_to_directory, write_render_map
from .type_manifest import TypeManifestResolver, resolve_type

__all__ = [
    "compute_anchor_discriminator",
    "extract_discriminator",
    "ImportSet",
    "CodecDescriptor",
    "TypeManifest",
    "DEFAULT_NAME_API",
    "NameApi",
    "PdaResolution",
    "PdaSeedResolver",
    "references_only_accounts",
    "RenderMap",
    "RenderMapVisitor",
    "render_to_directory",
    "write_render_map",
    "TypeManifestResolver",
    "resolve_type",
]
