"""Write a RenderMap to disk."""

import logging
import shutil
import subprocess
from pathlib import Path
from typing import Optional, Union

from ..config import GeneratorConfig
from ..idl.models import RootNode
from .names import DEFAULT_NAME_API, NameApi
from .render_map import DESCRIPTOR_PATH, RenderMap, RenderMapVisitor

logger = logging.getLogger(__name__)


def render_to_directory(
    root: RootNode,
    out_dir: Union[str, Path],
    config: Optional[GeneratorConfig] = None,
    name_api: NameApi = DEFAULT_NAME_API,
) -> RenderMap:
    """
    Generate the client for `root` under `out_dir`.

    The package goes to `out_dir/<package>/`, its pyproject.toml to
    `out_dir`. Returns the render map, failures included.
    """
    config = config or GeneratorConfig()
    visitor = RenderMapVisitor(config, name_api)
    render_map = visitor.visit(root)
    write_render_map(render_map, out_dir, visitor.package_name, config)
    return render_map


def write_render_map(
    render_map: RenderMap,
    out_dir: Union[str, Path],
    package: str,
    config: Optional[GeneratorConfig] = None,
) -> Path:
    config = config or GeneratorConfig()
    out_dir = Path(out_dir)
    package_dir = out_dir / package

    if config.delete_folder_before_rendering and package_dir.exists():
        logger.info("Deleting %s", package_dir)
        shutil.rmtree(package_dir)

    for path, content in render_map.files.items():
        target = out_dir / path if path == DESCRIPTOR_PATH else package_dir / path
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")
    logger.info("Wrote %d files to %s", len(render_map), out_dir)

    if config.format_code:
        format_directory(package_dir, config.formatter)
    return package_dir


def format_directory(directory: Path, formatter: str = "ruff") -> bool:
    """Run `<formatter> format` on the generated package when it is installed."""
    executable = shutil.which(formatter)
    if executable is None:
        logger.warning("Formatter '%s' not found on PATH, skipping formatting", formatter)
        return False
    result = subprocess.run(
        [executable, "format", str(directory)],
        capture_output=True,
        text=True,
    )
    if result.returncode != 0:
        logger.warning("Formatter '%s' failed: %s", formatter, result.stderr.strip())
        return False
    return True
