"""
Spine Project Packager

Writes converted skeletons (JSON, images, optional atlas) into an output
directory and packs a directory into a ZIP archive.
"""

from __future__ import annotations

import logging
import zipfile
from pathlib import Path
from typing import TYPE_CHECKING, Dict, List

from spine.atlas_generator import create_skeleton_atlas
from spine.spine_format import write_skeleton

if TYPE_CHECKING:
    from converter.config import ConverterConfig
    from converter.converter import ConversionResult

logger = logging.getLogger(__name__)


def write_spine_project(
    results: List["ConversionResult"],
    output_dir: Path,
    config: "ConverterConfig"
) -> List[Path]:
    """
    Write every converted skeleton to ``output_dir``.

    Images are expected to be exported already (relative to ``output_dir``);
    with ``pack_atlas`` they are additionally packed into one atlas per
    skeleton.

    Args:
        results: Conversion results
        output_dir: Target directory
        config: Conversion config (spine version, atlas switch)

    Returns:
        Paths of the written files
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    written: List[Path] = []

    for result in results:
        skeleton = result.skeleton
        written.append(write_skeleton(skeleton, output_dir / f"{skeleton.name}.json", config.spine_version))

        if config.pack_atlas and config.export_images:
            regions: Dict[str, Path] = {
                name: output_dir / image.path for name, image in result.images.items()
            }
            atlas_path, image_path = create_skeleton_atlas(regions, output_dir, skeleton.name)
            if atlas_path is not None:
                written.extend([atlas_path, image_path])

    return written


def package_spine_project(project_dir: Path, zip_path: Path) -> Path:
    """
    Zip every file under ``project_dir`` (paths relative to it).

    Args:
        project_dir: Directory holding skeleton JSON, images and atlases
        zip_path: Archive to create

    Returns:
        The archive path
    """
    project_dir = Path(project_dir)
    with zipfile.ZipFile(zip_path, "w", zipfile.ZIP_DEFLATED) as zipf:
        for file_path in sorted(project_dir.rglob("*")):
            if file_path.is_file() and file_path != zip_path:
                zipf.write(file_path, file_path.relative_to(project_dir).as_posix())
    logger.info("Packaged %s into %s", project_dir, zip_path)
    return zip_path
