"""
Texture Atlas Generator

Packs the attachment images exported for one skeleton into a single atlas
page and writes the matching Spine .atlas description. Region names are the
attachment names, so the runtime resolves them without a path prefix.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from PIL import Image

logger = logging.getLogger(__name__)

# (page size, padding) tried in order until every image fits
PAGE_ATTEMPTS = ((4096, 2), (4096, 0), (8192, 2))


@dataclass
class TrimmedImage:
    """An attachment image with its transparent border cut away."""
    name: str
    image: Image.Image
    orig_width: int
    orig_height: int
    offset_x: int
    offset_y: int

    @property
    def area(self) -> int:
        return self.image.width * self.image.height


@dataclass
class AtlasRegion:
    """Placement of one trimmed image on the atlas page."""
    name: str
    x: int
    y: int
    width: int
    height: int
    orig_width: int
    orig_height: int
    offset_x: int = 0
    offset_y: int = 0
    rotate: bool = False


def trim_image(name: str, path: Path) -> Optional[TrimmedImage]:
    """
    Load an exported PNG and crop it to its opaque pixels.

    Spine measures the trim offset from the bottom-left corner of the
    original image, so the vertical offset is taken from the bottom edge.
    A fully transparent image keeps a single pixel so its region still exists.

    Args:
        name: Region (attachment) name
        path: Exported image file

    Returns:
        TrimmedImage, or None if the file does not exist
    """
    if not path.exists():
        logger.warning("Atlas source image does not exist: %s", path)
        return None

    with Image.open(path) as source:
        image = source.convert("RGBA")

    box = image.getchannel("A").getbbox() or (0, 0, 1, 1)
    left, _, _, lower = box
    return TrimmedImage(
        name=name,
        image=image.crop(box),
        orig_width=image.width,
        orig_height=image.height,
        offset_x=left,
        offset_y=image.height - lower,
    )


class AtlasGenerator:
    """
    Shelf packer for one atlas page.

    Images are placed largest first, left to right on horizontal shelves;
    a new shelf starts when the current one is full.
    """

    def __init__(self, max_width: int = 4096, max_height: int = 4096, padding: int = 2):
        self.max_width = max_width
        self.max_height = max_height
        self.padding = padding
        self.regions: List[AtlasRegion] = []

    def pack_images(
        self,
        image_paths: Dict[str, Path],
        output_atlas_path: Path,
        output_image_path: Path
    ) -> bool:
        """
        Pack the images into one page and write the page and its .atlas file.

        Args:
            image_paths: Region name to exported PNG
            output_atlas_path: Target .atlas file
            output_image_path: Target page image

        Returns:
            True if every loadable image fit on the page
        """
        trimmed = [t for t in (trim_image(name, path) for name, path in image_paths.items()) if t is not None]
        if not trimmed:
            logger.warning("No images loaded for atlas %s", output_atlas_path.name)
            return False

        trimmed.sort(key=lambda t: t.area, reverse=True)
        regions = self._place(trimmed)
        if regions is None:
            logger.debug("Images do not fit a %dx%d page", self.max_width, self.max_height)
            return False
        self.regions = regions

        page_size = self._page_size()
        page = Image.new("RGBA", page_size, (0, 0, 0, 0))
        by_name = {t.name: t.image for t in trimmed}
        for region in self.regions:
            image = by_name[region.name]
            page.paste(image, (region.x, region.y), image)

        output_image_path.parent.mkdir(parents=True, exist_ok=True)
        page.save(output_image_path, "PNG")
        write_atlas_page(output_atlas_path, output_image_path.name, page_size, self.regions)
        logger.info("Atlas saved to %s (%d regions)", output_atlas_path, len(self.regions))
        return True

    def _place(self, images: List[TrimmedImage]) -> Optional[List[AtlasRegion]]:
        regions = []
        x = y = self.padding
        shelf_height = 0

        for item in images:
            width, height = item.image.size
            if x + width > self.max_width:
                x = self.padding
                y += shelf_height + self.padding
                shelf_height = 0
            if y + height > self.max_height:
                return None

            regions.append(AtlasRegion(
                name=item.name,
                x=x,
                y=y,
                width=width,
                height=height,
                orig_width=item.orig_width,
                orig_height=item.orig_height,
                offset_x=item.offset_x,
                offset_y=item.offset_y,
            ))
            x += width + self.padding
            shelf_height = max(shelf_height, height)

        return regions

    def _page_size(self) -> Tuple[int, int]:
        """Smallest power-of-two page holding every region, capped at the maximum."""
        used_width = max(r.x + r.width for r in self.regions)
        used_height = max(r.y + r.height for r in self.regions)
        return (
            min(self.max_width, _next_power_of_2(used_width)),
            min(self.max_height, _next_power_of_2(used_height)),
        )


def _next_power_of_2(n: int) -> int:
    return 2 ** math.ceil(math.log2(max(1, n)))


def write_atlas_page(path: Path, image_filename: str, size: Tuple[int, int], regions: List[AtlasRegion]):
    """Write a single-page Spine .atlas file."""
    lines = [
        "",
        image_filename,
        f"size: {size[0]},{size[1]}",
        "format: RGBA8888",
        "filter: Linear,Linear",
        "repeat: none",
    ]
    for region in regions:
        lines.extend([
            region.name,
            f"  rotate: {'true' if region.rotate else 'false'}",
            f"  xy: {region.x}, {region.y}",
            f"  size: {region.width}, {region.height}",
            f"  orig: {region.orig_width}, {region.orig_height}",
            f"  offset: {region.offset_x}, {region.offset_y}",
            "  index: -1",
        ])

    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        f.write("\n".join(lines) + "\n")


def create_skeleton_atlas(
    image_paths: Dict[str, Path],
    output_dir: Path,
    atlas_name: str = "skeleton"
) -> Tuple[Optional[Path], Optional[Path]]:
    """
    Create a texture atlas from the images exported for one skeleton.

    Args:
        image_paths: Region name (attachment name) to exported PNG
        output_dir: Directory to save atlas files
        atlas_name: Base name for atlas files

    Returns:
        Tuple of (atlas_file_path, image_file_path), or (None, None) on failure
    """
    if not image_paths:
        logger.warning("No images to pack for atlas '%s'", atlas_name)
        return None, None

    output_dir.mkdir(parents=True, exist_ok=True)
    atlas_path = output_dir / f"{atlas_name}.atlas"
    image_path = output_dir / f"{atlas_name}.png"

    for page, padding in PAGE_ATTEMPTS:
        generator = AtlasGenerator(max_width=page, max_height=page, padding=padding)
        if generator.pack_images(image_paths, atlas_path, image_path):
            return atlas_path, image_path

    logger.error("All atlas packing attempts failed for '%s'", atlas_name)
    return None, None
