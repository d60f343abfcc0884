"""
Converter configuration.

Defaults match the switches of the authoring-tool exporter; every field can
be overridden from the environment (``SPINE_<FIELD>``), optionally through a
``.env`` file.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields
from typing import Any, Dict, Optional

from dotenv import load_dotenv

_TRUE_VALUES = {"1", "true", "yes", "on"}


@dataclass
class ConverterConfig:
    images_export_path: str = "./images/"
    append_skeleton_to_images_path: bool = False
    merge_skeletons: bool = False
    merge_skeletons_root_bone: bool = False
    transform_root_bone: bool = False
    simplify_bones_and_slots: bool = False
    export_frame_comments_as_events: bool = True
    export_shapes: bool = True
    export_text_as_shapes: bool = True
    shape_export_scale: float = 2.0
    export_images: bool = True
    pack_atlas: bool = False
    max_depth: int = 64
    spine_version: str = "4.1.0"

    @classmethod
    def from_env(cls, env_file: Optional[str] = None, **overrides: Any) -> "ConverterConfig":
        """
        Build a config from ``SPINE_*`` environment variables.

        Args:
            env_file: Optional .env file loaded before reading the environment
            **overrides: Explicit values that win over the environment

        Returns:
            ConverterConfig
        """
        load_dotenv(env_file)

        values: Dict[str, Any] = {}
        for f in fields(cls):
            raw = os.environ.get(f"SPINE_{f.name.upper()}")
            if raw is None:
                continue
            if f.type in ("bool", bool):
                values[f.name] = raw.strip().lower() in _TRUE_VALUES
            elif f.type in ("int", int):
                values[f.name] = int(raw)
            elif f.type in ("float", float):
                values[f.name] = float(raw)
            else:
                values[f.name] = raw

        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)
