import io
import os
import tempfile
from dataclasses import asdict
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from dotenv import load_dotenv
from flask import Flask, jsonify, request, send_file

from converter.config import ConverterConfig
from converter.converter import Converter, ConversionResult
from converter.exceptions import SceneFormatError
from scene.loader import load_scene
from spine.image_export import PillowImageExporter
from spine.project_packager import package_spine_project, write_spine_project
from spine.spine_format import SpineJsonEncoder

load_dotenv()

app = Flask(__name__)
app.logger.setLevel(os.environ.get("LOG_LEVEL", "INFO"))

_FLAG_OVERRIDES = {
    "merge": "merge_skeletons",
    "simplify_names": "simplify_bones_and_slots",
    "atlas": "pack_atlas",
    "transform_root_bone": "transform_root_bone",
}


def request_config() -> ConverterConfig:
    """Environment config with boolean switches overridden by query parameters."""
    overrides: Dict[str, Any] = {}
    for arg, field_name in _FLAG_OVERRIDES.items():
        value = request.args.get(arg)
        if value is not None:
            overrides[field_name] = value.strip().lower() in ("1", "true", "yes", "on")
    return ConverterConfig.from_env(**overrides)


def run_conversion(
    data: Any,
    config: ConverterConfig,
    output_dir: Optional[Path] = None
) -> Tuple[List[ConversionResult], Converter]:
    document = load_scene(data)
    converter = Converter(document, config, PillowImageExporter(output_dir))
    return converter.convert_selection(), converter


def read_scene_payload() -> Dict[str, Any]:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise SceneFormatError("Request body must be a JSON scene document")
    return data


@app.route("/health", methods=["GET"])
def health():
    return jsonify({"status": "ok"})


@app.route("/api/convert", methods=["POST"])
def convert():
    """
    Convert a scene document and return the Spine JSON of every skeleton.
    Images are measured but not written.
    """
    try:
        config = request_config()
        results, converter = run_conversion(read_scene_payload(), config)
    except SceneFormatError as e:
        return jsonify({"error": str(e)}), 400
    except ValueError as e:
        return jsonify({"error": f"Invalid configuration: {e}"}), 400

    encoder = SpineJsonEncoder(config.spine_version)
    diagnostics = [asdict(d) for d in converter.diagnostics]
    if not results:
        return jsonify({"error": "Nothing was converted", "diagnostics": diagnostics}), 422

    return jsonify({
        "skeletons": {r.skeleton.name: encoder.encode(r.skeleton) for r in results},
        "diagnostics": diagnostics,
    })


@app.route("/api/convert/zip", methods=["POST"])
def convert_zip():
    """Convert a scene document and return skeletons, images and atlases as a ZIP file."""
    try:
        config = request_config()
        data = read_scene_payload()
        with tempfile.TemporaryDirectory() as tmp:
            project_dir = Path(tmp) / "project"
            results, converter = run_conversion(data, config, project_dir)
            if not results:
                diagnostics = [asdict(d) for d in converter.diagnostics]
                return jsonify({"error": "Nothing was converted", "diagnostics": diagnostics}), 422

            write_spine_project(results, project_dir, config)
            zip_path = package_spine_project(project_dir, Path(tmp) / "spine.zip")
            payload = io.BytesIO(zip_path.read_bytes())
    except SceneFormatError as e:
        return jsonify({"error": str(e)}), 400
    except ValueError as e:
        return jsonify({"error": f"Invalid configuration: {e}"}), 400

    name = results[0].skeleton.name if len(results) == 1 else "spine"
    return send_file(
        payload,
        as_attachment=True,
        download_name=f"{name}_spine.zip",
        mimetype="application/zip"
    )


if __name__ == "__main__":
    port = int(os.environ.get("PORT", "5006"))
    app.run(host="0.0.0.0", port=port, debug=True)
