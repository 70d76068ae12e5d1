"""
Config loader for the MesoArch project.

All configuration lives in the configs/ directory as YAML files.
Pipeline scripts load their settings through this module so there's one
place to look when a threshold, a path or the random seed needs changing.

Usage:

    from mesoarch.config import load_config

    cfg = load_config("pipeline")
    site_csv = cfg["sites"]["database_csv"]

    train_cfg = load_config("model_training")
    n_trees = train_cfg["random_forest"]["n_trees"]
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

# Resolve the configs/ directory relative to this file so the package works
# regardless of the working directory the caller uses.
_CONFIGS_DIR = Path(__file__).parent.parent / "configs"


def load_config(name: str, configs_dir: Path | str | None = None) -> dict[str, Any]:
    """
    Load a named YAML config file from the configs/ directory.

    Args:
        name: Config file name without the .yaml extension.
              Valid options: "pipeline", "model_training".
        configs_dir: Directory to read from instead of the project's configs/.

    Returns:
        The parsed YAML contents as a nested dictionary.

    Raises:
        FileNotFoundError: If <configs_dir>/<name>.yaml does not exist.
        yaml.YAMLError: If the file contains invalid YAML.
    """
    base = Path(configs_dir) if configs_dir is not None else _CONFIGS_DIR
    path = base / f"{name}.yaml"
    if not path.exists():
        raise FileNotFoundError(
            f"Config file not found: {path}\n"
            f"Expected one of: {[p.stem for p in base.glob('*.yaml')]}"
        )
    with path.open(encoding="utf-8") as f:
        return yaml.safe_load(f)
