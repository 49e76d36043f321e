"""
Study configuration.

All paths, ICD-10 codes, recode cutpoints, the model sequence and MCMC
settings live in config/config_default.yaml; experiments pass a different
file with --config.
"""
import yaml
from pathlib import Path
from typing import Any, Dict, Optional, Union

from camrsa.common.paths import resolve_path


DEFAULT_CONFIG = Path("config") / "config_default.yaml"


def load_config(config_path: Optional[Union[str, Path]] = None) -> Dict[str, Any]:
    """
    Read the study YAML config.

    Args:
        config_path: YAML file; the project default when None

    Returns:
        Nested dict of settings ({} for an empty file)
    """
    path = Path(config_path) if config_path is not None else get_project_root() / DEFAULT_CONFIG
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(path, 'r') as f:
        cfg = yaml.safe_load(f)
    return cfg or {}


def get_project_root() -> Path:
    """Repository root (parent of the camrsa package)."""
    return Path(__file__).resolve().parent.parent


def get_data_path(relative_path: Union[str, Path]) -> Path:
    """
    Resolve a config path against the project root.

    Absolute paths (restricted data on a secure volume) are returned as-is.
    """
    return resolve_path(get_project_root(), relative_path)


def require(cfg: Dict[str, Any], *keys: str) -> Any:
    """Walk nested config keys, raising if any level is missing."""
    node: Any = cfg
    for key in keys:
        if not isinstance(node, dict) or node.get(key) is None:
            raise ValueError(f"Missing {'.'.join(keys)} in config.")
        node = node[key]
    return node


try:
    CONFIG = load_config()
except FileNotFoundError:
    CONFIG = {}
