import json
import yaml
from pathlib import Path
from typing import Any, Optional


def find_repo_root(start: Optional[Path] = None) -> Path:
    """
    Walk upwards to find the repo root (dir that has pyproject.toml or .git).
    """
    p = (start or Path(__file__).resolve()).parent
    for parent in [p, *p.parents]:
        if (parent / "pyproject.toml").exists() or (parent / ".git").exists():
            return parent

    return Path.cwd()


def data_path(name: str) -> Path:
    """Path of a file in the repo's ``data/`` directory."""
    return find_repo_root() / "data" / name


def load_yaml(path: Path | str) -> Any:
    if isinstance(path, str):
        path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Missing YAML file: {path}")
    with path.open("r", encoding="utf-8") as f:
        return yaml.safe_load(f)


def load_json(path: Path | str) -> Any:
    if isinstance(path, str):
        path = Path(path)
    with path.open("r", encoding="utf-8") as f:
        return json.load(f)
