"""
ContentLoader - Load training modules and paths from a content directory.

Layout:
    content/
      modules/*.yaml   one Module per file (.yml and .json also read)
      paths/*.yaml     one TrainingPath per file

Provides read-only access to:
- Modules with their pages and quiz questions
- Training paths (ordered module ids)
"""

import json
import logging
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import ValidationError

from modulegate.schemas import Module, TrainingPath


logger = logging.getLogger(__name__)

CONTENT_SUFFIXES = (".yaml", ".yml", ".json")


class ContentLoader:
    """
    Load content from YAML/JSON files.

    Files are parsed once, on construction. Content is validated with the
    schema models and cross-checked (unique ids, paths only referencing
    known modules).
    """

    def __init__(self, content_dir: str | Path):
        """
        Initialize loader with path to the content directory.

        Args:
            content_dir: Directory holding modules/ and (optionally) paths/

        Raises:
            FileNotFoundError: If the directory or its modules/ folder is missing
            ValueError: If any file is invalid or ids collide
        """
        self.content_dir = Path(content_dir)
        modules_dir = self.content_dir / "modules"
        if not modules_dir.is_dir():
            raise FileNotFoundError(f"Module content not found: {modules_dir}")

        self._modules: dict[str, Module] = {}
        for file_path in _content_files(modules_dir):
            module = _parse(file_path, Module)
            if module.id in self._modules:
                raise ValueError(f"Duplicate module id: {module.id} ({file_path})")
            self._modules[module.id] = module

        self._paths: dict[str, TrainingPath] = {}
        paths_dir = self.content_dir / "paths"
        if paths_dir.is_dir():
            for file_path in _content_files(paths_dir):
                path = _parse(file_path, TrainingPath)
                if path.id in self._paths:
                    raise ValueError(f"Duplicate training path id: {path.id} ({file_path})")
                unknown = [mid for mid in path.module_ids if mid not in self._modules]
                if unknown:
                    raise ValueError(
                        f"Training path '{path.id}' references unknown modules: {', '.join(unknown)}"
                    )
                self._paths[path.id] = path

        logger.info(
            "Loaded %d modules and %d training paths from %s",
            len(self._modules), len(self._paths), self.content_dir,
        )

    # -------------------------------------------------------------------------
    # Modules
    # -------------------------------------------------------------------------

    def get_modules(self) -> list[Module]:
        """All modules, ordered by id."""
        return [self._modules[mid] for mid in sorted(self._modules)]

    def get_module(self, module_id: str) -> Optional[Module]:
        return self._modules.get(module_id)

    # -------------------------------------------------------------------------
    # Training paths
    # -------------------------------------------------------------------------

    def get_paths(self) -> list[TrainingPath]:
        """All training paths, ordered by id."""
        return [self._paths[pid] for pid in sorted(self._paths)]

    def get_path(self, path_id: str) -> Optional[TrainingPath]:
        return self._paths.get(path_id)

    def get_path_modules(self, path_id: str) -> list[Module]:
        """Modules of a training path in path order (empty for unknown paths)."""
        path = self._paths.get(path_id)
        if not path:
            return []
        return [self._modules[mid] for mid in path.module_ids]


def _content_files(directory: Path) -> list[Path]:
    return sorted(p for p in directory.iterdir() if p.suffix in CONTENT_SUFFIXES)


def _read_file(file_path: Path) -> Any:
    with open(file_path, "r", encoding="utf-8") as f:
        if file_path.suffix == ".json":
            return json.load(f)
        return yaml.safe_load(f)


def _parse(file_path: Path, model: type):
    try:
        raw = _read_file(file_path)
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        raise ValueError(f"Cannot parse {file_path}: {e}") from e
    if not isinstance(raw, dict):
        raise ValueError(f"{file_path} must contain a mapping at top level")
    try:
        return model.model_validate(raw)
    except ValidationError as e:
        raise ValueError(f"Invalid content in {file_path}: {e}") from e
