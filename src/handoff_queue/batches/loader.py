"""Task batch loading utilities."""

from __future__ import annotations

from pathlib import Path
from typing import Iterable

import yaml
from pydantic import ValidationError

from .models import TaskBatch


class BatchLoadError(RuntimeError):
    """Raised when one or more batch files cannot be parsed."""


def _parse(path: Path) -> TaskBatch | None:
    try:
        document = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:  # pragma: no cover - library type
        raise BatchLoadError(f"Failed to parse YAML in {path}: {exc}") from exc

    if document is None:
        return None
    if isinstance(document, dict):
        document.setdefault("id", path.stem)

    try:
        return TaskBatch.model_validate(document)
    except ValidationError as exc:
        raise BatchLoadError(f"Batch validation error in {path}: {exc}") from exc


def load_batch_file(path: Path) -> TaskBatch:
    """Load a single batch file; the file stem is the default batch id."""

    path = Path(path)
    if not path.is_file():
        raise BatchLoadError(f"Batch file not found: {path}")
    batch = _parse(path)
    if batch is None:
        raise BatchLoadError(f"Batch file is empty: {path}")
    return batch


class BatchLoader:
    """Loads task batches from YAML files on disk."""

    def __init__(self, search_paths: Iterable[Path] | None = None) -> None:
        paths = [Path(path) for path in (search_paths or [])]
        self._search_paths: list[Path] = [path for path in paths if path.exists()]

    @property
    def search_paths(self) -> list[Path]:
        """Return the normalized search paths."""

        return list(self._search_paths)

    def load_all(self) -> dict[str, TaskBatch]:
        """Load batches from all configured search paths.

        Later search paths override earlier ones when batch ids collide.
        """

        batches: dict[str, TaskBatch] = {}
        errors: list[str] = []

        for base in self._search_paths:
            for path in sorted(base.glob("*.yml")) + sorted(base.glob("*.yaml")):
                try:
                    batch = _parse(path)
                except BatchLoadError as exc:
                    errors.append(str(exc))
                    continue
                if batch is not None:
                    batches[batch.id] = batch

        if errors:
            raise BatchLoadError("; ".join(errors))

        return batches

    def get(self, batch_id: str) -> TaskBatch:
        """Return a single batch by id."""

        batches = self.load_all()
        try:
            return batches[batch_id]
        except KeyError as exc:  # pragma: no cover - simple branch
            raise BatchLoadError(f"Batch '{batch_id}' not found in search paths") from exc


__all__ = ["BatchLoadError", "BatchLoader", "load_batch_file"]
