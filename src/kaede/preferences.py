"""Persisted per-application GPU choices (the ``[assignments]`` table)."""

from __future__ import annotations

import logging
from pathlib import Path

from kaede.base import GpuSelection, GraphicsApi
from kaede.config import Assignment, KaedeConfig, default_config_path, save_config

logger = logging.getLogger(__name__)


class PreferenceStore:
    """Read/write view over :attr:`KaedeConfig.assignments`.

    Changes stay in memory until :meth:`save` writes the whole config back.
    """

    def __init__(self, config: KaedeConfig, path: Path | None = None) -> None:
        self._config = config
        self._path = path or default_config_path()

    @property
    def path(self) -> Path:
        return self._path

    def get(self, app_id: str) -> GpuSelection | None:
        assignment = self._config.assignments.get(app_id)
        if assignment is None:
            return None
        api = GraphicsApi(assignment.api) if assignment.api else None
        return GpuSelection(app_id=app_id, gpu=assignment.gpu, api=api)

    def set(self, selection: GpuSelection) -> None:
        api = selection.api.value if selection.api is not None else None
        self._config.assignments[selection.app_id] = Assignment(gpu=selection.gpu, api=api)

    def remove(self, app_id: str) -> bool:
        return self._config.assignments.pop(app_id, None) is not None

    def selections(self) -> list[GpuSelection]:
        return [s for s in (self.get(app_id) for app_id in sorted(self._config.assignments)) if s]

    def save(self) -> Path:
        path = save_config(self._config, self._path)
        logger.info("Preferences saved to %s", path)
        return path
