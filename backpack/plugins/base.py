"""Loaded plugin record and the outcome of running it."""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from backpack.exceptions import PluginLoadError
from backpack.plugins.manifest import MANIFEST_FILENAME, Manifest, load_manifest

SCRIPT_FILENAME = "run.lua"


class Plugin(BaseModel):
    model_config = ConfigDict(frozen=True)

    manifest: Manifest
    directory: Path
    script_path: Path

    @field_validator("script_path")
    @classmethod
    def script_must_exist(cls, v: Path) -> Path:
        if not v.is_file():
            raise ValueError(f"Missing required script: {v}")
        return v

    @property
    def name(self) -> str:
        return self.manifest.name

    @classmethod
    def from_dir(cls, path: Path) -> Plugin:
        """Load the plugin in *path*: a manifest plus a ``run.lua`` script."""
        script_path = path / SCRIPT_FILENAME
        if not script_path.is_file():
            raise PluginLoadError(f"Missing required script: {script_path}")
        manifest = load_manifest(path / MANIFEST_FILENAME)
        try:
            return cls(manifest=manifest, directory=path, script_path=script_path)
        except ValidationError as e:
            # The script can vanish between the check above and validation.
            raise PluginLoadError(f"Invalid plugin directory: {path}\n{e}") from e


class ExecutionOutcome(BaseModel):
    model_config = ConfigDict(frozen=True)

    plugin_name: str
    event: str
    error: str | None = None
    duration_ms: float = 0.0

    @property
    def ok(self) -> bool:
        return self.error is None
