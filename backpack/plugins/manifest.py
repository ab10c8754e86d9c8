"""Plugin manifest model, parsed from ``manifest.toml``."""

import tomllib
from pathlib import Path

from pydantic import BaseModel, ConfigDict, ValidationError

from backpack.exceptions import ManifestParseError, PluginLoadError

MANIFEST_FILENAME = "manifest.toml"


class Manifest(BaseModel):
    model_config = ConfigDict(frozen=True, strict=True)

    name: str
    description: str
    author: str
    homepage: str | None = None
    repo: str | None = None
    license: str | None = None


def parse_manifest(text: str, source: Path) -> Manifest:
    """Parse manifest *text*; *source* is only used in error messages."""
    try:
        data = tomllib.loads(text)
    except tomllib.TOMLDecodeError as e:
        raise ManifestParseError(source, str(e)) from e
    try:
        return Manifest.model_validate(data)
    except ValidationError as e:
        raise ManifestParseError(source, str(e)) from e


def load_manifest(path: Path) -> Manifest:
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise PluginLoadError(f"Failed to read manifest file: {path}: {e}") from e
    return parse_manifest(text, path)
