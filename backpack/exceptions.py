"""Shared exception types for backpack."""

from pathlib import Path


class BackpackError(Exception):
    """Base exception for all backpack errors."""


class ConfigError(BackpackError):
    """Configuration is invalid or cannot be resolved."""


class PluginError(BackpackError):
    """Plugin subsystem error."""


class PluginLoadError(PluginError):
    """A plugin directory could not be turned into a Plugin."""


class ManifestParseError(PluginLoadError):
    """A manifest document is not a well-formed manifest."""

    def __init__(self, source: Path, diagnostic: str) -> None:
        self.source = source
        self.diagnostic = diagnostic
        super().__init__(f"Failed to parse TOML manifest: {source}\n{diagnostic}")


class EventSerializationError(PluginError):
    """An event could not be converted for the script sandbox."""


class CapabilityError(PluginError):
    """A host capability called from a script failed."""
