"""Bootstrap: wires the plugin subsystem together."""

from __future__ import annotations

import logging
import logging.handlers
from pathlib import Path

import structlog

from backpack.core.config import BackpackConfig
from backpack.plugins.broadcaster import Broadcaster
from backpack.plugins.capabilities import CapabilityRegistry
from backpack.plugins.host import PluginHost
from backpack.plugins.sandbox import ScriptEngine

logger = structlog.get_logger()

LOG_FILENAME = "backpack.log"


def _console_handler(config: BackpackConfig) -> logging.Handler:
    # stderr only; stdout belongs to plugin and command output
    renderer: structlog.types.Processor
    if config.log_format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=not config.no_color)
    handler = logging.StreamHandler()
    handler.setFormatter(structlog.stdlib.ProcessorFormatter(processor=renderer))
    return handler


def _file_handler(log_dir: Path, config: BackpackConfig) -> logging.Handler:
    log_dir.mkdir(parents=True, exist_ok=True)
    handler = logging.handlers.RotatingFileHandler(
        log_dir / LOG_FILENAME,
        maxBytes=config.log_max_bytes,
        backupCount=config.log_backup_count,
    )
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processor=structlog.processors.JSONRenderer()
        )
    )
    return handler


def configure_logging(config: BackpackConfig) -> None:
    """Route structlog through stdlib logging: stderr console, optional log file."""
    root_logger = logging.getLogger()
    root_logger.setLevel(config.log_level)
    root_logger.handlers.clear()
    root_logger.addHandler(_console_handler(config))
    if config.log_dir is not None:
        root_logger.addHandler(_file_handler(config.log_dir, config))

    # Request lines from the HTTP capability
    for name in ("httpx", "httpcore"):
        logging.getLogger(name).setLevel(logging.WARNING)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def build_host(config: BackpackConfig | None = None) -> PluginHost:
    if config is None:
        config = BackpackConfig()

    capabilities = CapabilityRegistry.from_config(config)
    engine = ScriptEngine(capabilities, timeout_seconds=config.script_timeout_seconds)
    broadcaster = Broadcaster(engine)

    logger.debug(
        "plugin_host_built",
        app_name=config.app_name,
        plugins_dir=str(config.plugins_dir) if config.plugins_dir else None,
        script_timeout_seconds=config.script_timeout_seconds,
    )
    return PluginHost(config, broadcaster)
