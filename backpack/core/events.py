"""Lifecycle events broadcast to plugins, and their sandbox encoding.

The set of events is closed. Scripts tell variants apart by the shape of the
encoded value: unit variants arrive as a bare kebab-case string, variants
with data as a single-key mapping keyed by the kebab-case name.
"""

from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict

from backpack.exceptions import EventSerializationError

# Event tag constants
PLUGIN_REGISTRATION_INIT = "plugin-registration-init"
PLUGIN_REGISTERED = "plugin-registered"
PLUGIN_REGISTRATION_END = "plugin-registration-end"
CLI_COMMAND_EXECUTION_INIT = "cli-command-execution-init"
CLI_COMMAND_EXECUTION_RUN = "cli-command-execution-run"
CLI_COMMAND_EXECUTION_END = "cli-command-execution-end"


class PluginEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    tag: ClassVar[str]


class PluginRegistrationInit(PluginEvent):
    tag: ClassVar[str] = PLUGIN_REGISTRATION_INIT


class PluginRegistered(PluginEvent):
    tag: ClassVar[str] = PLUGIN_REGISTERED

    name: str


class PluginRegistrationEnd(PluginEvent):
    tag: ClassVar[str] = PLUGIN_REGISTRATION_END


class CliCommandExecutionInit(PluginEvent):
    tag: ClassVar[str] = CLI_COMMAND_EXECUTION_INIT


class CliCommandExecutionRun(PluginEvent):
    tag: ClassVar[str] = CLI_COMMAND_EXECUTION_RUN

    command: str
    args: tuple[str, ...] = ()


class CliCommandExecutionEnd(PluginEvent):
    tag: ClassVar[str] = CLI_COMMAND_EXECUTION_END


Event = (
    PluginRegistrationInit
    | PluginRegistered
    | PluginRegistrationEnd
    | CliCommandExecutionInit
    | CliCommandExecutionRun
    | CliCommandExecutionEnd
)

EVENT_TYPES: tuple[type[PluginEvent], ...] = (
    PluginRegistrationInit,
    PluginRegistered,
    PluginRegistrationEnd,
    CliCommandExecutionInit,
    CliCommandExecutionRun,
    CliCommandExecutionEnd,
)


def event_tag(event: Event) -> str:
    if not isinstance(event, EVENT_TYPES):
        raise EventSerializationError(f"Unknown plugin event: {event!r}")
    return event.tag


def to_dynamic(event: Event) -> str | dict[str, Any]:
    """Encode *event* as the plain value a script receives.

    ``PluginRegistrationInit()`` -> ``"plugin-registration-init"``
    ``PluginRegistered(name="x")`` -> ``{"plugin-registered": "x"}``
    ``CliCommandExecutionRun(command="merge", args=["r"])`` ->
    ``{"cli-command-execution-run": {"command": "merge", "args": ["r"]}}``
    """
    tag = event_tag(event)
    field_names = list(type(event).model_fields)
    if not field_names:
        return tag
    values = {name: _plain(getattr(event, name)) for name in field_names}
    if len(field_names) == 1:
        return {tag: values[field_names[0]]}
    return {tag: values}


def _plain(value: Any) -> Any:
    if isinstance(value, str | int | float | bool) or value is None:
        return value
    if isinstance(value, tuple | list):
        return [_plain(v) for v in value]
    raise EventSerializationError(
        f"Unsupported event field type: {type(value).__name__}"
    )
