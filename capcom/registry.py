"""Command registry: the declarative catalog of invocable commands.

The catalog is a JSON document:

    {
      "commands": [
        {"id": "...", "name": "...", "description": "...",
         "parameters": {"<name>": {"type": "number", "required": true,
                                   "min": 0, "max": 10, "default": 1}},
         "specialist_persona": "...", "specialist_team": "...", "handler": "..."}
      ],
      "presets": {
        "<name>": {"command": "<id>", "arguments": {...}, "description": "..."}
      }
    }

`parameters` may also be given as a list of objects that carry their own
"name" key. A malformed command or preset is logged and skipped; the load as
a whole only fails when the source cannot be read or no command survives.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from importlib import resources
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from capcom.errors import SchemaLoadError
from capcom.models import CommandParameter, CommandPreset, CommandSchema

logger = logging.getLogger(__name__)

CatalogSource = Path | str | Mapping[str, Any]


def default_catalog_path() -> Path:
    """Location of the command catalog shipped with the package."""
    return Path(str(resources.files("capcom") / "data" / "commands.json"))


class CommandRegistry:
    def __init__(self) -> None:
        self._commands: dict[str, CommandSchema] = {}
        self._presets: dict[str, CommandPreset] = {}

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    @classmethod
    def from_source(cls, source: CatalogSource) -> CommandRegistry:
        registry = cls()
        registry.load(source)
        return registry

    @classmethod
    def specialist(cls) -> CommandRegistry:
        """Navigation-only registry used inside mission spaces.

        Specialists can send the user back to the Hub but cannot touch the
        orbit or the simulation clock.
        """
        registry = cls()
        registry._commands["return_to_hub"] = CommandSchema(
            id="return_to_hub",
            display_name="Return to Mission Control Hub",
            description="Return user to Mission Control Hub from a mission space",
            specialist_persona="Navigator",
            specialist_team="Navigation",
            handler="return_to_hub",
        )
        return registry

    def load(self, source: CatalogSource) -> int:
        """Load commands and presets from `source`; returns the command count.

        Raises SchemaLoadError when the source is missing, unreadable, or
        yields no valid command. Previously loaded entries are replaced only
        on success.
        """
        root = _read_source(source)

        commands: dict[str, CommandSchema] = {}
        raw_commands = root.get("commands", [])
        if not isinstance(raw_commands, list):
            raise SchemaLoadError("'commands' must be a list")

        for entry in raw_commands:
            try:
                schema = _parse_command(entry)
            except (ValidationError, TypeError, ValueError, KeyError) as e:
                logger.warning("Skipping malformed command entry %r: %s", _entry_id(entry), e)
                continue
            if schema.id in commands:
                logger.warning("Duplicate command id %r, later entry replaces it", schema.id)
            commands[schema.id] = schema
            logger.debug("Loaded command %s (%s)", schema.id, schema.display_name)

        if not commands:
            raise SchemaLoadError("Command catalog contains no valid commands")

        presets: dict[str, CommandPreset] = {}
        raw_presets = root.get("presets") or {}
        if not isinstance(raw_presets, dict):
            logger.warning("Ignoring 'presets': expected an object, got %s", type(raw_presets).__name__)
            raw_presets = {}

        for name, entry in raw_presets.items():
            try:
                preset = CommandPreset.model_validate({"name": name, **entry})
            except (ValidationError, TypeError) as e:
                logger.warning("Skipping malformed preset %r: %s", name, e)
                continue
            if preset.command not in commands:
                logger.warning("Skipping preset %r: unknown command %r", name, preset.command)
                continue
            presets[name] = preset
            logger.debug("Loaded preset %s -> %s", name, preset.command)

        self._commands = commands
        self._presets = presets
        logger.info("Loaded %d commands and %d presets", len(commands), len(presets))
        return len(commands)

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get(self, command_id: str | None) -> CommandSchema | None:
        if not command_id:
            return None
        return self._commands.get(command_id)

    def all(self) -> list[CommandSchema]:
        return list(self._commands.values())

    def ids(self) -> list[str]:
        return list(self._commands)

    def get_preset(self, name: str) -> CommandPreset | None:
        for key, preset in self._presets.items():
            if key.lower() == name.lower():
                return preset
        return None

    def presets(self) -> list[CommandPreset]:
        return list(self._presets.values())

    def __contains__(self, command_id: object) -> bool:
        return command_id in self._commands

    def __len__(self) -> int:
        return len(self._commands)

    # ------------------------------------------------------------------
    # Prompt summary
    # ------------------------------------------------------------------

    def describe_for_prompt(self) -> str:
        """Flattened, human-readable catalog for a language-model instruction."""
        lines = []
        for schema in self._commands.values():
            params = ", ".join(_describe_parameter(p) for p in schema.parameters) or "none"
            lines.append(f"- {schema.id}: {schema.description} Parameters: {params}")
        if self._presets:
            lines.append("")
            lines.append("Named presets:")
            for preset in self._presets.values():
                args = ", ".join(f"{k}={v}" for k, v in preset.arguments.items())
                lines.append(f"- {preset.name}: {preset.command}({args}) {preset.description}".rstrip())
        return "\n".join(lines)


# ---------------------------------------------------------------------------
# Parsing helpers
# ---------------------------------------------------------------------------

def _read_source(source: CatalogSource) -> Mapping[str, Any]:
    if isinstance(source, Mapping):
        return source

    path = Path(source)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise SchemaLoadError(f"Cannot read command catalog at {path}: {e}") from e
    try:
        root = json.loads(text)
    except json.JSONDecodeError as e:
        raise SchemaLoadError(f"Command catalog at {path} is not valid JSON: {e}") from e
    if not isinstance(root, dict):
        raise SchemaLoadError(f"Command catalog at {path} must be a JSON object")
    return root


def _parse_command(entry: Any) -> CommandSchema:
    if not isinstance(entry, dict):
        raise TypeError(f"expected an object, got {type(entry).__name__}")

    raw_params = entry.get("parameters") or {}
    if isinstance(raw_params, dict):
        items = [{"name": name, **fields} for name, fields in raw_params.items()]
    elif isinstance(raw_params, list):
        items = raw_params
    else:
        raise TypeError("'parameters' must be an object or a list")

    params = tuple(CommandParameter.model_validate(p) for p in items)
    names = [p.name for p in params]
    if len(names) != len(set(names)):
        raise ValueError("duplicate parameter names")
    for p in params:
        if p.min is not None and p.max is not None and p.min > p.max:
            raise ValueError(f"parameter {p.name}: min {p.min} exceeds max {p.max}")

    return CommandSchema(
        id=entry["id"],
        display_name=entry.get("name") or entry.get("display_name") or entry["id"],
        description=entry.get("description", ""),
        parameters=params,
        specialist_persona=entry.get("specialist_persona", ""),
        specialist_team=entry.get("specialist_team", ""),
        handler=entry.get("handler") or entry["id"],
    )


def _entry_id(entry: Any) -> str:
    if isinstance(entry, dict):
        return str(entry.get("id", "<no id>"))
    return "<not an object>"


def _describe_parameter(param: CommandParameter) -> str:
    bits = [param.type, "required" if param.required else "optional"]
    if param.min is not None or param.max is not None:
        lo = _fmt(param.min) if param.min is not None else ""
        hi = _fmt(param.max) if param.max is not None else ""
        bits.append(f"{lo}-{hi}")
    if param.choices:
        bits.append("one of " + "/".join(param.choices))
    if param.default is not None:
        bits.append(f"default {param.default}")
    return f"{param.name} ({', '.join(bits)})"


def _fmt(value: float) -> str:
    return f"{value:g}"
