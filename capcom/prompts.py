"""Handlebars prompt rendering.

Every instruction and context text sent to the language model is a pybars
template. The defaults live in `PromptTemplates`; any of them can be
overridden from settings. Use triple braces for free text so it is not
HTML-escaped.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any

import pybars
from pydantic import BaseModel

from capcom.errors import CapcomError

_compiler = pybars.Compiler()
_cache: dict[str, Callable] = {}


class PromptError(CapcomError):
    """Raised when a Handlebars template fails to compile or render."""


def render_prompt(template_str: str, context: Mapping[str, Any]) -> str:
    """Compile and render a Handlebars template with the given context.

    Templates are cached by source string to avoid recompilation.
    """
    try:
        compiled = _cache.get(template_str)
        if compiled is None:
            compiled = _compiler.compile(template_str)
            _cache[template_str] = compiled
        return str(compiled(dict(context)))
    except Exception as e:
        raise PromptError(f"Template error: {e}") from e


# ---------------------------------------------------------------------------
# Default templates
# ---------------------------------------------------------------------------

CLASSIFY_INSTRUCTIONS = """\
You are {{{persona}}}. The user is at {{{location}}} and is designing satellite \
orbits around Earth in a simulation. Decide whether their message asks for one \
of the commands below and extract its arguments.

AVAILABLE COMMANDS
{{{commands}}}

OUTPUT FORMAT (JSON only, no commentary, no markdown)
{"intent": "execute" | "none", "commandId": "<command id>" | null, "arguments": { "<name>": <value> } }

RULES
- Use intent "execute" only when a command clearly applies.
- Use intent "none" for greetings, questions, and ambiguous requests.
- Convert distances to kilometres.
- "Speed" that names a multiplier or the simulation clock means set_simulation_speed; \
orbital velocity is computed from altitude and cannot be set.
"""

CLASSIFY_INPUT = """\
{{#if history}}{{{history}}}

{{/if}}User: {{{message}}}"""

NARRATE_INSTRUCTIONS = """\
You are {{{persona}}}. Reply to the user in two or three conversational \
sentences, like a mission control operator. Explain what the system did, \
or why it did nothing. Mention the values that changed. No JSON."""

NARRATE_COMMAND = """\
User command: {{{message}}}
Command: {{{command}}}
Succeeded: {{#if succeeded}}yes{{else}}no{{/if}}
{{#if error}}Error: {{{error}}}
{{/if}}{{#if reason}}Result: {{{reason}}}
{{/if}}{{#if facts}}Facts:
{{#each facts}}- {{{name}}}: {{{value}}}
{{/each}}{{/if}}"""

NARRATE_NONE = """\
User message: {{{message}}}
No command was executed.
{{#if visited}}{{{visited}}}
{{/if}}{{#if history}}
{{{history}}}
{{/if}}{{#if return_context}}
{{{return_context}}}
{{/if}}"""

SPECIALIST_INSTRUCTIONS = """\
You are {{{specialist}}}, the {{{mission}}} mission specialist. {{{personality}}}

MISSION KNOWLEDGE
{{{knowledge}}}

Answer in two or three information-dense sentences. Orbit design happens at \
Mission Control; if asked to change the orbit, offer to send the user back to the Hub."""

SPECIALIST_INTRO = """\
The user has just arrived at the {{{mission}}} mission space.
{{#if context}}{{{context}}}
{{/if}}Greet them as {{{specialist}}} and tie the {{{mission}}} orbit to what they were working on."""


class PromptTemplates(BaseModel):
    classify_instructions: str = CLASSIFY_INSTRUCTIONS
    classify_input: str = CLASSIFY_INPUT
    narrate_instructions: str = NARRATE_INSTRUCTIONS
    narrate_command: str = NARRATE_COMMAND
    narrate_none: str = NARRATE_NONE
    specialist_instructions: str = SPECIALIST_INSTRUCTIONS
    specialist_intro: str = SPECIALIST_INTRO


def fact_list(facts: Mapping[str, Any]) -> list[dict[str, str]]:
    """Flatten narration facts into [{name, value}] for `{{#each facts}}`."""
    return [{"name": name, "value": _format_value(value)} for name, value in facts.items()]


def _format_value(value: Any) -> str:
    if isinstance(value, bool):
        return "yes" if value else "no"
    if isinstance(value, float):
        return f"{value:g}"
    return str(value)
