"""
Tool descriptors and registry for tools discovered on remote tool providers.

Every remote tool is exposed to the model as a function taking a single
``input`` string (plus optional structured ``args``). The description carries
the real calling convention, derived from the tool's declared input schema,
and the raw input is mapped back onto the tool's parameters before the call.
"""

import json
import logging
import math
from dataclasses import dataclass, replace
from typing import Any, Awaitable, Callable, Dict, List, NamedTuple, Optional

from .utils import get_field

logger = logging.getLogger(__name__)

DEFAULT_SEARCH_COUNT = 5

ToolInvoker = Callable[[str, Optional[Dict[str, Any]]], Awaitable[str]]


class ToolCall(NamedTuple):
    """A tool call requested by the model."""

    name: str
    arguments: Dict[str, Any]
    call_id: Optional[str] = None


class FallbackHint(NamedTuple):
    """Calling convention used when a tool declares no parameters."""

    parameter: str
    usage: str
    input_description: str


_TIME_HINT = FallbackHint(
    parameter="timezone",
    usage=(
        "To use this tool, provide a timezone name like 'Asia/Tokyo', "
        "'America/New_York', or 'UTC' to get the current time in that timezone."
    ),
    input_description="A timezone name like 'Asia/Tokyo', 'America/New_York', 'UTC', etc.",
)
_CALCULATOR_HINT = FallbackHint(
    parameter="input",
    usage="To use this calculator, provide a mathematical expression like '2+2', '(3*4)/2', etc.",
    input_description="A mathematical expression to calculate (e.g., '2+2', '3*4', 'sqrt(16)')",
)
_SEARCH_USAGE = "To use this web search tool, provide a search query."
_SEARCH_INPUT = "A search query to look up information on the web"

# Observed provider conventions; (provider, None) applies to every tool of a provider.
# Not exhaustive: unknown providers get the generic "input" parameter.
FALLBACK_HINTS: Dict[tuple, FallbackHint] = {
    ("time", "current-time"): _TIME_HINT,
    ("web-search", "brave_search"): FallbackHint("query", _SEARCH_USAGE, _SEARCH_INPUT),
    ("web-search", None): FallbackHint("input", _SEARCH_USAGE, _SEARCH_INPUT),
    ("calculator", None): _CALCULATOR_HINT,
}


def fallback_hint(provider_name: str, tool_name: str) -> FallbackHint:
    hint = FALLBACK_HINTS.get((provider_name, tool_name)) or FALLBACK_HINTS.get(
        (provider_name, None)
    )
    if hint:
        return hint
    return FallbackHint(
        parameter="input",
        usage="To use this tool, provide input as a simple string.",
        input_description=f"Input for {tool_name}.",
    )


@dataclass(frozen=True)
class ToolDescriptor:
    provider_name: str
    raw_name: str
    display_name: str
    argument_schema: Optional[Dict[str, Any]]
    description: str
    input_description: str = ""


def make_display_name(provider_name: str, raw_name: str) -> str:
    return f"{provider_name}_{raw_name.replace('-', '_')}"


def schema_properties(schema: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Declared parameters of an object schema (empty when none are declared)."""
    if not isinstance(schema, dict) or schema.get("type") != "object":
        return {}
    properties = schema.get("properties")
    return properties if isinstance(properties, dict) else {}


def _declares_properties(schema: Optional[Dict[str, Any]]) -> bool:
    return (
        isinstance(schema, dict)
        and schema.get("type") == "object"
        and isinstance(schema.get("properties"), dict)
    )


def _enum_values(prop: Any) -> Optional[List[str]]:
    values = get_field(prop, "enum")
    if isinstance(values, list) and values:
        return [str(v) for v in values]
    return None


def build_tool_description(
    provider_name: str,
    tool_name: str,
    description: Optional[str],
    input_schema: Optional[Dict[str, Any]],
    annotations: Any = None,
) -> str:
    """
    Build the description the model sees for a remote tool.

    The model has no other way to learn the calling convention, so parameter
    names, descriptions, enum values and types are spelled out. Tools without
    declared parameters get a provider-specific usage hint instead.
    """
    text = description or f"Tool from {provider_name} server"
    text += f"\n\nThis is a tool from the {provider_name} server."

    properties = schema_properties(input_schema)
    if properties:
        lines = []
        for name, prop in properties.items():
            line = f"- {name}: {get_field(prop, 'description') or 'Parameter'}"
            enum_values = _enum_values(prop)
            if enum_values:
                line += f" (Valid values: {', '.join(enum_values)})"
            prop_type = get_field(prop, "type")
            if prop_type:
                line += f" (Type: {prop_type})"
            lines.append(line)
        text += "\n\nParameters:\n" + "\n".join(lines)
    else:
        text += "\n" + fallback_hint(provider_name, tool_name).usage

    examples = get_field(annotations, "examples")
    if isinstance(examples, list) and examples:
        text += "\n\nExamples:"
        for index, example in enumerate(examples, start=1):
            example_input = get_field(example, "input")
            example_output = get_field(example, "output")
            if example_input and example_output:
                text += f'\n{index}. Input: "{example_input}" → Output: "{example_output}"'

    return text


def build_input_description(
    provider_name: str, tool_name: str, input_schema: Optional[Dict[str, Any]]
) -> str:
    properties = schema_properties(input_schema)
    if not properties:
        return fallback_hint(provider_name, tool_name).input_description

    parts = []
    for name, prop in properties.items():
        part = f"{name}: {get_field(prop, 'description') or name}"
        enum_values = _enum_values(prop)
        if enum_values:
            part += f" (possible values: {', '.join(enum_values)})"
        parts.append(part)
    return ". ".join(parts)


def _parse_number(value: str) -> Optional[float]:
    text = value.strip()
    if not text:
        return None
    try:
        return int(text)
    except ValueError:
        pass
    try:
        number = float(text)
    except ValueError:
        return None
    return number if math.isfinite(number) else None


def _is_numeric_type(prop_type: Any) -> bool:
    if isinstance(prop_type, list):
        return "number" in prop_type or "integer" in prop_type
    return prop_type in ("number", "integer")


def coerce_numeric_arguments(
    params: Dict[str, Any], input_schema: Optional[Dict[str, Any]]
) -> Dict[str, Any]:
    """Convert string values to numbers where the schema types the field as number/integer."""
    properties = schema_properties(input_schema)
    if not properties:
        return params

    coerced = dict(params)
    for key, value in params.items():
        prop = properties.get(key)
        if prop is None or not isinstance(value, str):
            continue
        if _is_numeric_type(get_field(prop, "type")):
            number = _parse_number(value)
            if number is not None:
                coerced[key] = number
    return coerced


def resolve_tool_arguments(
    provider_name: str,
    tool_name: str,
    input_schema: Optional[Dict[str, Any]],
    raw_input: str,
    structured_args: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """
    Map the model's raw input onto the tool's parameters.

    Resolution order:
    1. ``raw_input`` parses as a JSON object -> used as the parameter set
    2. non-empty ``structured_args`` -> used as the parameter set
    3. declared schema parameters -> bind to ``query`` when declared, else the first one
       (web searches also get a default ``count``); an empty ``properties``
       object binds to ``input``
    4. no properties table -> provider-specific hardcoded parameter name
       (``input`` by default)

    String values for number/integer fields are then coerced to numbers.
    """
    try:
        parsed = json.loads(raw_input)
    except (TypeError, ValueError):
        parsed = None

    if isinstance(parsed, dict):
        params = parsed
    elif isinstance(structured_args, dict) and structured_args:
        params = dict(structured_args)
    else:
        names = list(schema_properties(input_schema))
        if "query" in names:
            params = {"query": raw_input}
            if provider_name == "web-search" and "count" in names:
                params["count"] = DEFAULT_SEARCH_COUNT
        elif names:
            params = {names[0]: raw_input}
        elif _declares_properties(input_schema):
            params = {"input": raw_input}
        else:
            params = {fallback_hint(provider_name, tool_name).parameter: raw_input}

    return coerce_numeric_arguments(params, input_schema)


def descriptor_to_tool_schema(descriptor: ToolDescriptor) -> Dict[str, Any]:
    """Convert a descriptor to the OpenAI chat-completions tool format."""
    return {
        "type": "function",
        "function": {
            "name": descriptor.display_name,
            "description": descriptor.description,
            "parameters": {
                "type": "object",
                "properties": {
                    "input": {
                        "type": "string",
                        "description": descriptor.input_description,
                    },
                    "args": {
                        "type": "object",
                        "description": "Optional structured arguments keyed by parameter name",
                    },
                },
                "required": ["input"],
            },
        },
    }


class ToolRegistry:
    """Registry of remote tools available to the agent for one turn."""

    def __init__(self):
        self.tools: Dict[str, ToolInvoker] = {}  # display name -> invoker
        self.descriptors: Dict[str, ToolDescriptor] = {}

    def register(self, descriptor: ToolDescriptor, invoker: ToolInvoker) -> ToolDescriptor:
        """
        Register a remote tool under a display name unique within this registry.

        Args:
            descriptor: The tool descriptor
            invoker: Coroutine function taking (raw_input, structured_args)

        Returns:
            The registered descriptor (suffixed if its display name was taken)
        """
        name = descriptor.display_name
        suffix = 2
        while name in self.tools:
            name = f"{descriptor.display_name}_{suffix}"
            suffix += 1
        if name != descriptor.display_name:
            logger.warning(
                f"Duplicate tool name {descriptor.display_name}, registered as {name}"
            )
            descriptor = replace(descriptor, display_name=name)

        self.tools[name] = invoker
        self.descriptors[name] = descriptor
        return descriptor

    def get_schemas(self) -> List[Dict[str, Any]]:
        """Get all tool schemas for the OpenAI API."""
        return [descriptor_to_tool_schema(d) for d in self.descriptors.values()]

    def get_tool_names(self) -> List[str]:
        return list(self.tools.keys())

    async def execute_tool(
        self,
        name: str,
        raw_input: str,
        structured_args: Optional[Dict[str, Any]] = None,
    ) -> str:
        """
        Execute a registered tool by display name.

        Raises:
            KeyError: If tool is not registered
        """
        if name not in self.tools:
            raise KeyError(f"Tool '{name}' not found in registry")
        return await self.tools[name](raw_input, structured_args)

    async def execute_tool_call(self, name: str, arguments: Any) -> str:
        """
        Execute a tool call emitted by the model and return its output text.

        Failures are returned as text so the agent can reason about them.
        """
        try:
            if isinstance(arguments, str):
                args = json.loads(arguments) if arguments.strip() else {}
            else:
                args = dict(arguments or {})
            if not isinstance(args, dict):
                args = {"input": args}

            structured = args.get("args") if isinstance(args.get("args"), dict) else None
            raw_input = args.get("input")
            if raw_input is None:
                # Model skipped the input wrapper and passed parameters directly
                rest = {k: v for k, v in args.items() if k != "args"}
                raw_input = json.dumps(rest) if rest else ""
            elif not isinstance(raw_input, str):
                raw_input = json.dumps(raw_input)

            return await self.execute_tool(name, raw_input, structured)
        except json.JSONDecodeError as e:
            logger.info(f"TOOL JSON ERROR: {name} - {str(e)}")
            return f"Error parsing arguments: {str(e)}"
        except Exception as e:
            logger.info(f"TOOL ERROR: {name} - {str(e)}")
            return f"Error: {str(e)}"

    def __len__(self) -> int:
        return len(self.tools)
