"""Tool declarations and their translation between calling conventions.

Three conventions are in play:

- Gemini "function declarations": ``{name, description, parameters}``
- OpenAI "tools": ``{"type": "function", "function": {name, description, parameters}}``
- Anthropic tools: ``{name, description, input_schema}``

The JSON Schema is carried unchanged between them.
"""

from __future__ import annotations

from copy import deepcopy
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel

from streamgate.errors import ConfigurationError

ParametersInput = type[BaseModel] | dict[str, Any]


@dataclass(frozen=True)
class ToolDeclaration:
    """A callable capability offered to the model."""

    name: str
    description: str = ""
    #: Pydantic ``BaseModel`` subclass or JSON Schema dict.
    parameters: ParametersInput = field(
        default_factory=lambda: {"type": "object", "properties": {}}
    )

    def __post_init__(self) -> None:
        if not self.name:
            raise ConfigurationError("Tool declarations need a name")
        if not (
            isinstance(self.parameters, dict)
            or (
                isinstance(self.parameters, type)
                and issubclass(self.parameters, BaseModel)
            )
        ):
            raise ConfigurationError(
                f"parameters for tool {self.name!r} must be a Pydantic model class"
                " or JSON schema dict",
                hint="Pass a BaseModel subclass or a dict following JSON Schema.",
            )

    def parameters_schema(self) -> dict[str, Any]:
        """Return the parameters as a JSON Schema dict."""
        if isinstance(self.parameters, dict):
            return deepcopy(self.parameters)
        return self.parameters.model_json_schema()

    def to_function_declaration(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.parameters_schema(),
        }

    def to_openai_tool(self) -> dict[str, Any]:
        return {"type": "function", "function": self.to_function_declaration()}

    def to_anthropic_tool(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self.parameters_schema(),
        }

    @classmethod
    def from_dict(cls, tool: dict[str, Any]) -> ToolDeclaration:
        """Accept any of the three conventions."""
        if not isinstance(tool, dict):
            raise ConfigurationError(
                f"Tool must be a ToolDeclaration or dict, got {type(tool).__name__}",
                hint="Expected {name, description, parameters}.",
            )
        if tool.get("type") == "function" and isinstance(tool.get("function"), dict):
            tool = tool["function"]
        if "name" not in tool:
            raise ConfigurationError(
                "Tool dict is missing 'name'",
                hint="Expected {name, description, parameters}.",
            )
        schema = tool.get("parameters", tool.get("input_schema"))
        return cls(
            name=tool["name"],
            description=tool.get("description", ""),
            parameters=(
                schema
                if schema is not None
                else {"type": "object", "properties": {}}
            ),
        )


def coerce_tools(
    tools: list[ToolDeclaration | dict[str, Any]] | None,
) -> tuple[ToolDeclaration, ...]:
    if not tools:
        return ()
    return tuple(
        t if isinstance(t, ToolDeclaration) else ToolDeclaration.from_dict(t)
        for t in tools
    )


MANAGE_NOTE = ToolDeclaration(
    name="manage_note",
    description="Create, update, delete notes OR manage tasks within notes.",
    parameters={
        "type": "object",
        "properties": {
            "action": {
                "type": "string",
                "enum": ["CREATE", "UPDATE", "DELETE"],
                "description": "Action to perform",
            },
            "id": {"type": "string", "description": "Note ID."},
            "title": {"type": "string", "description": "Note Title."},
            "content": {"type": "string", "description": "Note Content (Markdown)."},
            "tags": {
                "type": "array",
                "items": {"type": "string"},
                "description": "Tags",
            },
            "taskContent": {
                "type": "string",
                "description": "Text content for a new task",
            },
            "taskAction": {
                "type": "string",
                "enum": ["ADD", "COMPLETE", "DELETE"],
                "description": "Specific action for tasks",
            },
            "taskDueDate": {"type": "string", "description": "Due date (YYYY-MM-DD)"},
        },
        "required": ["action"],
    },
)

GENERATE_VISUAL = ToolDeclaration(
    name="generate_visual",
    description="Generate/Render an image based on the user request.",
    parameters={
        "type": "object",
        "properties": {
            "prompt": {
                "type": "string",
                "description": "Highly detailed visual description in English.",
            }
        },
        "required": ["prompt"],
    },
)

BUILTIN_TOOLS: tuple[ToolDeclaration, ...] = (MANAGE_NOTE, GENERATE_VISUAL)
