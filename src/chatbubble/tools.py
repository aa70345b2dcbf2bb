import inspect
import json
import re
from typing import Any, Callable

from pydantic import BaseModel, Field


_JSON_TYPES = {
    "str": "string",
    "int": "integer",
    "float": "number",
    "bool": "boolean",
    "NoneType": "null",
    "dict": "object",
    "list": "array",
    "tuple": "array",
    "set": "array",
}


def _json_type(annotation: Any) -> str:
    if annotation is inspect.Parameter.empty:
        return "string"
    origin = getattr(annotation, "__origin__", None)
    if origin is not None:
        annotation = origin
    return _JSON_TYPES.get(getattr(annotation, "__name__", ""), "string")


def _parse_param_descriptions(func: Callable) -> dict[str, str]:
    """Read parameter descriptions from a Google-style ``Args:`` section."""
    doc = inspect.getdoc(func) or ""
    descriptions: dict[str, str] = {}
    in_args = False
    current = None
    for line in doc.splitlines():
        stripped = line.strip()
        if stripped in ("Args:", "Arguments:", "Parameters:"):
            in_args = True
            continue
        if not in_args:
            continue
        if not stripped:
            current = None
            continue
        if not line.startswith((" ", "\t")):
            break
        match = re.match(r"^(\w+)\s*(?:\([^)]*\))?:\s*(.*)$", stripped)
        if match:
            current = match.group(1)
            descriptions[current] = match.group(2)
        elif current is not None:
            descriptions[current] = f"{descriptions[current]} {stripped}".strip()
    return descriptions


def _summary(func: Callable) -> str:
    doc = inspect.getdoc(func) or ""
    return doc.split("\n\n", 1)[0].strip()


def _build_parameters_schema(func: Callable) -> dict:
    signature = inspect.signature(func)
    descriptions = _parse_param_descriptions(func)
    properties = {}
    required = []
    for param_name, param in signature.parameters.items():
        if param.kind in (param.VAR_POSITIONAL, param.VAR_KEYWORD):
            continue
        properties[param_name] = {
            "type": _json_type(param.annotation),
            "description": descriptions.get(param_name, ""),
        }
        if param.default is inspect.Parameter.empty:
            required.append(param_name)
    return {
        "type": "object",
        "properties": properties,
        "required": required,
    }


class Tool(BaseModel):
    """A callable offered to the model.

    Tools are usually built with :func:`tool` or :meth:`from_function`;
    ``invoke`` always yields a string, the only shape the model sees.
    """

    func: Callable = Field(exclude=True)
    name: str
    description: str = ""
    parameters: dict = Field(default_factory=lambda: {
        "type": "object", "properties": {}, "required": [],
    })
    model_config = {"arbitrary_types_allowed": True}

    @classmethod
    def from_function(
        cls,
        func: Callable,
        name: str | None = None,
        description: str | None = None,
    ) -> "Tool":
        return cls(
            func=func,
            name=name or func.__name__,
            description=description if description is not None else _summary(func),
            parameters=_build_parameters_schema(func),
        )

    def tool_schema(self) -> dict:
        """Return an OpenAI-compatible function tool schema."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }

    def model_dump(self, **kwargs):
        """Override to return the JSON schema instead of internal attributes"""
        return self.tool_schema()

    async def invoke(self, args: dict | None = None) -> str:
        result = self.func(**(args or {}))
        if inspect.isawaitable(result):
            result = await result
        if isinstance(result, str):
            return result
        return json.dumps(result)


def tool(func: Callable | None = None, *, name: str | None = None, description: str | None = None):
    """Decorator turning a function into a :class:`Tool`.

    Usable bare (``@tool``) or with overrides
    (``@tool(name="search", description="...")``).
    """
    def wrap(f: Callable) -> Tool:
        return Tool.from_function(f, name=name, description=description)

    if func is not None:
        return wrap(func)
    return wrap
