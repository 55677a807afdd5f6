"""Data models for capability descriptors, input schemas, and call results."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)

_PY_TYPES = {
    "string": (str,),
    "integer": (int,),
    "number": (int, float),
    "boolean": (bool,),
    "array": (list, tuple),
    "object": (dict,),
    "null": (type(None),),
}


class SchemaNode(BaseModel):
    """
    Structural description of the arguments a capability accepts.

    Only the JSON-schema keywords the client checks are modelled; anything
    else the server sends is kept in ``extra`` and passed through to the
    model backend untouched.
    """

    model_config = ConfigDict(frozen=True)

    type: Optional[str] = None
    description: str = ""
    properties: Dict[str, "SchemaNode"] = Field(default_factory=dict)
    required: List[str] = Field(default_factory=list)
    items: Optional["SchemaNode"] = None
    enum: Optional[List[Any]] = None
    extra: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def empty_object(cls) -> "SchemaNode":
        return cls(type="object")

    @classmethod
    def from_json(cls, raw: Dict[str, Any]) -> "SchemaNode":
        """Build a node tree from a raw JSON-schema dict."""
        known = {"type", "description", "properties", "required", "items", "enum"}
        node_type = raw.get("type")
        if isinstance(node_type, list):
            # ["string", "null"] style unions are accepted without checking
            node_type = None

        properties = {}
        raw_props = raw.get("properties")
        if isinstance(raw_props, dict):
            for pname, pinfo in raw_props.items():
                properties[pname] = cls.from_json(pinfo if isinstance(pinfo, dict) else {})

        items = raw.get("items")
        required = raw.get("required")
        enum = raw.get("enum")

        extra = {k: v for k, v in raw.items() if k not in known}
        # Shapes that are not modelled still go back to the model unchanged
        if isinstance(raw.get("type"), list):
            extra["type"] = raw["type"]
        if items is not None and not isinstance(items, dict):
            extra["items"] = items
        return cls(
            type=node_type if isinstance(node_type, str) else None,
            description=raw.get("description", "") if isinstance(raw.get("description"), str) else "",
            properties=properties,
            required=[r for r in required if isinstance(r, str)] if isinstance(required, list) else [],
            items=cls.from_json(items) if isinstance(items, dict) else None,
            enum=enum if isinstance(enum, list) else None,
            extra=extra,
        )

    def to_json(self) -> Dict[str, Any]:
        """Serialize back to a JSON-schema dict for the model backend."""
        data: Dict[str, Any] = dict(self.extra)
        if self.type:
            data["type"] = self.type
        if self.description:
            data["description"] = self.description
        if self.properties or self.type == "object":
            data["properties"] = {k: v.to_json() for k, v in self.properties.items()}
        if self.required:
            data["required"] = list(self.required)
        if self.items is not None:
            data["items"] = self.items.to_json()
        if self.enum is not None:
            data["enum"] = list(self.enum)
        return data

    def validate_value(self, value: Any, path: str = "arguments") -> List[str]:
        """
        Check ``value`` against this node.

        Returns a list of human-readable violations; empty when valid.
        Unknown or missing types accept any value.
        """
        errors: List[str] = []

        expected = _PY_TYPES.get(self.type or "")
        if expected is not None:
            # bool is an int subclass but never a valid number
            is_bool = isinstance(value, bool)
            if self.type in ("integer", "number") and is_bool:
                errors.append(f"{path}: expected {self.type}, got boolean")
                return errors
            if self.type == "integer" and isinstance(value, float) and value.is_integer():
                pass
            elif not isinstance(value, expected):
                errors.append(f"{path}: expected {self.type}, got {_json_type_name(value)}")
                return errors

        if self.enum is not None and value not in self.enum:
            errors.append(f"{path}: {value!r} is not one of {self.enum!r}")

        if isinstance(value, dict):
            for name in self.required:
                if name not in value:
                    errors.append(f"{path}: missing required property '{name}'")
            for name, child in self.properties.items():
                if name in value:
                    errors.extend(child.validate_value(value[name], f"{path}.{name}"))

        if isinstance(value, (list, tuple)) and self.items is not None:
            for i, item in enumerate(value):
                errors.extend(self.items.validate_value(item, f"{path}[{i}]"))

        return errors


def _json_type_name(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, int):
        return "integer"
    if isinstance(value, float):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, (list, tuple)):
        return "array"
    if isinstance(value, dict):
        return "object"
    return type(value).__name__


class CapabilityDescriptor(BaseModel):
    """A tool advertised by one server, as offered to the model backend."""

    model_config = ConfigDict(frozen=True)

    name: str
    server: str
    description: str
    input_schema: SchemaNode = Field(default_factory=SchemaNode.empty_object)

    @classmethod
    def from_mcp(cls, raw: Dict[str, Any], server: str) -> "CapabilityDescriptor":
        """Convert one entry of a ``tools/list`` result."""
        name = raw["name"]
        raw_schema = raw.get("inputSchema")
        if isinstance(raw_schema, dict):
            schema = SchemaNode.from_json(raw_schema)
        else:
            if raw_schema is not None:
                logger.warning(
                    "Tool %r from server %r has an unexpected schema format. Using empty schema.",
                    name,
                    server,
                )
            schema = SchemaNode.empty_object()

        return cls(
            name=name,
            server=server,
            description=raw.get("description") or f"Tool {name} from server {server}",
            input_schema=schema,
        )

    def to_tool_param(self) -> Dict[str, Any]:
        """Provider-neutral tool definition: name, description, JSON schema."""
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self.input_schema.to_json(),
        }


class CapabilityResult(BaseModel):
    """Normalized outcome of one capability invocation."""

    output: str = ""
    is_error: bool = False

    @classmethod
    def failure(cls, message: str) -> "CapabilityResult":
        return cls(output=message, is_error=True)
