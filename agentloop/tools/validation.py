"""JSON-schema validation of decoded tool arguments."""

from __future__ import annotations

import jsonschema
from jsonschema.protocols import Validator

from agentloop.tools.base import Tool, normalize_schema


class ToolValidator:
    """
    Checks decoded arguments against a tool's parameter schema.

    The error message names the offending argument when there is one, e.g.
    ``city: 12 is not of type 'string'``.
    """

    @staticmethod
    def validator_for(tool: Tool) -> Validator:
        schema = normalize_schema(tool.parameters)
        cls = jsonschema.validators.validator_for(schema)
        return cls(schema)

    @staticmethod
    def validate(tool: Tool, arguments: dict) -> tuple[bool, str | None]:
        errors = sorted(
            ToolValidator.validator_for(tool).iter_errors(arguments),
            key=lambda e: [str(p) for p in e.absolute_path],
        )
        if not errors:
            return True, None
        first = errors[0]
        location = ".".join(str(p) for p in first.absolute_path)
        return False, f"{location}: {first.message}" if location else first.message
