"""Tool parameter schemas.

Tool schemas are checked once when a tool is registered
(``check_schema``) and every call's arguments are validated again before
the handler is dispatched (``validate``). Only the JSON Schema subset
that tool definitions use is supported.
"""

import re
from typing import Any

_TYPE_MAP: dict[str, type | tuple[type, ...]] = {
    "string": str,
    "number": (int, float),
    "integer": int,
    "boolean": bool,
    "array": list,
    "object": dict,
    "null": type(None),
}

_NUMERIC_KEYWORDS = ("minimum", "maximum", "exclusiveMinimum", "exclusiveMaximum")
_COUNT_KEYWORDS = ("minLength", "maxLength", "minItems", "maxItems")


class SchemaValidator:
    """Validates values against a JSON Schema subset.

    Example:
        validator = SchemaValidator()

        schema = {
            "type": "object",
            "properties": {"city": {"type": "string"}},
            "required": ["city"],
        }

        validator.validate({"city": "Oslo"}, schema)  # []
        validator.validate({}, schema)  # ["city: required property missing"]
    """

    def validate(self, data: Any, schema: dict[str, Any]) -> list[str]:
        """Validate data against a schema.

        Returns:
            List of validation errors (empty if valid).
        """
        errors: list[str] = []
        self._validate_value(data, schema, "", errors)
        return errors

    def check_schema(self, schema: Any) -> list[str]:
        """Check that a tool parameter schema is itself well formed.

        The top level must be an object schema. Nested schemas may use any
        supported type.

        Returns:
            List of problems (empty if the schema is usable).
        """
        if not isinstance(schema, dict):
            return ["root: schema must be a mapping"]
        errors: list[str] = []
        if schema.get("type") != "object":
            errors.append("root: tool parameters must be an 'object' schema")
        self._check_node(schema, "", errors)
        return errors

    # =========================================================================
    # Value validation
    # =========================================================================

    def _validate_value(
        self, value: Any, schema: dict[str, Any], path: str, errors: list[str]
    ) -> None:
        where = path or "root"

        if "type" in schema and not self._check_type(value, schema["type"]):
            errors.append(
                f"{where}: expected type '{schema['type']}', got '{type(value).__name__}'"
            )
            return

        if "enum" in schema and value not in schema["enum"]:
            errors.append(f"{where}: value must be one of {schema['enum']}")

        if "const" in schema and value != schema["const"]:
            errors.append(f"{where}: value must be {schema['const']}")

        if isinstance(value, dict):
            self._validate_object(value, schema, path, errors)
        elif isinstance(value, list):
            self._validate_array(value, schema, path, errors)
        elif isinstance(value, str):
            self._validate_string(value, schema, where, errors)
        elif isinstance(value, (int, float)) and not isinstance(value, bool):
            self._validate_number(value, schema, where, errors)

    def _check_type(self, value: Any, expected: str | list[str]) -> bool:
        if isinstance(expected, list):
            return any(self._check_type(value, t) for t in expected)

        expected_types = _TYPE_MAP.get(expected)
        if expected_types is None:
            return True

        # bool is an int subclass but never a number here
        if isinstance(value, bool) and expected in ("number", "integer"):
            return False
        if expected == "integer" and isinstance(value, float):
            return value.is_integer()
        return isinstance(value, expected_types)

    def _validate_object(
        self, obj: dict, schema: dict[str, Any], path: str, errors: list[str]
    ) -> None:
        properties = schema.get("properties", {})
        additional = schema.get("additionalProperties", True)

        for prop in schema.get("required", []):
            if prop not in obj:
                prop_path = f"{path}.{prop}" if path else prop
                errors.append(f"{prop_path}: required property missing")

        for key, value in obj.items():
            prop_path = f"{path}.{key}" if path else key
            if key in properties:
                self._validate_value(value, properties[key], prop_path, errors)
            elif additional is False:
                errors.append(f"{prop_path}: additional property not allowed")
            elif isinstance(additional, dict):
                self._validate_value(value, additional, prop_path, errors)

    def _validate_array(
        self, arr: list, schema: dict[str, Any], path: str, errors: list[str]
    ) -> None:
        where = path or "root"
        min_items = schema.get("minItems")
        max_items = schema.get("maxItems")

        if min_items is not None and len(arr) < min_items:
            errors.append(f"{where}: array must have at least {min_items} items")
        if max_items is not None and len(arr) > max_items:
            errors.append(f"{where}: array must have at most {max_items} items")
        if schema.get("uniqueItems", False) and len(arr) != len({repr(i) for i in arr}):
            errors.append(f"{where}: array items must be unique")

        items_schema = schema.get("items")
        if isinstance(items_schema, dict):
            for i, item in enumerate(arr):
                self._validate_value(item, items_schema, f"{path}[{i}]", errors)

    def _validate_string(
        self, s: str, schema: dict[str, Any], where: str, errors: list[str]
    ) -> None:
        min_length = schema.get("minLength")
        max_length = schema.get("maxLength")
        pattern = schema.get("pattern")

        if min_length is not None and len(s) < min_length:
            errors.append(f"{where}: string must be at least {min_length} characters")
        if max_length is not None and len(s) > max_length:
            errors.append(f"{where}: string must be at most {max_length} characters")
        if pattern and not re.search(pattern, s):
            errors.append(f"{where}: string must match pattern '{pattern}'")

    def _validate_number(
        self, n: int | float, schema: dict[str, Any], where: str, errors: list[str]
    ) -> None:
        minimum = schema.get("minimum")
        maximum = schema.get("maximum")
        exclusive_min = schema.get("exclusiveMinimum")
        exclusive_max = schema.get("exclusiveMaximum")

        if minimum is not None and n < minimum:
            errors.append(f"{where}: number must be >= {minimum}")
        if maximum is not None and n > maximum:
            errors.append(f"{where}: number must be <= {maximum}")
        if exclusive_min is not None and n <= exclusive_min:
            errors.append(f"{where}: number must be > {exclusive_min}")
        if exclusive_max is not None and n >= exclusive_max:
            errors.append(f"{where}: number must be < {exclusive_max}")

    # =========================================================================
    # Schema checking
    # =========================================================================

    def _check_node(self, node: Any, path: str, errors: list[str]) -> None:
        where = path or "root"
        if not isinstance(node, dict):
            errors.append(f"{where}: schema must be a mapping")
            return

        declared = node.get("type")
        if declared is not None:
            names = declared if isinstance(declared, list) else [declared]
            for name in names:
                if name not in _TYPE_MAP:
                    errors.append(f"{where}: unknown type '{name}'")

        properties = node.get("properties", {})
        if not isinstance(properties, dict):
            errors.append(f"{where}: 'properties' must be a mapping")
            properties = {}
        for key, child in properties.items():
            self._check_node(child, f"{path}.{key}" if path else key, errors)

        required = node.get("required", [])
        if not isinstance(required, list) or not all(isinstance(r, str) for r in required):
            errors.append(f"{where}: 'required' must be a list of property names")
        elif properties:
            for name in required:
                if name not in properties:
                    errors.append(f"{where}: required property '{name}' is not declared")

        if "items" in node:
            self._check_node(node["items"], f"{path}[]", errors)

        additional = node.get("additionalProperties")
        if isinstance(additional, dict):
            self._check_node(additional, f"{path}.*" if path else "*", errors)

        if "enum" in node and not isinstance(node["enum"], list):
            errors.append(f"{where}: 'enum' must be a list")

        for keyword in _NUMERIC_KEYWORDS:
            value = node.get(keyword)
            if value is not None and (isinstance(value, bool) or not isinstance(value, (int, float))):
                errors.append(f"{where}: '{keyword}' must be a number")

        for keyword in _COUNT_KEYWORDS:
            value = node.get(keyword)
            if value is not None and (isinstance(value, bool) or not isinstance(value, int) or value < 0):
                errors.append(f"{where}: '{keyword}' must be a non-negative integer")

        pattern = node.get("pattern")
        if pattern is not None:
            try:
                re.compile(pattern)
            except (re.error, TypeError):
                errors.append(f"{where}: 'pattern' is not a valid regular expression")
