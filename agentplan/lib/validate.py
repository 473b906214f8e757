"""
Schema validation for agentplan.

Enforces JSON Schema validation at every data boundary: the authored plan,
task files, the tracker and the amendment log. Fails hard with every
violation listed, so a broken document is fixed in one pass.
"""

import json
from pathlib import Path

import jsonschema

from agentplan.lib.errors import SchemaInvalid

# Cache loaded schemas
_schema_cache: dict[str, dict] = {}


def _get_schemas_dir() -> Path:
    """Get path to the packaged schemas directory."""
    return Path(__file__).parent.parent / "schemas"


def _load_schema(schema_name: str) -> dict:
    """Load schema by name, with caching."""
    if schema_name not in _schema_cache:
        schema_path = _get_schemas_dir() / f"{schema_name}.schema.json"
        if not schema_path.exists():
            raise SchemaInvalid(schema_name, [f"Schema file not found: {schema_path}"])
        _schema_cache[schema_name] = json.loads(schema_path.read_text(encoding="utf-8"))
    return _schema_cache[schema_name]


def _format_error(error: jsonschema.ValidationError) -> str:
    path = ".".join(str(p) for p in error.absolute_path) if error.absolute_path else "(root)"
    return f"{error.message} at {path}"


def validate(data, schema_name: str) -> None:
    """
    Validate data against named schema.

    Args:
        data: Parsed JSON document
        schema_name: Schema name (e.g., "plan", "task", "tracker")

    Raises:
        SchemaInvalid: If validation fails, with one message per violation
    """
    schema = _load_schema(schema_name)
    validator_cls = jsonschema.validators.validator_for(schema)
    validator = validator_cls(schema)

    errors = sorted(validator.iter_errors(data), key=lambda e: [str(p) for p in e.absolute_path])
    if errors:
        raise SchemaInvalid(schema_name, [_format_error(e) for e in errors])


def validate_before_write(data, schema_name: str, filepath: Path) -> None:
    """
    Validate data before writing to file. Ensures we never write invalid data.

    Raises:
        SchemaInvalid: If data doesn't match schema
    """
    try:
        validate(data, schema_name)
    except SchemaInvalid as e:
        raise SchemaInvalid(
            schema_name,
            [f"Refusing to write invalid data to {filepath}"] + e.errors,
        ) from None
