"""
clusterform/models/validator.py

Helpers for validating loosely-typed data against pydantic-compatible types:
 - validate_type: decoded Terraform outputs, nested dicts, lists.
 - validate_yaml: a YAML document (cluster files) parsed with PyYAML.
"""

from typing import Any, Type, TypeVar

import yaml
from pydantic import ValidationError, TypeAdapter

T = TypeVar("T")


def validate_type(obj: Any, expected_type: Type[T]) -> T:
    """
    Validates that a given Python object conforms to the expected type.

    Args:
        obj (Any): The object to validate.
        expected_type (Type[T]): The type (pydantic model, List[str], ...) to validate against.

    Returns:
        T: The validated object, cast to the expected type.

    Raises:
        ValueError: If validation fails.
    """
    try:
        return TypeAdapter(expected_type).validate_python(obj)
    except ValidationError as e:
        raise ValueError(f"Validation failed for type {expected_type}: {e}") from e


def validate_yaml(text: str, expected_type: Type[T]) -> T:
    """Parse a YAML document and validate it. An empty document validates as {}.

    Raises:
        ValueError: If the text is not valid YAML or fails validation.
    """
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML: {e}") from e
    return validate_type(data if data is not None else {}, expected_type)
