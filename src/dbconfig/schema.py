"""Colon-delimited key helpers and dataclass binding for flat settings."""

import dataclasses
from collections.abc import Mapping, Sequence
from typing import Any, Optional, TypeVar, Union, get_args, get_origin, get_type_hints

from .exceptions import ConfigurationError

T = TypeVar("T")

KEY_DELIMITER = ":"


def combine_path(*segments: str) -> str:
    """Join key segments with the key delimiter, skipping empty ones.

    Examples:
        >>> combine_path("Site", "Name")
        'Site:Name'
    """
    return KEY_DELIMITER.join(segment for segment in segments if segment)


def get_section_key(path: str) -> str:
    """Return the last segment of a key path.

    Examples:
        >>> get_section_key("Site:Admin:Email")
        'Email'
    """
    return path.rsplit(KEY_DELIMITER, 1)[-1]


def unflatten(data: Mapping[str, Optional[str]], path: str = "") -> dict[str, Any]:
    """Turn flat colon-delimited keys into nested dictionaries.

    Args:
        data: Flat mapping such as {"Site:Name": "example.com"}
        path: Only keep keys below this section

    Returns:
        Nested dictionary such as {"Site": {"Name": "example.com"}}

    A key that is both a value and a section ("A" and "A:B") keeps the
    section; the scalar is dropped.
    """
    prefix = f"{path}{KEY_DELIMITER}" if path else ""
    result: dict[str, Any] = {}

    for key in sorted(data):
        if prefix and not key.startswith(prefix):
            continue
        parts = key[len(prefix):].split(KEY_DELIMITER)

        current = result
        for part in parts[:-1]:
            if not isinstance(current.get(part), dict):
                current[part] = {}
            current = current[part]

        if not isinstance(current.get(parts[-1]), dict):
            current[parts[-1]] = data[key]

    return result


def is_dataclass_instance(obj: Any) -> bool:
    """Check if object is a dataclass instance."""
    return dataclasses.is_dataclass(obj) and not isinstance(obj, type)


def is_dataclass_type(obj: Any) -> bool:
    """Check if object is a dataclass type."""
    return dataclasses.is_dataclass(obj) and isinstance(obj, type)


def _normalize(name: str) -> str:
    return name.replace("_", "").casefold()


def _as_sequence(value: Any) -> list:
    # Sections like {"0": ..., "1": ...} bind to lists in index order
    if isinstance(value, dict):
        if all(k.isdigit() for k in value):
            return [value[k] for k in sorted(value, key=int)]
        return list(value.values())
    if isinstance(value, str):
        return [v.strip() for v in value.split(",")]
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


def convert_value(value: Any, target_type: type[T], path: str = "") -> T:
    """Convert a value to the target type.

    Args:
        value: Value to convert
        target_type: Target type to convert to
        path: Configuration path for error messages

    Returns:
        Converted value

    Raises:
        ConfigurationError: If conversion fails
    """
    if value is None:
        return None

    if target_type is Any:
        return value

    # Already correct type (skip for generic types)
    if not hasattr(target_type, "__origin__") and isinstance(target_type, type):
        if isinstance(value, target_type) and not isinstance(value, dict):
            return value

    origin = get_origin(target_type)

    # Handle Optional types
    if origin is Union:
        args = get_args(target_type)
        if type(None) in args:
            other_types = [t for t in args if t is not type(None)]
            if len(other_types) == 1:
                return convert_value(value, other_types[0], path)

    if is_dataclass_type(target_type):
        if isinstance(value, dict):
            return create_dataclass_from_dict(target_type, value, path)
        raise ConfigurationError(
            f"Cannot convert {type(value).__name__} to dataclass {target_type.__name__} at {path}"
        )

    try:
        if target_type is bool:
            if isinstance(value, str):
                return value.strip().lower() in ("true", "yes", "1", "on")
            return bool(value)

        elif target_type is int:
            return int(value)

        elif target_type is float:
            return float(value)

        elif target_type is str:
            if isinstance(value, dict):
                raise ConfigurationError(f"Expected a value but found a section at {path}")
            return str(value)

        elif origin in (list, Sequence) or target_type is list:
            items = _as_sequence(value)
            args = get_args(target_type)
            if args:
                return [
                    convert_value(item, args[0], combine_path(path, str(i)))
                    for i, item in enumerate(items)
                ]
            return items

        elif origin in (dict, Mapping) or target_type is dict:
            if not isinstance(value, dict):
                raise ConfigurationError(f"Cannot convert {type(value).__name__} to dict at {path}")

            args = get_args(target_type)
            if args and len(args) == 2:
                key_type, value_type = args
                return {
                    convert_value(k, key_type, combine_path(path, k)): convert_value(
                        v, value_type, combine_path(path, k)
                    )
                    for k, v in value.items()
                }
            return dict(value)

        return target_type(value)

    except (ValueError, TypeError) as e:
        raise ConfigurationError(
            f"Cannot convert {value!r} to {getattr(target_type, '__name__', target_type)} at {path}: {e}"
        ) from e


def create_dataclass_from_dict(dataclass_type: type[T], data: dict[str, Any], path: str = "") -> T:
    """Create a dataclass instance from a nested settings dictionary.

    Field names match keys ignoring case and underscores, so a ``max_connections``
    field binds ``MaxConnections``.

    Args:
        dataclass_type: Dataclass type to create
        data: Dictionary containing data
        path: Configuration path for error messages

    Returns:
        Dataclass instance

    Raises:
        ConfigurationError: If creation fails
    """
    if not is_dataclass_type(dataclass_type):
        raise ConfigurationError(f"{dataclass_type} is not a dataclass")

    type_hints = get_type_hints(dataclass_type)
    lookup = {_normalize(key): value for key, value in data.items()}

    kwargs = {}

    for field in dataclasses.fields(dataclass_type):
        field_path = combine_path(path, field.name)
        normalized = _normalize(field.name)

        if normalized in lookup:
            field_type = type_hints.get(field.name, field.type)
            kwargs[field.name] = convert_value(lookup[normalized], field_type, field_path)
        elif field.default is not dataclasses.MISSING:
            kwargs[field.name] = field.default
        elif field.default_factory is not dataclasses.MISSING:
            kwargs[field.name] = field.default_factory()
        else:
            raise ConfigurationError(f"Required field '{field.name}' is missing at {path or '<root>'}")

    try:
        return dataclass_type(**kwargs)
    except Exception as e:
        raise ConfigurationError(
            f"Failed to create {dataclass_type.__name__} at {path}: {e}"
        ) from e


def get_value_at_path(config: Union[dict[str, Any], Any], path: str) -> Any:
    """Get a value from nested settings or a dataclass using a colon path.

    Args:
        config: Configuration object (dict or dataclass)
        path: Colon-delimited path (e.g., "Site:Name")

    Returns:
        Value at path

    Raises:
        ConfigurationError: If path is invalid
    """
    if not path:
        return config

    parts = path.split(KEY_DELIMITER)
    current = config

    for i, part in enumerate(parts):
        current_path = KEY_DELIMITER.join(parts[: i + 1])

        if is_dataclass_instance(current):
            attribute = next(
                (f.name for f in dataclasses.fields(current) if _normalize(f.name) == _normalize(part)),
                None,
            )
            if attribute is None:
                raise ConfigurationError(f"No attribute '{part}' at path '{current_path}'")
            current = getattr(current, attribute)
        elif isinstance(current, dict):
            if part not in current:
                raise ConfigurationError(f"No key '{part}' at path '{current_path}'")
            current = current[part]
        else:
            raise ConfigurationError(
                f"Cannot navigate into {type(current).__name__} at path '{current_path}'"
            )

    return current
