from typing import Any, TypeVar

T = TypeVar("T")


def ifnone(val: T | None, default: T) -> T:
    """Return the given value if it is not None, else return the default."""
    return val if val is not None else default


def as_bool(value: Any) -> bool:
    """Interpret a stringified config value as a boolean."""
    return str(value).strip().lower() in ("true", "yes", "on", "1")
