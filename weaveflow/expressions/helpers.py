"""Pure helper functions callable from transform expressions.

Helpers only ever receive plain data and return plain data. Key arguments of
``sort_by``, ``group_by`` and ``pluck`` are dotted field paths, e.g.
``sort_by(videos, "stats.views", true)``.
"""

from __future__ import annotations

import math
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional


def _values(args: tuple) -> List[Any]:
    """Accept either a single list argument or varargs."""
    if len(args) == 1 and isinstance(args[0], (list, tuple)):
        return list(args[0])
    return list(args)


def _numbers(args: tuple) -> List[float]:
    values = _values(args)
    for value in values:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise TypeError(f"expected numbers, got {type(value).__name__}")
    return values


def _field(item: Any, path: str) -> Any:
    value = item
    for segment in str(path).split("."):
        if isinstance(value, Mapping):
            value = value.get(segment)
        elif isinstance(value, (list, tuple)) and segment.lstrip("-").isdigit():
            index = int(segment)
            value = value[index] if -len(value) <= index < len(value) else None
        else:
            return None
    return value


def total(*args: Any) -> float:
    return sum(_numbers(args))


def average(*args: Any) -> float:
    values = _numbers(args)
    return sum(values) / len(values) if values else 0


def median(*args: Any) -> float:
    values = sorted(_numbers(args))
    if not values:
        return 0
    mid = len(values) // 2
    if len(values) % 2 == 0:
        return (values[mid - 1] + values[mid]) / 2
    return values[mid]


def minimum(*args: Any) -> Any:
    values = _values(args)
    return min(values) if values else None


def maximum(*args: Any) -> Any:
    values = _values(args)
    return max(values) if values else None


def round_to(value: float, digits: int = 0) -> float:
    result = round(value, int(digits))
    return int(result) if int(digits) <= 0 else result


def format_number(value: float) -> str:
    """Compact rendering: 1200 -> '1.2k', 3400000 -> '3.4M'."""
    if value >= 1_000_000:
        return f"{value / 1_000_000:.1f}M"
    if value >= 1_000:
        return f"{value / 1_000:.1f}k"
    return str(value)


def percent(part: float, whole: float, digits: int = 1) -> float:
    if not whole:
        return 0
    return round(part / whole * 100, int(digits))


def length(value: Any) -> int:
    if value is None:
        return 0
    return len(value)


def sort_by(items: Iterable[Any], key: str, reverse: bool = False) -> List[Any]:
    # None sorts last regardless of direction
    present = [i for i in items if _field(i, key) is not None]
    missing = [i for i in items if _field(i, key) is None]
    return sorted(present, key=lambda i: _field(i, key), reverse=bool(reverse)) + missing


def group_by(items: Iterable[Any], key: str) -> Dict[str, List[Any]]:
    groups: Dict[str, List[Any]] = {}
    for item in items:
        groups.setdefault(str(_field(item, key)), []).append(item)
    return groups


def pluck(items: Iterable[Any], key: str) -> List[Any]:
    return [_field(item, key) for item in items]


def unique(items: Iterable[Any]) -> List[Any]:
    seen: List[Any] = []
    for item in items:
        if item not in seen:
            seen.append(item)
    return seen


def flatten(items: Iterable[Any]) -> List[Any]:
    result: List[Any] = []
    for item in items:
        if isinstance(item, (list, tuple)):
            result.extend(item)
        else:
            result.append(item)
    return result


def concat(*args: Any) -> List[Any]:
    result: List[Any] = []
    for arg in args:
        result.extend(arg if isinstance(arg, (list, tuple)) else [arg])
    return result


def join(items: Iterable[Any], separator: str = ", ") -> str:
    return str(separator).join("" if i is None else str(i) for i in items)


def slice_of(value: Any, start: int = 0, end: Optional[int] = None) -> Any:
    return value[int(start) : None if end is None else int(end)]


def first(items: Any) -> Any:
    return items[0] if items else None


def last(items: Any) -> Any:
    return items[-1] if items else None


def coalesce(*args: Any) -> Any:
    return next((a for a in args if a is not None), None)


def contains(container: Any, item: Any) -> bool:
    return container is not None and item in container


def to_number(value: Any) -> float:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value
    text = str(value).strip()
    number = float(text)
    return int(number) if number.is_integer() and "." not in text else number


def to_int(value: Any) -> int:
    return int(float(value))


HELPERS: Dict[str, Callable[..., Any]] = {
    "sum": total,
    "average": average,
    "avg": average,
    "mean": average,
    "median": median,
    "min": minimum,
    "max": maximum,
    "round": round_to,
    "abs": abs,
    "floor": math.floor,
    "ceil": math.ceil,
    "format_number": format_number,
    "formatNumber": format_number,
    "percent": percent,
    "len": length,
    "length": length,
    "count": length,
    "sort_by": sort_by,
    "sortBy": sort_by,
    "group_by": group_by,
    "groupBy": group_by,
    "pluck": pluck,
    "unique": unique,
    "flatten": flatten,
    "concat": concat,
    "join": join,
    "slice": slice_of,
    "first": first,
    "last": last,
    "keys": lambda obj: list(obj.keys()),
    "values": lambda obj: list(obj.values()),
    "coalesce": coalesce,
    "default": coalesce,
    "contains": contains,
    "lower": lambda s: str(s).lower(),
    "upper": lambda s: str(s).upper(),
    "trim": lambda s: str(s).strip(),
    "str": lambda v: "" if v is None else str(v),
    "string": lambda v: "" if v is None else str(v),
    "number": to_number,
    "float": lambda v: float(v),
    "int": to_int,
    "bool": bool,
}
