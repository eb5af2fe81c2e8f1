"""Pure helper functions and template substitution shared by transforms and labels."""

import re
from types import MappingProxyType
from typing import Any

from slugify import slugify

from yamlgraph.parser import data_at

TEMPLATE_PLACEHOLDER = re.compile(r"\$\{([^}]+)\}")
MAX_RANGE = 100_000


def substitute(template: str, values: Any) -> str:
    """Replace ``${field}`` (or ``${a.b}``) placeholders; missing values become ''."""

    def replace(match: re.Match) -> str:
        value = data_at(values, match.group(1).strip())
        return "" if value is None else str(value)

    return TEMPLATE_PLACEHOLDER.sub(replace, template)


def freeze(value: Any) -> Any:
    """Read-only deep view: mappings become MappingProxyType, lists become tuples."""
    if isinstance(value, (dict, MappingProxyType)):
        return MappingProxyType({k: freeze(v) for k, v in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(freeze(v) for v in value)
    return value


def thaw(value: Any) -> Any:
    """Plain mutable copy of a (possibly frozen) value."""
    if isinstance(value, (dict, MappingProxyType)):
        return {k: thaw(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [thaw(v) for v in value]
    return value


def _text(value: Any) -> str:
    return "" if value is None else str(value)


def upper(value: Any) -> str:
    return _text(value).upper()


def lower(value: Any) -> str:
    return _text(value).lower()


def title(value: Any) -> str:
    return _text(value).title()


def strip(value: Any) -> str:
    return _text(value).strip()


def join(items: Any, separator: str = ", ") -> str:
    return separator.join(_text(item) for item in items)


def replace(value: Any, old: str, new: str) -> str:
    return _text(value).replace(old, new)


def fmt(template: str, values: Any = None, **extra: Any) -> str:
    """``fmt("${id}: ${label}", node)``; keyword arguments override ``values``."""
    merged = dict(thaw(values) or {})
    merged.update(extra)
    return substitute(template, merged)


def get(value: Any, path: str, default: Any = None) -> Any:
    """Dotted-path lookup, e.g. ``get(node, "fields.owner.name")``."""
    return data_at(value, path, default)


def truncate(value: Any, length: int, suffix: str = "...") -> str:
    text = _text(value)
    if len(text) <= length:
        return text
    return text[:max(length - len(suffix), 0)] + suffix


def slug(value: Any) -> str:
    return slugify(_text(value))


def bounded_range(*args: int) -> range:
    result = range(*args)
    if len(result) > MAX_RANGE:
        raise ValueError(f"range() limited to {MAX_RANGE} items in transforms")
    return result


HELPERS = {
    "upper": upper,
    "lower": lower,
    "title": title,
    "strip": strip,
    "join": join,
    "replace": replace,
    "fmt": fmt,
    "get": get,
    "truncate": truncate,
    "slug": slug,
}
