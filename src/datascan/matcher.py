"""Match scalar values against the data-class catalog."""

from typing import Any

from .catalog import DataClassCatalog


def _to_text(value: Any) -> str:
    """Coerce a scalar to the text the patterns run against.

    Raises:
        ValueError: If the value has no textual form.
    """
    if value is None:
        raise ValueError("null has no textual form")
    if isinstance(value, str):
        return value
    if isinstance(value, bytes):
        return value.decode("utf-8")
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def is_textual(value: Any) -> bool:
    return isinstance(value, (str, bytes))


class PatternMatcher:
    """Matches one scalar value against an ordered data-class catalog.

    Patterns are compiled when the catalog is built, so ``match`` only
    runs searches. The matcher holds no mutable state and is safe to share
    between threads.

    Usage:
        matcher = PatternMatcher(load_data_classes())
        matcher.match("jane@example.com")  # ["Email"]
    """

    def __init__(self, catalog: DataClassCatalog):
        self.catalog = catalog
        self._candidates = [c for c in catalog if c.compiled is not None]

    def match(self, value: Any) -> list[str]:
        """Return the names of the classes matching ``value``, in catalog order."""
        try:
            text = _to_text(value)
        except Exception:
            # str() on an arbitrary object can raise anything
            return []

        textual = is_textual(value)
        matches: list[str] = []
        for data_class in self._candidates:
            if data_class.string_only and not textual:
                continue
            found = data_class.compiled.search(text)
            if not found:
                continue
            if data_class.validator is not None and not data_class.validator(found.group(0)):
                continue
            matches.append(data_class.name)
        return matches
