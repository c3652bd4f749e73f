"""Ordered label sets and series identity strings."""
from dataclasses import dataclass
from typing import Tuple


def _quote(value: str) -> str:
    """Render a label value as a double-quoted exposition literal."""
    escaped = value.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")
    return f'"{escaped}"'


@dataclass(frozen=True)
class Label:
    """A key-value pair that adds context to a counter."""
    key: str
    value: str

    def render(self) -> str:
        return f"{self.key}={_quote(self.value)}"


@dataclass(frozen=True)
class Labels:
    """
    Immutable, ordered sequence of labels.

    Order of attachment is kept as-is and is part of the series identity:
    the same labels attached in a different order name a different series.
    Nothing is deduplicated or merged.
    """
    items: Tuple[Label, ...] = ()

    def with_(self, key: str, value: str) -> "Labels":
        """Return a copy with one more label appended."""
        return Labels(self.items + (Label(key, value),))

    def __len__(self) -> int:
        return len(self.items)

    def __str__(self) -> str:
        return ",".join(label.render() for label in self.items)

    def identity(self, name: str) -> str:
        """Render the series identity, e.g. ``name{k1="v1",k2="v2"}``."""
        return f"{name}{{{self}}}"
