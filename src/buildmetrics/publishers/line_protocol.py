"""
InfluxDB line protocol encoding.

    <measurement>[,<tag_key>=<tag_value>...] <field_key>=<field_value>[,...] [timestamp]

Integers carry an ``i`` suffix, strings are double quoted, booleans are
``true``/``false``. Empty tag values are not allowed by the protocol and are
dropped.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from buildmetrics.models import MetricValue

_MEASUREMENT_ESCAPES = str.maketrans({",": r"\,", " ": r"\ "})
_KEY_ESCAPES = str.maketrans({",": r"\,", "=": r"\=", " ": r"\ "})


def escape_measurement(name: str) -> str:
    return name.replace("\\", "\\\\").translate(_MEASUREMENT_ESCAPES)


def escape_key(key: str) -> str:
    """Escape a tag key, tag value or field key."""
    return key.replace("\\", "\\\\").translate(_KEY_ESCAPES)


def format_field_value(value: MetricValue) -> str:
    # bool before int: bool is an int subclass
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return f"{value}i"
    if isinstance(value, float):
        return repr(value)
    escaped = str(value).replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


@dataclass
class Point:
    measurement: str
    fields: dict[str, MetricValue]
    tags: dict[str, str] = field(default_factory=dict)
    time_ms: int | None = None

    def to_line(self) -> str:
        if not self.fields:
            raise ValueError(f"Point '{self.measurement}' has no fields")

        head = escape_measurement(self.measurement)
        for key in sorted(self.tags):
            value = self.tags[key]
            if value == "":
                continue
            head += f",{escape_key(key)}={escape_key(value)}"

        field_set = ",".join(
            f"{escape_key(key)}={format_field_value(value)}" for key, value in self.fields.items()
        )
        line = f"{head} {field_set}"
        if self.time_ms is not None:
            line += f" {self.time_ms}"
        return line


def encode(points: list[Point]) -> str:
    return "\n".join(p.to_line() for p in points)
