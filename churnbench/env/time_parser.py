import re
from datetime import timedelta


class TimeParser:
    def __init__(self) -> None:
        self._units = {
            "ms": "milliseconds",
            "s": "seconds",
            "m": "minutes",
            "h": "hours",
            "d": "days",
        }

    def parse(self, time_amount: str | int | float) -> float:
        if isinstance(time_amount, (int, float)):
            return float(time_amount)

        matches = list(
            re.finditer(
                r"(?P<val>\d+(\.\d+)?)\s*(?P<unit>ms|[smhd]?)",
                time_amount.strip(),
                flags=re.I,
            )
        )

        if len(matches) < 1:
            raise ValueError(f"Invalid duration: {time_amount!r}")

        parts: dict[str, float] = {}
        for match in matches:
            unit = self._units.get(match.group("unit").lower(), "seconds")
            parts[unit] = parts.get(unit, 0.0) + float(match.group("val"))

        return float(timedelta(**parts).total_seconds())
