import re

from churnbench.errors import SetupFailure

_HEX_LITERAL = re.compile(r"^0x[0-9a-fA-F]{1,64}$")


def parse_object_id(value: str | None) -> str:
    """Normalize a hex object id literal to its full 32-byte form."""
    if value is None or not _HEX_LITERAL.match(value.strip()):
        raise SetupFailure(f"Invalid package ID format: {value!r}")

    return "0x" + value.strip()[2:].lower().rjust(64, "0")
