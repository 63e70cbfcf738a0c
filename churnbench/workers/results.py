import asyncio
import pathlib
from typing import Any, Dict

import orjson


async def write_summary(path: str | pathlib.Path, summary: Dict[str, Any]) -> pathlib.Path:
    output_path = pathlib.Path(path).absolute()
    loop = asyncio.get_running_loop()

    await loop.run_in_executor(
        None,
        _write,
        output_path,
        orjson.dumps(summary, option=orjson.OPT_INDENT_2),
    )

    return output_path


def _write(path: pathlib.Path, data: bytes):
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "wb") as summary_file:
        summary_file.write(data)
