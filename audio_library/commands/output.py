from __future__ import annotations

import json
from typing import Any, Iterable, Optional


def emit_json(payload: Any) -> None:
    print(json.dumps(payload, indent=2, sort_keys=True, ensure_ascii=False, default=str))


def format_duration(seconds: Optional[float]) -> str:
    if not seconds:
        return "--:--"
    total = int(round(seconds))
    minutes, secs = divmod(total, 60)
    hours, minutes = divmod(minutes, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


def table(rows: Iterable[Iterable[Any]], headers: Iterable[str]) -> str:
    header = [str(h) for h in headers]
    body = [["" if cell is None else str(cell) for cell in row] for row in rows]
    widths = [len(h) for h in header]
    for row in body:
        for idx, cell in enumerate(row):
            widths[idx] = max(widths[idx], len(cell))
    lines = ["  ".join(h.ljust(widths[i]) for i, h in enumerate(header))]
    lines.append("  ".join("-" * w for w in widths))
    for row in body:
        lines.append("  ".join(cell.ljust(widths[i]) for i, cell in enumerate(row)))
    return "\n".join(lines)
