"""Shared fixtures: synthetic /proc/stat tables."""

from pathlib import Path

import pytest


def format_stat(rows: list[tuple[int, int]], extra_fields: int = 6) -> str:
    """Render a /proc/stat table from per-cpu ``(idle, busy)`` tick counts.

    Busy ticks are put in the ``user`` column; the remaining columns after
    idle are zero, so each row's total is ``idle + busy``.
    """
    tail = " ".join(["0"] * extra_fields)
    total_busy = sum(b for _, b in rows)
    total_idle = sum(i for i, _ in rows)
    lines = [f"cpu  {total_busy} 0 0 {total_idle} {tail}"]
    for cpu, (idle, busy) in enumerate(rows):
        lines.append(f"cpu{cpu} {busy} 0 0 {idle} {tail}")
    lines.append("intr 114930548 113199788 3 0 5 263 0 4")
    lines.append("ctxt 1990473")
    lines.append("btime 1062191376")
    lines.append("")
    return "\n".join(lines)


class ProcStat:
    """A writable fake proc root."""

    def __init__(self, root: Path) -> None:
        self.root = root
        self.path = root / "stat"

    def write(self, rows: list[tuple[int, int]]) -> None:
        self.path.write_text(format_stat(rows), encoding="ascii")

    def write_raw(self, text: str) -> None:
        self.path.write_text(text, encoding="ascii")


@pytest.fixture
def proc_stat(tmp_path: Path) -> ProcStat:
    return ProcStat(tmp_path)
