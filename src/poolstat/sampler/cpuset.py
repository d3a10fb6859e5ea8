"""Expansion of compact cpuset strings such as ``"0,2-4,7"``."""

from __future__ import annotations

from ..errors import CpusetParseError


def _parse_cpu_id(token: str, cpuset: str) -> int:
    token = token.strip()
    if not (token.isascii() and token.isdigit()):
        raise CpusetParseError(token, f"cpuset {cpuset!r}")
    return int(token)


def expand_cpuset(cpuset: str) -> list[str]:
    """Expand *cpuset* into the ordered list of its processor ids.

    Tokens are comma separated and are either a single id or an inclusive
    ``low-high`` range. Order is preserved and duplicates are kept. Blank
    tokens contribute nothing, so ``""`` expands to ``[]``.

    Raises :class:`CpusetParseError` for a non-numeric token or a range
    whose low bound exceeds its high bound.
    """
    cpus: list[str] = []
    for token in cpuset.split(","):
        if not token.strip():
            continue
        bounds = token.split("-")
        if len(bounds) == 1:
            cpus.append(str(_parse_cpu_id(bounds[0], cpuset)))
        elif len(bounds) == 2:
            low = _parse_cpu_id(bounds[0], cpuset)
            high = _parse_cpu_id(bounds[1], cpuset)
            if low > high:
                raise CpusetParseError(token.strip(), f"cpuset {cpuset!r} (reversed range)")
            cpus.extend(str(cpu) for cpu in range(low, high + 1))
        else:
            raise CpusetParseError(token.strip(), f"cpuset {cpuset!r}")
    return cpus
