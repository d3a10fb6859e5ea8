"""Exception hierarchy for poolstat."""

from __future__ import annotations


class PoolStatError(Exception):
    """Base class for all poolstat errors."""


class SourceUnavailableError(PoolStatError):
    """The CPU counter source could not be read."""

    def __init__(self, path: str, cause: OSError) -> None:
        super().__init__(f"cannot read counter source {path}: {cause}")
        self.path = path
        self.cause = cause


class MalformedCounterRowError(PoolStatError):
    """The counter table lacks the rows or fields a sample needs."""


class MalformedTokenError(PoolStatError):
    """A numeric token could not be parsed as a non-negative integer."""

    def __init__(self, token: str, context: str = "") -> None:
        msg = f"malformed token {token!r}"
        if context:
            msg = f"{msg} in {context}"
        super().__init__(msg)
        self.token = token
        self.context = context


class CpusetParseError(MalformedTokenError):
    """A cpuset string contains a bad token or a reversed range."""


class PoolCpuOutOfRangeError(PoolStatError):
    """A pool references a processor outside the discovered topology."""

    def __init__(self, pool_name: str, cpu_id: int, cpu_count: int) -> None:
        super().__init__(
            f"pool {pool_name!r} references cpu {cpu_id}, "
            f"but only cpus 0-{cpu_count - 1} exist"
        )
        self.pool_name = pool_name
        self.cpu_id = cpu_id
        self.cpu_count = cpu_count
