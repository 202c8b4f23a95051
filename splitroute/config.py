# splitroute/config.py

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional

from splitroute.errors import InvalidInputError, InvalidPrefixLengthError
from splitroute.processing.normalize import validate_prefix_len

DEFAULT_PREFIX_LEN = 16
PREFIX_ENV = "SPLITROUTE_PREFIX_LEN"
WORKERS_ENV = "SPLITROUTE_WORKERS"


@dataclass(frozen=True)
class AggregationConfig:
    """
    Settings consumed by the engine.

    prefix_len : block size used by the fixed-prefix key policy (0..32).
    workers    : >1 aggregates input shards on a thread pool.
    """

    prefix_len: int = DEFAULT_PREFIX_LEN
    workers: int = 1

    def __post_init__(self):
        validate_prefix_len(self.prefix_len)
        if isinstance(self.workers, bool) or not isinstance(self.workers, int) or self.workers < 1:
            raise InvalidInputError(f"workers must be a positive integer, got {self.workers!r}")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "AggregationConfig":
        env = os.environ if environ is None else environ
        kwargs = {}
        raw_prefix = env.get(PREFIX_ENV)
        if raw_prefix:
            try:
                kwargs["prefix_len"] = int(raw_prefix)
            except ValueError as e:
                raise InvalidPrefixLengthError(f"{PREFIX_ENV}={raw_prefix!r} is not an integer") from e
        raw_workers = env.get(WORKERS_ENV)
        if raw_workers:
            try:
                kwargs["workers"] = int(raw_workers)
            except ValueError as e:
                raise InvalidInputError(f"{WORKERS_ENV}={raw_workers!r} is not an integer") from e
        return cls(**kwargs)
