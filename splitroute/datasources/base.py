# splitroute/datasources/base.py

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Iterable, List, Sequence

from splitroute.models import Endpoint, ObservationSet
from splitroute.utils.logging import get_logger

log = get_logger(__name__)


class DataSource(ABC):
    """
    Something that yields resolved IPv4 endpoints for the target site.

    Implementations must filter out anything that is not a valid, resolved
    IPv4 address before yielding it.
    """

    name: str = "source"

    @abstractmethod
    def load(self) -> Iterable[Endpoint]:
        ...


def datasource_to_observations(ds: DataSource) -> ObservationSet:
    observations = ObservationSet(ds.load())
    log.info("%s: %d distinct addresses", ds.name, len(observations))
    return observations


def load_shards(sources: Sequence[DataSource]) -> List[ObservationSet]:
    """One ObservationSet per source, loaded in order."""
    return [datasource_to_observations(ds) for ds in sources]
