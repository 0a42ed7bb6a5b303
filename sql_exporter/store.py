"""Thread-safe holder of the latest value of every series."""
import logging
import threading
import time
from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, Iterable, Iterator, List, Mapping, Optional, Tuple

from sql_exporter.series import Series, SeriesKey

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FamilyState:
    """Series of one family as committed by its last successful poll."""
    series: Tuple[Series, ...]
    updated_at: float


class Snapshot:
    """
    Immutable view of the store at one instant.

    Families iterate in lexicographic order and the series of each family
    are ordered by their sorted label pairs, so encoders can walk a snapshot
    without sorting it again.
    """

    def __init__(self, families: Optional[Mapping[str, FamilyState]] = None):
        self._families = MappingProxyType(dict(families or {}))

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._families))

    def __len__(self) -> int:
        return len(self._families)

    def __contains__(self, family: object) -> bool:
        return family in self._families

    def series(self, family: str) -> Tuple[Series, ...]:
        state = self._families.get(family)
        return state.series if state else ()

    def updated_at(self, family: str) -> Optional[float]:
        state = self._families.get(family)
        return state.updated_at if state else None

    def items(self) -> Iterator[Tuple[str, Tuple[Series, ...]]]:
        for family in self:
            yield family, self._families[family].series

    def to_dict(self) -> Dict[str, Tuple[Series, ...]]:
        return dict(self.items())


class MetricStore:
    """
    Concurrent snapshot of the latest value per series.

    Writers serialize on a single lock and publish a new immutable
    ``Snapshot``; readers take whatever snapshot is current. A reader
    therefore sees either all or none of a family's replacement.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._snapshot = Snapshot()

    def replace_family(self, family: str, series: Iterable[Series]) -> int:
        """Drop every series stored for ``family`` and insert ``series``.

        Returns the number of distinct series stored.
        """
        unique: Dict[SeriesKey, Series] = {}
        received = 0
        for item in series:
            if item.family != family:
                raise ValueError(f"Series of family '{item.family}' cannot be stored under '{family}'")
            unique[item.key] = item
            received += 1

        if received != len(unique):
            logger.warning(
                f"Metric '{family}': {received - len(unique)} rows collided on an existing "
                f"label set and were overwritten by later rows"
            )

        ordered = tuple(unique[key] for key in sorted(unique))
        state = FamilyState(series=ordered, updated_at=time.time())

        with self._lock:
            families = dict(self._snapshot._families)
            families[family] = state
            self._snapshot = Snapshot(families)

        return len(ordered)

    def snapshot(self) -> Snapshot:
        """Return the current immutable snapshot."""
        with self._lock:
            return self._snapshot

    def families(self) -> List[str]:
        return list(self.snapshot())

    def __len__(self) -> int:
        return sum(len(series) for _, series in self.snapshot().items())
