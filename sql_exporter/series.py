"""Data structures for labeled metric series."""
from dataclasses import dataclass
from typing import Dict, Mapping, NamedTuple, Tuple, Union

LabelPairs = Tuple[Tuple[str, str], ...]


def canonical_labels(labels: Mapping[str, str]) -> LabelPairs:
    """Return label pairs sorted by key, the canonical label-set form."""
    return tuple(sorted(labels.items()))


@dataclass(frozen=True)
class Scalar:
    """A numeric series value."""
    value: float


@dataclass(frozen=True)
class Invalid:
    """A value column that could not be read as a number."""
    reason: str


SeriesValue = Union[Scalar, Invalid]


class SeriesKey(NamedTuple):
    """Structural identity of a series: family plus sorted label pairs."""
    family: str
    labels: LabelPairs


@dataclass(frozen=True)
class Series:
    """The latest value of one (family, label set) pair."""
    family: str
    labels: LabelPairs
    value: SeriesValue

    @classmethod
    def build(cls, family: str, labels: Mapping[str, str], value: SeriesValue) -> "Series":
        return cls(family, canonical_labels(labels), value)

    @property
    def key(self) -> SeriesKey:
        return SeriesKey(self.family, self.labels)

    def label_dict(self) -> Dict[str, str]:
        return dict(self.labels)
