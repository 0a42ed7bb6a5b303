"""Render a store snapshot as Prometheus exposition text or JSON."""
import json
import logging
import math
from typing import Any, Dict, List, Mapping, Optional, Union

from sql_exporter.config import DEFAULT_HELP
from sql_exporter.errors import EncodeSkip
from sql_exporter.series import Invalid, Series
from sql_exporter.store import Snapshot

logger = logging.getLogger(__name__)

PROMETHEUS_CONTENT_TYPE = "text/plain; version=0.0.4; charset=utf-8"
JSON_CONTENT_TYPE = "application/json"


def escape_label_value(value: str) -> str:
    return value.replace("\\", "\\\\").replace("\n", "\\n").replace('"', '\\"')


def escape_help(text: str) -> str:
    return text.replace("\\", "\\\\").replace("\n", "\\n")


def format_float(value: float) -> str:
    """Shortest general representation; integral values drop the fraction."""
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    text = repr(value)
    if text.endswith(".0"):
        return text[:-2]
    return text


def series_number(series: Series) -> float:
    """Return the numeric value of ``series`` or raise EncodeSkip."""
    if isinstance(series.value, Invalid):
        raise EncodeSkip(f"non-numeric value for metric {series.family}{dict(series.labels)}: {series.value.reason}")
    return series.value.value


def _sample_line(series: Series) -> str:
    value = format_float(series_number(series))
    if not series.labels:
        return f"{series.family} {value}"
    labels = ",".join(f'{k}="{escape_label_value(v)}"' for k, v in series.labels)
    return f"{series.family}{{{labels}}} {value}"


def encode_prometheus(snapshot: Snapshot, help_texts: Optional[Mapping[str, str]] = None) -> str:
    """
    Encode a snapshot in the Prometheus text exposition format.

    Every family gets exactly one HELP and one TYPE line, followed by its
    samples in canonical label order. Samples that cannot be rendered are
    skipped with a warning; a family with no renderable samples is omitted.
    """
    help_texts = help_texts or {}
    lines: List[str] = []

    for family, series_list in snapshot.items():
        samples = []
        for series in series_list:
            try:
                samples.append(_sample_line(series))
            except EncodeSkip as e:
                logger.warning(f"Skipping sample: {e}")

        if not samples:
            continue

        lines.append(f"# HELP {family} {escape_help(help_texts.get(family, DEFAULT_HELP))}")
        lines.append(f"# TYPE {family} gauge")
        lines.extend(samples)

    return "".join(f"{line}\n" for line in lines)


def _json_number(value: float) -> Union[int, float]:
    if value.is_integer() and abs(value) < 2 ** 53:
        return int(value)
    return value


def _json_value(series: Series) -> Union[int, float]:
    value = series_number(series)
    if not math.isfinite(value):
        raise EncodeSkip(f"value {value} of metric {series.family} has no JSON representation")
    return _json_number(value)


def snapshot_to_document(snapshot: Snapshot) -> Dict[str, Any]:
    """
    Build the JSON document for a snapshot.

    A family holding a single unlabeled series maps to its bare number;
    any other family maps to a list of ``{"value", "labels"}`` objects.
    """
    document: Dict[str, Any] = {}

    for family, series_list in snapshot.items():
        if len(series_list) == 1 and not series_list[0].labels:
            try:
                document[family] = _json_value(series_list[0])
            except EncodeSkip as e:
                logger.warning(f"Skipping sample: {e}")
            continue

        entries = []
        for series in series_list:
            try:
                entries.append({"value": _json_value(series), "labels": series.label_dict()})
            except EncodeSkip as e:
                logger.warning(f"Skipping sample: {e}")
        if entries:
            document[family] = entries

    return document


def encode_json(snapshot: Snapshot) -> str:
    return json.dumps(snapshot_to_document(snapshot), allow_nan=False)
