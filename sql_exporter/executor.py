"""Translate one query execution into labeled series."""
import logging
import re
from decimal import Decimal
from typing import Any, List, Sequence

from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from sql_exporter.config import MetricDefinition
from sql_exporter.errors import CursorFailure, QueryFailure, RowFailure, SchemaFailure
from sql_exporter.series import Invalid, Scalar, Series, SeriesValue

logger = logging.getLogger(__name__)

VALUE_COLUMN = "value"
_LABEL_NAME_RE = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*$")

_BINARY_TYPES = (bytes, bytearray, memoryview)


def stringify_label(raw: Any) -> str:
    """Render a column value as a label value.

    Binary values decode as UTF-8 and ``NULL`` becomes ``"null"``.
    """
    if raw is None:
        return "null"
    if isinstance(raw, _BINARY_TYPES):
        return bytes(raw).decode("utf-8")
    if isinstance(raw, str):
        return raw
    return str(raw)


def to_series_value(raw: Any) -> SeriesValue:
    """Classify the ``value`` column content as a number or an invalid value."""
    if raw is None:
        return Invalid("value is NULL")
    if isinstance(raw, (bool, int, float, Decimal)):
        return Scalar(float(raw))
    if isinstance(raw, _BINARY_TYPES):
        try:
            raw = bytes(raw).decode("utf-8")
        except UnicodeDecodeError:
            return Invalid("binary value is not valid UTF-8")
    if isinstance(raw, str):
        try:
            return Scalar(float(raw.strip()))
        except ValueError:
            return Invalid(f"non-numeric value {raw!r}")
    return Invalid(f"unsupported value type {type(raw).__name__}")


class QueryExecutor:
    """Runs metric queries against a SQLAlchemy engine."""

    def __init__(self, engine: Engine):
        self.engine = engine

    def poll(self, metric: MetricDefinition) -> List[Series]:
        """
        Execute ``metric.query`` and convert every row into a Series.

        Rows are buffered; nothing is returned until the result is exhausted.
        Unless ``metric.commit_partial`` is set, a bad row or a cursor error
        aborts the whole poll so the caller keeps the previous snapshot.

        Raises:
            QueryFailure: connecting or executing failed.
            SchemaFailure: the result has no ``value`` column.
            RowFailure: a row could not be converted.
            CursorFailure: fetching rows failed part way through.
        """
        try:
            conn = self.engine.connect()
        except SQLAlchemyError as e:
            raise QueryFailure(metric.name, f"error connecting to database: {e}") from e

        with conn:
            try:
                result = conn.execute(text(metric.query))
            except SQLAlchemyError as e:
                raise QueryFailure(metric.name, f"error executing query: {e}") from e

            if not result.returns_rows:
                raise SchemaFailure(metric.name, "query did not return a result set")

            columns = list(result.keys())
            if VALUE_COLUMN not in columns:
                result.close()
                raise SchemaFailure(
                    metric.name,
                    f"query must include a '{VALUE_COLUMN}' column, got {columns}",
                )

            self._check_label_columns(metric, columns)
            return self._collect(metric, columns, result)

    def _check_label_columns(self, metric: MetricDefinition, columns: Sequence[str]):
        """Warn about label columns that will not render as distinct, valid labels."""
        seen = set()
        for column in columns:
            if column == VALUE_COLUMN:
                continue
            if column in seen:
                logger.warning(
                    f"Metric '{metric.name}': column '{column}' appears more than once, "
                    f"the last one wins as label value"
                )
            seen.add(column)
            if not _LABEL_NAME_RE.match(column):
                logger.warning(
                    f"Metric '{metric.name}': column '{column}' is not a valid Prometheus label name; "
                    f"alias it in the query"
                )

    def _collect(self, metric: MetricDefinition, columns: Sequence[str], result) -> List[Series]:
        value_idx = columns.index(VALUE_COLUMN)
        series: List[Series] = []
        rows = iter(result)
        index = 0

        while True:
            try:
                row = next(rows)
            except StopIteration:
                break
            except SQLAlchemyError as e:
                failure = CursorFailure(metric.name, f"error iterating rows after row {index}: {e}")
                if not metric.commit_partial:
                    raise failure from e
                logger.error(f"{failure}; keeping {len(series)} rows read so far")
                break

            try:
                series.append(self._row_to_series(metric, columns, value_idx, row, index))
            except RowFailure as failure:
                if not metric.commit_partial:
                    raise
                logger.warning(f"Skipping row: {failure}")
            index += 1

        return series

    def _row_to_series(
        self,
        metric: MetricDefinition,
        columns: Sequence[str],
        value_idx: int,
        row: Sequence[Any],
        index: int,
    ) -> Series:
        labels = {}
        for i, column in enumerate(columns):
            if i == value_idx:
                continue
            try:
                labels[column] = stringify_label(row[i])
            except (UnicodeDecodeError, TypeError, ValueError) as e:
                raise RowFailure(
                    metric.name, f"cannot decode column '{column}' of row {index}: {e}", row_index=index
                ) from e

        return Series.build(metric.name, labels, to_series_value(row[value_idx]))
