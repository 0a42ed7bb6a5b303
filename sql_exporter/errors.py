"""Exception hierarchy for the exporter."""
from typing import Optional


class ExporterError(Exception):
    """Base class for all exporter errors."""


class ConfigFailure(ExporterError):
    """Configuration could not be loaded or validated."""


class ConnectionOpenFailure(ExporterError):
    """The database engine could not be created or reached at startup."""


class PollFailure(ExporterError):
    """A single poll of one metric failed; the prior snapshot is kept."""

    kind = "poll"

    def __init__(self, metric: str, message: str):
        super().__init__(f"{metric}: {message}")
        self.metric = metric


class QueryFailure(PollFailure):
    kind = "query"


class SchemaFailure(PollFailure):
    kind = "schema"


class RowFailure(PollFailure):
    kind = "row"

    def __init__(self, metric: str, message: str, row_index: Optional[int] = None):
        super().__init__(metric, message)
        self.row_index = row_index


class CursorFailure(PollFailure):
    kind = "cursor"


class EncodeSkip(ExporterError):
    """A stored value cannot be rendered by an encoder."""
