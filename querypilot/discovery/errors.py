"""Discovery errors. All of them are recoverable inside an agent turn."""


class DiscoveryError(Exception):
    """Base exception for discovery failures the model can react to."""

    kind = "discovery_error"


class DataSourceNotFoundError(DiscoveryError):
    kind = "data_source_not_found"

    def __init__(self, data_source_id: int):
        self.data_source_id = data_source_id
        super().__init__(f"Data source {data_source_id} is not configured")


class UnknownTableError(DiscoveryError):
    kind = "unknown_table"

    def __init__(self, table: str, suggestions: list[str] | None = None):
        self.table = table
        self.suggestions = suggestions or []
        message = f"Table '{table}' does not exist in this data source"
        if self.suggestions:
            message += f". Did you mean: {', '.join(self.suggestions)}?"
        super().__init__(message)


class UnknownColumnError(DiscoveryError):
    kind = "unknown_column"

    def __init__(self, table: str, column: str):
        self.table = table
        self.column = column
        super().__init__(f"Column '{column}' does not exist on table '{table}'")


class NoPathFoundError(DiscoveryError):
    kind = "no_path_found"

    def __init__(self, start: str, end: str):
        self.start = start
        self.end = end
        super().__init__(
            f"No foreign-key path connects '{start}' and '{end}'; "
            "they may need an explicit join condition or are unrelated"
        )
