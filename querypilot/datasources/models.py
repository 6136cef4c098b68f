"""Data source records."""

from typing import Any, Literal

from pydantic import BaseModel, Field, SecretStr

DataSourceType = Literal["postgresql", "mysql", "elasticsearch"]

SEARCH_ENGINE_TYPES = frozenset({"elasticsearch"})


def is_search_engine(db_type: str) -> bool:
    return db_type.lower() in SEARCH_ENGINE_TYPES


def query_language(db_type: str) -> str:
    """Fence label and name of the language generated for ``db_type``."""
    return "lucene" if is_search_engine(db_type) else "sql"


class DataSourceRecord(BaseModel):
    """Connection metadata for one configured data source."""

    id: int = Field(..., description="Data source identifier")
    name: str = Field(..., description="Human-readable name")
    type: DataSourceType = Field(..., description="Engine type")
    url: SecretStr = Field(..., description="Connection URL including credentials")
    description: str | None = None
    schema_name: str | None = Field(None, description="Schema to introspect (driver default when unset)")
    options: dict[str, Any] = Field(
        default_factory=dict, description="Driver-specific keyword arguments"
    )

    @property
    def is_search_engine(self) -> bool:
        return is_search_engine(self.type)
