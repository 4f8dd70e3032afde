from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from types import MappingProxyType
from typing import Any, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


@dataclass(frozen=True)
class ManifestColumn:
    name: str
    declared_type: str = ""


@dataclass(frozen=True)
class TableManifest:
    """Authorization and location record for one remote table.

    - files: data file locations, never empty
    - row_filters: predicates, AND-combined in this order
    - column_masks: column name -> substitute expression
    - columns: declared columns; their order is the output order when masks apply
    - expires_at / fetched_at: aware UTC datetimes

    Instances are immutable; the cache replaces them wholesale.
    """

    table: str
    schema: str
    files: tuple[str, ...]
    expires_at: datetime
    fetched_at: datetime
    row_filters: tuple[str, ...] = ()
    column_masks: Mapping[str, str] = field(default_factory=dict)
    columns: tuple[ManifestColumn, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "files", tuple(self.files))
        object.__setattr__(self, "row_filters", tuple(self.row_filters))
        object.__setattr__(self, "columns", tuple(self.columns))
        object.__setattr__(
            self, "column_masks", MappingProxyType(dict(self.column_masks))
        )

    @property
    def has_policies(self) -> bool:
        return bool(self.row_filters) or bool(self.column_masks)

    @property
    def column_names(self) -> list[str]:
        return [c.name for c in self.columns]

    def is_fresh(self, now: datetime, safety_margin: timedelta) -> bool:
        return now + safety_margin < self.expires_at

    def as_dict(self) -> dict[str, Any]:
        return {
            "table": self.table,
            "schema": self.schema,
            "columns": [{"name": c.name, "type": c.declared_type} for c in self.columns],
            "files": list(self.files),
            "row_filters": list(self.row_filters),
            "column_masks": dict(self.column_masks),
            "expires_at": _iso(self.expires_at),
            "fetched_at": _iso(self.fetched_at),
        }


def _iso(value: datetime) -> str:
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


# ---------------------------------------------------------------------------
# Wire format
# ---------------------------------------------------------------------------


class ManifestColumnPayload(BaseModel):
    name: str
    type: str = ""

    model_config = ConfigDict(extra="ignore")

    @field_validator("type", mode="before")
    @classmethod
    def _type_or_empty(cls, v: Any) -> Any:
        return v if isinstance(v, str) else ""


class ManifestPayload(BaseModel):
    """
    Manifest API response body.

    Lenient by design of the protocol: list entries of the wrong type are
    dropped and optional fields fall back to defaults. Only a body that is
    not a JSON object, or a ``table``/``schema`` of the wrong type, fails
    validation.
    """

    table: str = ""
    schema_name: str = Field(default="main", alias="schema")
    expires_at: Optional[str] = None
    columns: List[ManifestColumnPayload] = Field(default_factory=list)
    files: List[str] = Field(default_factory=list)
    row_filters: List[str] = Field(default_factory=list)
    column_masks: dict[str, str] = Field(default_factory=dict)

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    @field_validator("table", mode="before")
    @classmethod
    def _table_default(cls, v: Any) -> Any:
        return "" if v is None else v

    @field_validator("schema_name", mode="before")
    @classmethod
    def _schema_default(cls, v: Any) -> Any:
        return "main" if v is None else v

    @field_validator("expires_at", mode="before")
    @classmethod
    def _expires_str(cls, v: Any) -> Any:
        return v if isinstance(v, str) else None

    @field_validator("columns", mode="before")
    @classmethod
    def _columns(cls, v: Any) -> Any:
        if not isinstance(v, list):
            return []
        return [
            c
            for c in v
            if isinstance(c, dict) and isinstance(c.get("name"), str) and c["name"]
        ]

    @field_validator("files", "row_filters", mode="before")
    @classmethod
    def _strings_only(cls, v: Any) -> Any:
        if not isinstance(v, list):
            return []
        return [item for item in v if isinstance(item, str)]

    @field_validator("column_masks", mode="before")
    @classmethod
    def _string_masks(cls, v: Any) -> Any:
        if not isinstance(v, dict):
            return {}
        return {k: expr for k, expr in v.items() if isinstance(expr, str)}
