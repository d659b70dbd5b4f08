"""Pydantic schemas for the database descriptor and its status."""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator, model_validator

from feedback_core.adapters.db.base import BackendKind

DEFAULT_MYSQL_PORT = 3306


class DatabaseDescriptor(BaseModel):
    """Connection parameters for the active backend.

    Persisted as ``{type, host, port, user, password, database}``; an
    embedded backend is simply ``{"type": "sqlite"}``.
    """

    type: BackendKind = Field(
        BackendKind.MYSQL,
        description="Backend kind: 'mysql' or 'sqlite' ('relational'/'embedded' accepted).",
    )
    host: str | None = Field(default=None, description="MySQL host name.")
    port: int = Field(default=DEFAULT_MYSQL_PORT, description="MySQL port.")
    user: str | None = Field(default=None, description="MySQL user.")
    password: str = Field(default="", description="MySQL password.")
    database: str | None = Field(default=None, description="MySQL schema name.")

    @field_validator("type", mode="before")
    @classmethod
    def _parse_kind(cls, value: object) -> BackendKind:
        if value is None:
            return BackendKind.MYSQL
        return BackendKind.parse(value)  # type: ignore[arg-type]

    @field_validator("password", mode="before")
    @classmethod
    def _password_default(cls, value: object) -> object:
        return "" if value is None else value

    @model_validator(mode="after")
    def _check_relational_fields(self) -> "DatabaseDescriptor":
        if self.type is BackendKind.MYSQL:
            missing = [
                name
                for name in ("host", "user", "database")
                if not getattr(self, name)
            ]
            if missing:
                raise ValueError(
                    f"mysql descriptor is missing: {', '.join(missing)}"
                )
            if "`" in (self.database or ""):
                raise ValueError("database name must not contain a backtick")
        return self

    def to_file_payload(self) -> dict[str, object]:
        """Serialize for the JSON descriptor file."""
        if self.type is BackendKind.SQLITE:
            return {"type": self.type.value}
        return self.model_dump(mode="json")

    def redacted(self) -> dict[str, object]:
        """Loggable view without the password."""
        payload = self.to_file_payload()
        payload.pop("password", None)
        return payload


class DatabaseStatus(BaseModel):
    """Snapshot of the connection lifecycle manager."""

    configured: bool = Field(..., description="Whether a descriptor is available.")
    initialized: bool = Field(..., description="Whether a backend is live.")
    backend: BackendKind | None = Field(
        default=None, description="Kind of the live backend, if any."
    )
    connection_limit: int | None = Field(
        default=None, description="Pool ceiling of the live backend."
    )
    generation: int = Field(
        0, description="Number of successful initializations in this process."
    )
