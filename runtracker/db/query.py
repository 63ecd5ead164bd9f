from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, bindparam, text
from sqlalchemy.orm import Session

from runtracker.errors import AmbiguousFileReferenceError, FileDoesNotExistError


LAST_FILE_REFERENCE = ":last"


class QueryStringBuilder:
    """Chainable builder for plain SQL select statements.

    Clauses are emitted verbatim; values are expected as named parameters
    bound alongside the rendered string.
    """

    def __init__(self, base_query: str):
        self.base_query = base_query
        self.where_clauses: list[str] = []
        self.order_by_clauses: list[str] = []
        self.limit_value: int | None = None

    def and_where(self, clause: str) -> QueryStringBuilder:
        self.where_clauses.append(clause)
        return self

    def order_by(self, clause: str) -> QueryStringBuilder:
        self.order_by_clauses.append(clause)
        return self

    def limit(self, value: int) -> QueryStringBuilder:
        self.limit_value = value
        return self

    def __str__(self) -> str:
        query = self.base_query
        if self.where_clauses:
            query += " where " + " and ".join(self.where_clauses)
        if self.order_by_clauses:
            query += " order by " + ", ".join(self.order_by_clauses)
        if self.limit_value is not None:
            query += f" limit {self.limit_value}"
        return query


@dataclass
class FileInfo:
    id: int
    manufacturer: str | None
    product: str | None
    serial_number: int | None
    time_created: datetime | None
    uuid: str

    @classmethod
    def from_row(cls, row: Any) -> FileInfo:
        return cls(
            id=row.id,
            manufacturer=row.manufacturer,
            product=row.product,
            serial_number=row.serial_number,
            time_created=row.created_at,
            uuid=row.fingerprint,
        )

    @property
    def device_name(self) -> str:
        return f"{self.manufacturer}-{self.product}-{self.serial_number}"

    def as_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "uuid": self.uuid,
            "manufacturer": self.manufacturer,
            "product": self.product,
            "serial_number": self.serial_number,
            "time_created": self.time_created.isoformat() if self.time_created else None,
        }


def new_file_info_query() -> QueryStringBuilder:
    return QueryStringBuilder(
        "select id, manufacturer, product, serial_number, created_at, fingerprint from files"
    )


def fetch_file_infos(session: Session, query: QueryStringBuilder, **params: Any) -> list[FileInfo]:
    statement = text(str(query))
    date_params = [
        bindparam(name, type_=DateTime) for name, value in params.items() if isinstance(value, datetime)
    ]
    if date_params:
        statement = statement.bindparams(*date_params)
    rows = session.execute(statement.columns(created_at=DateTime), params).all()
    return [FileInfo.from_row(row) for row in rows]


def find_file_by_uuid(session: Session, uuid: str) -> FileInfo | None:
    query = new_file_info_query().and_where("fingerprint = :uuid")
    matches = fetch_file_infos(session, query, uuid=uuid)
    return matches[0] if matches else None


def find_file_by_id(session: Session, file_id: int) -> FileInfo | None:
    query = new_file_info_query().and_where("id = :file_id")
    matches = fetch_file_infos(session, query, file_id=file_id)
    return matches[0] if matches else None


def resolve_file_reference(session: Session, reference: str) -> FileInfo:
    """Resolve a full UUID, a unique UUID prefix or ':last' to a stored file."""
    if reference == LAST_FILE_REFERENCE:
        query = new_file_info_query().order_by("created_at desc").order_by("id desc").limit(1)
        matches = fetch_file_infos(session, query)
    else:
        query = new_file_info_query().and_where("fingerprint like :prefix").order_by("id")
        matches = fetch_file_infos(session, query, prefix=f"{reference}%")
        exact = [m for m in matches if m.uuid == reference]
        if exact:
            matches = exact

    if not matches:
        raise FileDoesNotExistError(reference)
    if len(matches) > 1:
        raise AmbiguousFileReferenceError(reference, [m.uuid for m in matches])
    return matches[0]


def list_file_infos(
    session: Session,
    since: datetime | None = None,
    until: datetime | None = None,
    reverse: bool = False,
    number: int | None = None,
) -> list[FileInfo]:
    query = new_file_info_query()
    params: dict[str, Any] = {}
    if since is not None:
        query.and_where("created_at >= :since")
        params["since"] = since
    if until is not None:
        query.and_where("created_at < :until")
        params["until"] = until
    # newest first unless reversed
    query.order_by("created_at asc" if reverse else "created_at desc").order_by("id")
    if number is not None:
        query.limit(number)
    return fetch_file_infos(session, query, **params)
