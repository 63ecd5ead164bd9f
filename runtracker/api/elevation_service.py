from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

import requests
from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from runtracker.db.query import (
    FileInfo,
    QueryStringBuilder,
    fetch_file_infos,
    new_file_info_query,
    resolve_file_reference,
)
from runtracker.elevation import ElevationDataSource, ElevationUpdateCounts, update_elevation_data
from runtracker.errors import RunTrackerError


ELEVATION_ERRORS = (RunTrackerError, requests.RequestException, SQLAlchemyError, ValueError)


@dataclass
class ElevationUpdateReport:
    # None marks a file whose update failed and was rolled back
    files: dict[str, ElevationUpdateCounts | None] = field(default_factory=dict)
    missing: ElevationUpdateCounts | None = None


def update_file_elevation(
    session: Session,
    source: ElevationDataSource,
    file_info: FileInfo,
    overwrite: bool = False,
) -> ElevationUpdateCounts | None:
    """Update one file's elevation in its own transaction, logging instead of raising on failure."""
    try:
        counts = update_elevation_data(session, source, file_id=file_info.id, overwrite=overwrite)
        session.commit()
    except ELEVATION_ERRORS as exc:
        session.rollback()
        logger.error(f"Could not import elevation data from the API for FIT file '{file_info.uuid}'")
        logger.error(str(exc))
        return None
    logger.info(f"Successfully updated elevation for FIT file '{file_info.uuid}'")
    return counts


def update_referenced_file_elevation(
    session: Session,
    source: ElevationDataSource,
    reference: str,
    overwrite: bool = False,
) -> tuple[FileInfo, ElevationUpdateCounts]:
    """Update one referenced file, rolling back and re-raising provider or storage errors."""
    file_info = resolve_file_reference(session, reference)
    try:
        counts = update_elevation_data(session, source, file_id=file_info.id, overwrite=overwrite)
        session.commit()
    except Exception:
        session.rollback()
        raise
    logger.info(f"Successfully updated elevation for FIT file '{file_info.uuid}'")
    return file_info, counts


def fix_missing_elevation(session: Session, source: ElevationDataSource) -> ElevationUpdateCounts:
    logger.info("Attempting to update elevation data for all database records with missing values")
    try:
        counts = update_elevation_data(session, source, file_id=None, overwrite=False)
        session.commit()
    except Exception:
        session.rollback()
        raise
    return counts


def update_elevation(
    session: Session,
    source: ElevationDataSource,
    references: Iterable[str] = (),
    overwrite: bool = False,
    fix_missing: bool = False,
) -> ElevationUpdateReport:
    """Update elevation for the referenced files, then optionally for every missing value.

    Each file is handled in its own transaction so one failure does not discard provider
    calls already made for the others. The all-files pass is fatal on failure.
    """
    report = ElevationUpdateReport()
    for reference in references:
        file_info = resolve_file_reference(session, reference)
        report.files[file_info.uuid] = update_file_elevation(session, source, file_info, overwrite)

    if fix_missing:
        report.missing = fix_missing_elevation(session, source)
    return report


def list_files_missing_elevation(session: Session) -> list[FileInfo]:
    """Files with GPS points that still have no elevation, records or lap starts."""
    records = (
        QueryStringBuilder("select file_id from records")
        .and_where("lat is not null")
        .and_where("lon is not null")
        .and_where("elevation is null")
    )
    laps = (
        QueryStringBuilder("select file_id from laps")
        .and_where("start_lat is not null")
        .and_where("start_lon is not null")
        .and_where("start_elevation is null")
    )
    query = (
        new_file_info_query()
        .and_where(f"(id in ({records}) or id in ({laps}))")
        .order_by("created_at desc")
        .order_by("id")
    )
    return fetch_file_infos(session, query)
