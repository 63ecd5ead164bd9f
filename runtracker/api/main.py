from __future__ import annotations

from dataclasses import asdict
from datetime import date, datetime, time
from functools import lru_cache
from typing import Iterator

import requests
from fastapi import Depends, FastAPI, HTTPException, Query, Request, Response
from fitparse import FitParseError
from loguru import logger
from pydantic import BaseModel
from sqlalchemy.orm import Session

from runtracker.api.elevation_service import (
    fix_missing_elevation,
    list_files_missing_elevation,
    update_elevation,
    update_file_elevation,
    update_referenced_file_elevation,
)
from runtracker.api.file_service import list_files_with_summaries, render_route_image
from runtracker.api.import_service import import_bytes
from runtracker.config import Config, load_config
from runtracker.db.session import SessionLocal, get_engine
from runtracker.errors import (
    AmbiguousFileReferenceError,
    DuplicateFileError,
    EmptyRouteError,
    FileDoesNotExistError,
    FileIdentityMissingError,
    InvalidConfigurationValue,
    ServiceRequestError,
    UnknownServiceHandler,
)
from runtracker.fit_decoder import FitDecoder, decode_fit_bytes
from runtracker.logger import setup_logger

app = FastAPI(title="Garmin Run Tracker API", version="0.1.0")

DATE_PATTERN = r"^\d{4}-\d{2}-\d{2}$"


@lru_cache(maxsize=1)
def get_config() -> Config:
    config = load_config()
    setup_logger(config.log_level)
    return config


def get_session() -> Iterator[Session]:
    with SessionLocal(bind=get_engine()) as session:
        yield session


def get_decoder() -> FitDecoder:
    return decode_fit_bytes


async def read_body(request: Request) -> bytes:
    return await request.body()


def _http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, DuplicateFileError):
        return HTTPException(status_code=409, detail=str(exc))
    if isinstance(exc, FileDoesNotExistError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, (FileIdentityMissingError, AmbiguousFileReferenceError, EmptyRouteError)):
        return HTTPException(status_code=422, detail=str(exc))
    if isinstance(exc, FitParseError):
        return HTTPException(status_code=422, detail=f"Invalid FIT file: {exc}")
    if isinstance(exc, (UnknownServiceHandler, InvalidConfigurationValue)):
        return HTTPException(status_code=503, detail=str(exc))
    if isinstance(exc, (ServiceRequestError, requests.RequestException)):
        return HTTPException(status_code=502, detail=str(exc))
    logger.exception(exc)
    return HTTPException(status_code=500, detail=f"Unexpected error: {exc}")


def _day_start(value: str | None) -> datetime | None:
    if value is None:
        return None
    return datetime.combine(date.fromisoformat(value), time.min)


@app.get("/")
def root() -> dict[str, str]:
    return {"service": "garmin-run-tracker-api", "status": "ok"}


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "healthy"}


@app.get("/files")
def files(
    since: str | None = Query(default=None, pattern=DATE_PATTERN),
    until: str | None = Query(default=None, pattern=DATE_PATTERN),
    reverse: bool = False,
    number: int | None = Query(default=None, ge=1),
    session: Session = Depends(get_session),
) -> dict:
    try:
        filters = {"since": _day_start(since), "until": _day_start(until)}
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=f"Invalid date format: {exc}") from exc
    items = list_files_with_summaries(session, reverse=reverse, number=number, **filters)
    return {"files": items}


@app.get("/files/missing-elevation")
def files_missing_elevation(session: Session = Depends(get_session)) -> dict:
    return {"files": [f.as_dict() for f in list_files_missing_elevation(session)]}


@app.post("/files/import", status_code=201)
def files_import(
    raw: bytes = Depends(read_body),
    elevation: bool = True,
    session: Session = Depends(get_session),
    config: Config = Depends(get_config),
    decoder: FitDecoder = Depends(get_decoder),
) -> dict:
    try:
        file_info = import_bytes(session, raw, decoder=decoder)
    except Exception as exc:
        raise _http_error(exc) from exc

    counts = None
    if elevation and "elevation" in config.services:
        try:
            source = config.get_elevation_handler()
        except (UnknownServiceHandler, InvalidConfigurationValue) as exc:
            logger.error(f"Could not initialize the elevation service {exc}")
        else:
            counts = update_file_elevation(session, source, file_info, overwrite=True)
    return {"file": file_info.as_dict(), "elevation": asdict(counts) if counts is not None else None}


@app.post("/files/{reference}/elevation")
def file_elevation(
    reference: str,
    overwrite: bool = False,
    session: Session = Depends(get_session),
    config: Config = Depends(get_config),
) -> dict:
    try:
        source = config.get_elevation_handler()
        file_info, counts = update_referenced_file_elevation(session, source, reference, overwrite=overwrite)
    except Exception as exc:
        raise _http_error(exc) from exc
    return {"uuid": file_info.uuid, "elevation": asdict(counts)}


@app.post("/elevation/fix-missing")
def elevation_fix_missing(
    session: Session = Depends(get_session),
    config: Config = Depends(get_config),
) -> dict:
    try:
        counts = fix_missing_elevation(session, config.get_elevation_handler())
    except Exception as exc:
        raise _http_error(exc) from exc
    return {"elevation": asdict(counts)}


@app.get("/files/{reference}/route-image")
def file_route_image(
    reference: str,
    session: Session = Depends(get_session),
    config: Config = Depends(get_config),
) -> Response:
    try:
        drawer = config.get_route_visualization_handler()
        image = render_route_image(session, drawer, reference)
    except Exception as exc:
        raise _http_error(exc) from exc
    return Response(content=image, media_type=f"image/{drawer.image_format}")


class ElevationUpdateRequest(BaseModel):
    references: list[str] = []
    overwrite: bool = False
    fix_missing: bool = False


@app.post("/elevation/update")
def elevation_update(
    payload: ElevationUpdateRequest,
    session: Session = Depends(get_session),
    config: Config = Depends(get_config),
) -> dict:
    try:
        source = config.get_elevation_handler()
        report = update_elevation(
            session,
            source,
            payload.references,
            overwrite=payload.overwrite,
            fix_missing=payload.fix_missing,
        )
    except Exception as exc:
        raise _http_error(exc) from exc
    return {
        "files": {uuid: asdict(c) if c is not None else None for uuid, c in report.files.items()},
        "missing": asdict(report.missing) if report.missing is not None else None,
    }
