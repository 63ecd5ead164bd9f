from __future__ import annotations

import shutil
from enum import Enum
from pathlib import Path
from typing import Iterable

from fitparse import FitParseError
from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from runtracker.api.elevation_service import fix_missing_elevation, update_file_elevation
from runtracker.config import Config
from runtracker.db.config import devices_dir
from runtracker.db.query import FileInfo
from runtracker.elevation import ElevationDataSource
from runtracker.errors import DuplicateFileError, RunTrackerError
from runtracker.fit_decoder import FitDecoder, decode_fit_bytes
from runtracker.fit_import import import_fit_data


class ErrorBehavior(str, Enum):
    """What a batch import does when a single file fails."""

    ERROR = "error"
    WARN = "warn"
    SUPPRESS = "suppress"


IMPORT_ERRORS = (RunTrackerError, FitParseError, SQLAlchemyError, OSError)


def _report(behavior: ErrorBehavior, exc: Exception) -> bool:
    # returns True when the error must be re-raised
    if behavior is ErrorBehavior.ERROR:
        logger.error(str(exc))
        return True
    if behavior is ErrorBehavior.WARN:
        logger.warning(str(exc))
    else:
        logger.trace(str(exc))
    return False


def persist_fit_file(path: Path, file_info: FileInfo) -> Path:
    """Copy an imported file into the devices directory, one sub-directory per device."""
    dest_dir = devices_dir() / file_info.device_name
    dest_dir.mkdir(parents=True, exist_ok=True)
    dest = dest_dir / (path.name or f"{file_info.uuid}.fit")
    shutil.copyfile(path, dest)
    logger.info(f"Successfully copied FIT file {path} to {dest}")
    return dest


def import_bytes(session: Session, raw: bytes, decoder: FitDecoder = decode_fit_bytes) -> FileInfo:
    """Import FIT content in its own transaction, rolled back on any failure."""
    try:
        file_info = import_fit_data(session, raw, decoder=decoder)
        session.commit()
    except Exception:
        session.rollback()
        raise
    return file_info


def import_file(
    session: Session,
    path: Path | str,
    persist_file: bool = True,
    decoder: FitDecoder = decode_fit_bytes,
) -> FileInfo:
    """Import one file in its own transaction, then optionally keep a copy of it.

    A failed copy is logged and does not undo the import.
    """
    path = Path(path)
    logger.trace(f"Importing FIT file: {path}")
    file_info = import_bytes(session, path.read_bytes(), decoder=decoder)
    logger.info(f"Successfully imported FIT file: {path} (UUID={file_info.uuid})")

    if persist_file:
        try:
            persist_fit_file(path, file_info)
        except OSError as exc:
            # the import is already committed, only the copy is lost
            logger.error(f"Could not copy FIT file {path} (UUID={file_info.uuid}): {exc}")
    return file_info


def _scan_directory(path: Path, recursive: bool) -> list[Path]:
    return sorted(
        child
        for child in path.iterdir()
        if (child.is_dir() and recursive) or (child.is_file() and child.suffix.lower() == ".fit")
    )


def import_files(
    session: Session,
    paths: Iterable[Path | str],
    recursive: bool = False,
    duplicate_behavior: ErrorBehavior = ErrorBehavior.ERROR,
    error_behavior: ErrorBehavior = ErrorBehavior.ERROR,
    persist_file: bool = True,
    decoder: FitDecoder = decode_fit_bytes,
) -> list[FileInfo]:
    imported: list[FileInfo] = []
    for path in map(Path, paths):
        if not path.exists():
            logger.warning(f"Path does not exist: {path}")
            continue

        if path.is_dir():
            logger.debug(f"Scanning contents of: {path} for FIT files")
            imported.extend(
                import_files(
                    session,
                    _scan_directory(path, recursive),
                    recursive=recursive,
                    duplicate_behavior=ErrorBehavior.SUPPRESS,
                    error_behavior=error_behavior,
                    persist_file=persist_file,
                    decoder=decoder,
                )
            )
            continue

        try:
            imported.append(import_file(session, path, persist_file=persist_file, decoder=decoder))
        except DuplicateFileError as exc:
            if _report(duplicate_behavior, exc):
                raise
        except IMPORT_ERRORS as exc:
            if _report(error_behavior, exc):
                raise
    return imported


def run_import(
    session: Session,
    config: Config,
    paths: Iterable[Path | str] = (),
    recursive: bool = False,
    persist_file: bool = True,
    skip_config_paths: bool = False,
    with_elevation: bool = True,
    fix_missing: bool = False,
    elevation_source: ElevationDataSource | None = None,
    decoder: FitDecoder = decode_fit_bytes,
) -> list[FileInfo]:
    """Import files from the given and configured paths, then add elevation data to them.

    Elevation is fetched with ``overwrite`` since the service is assumed to be more accurate
    than the device. A failed elevation update is logged and never undoes the import.
    """
    if with_elevation and elevation_source is None:
        try:
            elevation_source = config.get_elevation_handler()
        except RunTrackerError as exc:
            if fix_missing:
                raise
            logger.error(f"Could not initialize the elevation service {exc}")

    import_paths = [] if skip_config_paths else [Path(p) for p in config.import_paths]
    import_paths.extend(Path(p) for p in paths)
    if not import_paths and not fix_missing:
        raise RunTrackerError("No import paths provided")

    # a duplicate is only fatal when a single path was requested
    duplicate_behavior = ErrorBehavior.ERROR if len(import_paths) == 1 else ErrorBehavior.WARN
    imported = import_files(
        session,
        import_paths,
        recursive=recursive,
        duplicate_behavior=duplicate_behavior,
        persist_file=persist_file,
        decoder=decoder,
    )

    if with_elevation and elevation_source is not None:
        for file_info in imported:
            update_file_elevation(session, elevation_source, file_info, overwrite=True)
        if fix_missing:
            fix_missing_elevation(session, elevation_source)
    return imported
