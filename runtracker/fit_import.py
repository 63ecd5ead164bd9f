from __future__ import annotations

from datetime import datetime
from typing import Any

from loguru import logger
from sqlalchemy.orm import Session

from runtracker.db.models import File, Lap, Record
from runtracker.db.query import FileInfo, find_file_by_uuid
from runtracker.errors import DuplicateFileError, FileIdentityMissingError
from runtracker.fingerprint import generate_uuid
from runtracker.fit_decoder import DecodedMessage, FitDecoder, decode_fit_bytes


def _as_text(value: Any) -> str | None:
    if value is None:
        return None
    return str(value)


def _apply_file_id(row: File, message: DecodedMessage) -> None:
    row.file_type = _as_text(message.get("type"))
    row.manufacturer = _as_text(message.get("manufacturer"))
    row.product = _as_text(message.get("garmin_product", "product"))
    row.serial_number = message.get("serial_number")
    row.created_at = message.get("time_created")


def _record_from_message(file_id: int, message: DecodedMessage) -> Record:
    return Record(
        file_id=file_id,
        lat=message.get("position_lat"),
        lon=message.get("position_long"),
        speed=message.get("enhanced_speed", "speed"),
        distance=message.get("distance"),
        heart_rate=message.get("heart_rate"),
        timestamp=message.get("timestamp"),
    )


def _lap_from_message(file_id: int, message: DecodedMessage) -> Lap:
    return Lap(
        file_id=file_id,
        start_lat=message.get("start_position_lat"),
        start_lon=message.get("start_position_long"),
        end_lat=message.get("end_position_lat"),
        end_lon=message.get("end_position_long"),
        avg_speed=message.get("enhanced_avg_speed", "avg_speed"),
        avg_heart_rate=message.get("avg_heart_rate"),
        total_calories=message.get("total_calories"),
        total_distance=message.get("total_distance"),
        start_time=message.get("start_time"),
        end_time=message.get("timestamp"),
    )


def import_fit_data(session: Session, raw: bytes, decoder: FitDecoder = decode_fit_bytes) -> FileInfo:
    """Persist one FIT file's identity, records and laps inside the caller's transaction.

    The caller owns the transaction: nothing is committed or rolled back here. On any
    raised error the session holds partial rows and must be rolled back.
    """
    uuid = generate_uuid(raw)
    if find_file_by_uuid(session, uuid) is not None:
        raise DuplicateFileError(uuid)

    messages = decoder(raw)

    file_row: File | None = None
    record_count = 0
    lap_count = 0
    disregarded = 0
    for message in messages:
        if message.kind == "file_id":
            if file_row is None:
                file_row = File(fingerprint=uuid, imported_at=datetime.utcnow())
                _apply_file_id(file_row, message)
                session.add(file_row)
                session.flush()
                logger.debug(f"Inserted file_id row {file_row.id} for {uuid}")
            else:
                _apply_file_id(file_row, message)
                session.flush()
        elif message.kind in ("record", "lap"):
            if file_row is None:
                logger.warning(f"Disregarding {message.kind} message that precedes the file_id message")
                disregarded += 1
                continue
            if message.kind == "record":
                session.add(_record_from_message(file_row.id, message))
                record_count += 1
            else:
                session.add(_lap_from_message(file_row.id, message))
                lap_count += 1
        else:
            logger.trace(f"Skipping {message.kind} message")

    if file_row is None:
        raise FileIdentityMissingError(uuid)

    session.flush()
    if disregarded:
        logger.warning(f"Disregarded {disregarded} messages of file {uuid} without a file_id")
    logger.info(f"Imported file {uuid}: {record_count} records, {lap_count} laps")
    return FileInfo(
        id=file_row.id,
        manufacturer=file_row.manufacturer,
        product=file_row.product,
        serial_number=file_row.serial_number,
        time_created=file_row.created_at,
        uuid=uuid,
    )
