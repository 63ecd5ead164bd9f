from datetime import datetime

import pytest
from sqlalchemy import text

from fakes import (
    FakeElevationSource,
    FakeRouteDrawer,
    StaticDecoder,
    activity_messages,
    file_id_message,
    lap_message,
    record_message,
    store_activity,
)
from runtracker.api.elevation_service import (
    fix_missing_elevation,
    list_files_missing_elevation,
    update_elevation,
)
from runtracker.api.file_service import file_summaries, list_files_with_summaries, render_route_image
from runtracker.api.import_service import ErrorBehavior, import_file, import_files, run_import
from runtracker.config import Config
from runtracker.errors import (
    DuplicateFileError,
    EmptyRouteError,
    FileDoesNotExistError,
    FileIdentityMissingError,
    RunTrackerError,
    ServiceRequestError,
)
from runtracker.fit_decoder import DecodedMessage


class PerFileDecoder:
    """Decoder whose messages depend on the raw content, unknown content has no file_id."""

    def __init__(self, by_content):
        self.by_content = by_content

    def __call__(self, raw):
        return list(self.by_content.get(raw, [record_message(0)]))


def _write(path, content: bytes):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(content)
    return path


def test_import_file_copies_into_devices_directory(session, tmp_path, data_dir, count_rows):
    source = _write(tmp_path / "watch" / "RUN001.FIT", b"run-001")

    file_info = import_file(session, source, decoder=StaticDecoder(activity_messages()))

    copied = data_dir / "devices" / "garmin-fr245-3912345678" / "RUN001.FIT"
    assert copied.read_bytes() == b"run-001"
    assert file_info.uuid
    assert count_rows("files") == 1


def test_import_file_without_copy(session, tmp_path, data_dir):
    source = _write(tmp_path / "RUN.FIT", b"run")
    import_file(session, source, persist_file=False, decoder=StaticDecoder(activity_messages()))
    assert not (data_dir / "devices").exists()


def test_failed_import_rolls_back_and_copies_nothing(session, tmp_path, data_dir, count_rows):
    source = _write(tmp_path / "BAD.FIT", b"bad")

    with pytest.raises(FileIdentityMissingError):
        import_file(session, source, decoder=StaticDecoder([record_message(0)]))

    assert count_rows("records") == 0
    assert not (data_dir / "devices").exists()


def test_copy_failure_keeps_the_import(session, tmp_path, data_dir, count_rows):
    source = _write(tmp_path / "RUN.FIT", b"run")
    # a plain file where the devices directory should be makes the copy fail
    _write(data_dir / "devices", b"")

    imported = import_files(session, [source], decoder=StaticDecoder(activity_messages()))

    assert len(imported) == 1
    assert count_rows("files") == 1
    assert (data_dir / "devices").is_file()


def test_single_duplicate_is_an_error(session, tmp_path):
    source = _write(tmp_path / "RUN.FIT", b"run")
    decoder = StaticDecoder(activity_messages())
    import_files(session, [source], decoder=decoder)

    with pytest.raises(DuplicateFileError):
        import_files(session, [source], duplicate_behavior=ErrorBehavior.ERROR, decoder=decoder)


def test_duplicates_can_be_downgraded(session, tmp_path, count_rows):
    first = _write(tmp_path / "A.FIT", b"a")
    again = _write(tmp_path / "copy" / "A.FIT", b"a")
    decoder = StaticDecoder(activity_messages())

    imported = import_files(session, [first, again], duplicate_behavior=ErrorBehavior.WARN, decoder=decoder)

    assert len(imported) == 1
    assert count_rows("files") == 1


def test_directory_scan(session, tmp_path):
    watch = tmp_path / "watch"
    _write(watch / "A.FIT", b"a")
    _write(watch / "b.fit", b"b")
    _write(watch / "notes.txt", b"notes")
    _write(watch / "nested" / "C.FIT", b"c")
    decoder = PerFileDecoder({raw: activity_messages() for raw in (b"a", b"b", b"c")})

    flat = import_files(session, [watch], persist_file=False, decoder=decoder)
    assert len(flat) == 2

    # the flat scan imported A and B, duplicates inside directories are silent
    nested = import_files(session, [watch], recursive=True, persist_file=False, decoder=decoder)
    assert len(nested) == 1


def test_missing_path_is_skipped(session, tmp_path):
    assert import_files(session, [tmp_path / "absent"], decoder=StaticDecoder([])) == []


def test_other_errors_follow_error_behavior(session, tmp_path):
    good = _write(tmp_path / "GOOD.FIT", b"good")
    bad = _write(tmp_path / "BAD.FIT", b"bad")
    decoder = PerFileDecoder({b"good": activity_messages()})

    with pytest.raises(FileIdentityMissingError):
        import_files(session, [bad, good], persist_file=False, decoder=decoder)

    imported = import_files(
        session, [bad, good], error_behavior=ErrorBehavior.WARN, persist_file=False, decoder=decoder
    )
    assert len(imported) == 1


def test_run_import_enriches_each_file(session, tmp_path):
    source = _write(tmp_path / "RUN.FIT", b"run")
    elevation = FakeElevationSource(elevation=55.0)
    messages = [file_id_message(), record_message(0, altitude=3.0), record_message(1, altitude=4.0)]

    imported = run_import(
        session,
        Config(),
        [source],
        persist_file=False,
        elevation_source=elevation,
        decoder=StaticDecoder(messages),
    )

    assert len(imported) == 1
    elevations = session.execute(text("select elevation from records order by id")).scalars().all()
    assert elevations == [55.0, 55.0]


def test_run_import_keeps_files_when_elevation_fails(session, tmp_path, count_rows):
    source = _write(tmp_path / "RUN.FIT", b"run")
    elevation = FakeElevationSource(error=ServiceRequestError(503, "unavailable"))
    messages = [file_id_message()] + [record_message(i, altitude=12.5) for i in range(3)]

    imported = run_import(
        session,
        Config(),
        [source],
        persist_file=False,
        elevation_source=elevation,
        decoder=StaticDecoder(messages),
    )

    assert len(imported) == 1
    assert count_rows("records") == 3
    # device altitude is not stored, so the file is still waiting for elevation data
    assert [f.uuid for f in list_files_missing_elevation(session)] == [imported[0].uuid]

    counts = fix_missing_elevation(session, FakeElevationSource(elevation=40.0))
    assert counts.records_set == 3
    elevations = session.execute(text("select elevation from records order by id")).scalars().all()
    assert elevations == [40.0, 40.0, 40.0]


def test_run_import_merges_configured_paths(session, tmp_path):
    configured = _write(tmp_path / "device" / "A.FIT", b"a")
    extra = _write(tmp_path / "B.FIT", b"b")
    decoder = PerFileDecoder({b"a": activity_messages(), b"b": activity_messages(serial_number=7)})
    config = Config(import_paths=[str(configured.parent)])

    only_extra = run_import(
        session, config, [extra], persist_file=False, skip_config_paths=True, with_elevation=False, decoder=decoder
    )
    assert len(only_extra) == 1

    from_config = run_import(session, config, persist_file=False, with_elevation=False, decoder=decoder)
    assert len(from_config) == 1
    assert from_config[0].uuid != only_extra[0].uuid


def test_run_import_duplicate_policy(session, tmp_path):
    first = _write(tmp_path / "A.FIT", b"a")
    second = _write(tmp_path / "B.FIT", b"b")
    decoder = PerFileDecoder({b"a": activity_messages(), b"b": activity_messages()})
    run_import(session, Config(), [first], persist_file=False, with_elevation=False, decoder=decoder)

    with pytest.raises(DuplicateFileError):
        run_import(session, Config(), [first], persist_file=False, with_elevation=False, decoder=decoder)

    imported = run_import(session, Config(), [first, second], persist_file=False, with_elevation=False, decoder=decoder)
    assert len(imported) == 1


def test_run_import_requires_paths(session):
    with pytest.raises(RunTrackerError, match="No import paths"):
        run_import(session, Config(), with_elevation=False)


def test_update_elevation_isolates_files(session):
    first = store_activity(session, b"first", activity_messages(records=2))
    second = store_activity(session, b"second", activity_messages(records=2))

    class FailOnSecondCall(FakeElevationSource):
        def request_elevation_data(self, locations):
            super().request_elevation_data(locations)
            if len(self.calls) == 3:
                raise ServiceRequestError(429, "Too many requests")

    report = update_elevation(session, FailOnSecondCall(), [first.uuid, second.uuid])

    assert report.files[first.uuid].records_set == 2
    assert report.files[second.uuid] is None
    assert report.missing is None
    assert [f.uuid for f in list_files_missing_elevation(session)] == [second.uuid]


def test_update_elevation_unknown_reference(session):
    with pytest.raises(FileDoesNotExistError):
        update_elevation(session, FakeElevationSource(), ["0123"])


def test_fix_missing_updates_every_file(session):
    store_activity(session, b"first", activity_messages(records=2))
    store_activity(session, b"second", activity_messages(records=3))

    report = update_elevation(session, FakeElevationSource(), fix_missing=True)

    assert report.missing.records_set == 5
    assert list_files_missing_elevation(session) == []


def test_fix_missing_failure_is_fatal(session):
    file_info = store_activity(session, b"first")

    with pytest.raises(ServiceRequestError):
        fix_missing_elevation(session, FakeElevationSource(error=ServiceRequestError(500, "down")))

    assert [f.uuid for f in list_files_missing_elevation(session)] == [file_info.uuid]


def test_file_summaries(session):
    messages = [
        file_id_message(),
        record_message(0, heart_rate=130),
        record_message(600, heart_rate=150),
        lap_message(0, 300),
        lap_message(300, 600),
    ]
    file_info = store_activity(session, b"summary", messages)

    summary = file_summaries(session, [file_info.id])[file_info.id]

    assert summary["distance_m"] == 1800.0
    assert summary["duration_s"] == 600
    assert summary["duration_label"] == "10:00"
    assert summary["avg_speed_kmh"] == pytest.approx(10.8)
    assert summary["avg_heart_rate"] == 140.0
    assert [lap["lap_index"] for lap in summary["laps"]] == [1, 2]
    assert summary["laps"][0]["duration_s"] == 300
    assert file_summaries(session, []) == {}


def test_list_files_with_summaries(session):
    store_activity(session, b"old", [file_id_message(time_created=datetime(2024, 1, 1)), record_message(0)])
    newer = store_activity(session, b"new", [file_id_message(time_created=datetime(2024, 6, 1)), record_message(0)])

    items = list_files_with_summaries(session, number=1)

    assert [item["uuid"] for item in items] == [newer.uuid]
    assert items[0]["summary"]["duration_s"] == 0


def test_render_route_image_markers(session):
    messages = [
        file_id_message(),
        record_message(2, latitude=47.62, longitude=-122.32),
        record_message(0, latitude=47.60, longitude=-122.30),
        record_message(1, latitude=None, longitude=None),
        lap_message(0, 1, end=(47.61, -122.31)),
        lap_message(1, 2, end=None),
    ]
    file_info = store_activity(session, b"route", messages)
    drawer = FakeRouteDrawer()

    image = render_route_image(session, drawer, file_info.uuid[:8])

    assert image == b"\x89PNG fake"
    # trace follows timestamps, points without coordinates are dropped
    assert [round(loc.latitude, 4) for loc in drawer.trace] == [47.6, 47.62]
    assert [m.label for m in drawer.markers] == ["S", "1", "F"]
    assert round(drawer.markers[1].latitude, 4) == 47.61


def test_render_route_image_without_gps(session):
    messages = [file_id_message(), record_message(0, latitude=None, longitude=None), DecodedMessage("session", {})]
    file_info = store_activity(session, b"treadmill", messages)

    with pytest.raises(EmptyRouteError):
        render_route_image(session, FakeRouteDrawer(), file_info.uuid)
