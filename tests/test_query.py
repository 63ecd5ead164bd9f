from datetime import datetime

import pytest

from fakes import START, activity_messages, file_id_message, record_message, store_activity
from runtracker.db.query import (
    QueryStringBuilder,
    find_file_by_id,
    find_file_by_uuid,
    list_file_infos,
    new_file_info_query,
    resolve_file_reference,
)
from runtracker.errors import AmbiguousFileReferenceError, FileDoesNotExistError


def test_builder_without_clauses_is_base_query():
    assert str(QueryStringBuilder("select * from records")) == "select * from records"


def test_builder_renders_clauses_in_order():
    query = (
        QueryStringBuilder("select id from records")
        .and_where("lat is not null")
        .and_where("file_id = :file_id")
        .order_by("timestamp")
        .order_by("id desc")
        .limit(10)
    )
    assert str(query) == (
        "select id from records where lat is not null and file_id = :file_id "
        "order by timestamp, id desc limit 10"
    )


def test_builder_methods_return_same_builder():
    query = QueryStringBuilder("select 1")
    assert query.and_where("a") is query
    assert query.order_by("b") is query
    assert query.limit(1) is query
    assert str(query) == str(query)


def test_file_info_query_selects_descriptor_columns():
    assert str(new_file_info_query()).startswith("select id, manufacturer, product")


def _store(session, raw: bytes, created: datetime):
    messages = [file_id_message(time_created=created), record_message(0)]
    return store_activity(session, raw, messages)


def test_find_file_by_uuid_and_id(session):
    stored = store_activity(session, b"one", activity_messages())

    by_uuid = find_file_by_uuid(session, stored.uuid)
    assert by_uuid == stored
    assert by_uuid.manufacturer == "garmin"
    assert by_uuid.product == "fr245"
    assert by_uuid.time_created == START
    assert find_file_by_id(session, stored.id) == stored
    assert find_file_by_uuid(session, "00000000-0000-4000-8000-000000000000") is None


def test_resolve_full_uuid_prefix_and_last(session):
    first = _store(session, b"first", datetime(2024, 1, 1, 8))
    second = _store(session, b"second", datetime(2024, 2, 1, 8))

    assert resolve_file_reference(session, first.uuid) == first
    assert resolve_file_reference(session, second.uuid[:13]) == second
    assert resolve_file_reference(session, ":last") == second


def test_resolve_ambiguous_prefix(session):
    first = _store(session, b"first", datetime(2024, 1, 1, 8))
    second = _store(session, b"second", datetime(2024, 2, 1, 8))

    with pytest.raises(AmbiguousFileReferenceError) as exc_info:
        resolve_file_reference(session, "")
    assert set(exc_info.value.matches) == {first.uuid, second.uuid}


def test_resolve_unknown_reference(session):
    with pytest.raises(FileDoesNotExistError):
        resolve_file_reference(session, "deadbeef")
    with pytest.raises(FileDoesNotExistError):
        resolve_file_reference(session, ":last")


def test_list_file_infos_filters_and_orders(session):
    january = _store(session, b"jan", datetime(2024, 1, 10, 8))
    february = _store(session, b"feb", datetime(2024, 2, 10, 8))
    march = _store(session, b"mar", datetime(2024, 3, 10, 8))

    assert list_file_infos(session) == [march, february, january]
    assert list_file_infos(session, reverse=True) == [january, february, march]
    assert list_file_infos(session, number=1) == [march]
    assert list_file_infos(session, since=datetime(2024, 2, 1), until=datetime(2024, 3, 10, 8)) == [february]
