import calendar
from datetime import datetime, timezone

import pytest

from lightningsync.snapshot import (
    DBI,
    DUPSORT_FLAG,
    TRANSFORM_DUPSORT_HACK_V1,
    NameInfo,
    SnapshotNameError,
    TransformError,
    name,
    name_timestamp,
    name_timestamp_from_nano,
    parse_name,
    short_hash,
    transform_supported,
)

TS_NANO = calendar.timegm((2022, 1, 2, 3, 4, 5)) * 1_000_000_000 + 12_345_678


def _expected(full):
    return NameInfo(
        full_name=full,
        extension="pb.gz",
        syncer_name="db1",
        instance_id="inst1",
        generation_id="gen1",
        timestamp_string="20220102-030405-012345678",
        timestamp_nano=TS_NANO,
    )


def test_parse_name_roundtrip():
    full = name("db1", "inst1", "gen1", TS_NANO)
    assert full == "db1__inst1__20220102-030405-012345678__gen1.pb.gz"
    assert parse_name(full) == _expected(full)


def test_parse_name_extra_fields():
    full = "db1__inst1__20220102-030405-012345678__gen1__extra__extra.pb.gz"
    assert parse_name(full) == _expected(full)


@pytest.mark.parametrize(
    "bad",
    [
        "invalid",
        "db1__inst1__20220102-030405-012345678__gen1__extra__extra.pb.bz2",
        "db1__inst1__20220102-030405-012345678.pb.gz",
        "db1__inst1__20220102-030405-012__gen1.pb.gz",
        "db1__inst1__20221302-030405-012345678__gen1.pb.gz",
        "db1__inst1__20220102-030405x012345678__gen1.pb.gz",
    ],
)
def test_parse_name_invalid(bad):
    with pytest.raises(SnapshotNameError):
        parse_name(bad)


def test_name_timestamp_from_datetime():
    ts = datetime(2022, 1, 2, 3, 4, 5, 12345, tzinfo=timezone.utc)
    assert name_timestamp(ts) == "20220102-030405-012345000"


def test_name_timestamp_from_nano():
    assert name_timestamp_from_nano(TS_NANO) == "20220102-030405-012345678"


def test_name_info_timestamp_property():
    ni = parse_name(name("db1", "inst1", "gen1", TS_NANO))
    assert ni.timestamp == datetime(2022, 1, 2, 3, 4, 5, 12345, tzinfo=timezone.utc)


def test_short_hash():
    ni = parse_name(name("db1", "inst1", "gen1", TS_NANO))
    h = ni.short_hash()
    assert h == short_hash("inst1", "20220102-030405-012345678")
    assert len(h) == 7
    assert all(c in "0123456789abcdef" for c in h)
    assert short_hash("inst2", ni.timestamp_string) != h


def test_transform_supported():
    assert transform_supported("")
    assert transform_supported(TRANSFORM_DUPSORT_HACK_V1)
    assert not transform_supported("other")


def test_validate_transform_unsupported():
    with pytest.raises(TransformError, match="not supported"):
        DBI(name="x", transform="other").validate_transform(3, False)


def test_validate_transform_native_schema():
    with pytest.raises(TransformError, match="native schema"):
        DBI(name="x", flags=DUPSORT_FLAG, transform=TRANSFORM_DUPSORT_HACK_V1).validate_transform(3, True)


def test_validate_transform_dupsort_without_transform():
    with pytest.raises(TransformError, match="without"):
        DBI(name="x", flags=DUPSORT_FLAG).validate_transform(3, False)


def test_validate_transform_transform_without_dupsort():
    with pytest.raises(TransformError, match="unexpected"):
        DBI(name="x", transform=TRANSFORM_DUPSORT_HACK_V1).validate_transform(3, False)


def test_validate_transform_old_versions_skip_flag_check():
    dbi = DBI(name="x", flags=DUPSORT_FLAG)
    assert dbi.validate_transform(2, False) is None
    ok = DBI(name="y", flags=DUPSORT_FLAG, transform=TRANSFORM_DUPSORT_HACK_V1)
    assert ok.validate_transform(3, False) is None
    assert ok.transform == TRANSFORM_DUPSORT_HACK_V1