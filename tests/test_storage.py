import pytest

from lightningsync.storage import Blob, BlobNotFound, MemoryStorage


def test_store_and_load():
    st = MemoryStorage()
    st.store("a", b"data")
    assert st.load("a") == b"data"


def test_load_missing():
    st = MemoryStorage()
    with pytest.raises(BlobNotFound):
        st.load("missing")


def test_list_sorted_with_prefix():
    st = MemoryStorage()
    st.store("test__b", b"xy")
    st.store("test__a", b"x")
    st.store("other__a", b"xyz")
    assert st.list("test__") == [Blob("test__a", 1), Blob("test__b", 2)]
    assert [b.name for b in st.list()] == ["other__a", "test__a", "test__b"]


def test_delete():
    st = MemoryStorage()
    st.store("a", b"1")
    st.delete("a")
    assert st.list() == []
    st.delete("a")
    with pytest.raises(BlobNotFound):
        st.load("a")


def test_store_copies_data():
    st = MemoryStorage()
    buf = bytearray(b"abc")
    st.store("a", buf)
    buf[0] = ord("z")
    assert st.load("a") == b"abc"


def test_store_overwrites():
    st = MemoryStorage()
    st.store("a", b"old")
    st.store("a", b"newer")
    assert st.load("a") == b"newer"
    assert st.list() == [Blob("a", 5)]