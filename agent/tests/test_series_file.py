"""
TGPH Agent - Series File Tests

Pytest tests for loading and saving the series file.
"""

import gzip

import pytest

from storage import SeriesFile
from tgph import Store, TGPHDecodeError, TruncatedDataError, encode


def make_store() -> Store:
    store = Store(entry_limit=5)
    for i in range(3):
        store.append(1700000000 + i, "timestamp")
        store.append(40.5 + i, "thermal_component_temp")
        store.append("raspberrypi", "host_name")
    return store


class TestSeriesFile:
    """Test SeriesFile persistence."""

    def test_missing_file_gives_empty_store(self, tmp_path):
        """Test a missing file is a normal first start."""
        series = SeriesFile(tmp_path / "data.tgph")
        store = series.load(entry_limit=42)

        assert store.container_count() == 0
        assert store.entry_limit == 42

    def test_plain_round_trip(self, tmp_path):
        """Test save then load without compression."""
        path = tmp_path / "data.tgph"
        series = SeriesFile(path)
        store = make_store()

        written = series.save(store)

        assert path.read_bytes() == encode(store)
        assert written == len(encode(store))
        assert series.load(entry_limit=5) == store

    def test_gzip_round_trip(self, tmp_path):
        """Test save then load with compression."""
        path = tmp_path / "data.tgph.gz"
        series = SeriesFile(path, compress=True)
        store = make_store()

        series.save(store)

        raw = path.read_bytes()
        assert raw[:2] == b"\x1f\x8b"
        assert gzip.decompress(raw) == encode(store)
        assert series.load(entry_limit=5) == store

    def test_gzip_detected_without_flag(self, tmp_path):
        """Test a compressed file still loads when compression is off."""
        path = tmp_path / "data.tgph"
        store = make_store()
        SeriesFile(path, compress=True).save(store)

        assert SeriesFile(path, compress=False).load(entry_limit=5) == store

    def test_plain_file_loads_with_compression_on(self, tmp_path):
        """Test turning compression on does not misread an existing plain file."""
        path = tmp_path / "data.tgph"
        store = make_store()
        SeriesFile(path, compress=False).save(store)

        assert SeriesFile(path, compress=True).load(entry_limit=5) == store

    def test_limit_reapplied_after_load(self, tmp_path):
        """Test the retention limit comes from the caller, not the file."""
        path = tmp_path / "data.tgph"
        SeriesFile(path).save(make_store())

        store = SeriesFile(path).load(entry_limit=2)
        assert store.entry_limit == 2
        assert len(store["timestamp"]) == 3

        store.append(1700000003, "timestamp")
        assert store["timestamp"].values() == [1700000002, 1700000003]

    def test_creates_parent_directories(self, tmp_path):
        """Test save creates missing directories."""
        path = tmp_path / "nested" / "dir" / "data.tgph"
        SeriesFile(path).save(Store())

        assert path.read_bytes() == encode(Store())

    def test_no_temp_files_left(self, tmp_path):
        """Test the atomic write cleans up after itself."""
        path = tmp_path / "data.tgph"
        series = SeriesFile(path)
        series.save(make_store())
        series.save(make_store())

        assert [p.name for p in tmp_path.iterdir()] == ["data.tgph"]

    def test_corrupt_file_raises(self, tmp_path):
        """Test a truncated file is a decode failure."""
        path = tmp_path / "data.tgph"
        path.write_bytes(encode(make_store())[:-3])

        with pytest.raises(TruncatedDataError):
            SeriesFile(path).load(entry_limit=5)

    def test_corrupt_gzip_raises(self, tmp_path):
        """Test a broken gzip stream surfaces as a decode failure."""
        path = tmp_path / "data.tgph.gz"
        path.write_bytes(b"\x1f\x8b" + b"\x00" * 16)

        with pytest.raises(TGPHDecodeError):
            SeriesFile(path, compress=True).load(entry_limit=5)

    def test_other_version_still_loads(self, tmp_path):
        """Test a version mismatch is reported but not fatal."""
        path = tmp_path / "data.tgph"
        data = bytearray(encode(make_store()))
        data[4] = 9
        path.write_bytes(bytes(data))

        store = SeriesFile(path).load(entry_limit=5)
        assert store.version == 9
        assert store.sample_count() == 3
