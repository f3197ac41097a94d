"""
TGPH - Column Store Tests

Pytest tests for append/replace semantics and retention.
"""

import struct

import pytest

from tgph import Container, ContainerTypeError, ElementType, Store


def f32(value: float) -> float:
    """Round a Python float to float32 precision."""
    return struct.unpack("<f", struct.pack("<f", value))[0]


class TestAppend:
    """Test Store.append."""

    def test_creates_container_with_inferred_type(self):
        """Test first append creates a container typed after the value."""
        store = Store()
        store.append(7, "count")
        store.append(1.5, "ratio")
        store.append("eth0", "iface")

        assert store.container_count() == 3
        assert store["count"].element_type is ElementType.U32
        assert store["ratio"].element_type is ElementType.FLOAT32
        assert store["iface"].element_type is ElementType.STRING

    def test_same_name_grows_one_container(self):
        """Test repeated appends under one name share a container."""
        store = Store()
        store.append(1, "x")
        store.append(2, "x")

        assert store.container_count() == 1
        assert store["x"].values() == [1, 2]

    def test_new_name_goes_last(self):
        """Test a new name is positioned after existing containers."""
        store = Store()
        store.append(1, "a")
        store.append(2, "b")
        store.append(3, "a")
        store.append(4, "c")

        assert store.names() == ["a", "b", "c"]

    def test_names_are_case_sensitive(self):
        """Test name matching is exact."""
        store = Store()
        store.append(1, "Disk")
        store.append(2, "disk")

        assert store.names() == ["Disk", "disk"]

    def test_eviction_keeps_newest(self):
        """Test FIFO eviction keeps the N most recent samples in order."""
        store = Store(entry_limit=3)
        for value in [1, 2, 3, 4, 5]:
            store.append(value, "x")

        assert store["x"].values() == [3, 4, 5]

    def test_fewer_than_limit_are_all_kept(self):
        """Test nothing is evicted below the limit."""
        store = Store(entry_limit=10)
        for value in range(4):
            store.append(float(value), "y")

        assert store["y"].values() == [0.0, 1.0, 2.0, 3.0]

    def test_eviction_bound_across_containers(self):
        """Test every container stays within the limit."""
        store = Store(entry_limit=5)
        for i in range(50):
            store.append(i, "ints")
            store.append(f"s{i}", "strings")
            if i % 3 == 0:
                store.append(i / 2, "floats")

        for container in store:
            assert len(container) <= 5
        assert store["ints"].values() == [45, 46, 47, 48, 49]
        assert store["strings"].values() == ["s45", "s46", "s47", "s48", "s49"]
        assert store["floats"].values() == [f32(i / 2) for i in (36, 39, 42, 45, 48)]

    def test_default_limit(self):
        """Test the default retention limit is 1000."""
        store = Store()
        for i in range(1005):
            store.append(i, "x")

        assert store.entry_limit == 1000
        assert len(store["x"]) == 1000
        assert store["x"].values()[0] == 5

    def test_float_is_stored_as_float32(self):
        """Test floats are rounded to 32-bit precision on append."""
        store = Store()
        store.append(0.1, "f")

        assert store["f"].values() == [f32(0.1)]

    def test_type_mismatch_fails_loudly(self):
        """Test a value of another kind under an existing name raises."""
        store = Store()
        store.append(1, "x")

        with pytest.raises(ContainerTypeError):
            store.append(1.0, "x")
        with pytest.raises(TypeError):
            store.append("one", "x")
        assert store["x"].values() == [1]

    def test_bool_rejected(self):
        """Test bool values are not silently stored as integers."""
        store = Store()
        with pytest.raises(TypeError):
            store.append(True, "flag")
        assert store.container_count() == 0

    def test_u32_range(self):
        """Test integers outside the u32 range are rejected."""
        store = Store()
        store.append(0xFFFFFFFF, "x")

        with pytest.raises(ValueError):
            store.append(-1, "x")
        with pytest.raises(ValueError):
            store.append(1 << 32, "x")
        assert store["x"].values() == [0xFFFFFFFF]

    def test_rejected_first_value_leaves_no_container(self):
        """Test a failed first append does not leave an empty column."""
        store = Store()
        with pytest.raises(ValueError):
            store.append(1 << 32, "timestamp")

        assert store.container_count() == 0
        store.append(1.5, "load")
        assert store.sample_count() == 1


class TestReplace:
    """Test Store.replace."""

    def test_replace_overwrites(self):
        """Test replace swaps in the new sequence."""
        store = Store()
        for value in [1, 2, 3]:
            store.append(value, "x")

        store.replace([10, 20, 30, 40, 50], "x")

        assert store["x"].values() == [10, 20, 30, 40, 50]

    def test_replace_ignores_limit(self):
        """Test replace does not evict past the limit."""
        store = Store(entry_limit=3)
        store.append(1, "x")
        store.replace([5, 6, 7, 8, 9], "x")

        assert len(store["x"]) == 5

    def test_replace_creates_container(self):
        """Test replace on a missing name creates it last."""
        store = Store()
        store.append(1, "a")
        store.replace([1.5, 2.5], "b")

        assert store.names() == ["a", "b"]
        assert store["b"].element_type is ElementType.FLOAT32

    def test_replace_empty_needs_type(self):
        """Test an empty replace of a missing name requires an element type."""
        store = Store()
        with pytest.raises(TypeError):
            store.replace([], "x")

        store.replace([], "x", element_type=ElementType.STRING)
        assert store["x"].element_type is ElementType.STRING
        assert len(store["x"]) == 0

    def test_replace_existing_with_empty(self):
        """Test an existing container can be emptied and keeps its type."""
        store = Store()
        store.append("a", "x")
        store.replace([], "x")

        assert store["x"].element_type is ElementType.STRING
        assert store["x"].values() == []

    def test_replace_type_mismatch(self):
        """Test replace enforces the container's kind."""
        store = Store()
        store.append(1, "x")

        with pytest.raises(ContainerTypeError):
            store.replace([1.0, 2.0], "x")
        with pytest.raises(ContainerTypeError):
            store.replace([], "x", element_type=ElementType.FLOAT32)
        with pytest.raises(ContainerTypeError):
            store.replace([1, "two"], "y")
        assert store["x"].values() == [1]
        assert "y" not in store


class TestScenario:
    """Test the retention scenario end to end."""

    def test_limit_three(self):
        """Test append, round trip, then replace below the limit."""
        store = Store(entry_limit=3)
        for value in [1, 2, 3, 4, 5]:
            store.append(value, "x")
        assert store["x"].values() == [3, 4, 5]

        restored = Store.from_bytes(store.to_bytes(), entry_limit=3)
        assert restored["x"].values() == [3, 4, 5]

        restored.replace([9, 9], "x")
        assert restored["x"].values() == [9, 9]


class TestAccess:
    """Test read access helpers."""

    def test_sample_count(self):
        """Test sample count follows the first container."""
        store = Store()
        assert store.sample_count() == 0

        for i in range(3):
            store.append(i, "timestamp")
            store.append("x", "other")
        assert store.sample_count() == 3

    def test_lookup(self):
        """Test name and position lookup."""
        store = Store()
        store.append(1, "a")
        store.append("b", "b")

        assert len(store) == 2
        assert store[0].name == "a"
        assert store["b"].name == "b"
        assert store.get("missing") is None
        assert "a" in store
        with pytest.raises(KeyError):
            store["missing"]

    def test_to_dict(self):
        """Test dict export keeps container order."""
        store = Store()
        store.append(1, "a")
        store.append(2.5, "b")

        assert list(store.to_dict().items()) == [("a", [1]), ("b", [2.5])]

    def test_entry_limit_change(self):
        """Test a lowered limit is enforced on the next append."""
        store = Store(entry_limit=10)
        for i in range(10):
            store.append(i, "x")

        store.entry_limit = 4
        assert len(store["x"]) == 10

        store.append(10, "x")
        assert store["x"].values() == [7, 8, 9, 10]

    @pytest.mark.parametrize("limit", [0, -1, 2.5, True])
    def test_entry_limit_must_be_positive_int(self, limit):
        """Test invalid limits are rejected."""
        with pytest.raises(ValueError):
            Store(entry_limit=limit)

    def test_add_container_rejects_duplicate(self):
        """Test explicit container addition keeps names unique."""
        store = Store()
        store.add_container(Container("x", ElementType.U32, [1, 2]))

        with pytest.raises(ValueError):
            store.add_container(Container("x", ElementType.U32))
        assert store["x"].values() == [1, 2]
