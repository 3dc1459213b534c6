"""Unit tests for dotted-path resolution."""

from common.path_resolver import (
    can_write,
    get_value,
    has_key,
    join_path,
    parent_path,
    read_key,
    resolve_container,
    resolve_pointer,
    split_path,
    to_index,
    write_key,
)


class TestPathHelpers:
    """Test path splitting and joining."""

    def test_split_path(self):
        assert split_path("stats.hp") == ["stats", "hp"]
        assert split_path("") == []
        assert split_path(["a", "b"]) == ["a", "b"]

    def test_join_path_skips_empty_segments(self):
        assert join_path("", "hp") == "hp"
        assert join_path("stats", "hp") == "stats.hp"

    def test_parent_path(self):
        assert parent_path("stats.hp") == "stats"
        assert parent_path("hp") == ""

    def test_to_index(self):
        assert to_index("2") == 2
        assert to_index(3) == 3
        assert to_index("hp") is None
        assert to_index(True) is None

    def test_to_index_rejects_non_ascii_digits(self):
        assert to_index("\u00b2") is None
        assert to_index("\u0663") is None


class TestContainerAccess:
    """Test reads and writes on dict and list containers."""

    def test_list_indices_are_one_based(self):
        items = ["a", "b"]

        assert read_key(items, "1") == "a"
        assert read_key(items, 2) == "b"
        assert read_key(items, 3) is None
        assert has_key(items, 0) is False

    def test_dict_accepts_new_keys(self):
        container = {}

        assert can_write(container, "new") is True
        assert write_key(container, "new", 1) is True
        assert container == {"new": 1}

    def test_list_rejects_writes_past_the_end(self):
        items = ["a"]

        assert can_write(items, 2) is False
        assert write_key(items, 2, "b") is False
        assert items == ["a"]

    def test_has_key_uses_presence_not_truthiness(self):
        assert has_key({"flag": False}, "flag") is True
        assert has_key({"count": 0}, "count") is True


class TestResolution:
    """Test pointer and container resolution."""

    def test_resolve_pointer_top_level(self):
        data = {"hp": 100}
        container, key = resolve_pointer("hp", data)

        assert container is data
        assert key == "hp"

    def test_resolve_pointer_nested(self):
        data = {"stats": {"hp": 100}}
        container, key = resolve_pointer("stats.hp", data)

        assert container is data["stats"]
        assert key == "hp"

    def test_resolve_pointer_missing_intermediate(self):
        assert resolve_pointer("missing.hp", {"stats": {}}) is None

    def test_resolve_pointer_through_scalar(self):
        assert resolve_pointer("hp.max", {"hp": 100}) is None

    def test_resolve_pointer_empty_path(self):
        assert resolve_pointer("", {"hp": 1}) is None

    def test_resolve_container_into_list(self):
        data = {"inventory": {"items": [{"name": "sword"}]}}

        assert resolve_container("inventory.items.1", data) == {"name": "sword"}
        assert resolve_container("inventory.items.2", data) is None
        assert resolve_container("", data) is data

    def test_get_value(self):
        data = {"stats": {"hp": 100}, "items": ["a"]}

        assert get_value("stats.hp", data) == 100
        assert get_value("items.1", data) == "a"
        assert get_value("stats.mp", data, default=-1) == -1
        assert get_value("missing.hp", data) is None

    def test_non_ascii_digit_segment_is_not_an_index(self):
        data = {"items": [1, 2]}

        assert get_value("items.\u00b2", data) is None
        assert resolve_pointer("items.\u00b2.name", data) is None
        assert can_write(data["items"], "\u00b2") is False
