"""
Tests for built-in virtual entries.
"""

import pytest

from engram_vault.adapters.filesystem import FilesystemAdapter
from engram_vault.core.errors import VirtualEntryError
from engram_vault.core.interfaces import Entry, EntryType
from engram_vault.core.virtual import VIRTUAL_ENTRIES, get_virtual_entry, is_virtual


PROTOCOL_PATH = "skill/meta/deep-learning.md"


class TestVirtualTable:
    """Test the built-in entry table."""

    def test_protocol_present(self):
        entry = get_virtual_entry(PROTOCOL_PATH)

        assert entry is not None
        assert entry.virtual
        assert entry.title == "Deep Learning Protocol"
        assert "# Deep Learning Protocol" in entry.content
        assert "## 1. Define Scope" in entry.content
        assert "## 4. Self-Test Understanding" in entry.content

    def test_protocol_metadata(self):
        info = VIRTUAL_ENTRIES[PROTOCOL_PATH].info

        assert info.type is EntryType.SKILL
        assert info.confidence == "high"
        assert info.tags == ["learning", "meta", "research", "protocol"]
        assert info.skill.tools == []

    def test_lookup_helpers(self):
        assert is_virtual(PROTOCOL_PATH)
        assert not is_virtual("skill/meta/other.md")
        assert get_virtual_entry("skill/meta/other.md") is None


class TestVirtualEntriesInAdapter:
    """Test how adapters treat built-in paths."""

    def test_readable_in_empty_store(self, fs_adapter):
        assert fs_adapter.size() == 0
        entry = fs_adapter.read_entry(PROTOCOL_PATH)
        assert entry.virtual
        assert fs_adapter.exists(PROTOCOL_PATH)
        assert fs_adapter.is_virtual(PROTOCOL_PATH)

    def test_read_normalizes_path(self, fs_adapter):
        assert fs_adapter.read("skill//meta/deep-learning.md/") == VIRTUAL_ENTRIES[PROTOCOL_PATH].content

    def test_write_is_shadowed(self, fs_adapter):
        result = fs_adapter.write(PROTOCOL_PATH, "overwritten", "Hacked")

        assert result.virtual
        assert result.title == "Deep Learning Protocol"
        assert fs_adapter.read(PROTOCOL_PATH) == VIRTUAL_ENTRIES[PROTOCOL_PATH].content
        assert fs_adapter.size() == 0
        assert not any(fs_adapter.directory.glob("*.md"))

    def test_returned_entry_cannot_change_builtin(self, fs_adapter):
        entry = fs_adapter.read_entry(PROTOCOL_PATH)
        entry.metadata["type"] = "hacked"
        entry.metadata["tags"].append("hacked")
        fs_adapter.write(PROTOCOL_PATH, "x", "x").metadata["confidence"] = "low"
        get_virtual_entry(PROTOCOL_PATH).metadata["domain"] = "hacked"

        again = fs_adapter.read_entry(PROTOCOL_PATH)
        assert again.metadata["type"] == "skill"
        assert again.metadata["tags"] == ["learning", "meta", "research", "protocol"]
        assert again.metadata["confidence"] == "high"
        assert VIRTUAL_ENTRIES[PROTOCOL_PATH].metadata["domain"] == "meta"

    def test_delete_rejected(self, fs_adapter):
        with pytest.raises(VirtualEntryError):
            fs_adapter.delete(PROTOCOL_PATH)
        assert fs_adapter.read_entry(PROTOCOL_PATH).virtual

    def test_excluded_from_listing_and_accounting(self, fs_adapter):
        fs_adapter.write("fact/a.md", "Alpha", "A")

        assert [s.path for s in fs_adapter.list()] == ["fact/a.md"]
        assert [s.path for s in fs_adapter.list("skill")] == []
        assert fs_adapter.glob("skill/**") == []
        assert fs_adapter.total_size() == 5
        assert fs_adapter.size() == 1
        assert PROTOCOL_PATH not in fs_adapter.all_entries()

    def test_excluded_from_grep(self, fs_adapter):
        assert fs_adapter.grep("Deep Learning") == []

    def test_custom_table(self, temp_dir):
        custom = {"fact/builtin.md": Entry(content="Fixed", title="Builtin", virtual=True)}
        adapter = FilesystemAdapter(temp_dir, virtual_entries=custom)

        assert adapter.read("fact/builtin.md") == "Fixed"
        assert not adapter.is_virtual(PROTOCOL_PATH)

    def test_survives_clear(self, fs_adapter):
        fs_adapter.clear()
        assert fs_adapter.read_entry(PROTOCOL_PATH).virtual
