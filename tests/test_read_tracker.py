"""
Tests for read-before-edit tracking.
"""

import threading

import pytest

from engram_vault.core.read_tracker import ReadTracker


class TestReadTracker:
    """Test ReadTracker bookkeeping."""

    def test_unread_by_default(self, read_tracker):
        assert not read_tracker.has_been_read("agent-1", "fact/a.md")

    def test_register_read(self, read_tracker):
        read_tracker.register_read("agent-1", "fact/a.md")

        assert read_tracker.has_been_read("agent-1", "fact/a.md")
        assert not read_tracker.has_been_read("agent-2", "fact/a.md")
        assert not read_tracker.has_been_read("agent-1", "fact/b.md")

    def test_clear_one_caller(self, read_tracker):
        read_tracker.register_read("agent-1", "fact/a.md")
        read_tracker.register_read("agent-2", "fact/a.md")
        read_tracker.clear("agent-1")

        assert not read_tracker.has_been_read("agent-1", "fact/a.md")
        assert read_tracker.has_been_read("agent-2", "fact/a.md")

    def test_clear_unknown_caller(self, read_tracker):
        read_tracker.clear("nobody")

    def test_clear_all(self, read_tracker):
        read_tracker.register_read("agent-1", "fact/a.md")
        read_tracker.register_read("agent-2", "fact/b.md")
        read_tracker.clear_all()

        assert read_tracker.paths_read("agent-1") == set()
        assert read_tracker.paths_read("agent-2") == set()

    def test_paths_read_is_copy(self, read_tracker):
        read_tracker.register_read("agent-1", "fact/a.md")
        paths = read_tracker.paths_read("agent-1")
        paths.add("fact/b.md")

        assert read_tracker.paths_read("agent-1") == {"fact/a.md"}

    def test_thread_safe(self):
        tracker = ReadTracker()

        def reader(caller):
            for i in range(200):
                tracker.register_read(caller, f"fact/{i}.md")

        threads = [threading.Thread(target=reader, args=(f"agent-{n}",)) for n in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        for n in range(4):
            assert len(tracker.paths_read(f"agent-{n}")) == 200


class TestStorageReadTracking:
    """Test that Storage records reads."""

    @pytest.mark.asyncio
    async def test_read_with_caller_registers(self, storage, read_tracker):
        await storage.write("fact/a.md", "Alpha", "A")
        assert not storage.has_been_read("agent-1", "fact/a.md")

        await storage.read("fact/a.md", caller="agent-1")

        assert storage.has_been_read("agent-1", "fact/a.md")
        assert read_tracker.has_been_read("agent-1", "fact/a.md")

    @pytest.mark.asyncio
    async def test_read_without_caller_not_registered(self, storage, read_tracker):
        await storage.write("fact/a.md", "Alpha", "A")
        await storage.read("fact/a.md")
        assert read_tracker.paths_read("agent-1") == set()

    @pytest.mark.asyncio
    async def test_normalized_path_registered(self, storage):
        await storage.write("fact/a.md", "Alpha", "A")
        await storage.read("fact//a.md/", caller="agent-1")
        assert storage.has_been_read("agent-1", "fact/a.md")

    @pytest.mark.asyncio
    async def test_failed_read_not_registered(self, storage):
        from engram_vault.core.errors import EntryNotFoundError

        with pytest.raises(EntryNotFoundError):
            await storage.read("fact/missing.md", caller="agent-1")
        assert not storage.has_been_read("agent-1", "fact/missing.md")

    @pytest.mark.asyncio
    async def test_virtual_read_registered(self, storage):
        await storage.read("skill/meta/deep-learning.md", caller="agent-1")
        assert storage.has_been_read("agent-1", "skill/meta/deep-learning.md")

    @pytest.mark.asyncio
    async def test_no_tracker(self, fs_adapter):
        from engram_vault.storage import Storage

        storage = Storage(adapter=fs_adapter)
        await storage.write("fact/a.md", "Alpha", "A")
        await storage.read("fact/a.md", caller="agent-1")
        assert not storage.has_been_read("agent-1", "fact/a.md")
