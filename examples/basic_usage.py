"""
Basic usage example for Engram Vault.

This example demonstrates:
1. Writing entries with metadata and frontmatter
2. Reading, listing, glob and grep
3. Hybrid semantic search
4. Read tracking and built-in entries
5. A maintenance report

Run this example:
    pip install -e ".[local]"
    python examples/basic_usage.py
"""

import asyncio
import shutil

from engram_vault import Defragmenter, FilesystemAdapter, ReadTracker, Storage
from engram_vault.utils import configure_quiet_mode, get_default_embeddings


VAULT_DIR = "./engram_vault_demo"


async def demo_writes(storage: Storage):
    """Store a few entries."""
    print("\n" + "=" * 60)
    print("WRITES")
    print("=" * 60)

    await storage.write(
        "concept/ruby/classes.md",
        "Ruby classes are open: any class can be reopened at runtime to add methods.",
        title="Ruby open classes",
        metadata={"type": "concept", "confidence": "high", "tags": ["ruby", "metaprogramming"]},
    )
    await storage.write(
        "fact/api/billing.md",
        "---\ntype: fact\nconfidence: medium\ntags: [api, billing]\n---\n"
        "The billing API is served from /v2 behind the gateway.",
        title="Billing API endpoint",
    )
    await storage.write(
        "skill/testing/flaky.md",
        "Rerun a flaky test in isolation, then pin the random seed and compare.",
        title="Debugging flaky tests",
        metadata={"type": "skill", "confidence": "high", "tags": ["testing"], "tools": ["pytest"]},
    )
    print(f"Stored {await storage.size()} entries ({await storage.total_size()} bytes)")


async def demo_queries(storage: Storage):
    """List, glob, grep and search."""
    print("\n" + "=" * 60)
    print("QUERIES")
    print("=" * 60)

    for summary in await storage.list():
        print(f"  memory://{summary.path}  \"{summary.title}\"  {summary.size}B")

    print(f"\nglob fact/**: {[s.path for s in await storage.glob('fact/**')]}")
    print(f"grep billing: {await storage.grep('billing', case_insensitive=True)}")

    results = await storage.search("how do I reopen a class", top_k=3)
    print("\nSearch results:")
    for r in results:
        print(f"  {r.relevance_score:.2f} (semantic {r.semantic_score:.2f}, keyword {r.keyword_score:.2f}) {r.path}")


async def demo_reads(storage: Storage):
    """Read tracking and built-in entries."""
    print("\n" + "=" * 60)
    print("READS")
    print("=" * 60)

    await storage.read("fact/api/billing.md", caller="agent-1")
    print(f"agent-1 read billing: {storage.has_been_read('agent-1', 'fact/api/billing.md')}")
    print(f"agent-2 read billing: {storage.has_been_read('agent-2', 'fact/api/billing.md')}")

    protocol = await storage.read_entry("skill/meta/deep-learning.md")
    print(f"\nBuilt-in entry: {protocol.title} (virtual={protocol.virtual})")


def demo_defrag(storage: Storage):
    """Print a maintenance report."""
    print("\n" + "=" * 60)
    print("MAINTENANCE")
    print("=" * 60)

    report = Defragmenter(storage.adapter).full_analysis(include_related=True)
    print(report.to_markdown())


async def main():
    configure_quiet_mode()
    storage = Storage(
        adapter=FilesystemAdapter(VAULT_DIR),
        embeddings=get_default_embeddings(),
        read_tracker=ReadTracker(),
    )
    try:
        await demo_writes(storage)
        await demo_queries(storage)
        await demo_reads(storage)
        demo_defrag(storage)
    finally:
        shutil.rmtree(VAULT_DIR, ignore_errors=True)


if __name__ == "__main__":
    asyncio.run(main())
