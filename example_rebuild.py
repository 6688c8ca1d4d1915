#!/usr/bin/env python3
"""Example: Rebuild the knowledge-base indexes of a notes workspace."""

import asyncio
import os
import sys

from ideanote_kb import KBService, KBSettings
from ideanote_kb.exceptions import WorkspaceError
from ideanote_kb.log import configure_logging


async def run(workspace: str, reset: bool) -> int:
    settings = KBSettings(show_progress=True)
    configure_logging(settings.log_level, settings.log_format)

    print("=" * 60)
    print("IdeaNote KB Rebuild")
    print("=" * 60)
    print(f"Workspace:        {workspace}")
    print(f"Embedding:        {settings.embed_provider} / {settings.embed_model}")
    print(f"Max chunk length: {settings.chunk_size}")
    print(f"Chunk overlap:    {settings.chunk_overlap}")
    print(f"Concurrency:      {settings.concurrency}")
    print("=" * 60)
    print()

    service = KBService(settings)
    try:
        await service.open_workspace(workspace)
        summary = await service.rebuild(reset=reset)
    except WorkspaceError as e:
        print(f"\nError opening workspace: {e}", file=sys.stderr)
        return 1
    finally:
        await service.close()

    print()
    print("=" * 60)
    print("Rebuild completed successfully!" if summary.success else f"Rebuild failed: {summary.error}")
    print("=" * 60)
    print(f"Indexed:   {summary.indexed}")
    print(f"Unchanged: {summary.unchanged}")
    print(f"Removed:   {summary.removed}")
    print(f"Chunks:    {summary.chunks}")
    print(f"Skipped:   {summary.skipped}")
    if summary.skipped_ids:
        for note_id in summary.skipped_ids[:10]:
            print(f"  - {note_id}")
        if len(summary.skipped_ids) > 10:
            print(f"  ... and {len(summary.skipped_ids) - 10} more")
    print("=" * 60)
    return 0 if summary.success else 1


def main():
    workspace = os.getenv("WORKSPACE", "./notes")
    reset = os.getenv("RESET", "0") in ("1", "true", "yes")

    if not os.path.isdir(workspace):
        print(f"Error: Workspace directory not found: {workspace}")
        print("Set WORKSPACE environment variable or create ./notes directory")
        sys.exit(1)

    sys.exit(asyncio.run(run(workspace, reset)))


if __name__ == "__main__":
    main()
