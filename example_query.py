#!/usr/bin/env python3
"""Example: Ask questions against an indexed notes workspace."""

import asyncio
import os
import sys

from ideanote_kb import KBService, KBSettings
from ideanote_kb.log import configure_logging
from ideanote_kb.utils import shorten


async def run(workspace: str, generate: bool) -> None:
    settings = KBSettings()
    configure_logging("WARNING", settings.log_format)
    service = KBService(settings)
    await service.open_workspace(workspace)

    print("=" * 60)
    print("IdeaNote KB Query")
    print("=" * 60)
    print(f"Workspace:       {workspace}")
    print(f"Documents:       {len(service.manager.text_index.list())}")
    print(f"Chunks:          {len(service.manager.vector_index.list())}")
    print(f"Embedding model: {settings.embed_model}")
    print()
    print("Enter questions (or 'quit' to exit)")
    print("=" * 60)
    print()

    try:
        while True:
            question = (await asyncio.to_thread(input, "Question: ")).strip()
            if not question or question.lower() in ("quit", "exit", "q"):
                break
            print()

            response, stream = await service.ask(question, settings.top_k)
            if not response.success:
                print(f"Error: {response.error}", file=sys.stderr)
                print()
                continue

            print(f"Top {len(response.results)} sources:")
            for rank, ref in enumerate(response.results, start=1):
                print(f"[{rank}] {ref.id}#{ref.chunk_index}  score={ref.score:.4f}")
                print(f"    {shorten(ref.content.replace(chr(10), ' '), 150)}")
            print()

            if generate:
                async for event in stream:
                    if event.type == "delta":
                        print(event.text, end="", flush=True)
                    elif event.type == "error":
                        print(f"\nError: {event.error}", file=sys.stderr)
                print("\n")
            else:
                await stream.aclose()
    finally:
        await service.close()

    print("Goodbye!")


def main():
    workspace = os.getenv("WORKSPACE", "./notes")
    generate = os.getenv("GENERATE", "1") in ("1", "true", "yes")

    if not os.path.isdir(os.path.join(workspace, ".kb")):
        print(f"Error: No index found in workspace: {workspace}")
        print("Run example_rebuild.py first or set WORKSPACE environment variable")
        sys.exit(1)

    asyncio.run(run(workspace, generate))


if __name__ == "__main__":
    main()
