"""
Silo - Bulk Indexing Script
============================
CLI entry point that orchestrates:
    1. Validate settings (fail-fast on missing keys).
    2. Initialise the embedder and ``SiloVectorStore``.
    3. Embed and store every item of a JSON file for one user.
    4. Print a structured execution summary with timing breakdown.

Items file format (JSON array)::

    [{"id": "a1", "title": "Leg day", "description": "...", "tags": ["gym"], "classification": "fitness"}]

Flags:
    --user-id     Owner of the records (required).
    --items       Path to the JSON items file.
    --count-only  Print how many records the user has stored and exit.

Usage:
    python -m silo.scripts.index_items --user-id u1 --items saved.json
    python -m silo.scripts.index_items --user-id u1 --count-only
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
import time
from pathlib import Path

# ── Ensure project root is importable when run directly ────────────────
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
if str(_PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(_PROJECT_ROOT))


# ── CLI Argument Parsing ───────────────────────────────────────────────

def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="index_items", description="Silo — Embed saved items and store them in object storage.")
    parser.add_argument("--user-id", required=True, help="User whose records are written or counted.")
    parser.add_argument("--items", type=Path, default=None, help="JSON array of items to index.")
    parser.add_argument("--count-only", action="store_true", default=False, help="Print the number of stored records and exit (no indexing).")
    args = parser.parse_args(argv)
    if not args.count_only and args.items is None:
        parser.error("--items is required unless --count-only is given.")
    return args


def load_items(path: Path) -> list[dict]:
    """Read the items file; every entry must be an object with a title."""
    data = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(data, list):
        raise ValueError(f"{path} must contain a JSON array of items.")
    items = [entry for entry in data if isinstance(entry, dict) and entry.get("title")]
    if len(items) != len(data):
        print(f"  [WARN] {len(data) - len(items)} entr(ies) without a title ignored.")
    return items


async def index_all(rag, user_id: str, items: list[dict], max_workers: int) -> tuple[int, int, int]:
    """
    Index *items* with at most *max_workers* in flight.

    Returns ``(stored, degraded, failed)``.
    """
    from silo.src.models.request_models import EmbeddingRequest

    semaphore = asyncio.Semaphore(max_workers)
    stored = degraded = failed = 0

    async def _one(position: int, item: dict) -> None:
        nonlocal stored, degraded, failed
        request = EmbeddingRequest(user_id=user_id, item_id=str(item.get("id") or item.get("itemId") or position), title=item["title"], description=item.get("description"), tags=item.get("tags"), classification=item.get("classification"))
        async with semaphore:
            try:
                result = await rag.index_item(request)
            except Exception as exc:
                failed += 1
                print(f"  [FAIL] {request.item_id}: {exc}")
                return
        if result.stored:
            stored += 1
        elif not result.embedding:
            degraded += 1
        else:
            failed += 1

    # One S3 client shared by every write
    async with rag.vector_store:
        await asyncio.gather(*(_one(i, item) for i, item in enumerate(items)))
    return stored, degraded, failed


# ── Main Orchestration ─────────────────────────────────────────────────

def main(argv: list[str] | None = None) -> None:
    args = _parse_args(argv)
    t_start = time.perf_counter()

    # ── 0. Load settings + .env (timed) ────────────────────────────────
    t_settings = time.perf_counter()
    try:
        from silo.config.settings import settings
    except Exception as exc:
        print("\n[FATAL] Configuration error — check your .env file:\n")
        print(f"  {exc}")
        print()
        sys.exit(1)
    settings_ms = (time.perf_counter() - t_settings) * 1000

    # Now that settings is loaded, we can safely import the logger
    from silo.src.utils.logger import get_logger
    logger = get_logger(__name__)

    logger.info("Settings loaded in %.1fms", settings_ms)

    _print_header(settings, args.user_id)

    # ── 1. Wire embedder + store (timed) ───────────────────────────────
    t_init = time.perf_counter()
    from silo.src.core.rag_engine import build_rag_manager

    try:
        rag = build_rag_manager()
    except Exception:
        logger.exception("Failed to initialise the embedding / generation clients.")
        sys.exit(1)
    init_ms = (time.perf_counter() - t_init) * 1000
    logger.info("Clients initialised in %.1fms", init_ms)

    startup_ms = settings_ms + init_ms

    if args.count_only:
        existing = asyncio.run(rag.vector_store.count(args.user_id))
        print(f"  Stored records for '{args.user_id}': {existing}")
        _print_footer(0, 0, 0, 0, time.perf_counter() - t_start, settings_ms, init_ms, startup_ms)
        return

    # ── 2. Load items ──────────────────────────────────────────────────
    try:
        items = load_items(args.items)
    except (OSError, ValueError) as exc:
        logger.error("Cannot read items file %s: %s", args.items, exc)
        sys.exit(1)
    logger.info("Loaded %d item(s) from %s", len(items), args.items)

    # ── 3. Index ───────────────────────────────────────────────────────
    stored, degraded, failed = asyncio.run(index_all(rag, args.user_id, items, settings.MAX_WORKERS))

    # ── 4. Print execution summary ─────────────────────────────────────
    elapsed = time.perf_counter() - t_start
    _print_footer(len(items), stored, degraded, failed, elapsed, settings_ms, init_ms, startup_ms)
    if failed:
        sys.exit(2)


# ── Pretty-print helpers ──────────────────────────────────────────────

def _mask(secret: str) -> str:
    return f"****{secret[-4:]}" if len(secret) > 4 else "****"


def _print_header(settings: object, user_id: str) -> None:
    api_key = _mask(settings.GOOGLE_API_KEY.get_secret_value())  # type: ignore[attr-defined]
    access_key = _mask(settings.OBJECT_STORE_ACCESS_KEY.get_secret_value())  # type: ignore[attr-defined]

    print()
    print("=" * 60)
    print("  SILO — Bulk Item Indexing")
    print("=" * 60)
    print(f"  Environment  : {settings.ENV}")                        # type: ignore[attr-defined]
    print(f"  Embedding    : {settings.EMBEDDING_MODEL}")            # type: ignore[attr-defined]
    print(f"  Endpoint     : {settings.OBJECT_STORE_ENDPOINT}")      # type: ignore[attr-defined]
    print(f"  Bucket       : {settings.OBJECT_STORE_BUCKET}/{settings.EMBEDDINGS_PREFIX}/{user_id}/")  # type: ignore[attr-defined]
    print(f"  Workers      : {settings.MAX_WORKERS}")                # type: ignore[attr-defined]
    print(f"  API Key      : {api_key}")
    print(f"  Access Key   : {access_key}")
    print("=" * 60)
    print()


def _print_footer(total: int, stored: int, degraded: int, failed: int, elapsed: float, settings_ms: float, init_ms: float, startup_ms: float) -> None:
    processing_s = elapsed - (startup_ms / 1000)

    print()
    print("=" * 60)
    print("  EXECUTION SUMMARY")
    print("-" * 60)
    print(f"  Items read           : {total}")
    print(f"  Records stored       : {stored}")
    print(f"  Skipped (degraded)   : {degraded}")
    print(f"  Failed               : {failed}")
    print("-" * 60)
    print("  TIMING BREAKDOWN")
    print("-" * 60)
    print(f"  Settings + .env load : {settings_ms:>8.1f}ms")
    print(f"  Client init          : {init_ms:>8.1f}ms")
    print(f"  Startup time (total) : {startup_ms:>8.1f}ms")
    print(f"  Processing time      : {processing_s:>8.2f}s")
    print(f"  Total elapsed        : {elapsed:>8.2f}s")
    print("=" * 60)
    print()


# ── Entry point ────────────────────────────────────────────────────────

if __name__ == "__main__":
    main()
