"""
Debug Run Storage

JSON-on-disk store for debug runs, kept apart from the pure pipeline.

Design Decisions:
- Each stored run gets its own directory under <debug_store_dir>/<run_id>/
- metadata.json carries the note id and timestamps used for rate limiting
  and retention; debug_run.json carries the artifact itself
- At most one debug run per note within the rolling rate-limit window
- Oversized runs (storage_skipped_reason set) are never written
- File operations are async-friendly using aiofiles
"""

import json
import shutil
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Optional

import aiofiles
import structlog

from note_suggestions.config.settings import get_settings
from note_suggestions.models import DebugRun

logger = structlog.get_logger(__name__)

METADATA_FILE = "metadata.json"
DEBUG_RUN_FILE = "debug_run.json"

REASON_PAYLOAD_TOO_LARGE = "payload_too_large"
REASON_RATE_LIMITED = "rate_limited"


@dataclass
class StoreOutcome:
    """Whether a debug run was persisted, and why not when it was not."""
    stored: bool
    reason: Optional[str] = None
    path: Optional[Path] = None
    message: Optional[str] = None


def get_store_dir(store_dir: Optional[Path] = None) -> Path:
    """Resolve the store root, defaulting to the configured directory."""
    return Path(store_dir) if store_dir is not None else Path(get_settings().debug_store_dir)


def get_run_dir(run_id: str, store_dir: Optional[Path] = None) -> Path:
    return get_store_dir(store_dir) / run_id


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# File Operations
# =============================================================================

async def save_run_file(run_dir: Path, filename: str, data: Any) -> Path:
    """Write JSON data into a run directory."""
    run_dir.mkdir(parents=True, exist_ok=True)
    file_path = run_dir / filename

    async with aiofiles.open(file_path, "w", encoding="utf-8") as f:
        await f.write(json.dumps(data, indent=2, default=str))
    return file_path


async def load_run_file(run_dir: Path, filename: str) -> Optional[dict]:
    """Read JSON data from a run directory, or None if absent."""
    file_path = run_dir / filename
    if not file_path.exists():
        return None

    async with aiofiles.open(file_path, "r", encoding="utf-8") as f:
        content = await f.read()
        return json.loads(content)


async def list_debug_runs(
    note_id: Optional[str] = None,
    store_dir: Optional[Path] = None,
) -> list[dict]:
    """Metadata of stored runs, newest first, optionally for one note."""
    root = get_store_dir(store_dir)
    runs: list[dict] = []
    if not root.exists():
        return runs

    for run_dir in root.iterdir():
        if not run_dir.is_dir():
            continue
        metadata = await load_run_file(run_dir, METADATA_FILE)
        if metadata is None:
            continue
        if note_id is not None and metadata.get("note_id") != note_id:
            continue
        runs.append(metadata)

    runs.sort(key=lambda m: m.get("stored_at", ""), reverse=True)
    return runs


# =============================================================================
# Debug Run Operations
# =============================================================================

async def save_debug_run(
    note_id: str,
    debug_run: DebugRun,
    store_dir: Optional[Path] = None,
    now: Optional[datetime] = None,
    rate_limit_seconds: Optional[int] = None,
) -> StoreOutcome:
    """Persist a debug run unless it is oversized or the note is rate-limited."""
    now = now or _utcnow()
    if rate_limit_seconds is None:
        rate_limit_seconds = get_settings().debug_rate_limit_seconds

    if debug_run.storage_skipped_reason:
        logger.info(
            "debug_run_not_stored",
            run_id=debug_run.meta.run_id,
            reason=REASON_PAYLOAD_TOO_LARGE,
        )
        return StoreOutcome(
            stored=False,
            reason=REASON_PAYLOAD_TOO_LARGE,
            message=debug_run.storage_skipped_reason,
        )

    window_start = now - timedelta(seconds=rate_limit_seconds)
    for metadata in await list_debug_runs(note_id=note_id, store_dir=store_dir):
        stored_at = datetime.fromisoformat(metadata["stored_at"])
        if stored_at > window_start:
            retry_after = stored_at + timedelta(seconds=rate_limit_seconds) - now
            minutes = max(1, int(retry_after.total_seconds() // 60))
            logger.info("debug_run_rate_limited", note_id=note_id, run_id=debug_run.meta.run_id)
            return StoreOutcome(
                stored=False,
                reason=REASON_RATE_LIMITED,
                message=(
                    f"A debug run for this note was stored at {metadata['stored_at']}; "
                    f"try again in about {minutes} minute(s)."
                ),
            )

    run_dir = get_run_dir(debug_run.meta.run_id, store_dir)
    path = await save_run_file(run_dir, DEBUG_RUN_FILE, debug_run.model_dump(mode="json"))
    await save_run_file(run_dir, METADATA_FILE, {
        "run_id": debug_run.meta.run_id,
        "note_id": note_id,
        "stored_at": now.isoformat(),
        "payload_bytes": debug_run.payload_bytes,
        "verbosity": debug_run.meta.verbosity.value,
    })

    logger.info(
        "debug_run_stored",
        run_id=debug_run.meta.run_id,
        note_id=note_id,
        payload_bytes=debug_run.payload_bytes,
    )
    return StoreOutcome(stored=True, path=path)


async def load_debug_run(run_id: str, store_dir: Optional[Path] = None) -> Optional[DebugRun]:
    """Load a stored debug run by id."""
    data = await load_run_file(get_run_dir(run_id, store_dir), DEBUG_RUN_FILE)
    if data is None:
        return None
    return DebugRun.model_validate(data)


async def delete_debug_run(run_id: str, store_dir: Optional[Path] = None) -> bool:
    """Delete a stored run and all its files."""
    run_dir = get_run_dir(run_id, store_dir)
    if run_dir.exists():
        shutil.rmtree(run_dir)
        return True
    return False


async def cleanup_expired(
    now: Optional[datetime] = None,
    store_dir: Optional[Path] = None,
    retention_hours: Optional[int] = None,
) -> int:
    """Delete runs older than the retention window. Returns the number removed."""
    now = now or _utcnow()
    if retention_hours is None:
        retention_hours = get_settings().debug_retention_hours
    cutoff = now - timedelta(hours=retention_hours)

    removed = 0
    for metadata in await list_debug_runs(store_dir=store_dir):
        if datetime.fromisoformat(metadata["stored_at"]) < cutoff:
            if await delete_debug_run(metadata["run_id"], store_dir):
                removed += 1

    logger.info("debug_cleanup_complete", removed=removed, retention_hours=retention_hours)
    return removed
