"""
batch.py — CSV of product identifiers → zip of product photos.

Steps for one run:
  1. Pick the identifier column for the store (TCIN, Model, …).
  2. Parse the CSV (header row required) and drop rows whose identifier
     is blank. Nothing is searched if that leaves zero rows.
  3. For each row, in file order and one at a time:
       build query → search → resolve → fetch image → add to zip
     A failure anywhere in a row is logged and the row is skipped.
     A row with no matching image is skipped too, but is not a failure.
  4. Close the zip and hand it back.

Rows are deliberately processed sequentially: progress only ever moves
forward, and the search API (100 free queries/day) is never hit in
parallel.

Only problems outside the row loop end the run in the "error" state:
unreadable CSV, unsupported store or missing column, missing search
credentials, or a failure while finalising the zip.

ProcessingStatus is written only by run_batch(); front-ends read it,
either by holding the same object (web_server.py) or through the
on_progress callback (bot.py).
"""
from __future__ import annotations

import csv
import io
import logging
import os
import re
import zipfile
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Awaitable, Callable, Optional, Union

import image_proxy
import image_search
from image_proxy import FetchedImage
from image_resolver import resolve
from query_builder import build_query
from retailers import RetailerProfile, UnknownRetailerError, get_retailer
from search_backends.base import SearchBackend, SearchConfigError

logger = logging.getLogger(__name__)

IMAGE_EXTENSION = ".webp"

# Archive entries are named Model_Item Description_Unit Retail_Brand.webp
NAME_FIELDS = ("Model", "Item Description", "Unit Retail", "Brand")
BRAND_FALLBACK_FIELD = "Manufacturer"

_PATH_CHARS = re.compile(r"[\\/]")

Fetcher = Callable[[str], Awaitable[FetchedImage]]
ProgressCallback = Callable[["ProcessingStatus"], Awaitable[None]]


class BatchConfigError(ValueError):
    """The run cannot start: unsupported store, missing column, no usable rows."""


class CsvParseError(ValueError):
    """The uploaded file could not be read as a CSV with a header row."""


class BatchState(str, Enum):
    IDLE        = "idle"
    PROCESSING  = "processing"
    DOWNLOADING = "downloading"
    COMPLETE    = "complete"
    ERROR       = "error"


@dataclass
class ProcessingStatus:
    current: int = 0
    total: int = 0
    current_item: str = ""
    state: BatchState = BatchState.IDLE
    message: str = ""
    added: int = 0          # images written to the zip
    not_found: int = 0      # searched fine, no usable image
    skipped: int = 0        # row failed and was skipped

    @property
    def percent(self) -> int:
        if not self.total:
            return 0
        return round(self.current / self.total * 100)

    @property
    def finished(self) -> bool:
        return self.state in (BatchState.COMPLETE, BatchState.ERROR)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["state"]   = self.state.value
        data["percent"] = self.percent
        return data


@dataclass
class BatchResult:
    status: ProcessingStatus
    archive: Optional[bytes] = None
    archive_name: str = ""
    entries: list[str] = field(default_factory=list)


# ── Input ─────────────────────────────────────────────────────────────────────

def id_column_for(store: str) -> str:
    try:
        return get_retailer(store).id_column
    except UnknownRetailerError as exc:
        raise BatchConfigError(f"No column name defined for store: {store}") from exc


def parse_rows(csv_data: Union[bytes, str]) -> tuple[list[str], list[dict[str, str]]]:
    """Return (header, rows). Missing cells come back as empty strings."""
    if isinstance(csv_data, bytes):
        try:
            csv_data = csv_data.decode("utf-8-sig")
        except UnicodeDecodeError as exc:
            raise CsvParseError(f"File is not UTF-8 text: {exc}") from exc

    try:
        reader = csv.DictReader(io.StringIO(csv_data))
        if not reader.fieldnames:
            raise CsvParseError("CSV file has no header row")
        reader.fieldnames = [name.strip() for name in reader.fieldnames]
        rows = [
            {key: (value if isinstance(value, str) else "") for key, value in row.items() if key is not None}
            for row in reader
        ]
    except csv.Error as exc:
        raise CsvParseError(str(exc)) from exc
    return list(reader.fieldnames), rows


def select_rows(rows: list[dict[str, str]], column: str) -> list[dict[str, str]]:
    return [row for row in rows if (row.get(column) or "").strip()]


# ── Output ────────────────────────────────────────────────────────────────────

def archive_entry_name(row: dict[str, str]) -> str:
    """
    Model_Description_Retail_Brand.webp, flat at the zip root.
    Path separators become "-" and leading dots are stripped.
    """
    model, description, retail, brand = (row.get(name) or "" for name in NAME_FIELDS)
    brand = brand or row.get(BRAND_FALLBACK_FIELD) or ""
    parts = [_PATH_CHARS.sub("-", str(p).replace("_", " ")) for p in (model, description, retail, brand)]
    return ("_".join(parts) + IMAGE_EXTENSION).lstrip(".")


def unique_entry_name(name: str, taken: set[str]) -> str:
    """Suffix ' (2)', ' (3)', … before the extension until name is unused."""
    if name not in taken:
        return name
    stem, ext = os.path.splitext(name)
    n = 2
    while f"{stem} ({n}){ext}" in taken:
        n += 1
    return f"{stem} ({n}){ext}"


def archive_name_for(profile: RetailerProfile) -> str:
    return f"{profile.tag.lower()}_images.zip"


# ── Run ───────────────────────────────────────────────────────────────────────

async def _update(
    status: ProcessingStatus,
    on_progress: Optional[ProgressCallback],
    **changes,
) -> None:
    for key, value in changes.items():
        setattr(status, key, value)
    if on_progress is not None:
        await on_progress(status)


async def run_batch(
    store: str,
    csv_data: Union[bytes, str],
    *,
    backend: Optional[SearchBackend] = None,
    fetch: Optional[Fetcher] = None,
    status: Optional[ProcessingStatus] = None,
    on_progress: Optional[ProgressCallback] = None,
) -> BatchResult:
    """
    Process every usable row of csv_data for `store`.
    Never raises for per-row or setup problems; check result.status.state.
    """
    status = status if status is not None else ProcessingStatus()
    fetch  = fetch or image_proxy.fetch_image
    result = BatchResult(status=status)

    await _update(
        status, on_progress,
        current=0, total=0, current_item="",
        state=BatchState.PROCESSING, message="Parsing CSV file...",
    )

    # ── Setup: everything here is fatal to the run ────────────────────────────
    try:
        column  = id_column_for(store)
        profile = get_retailer(store)
        header, rows = parse_rows(csv_data)
        if column not in header:
            raise BatchConfigError(f"CSV is missing the required '{column}' column")
        valid_rows = select_rows(rows, column)
        if not valid_rows:
            raise BatchConfigError(f"No valid {column} values found in the CSV")
        if backend is None:
            backend = await image_search.get_backend()
    except CsvParseError as exc:
        return await _fail(result, on_progress, f"CSV parsing error: {exc}")
    except (BatchConfigError, SearchConfigError) as exc:
        return await _fail(result, on_progress, f"Error: {exc}")

    total = len(valid_rows)
    result.archive_name = archive_name_for(profile)
    await _update(status, on_progress, total=total, message=f"Found {total} items to process")
    logger.info("[%s] Batch started: %d of %d rows have a %s", profile.tag, total, len(rows), column)

    # ── Rows: failures are per-row ────────────────────────────────────────────
    buffer  = io.BytesIO()
    archive = zipfile.ZipFile(buffer, "w")
    taken: set[str] = set()

    for i, row in enumerate(valid_rows, start=1):
        item_id = row[column].strip()
        await _update(
            status, on_progress,
            current=i, current_item=item_id, state=BatchState.PROCESSING,
            message=f"Searching for {profile.tag} item: {item_id} ({i}/{total})",
        )
        try:
            image_url = resolve(profile.tag, await backend.search(build_query(profile.tag, item_id)))
            if image_url is None:
                logger.info("No image found for %s", item_id)
                status.not_found += 1
                continue

            await _update(
                status, on_progress,
                state=BatchState.DOWNLOADING,
                message=f"Downloading image for {item_id} ({i}/{total})",
            )
            image = await fetch(image_url)
            if not image.looks_like_image:
                logger.warning(
                    "Downloaded content for %s might not be an image. Content type: %s",
                    item_id, image.content_type,
                )

            name = unique_entry_name(archive_entry_name(row), taken)
            archive.writestr(name, image.body)
            taken.add(name)
            result.entries.append(name)
            status.added += 1
            logger.info("Successfully added image for %s to zip (%d bytes)", item_id, len(image.body))
        except Exception as exc:
            logger.warning("Error processing item %s: %s", item_id, exc)
            status.skipped += 1

    # ── Finalise ──────────────────────────────────────────────────────────────
    await _update(status, on_progress, state=BatchState.DOWNLOADING, message="Generating ZIP file...")
    try:
        archive.close()
        result.archive = buffer.getvalue()
    except Exception as exc:
        logger.error("[%s] Could not finalise archive: %s", profile.tag, exc, exc_info=True)
        result.archive = None
        return await _fail(result, on_progress, f"Error: {exc}")

    await _update(
        status, on_progress,
        current=total, current_item="", state=BatchState.COMPLETE,
        message="Processing complete! Your download is ready.",
    )
    logger.info(
        "[%s] Batch complete: %d added, %d without image, %d skipped",
        profile.tag, status.added, status.not_found, status.skipped,
    )
    return result


async def _fail(result: BatchResult, on_progress: Optional[ProgressCallback], message: str) -> BatchResult:
    logger.error("Batch failed: %s", message)
    await _update(result.status, on_progress, current_item="", state=BatchState.ERROR, message=message)
    return result
