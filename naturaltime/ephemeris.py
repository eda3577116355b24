"""Locating and acquiring the DE kernel the natural time engine reads.

Configuration comes from the environment:

``DE_BSP``
    Kernel file or directory to use. An empty directory gets the default
    kernel downloaded into it.
``DE_BSP_CACHE_DIR``
    Cache root used when ``DE_BSP`` is unset (default ``~/.naturaltime/kernels``).
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path

import httpx

from .astro import SpiceEphemeris

LOGGER = logging.getLogger(__name__)

DEFAULT_EPHEMERIS_URL = (
    "https://naif.jpl.nasa.gov/pub/naif/generic_kernels/spk/planets/de442.bsp"
)
DEFAULT_EPHEMERIS_FILENAME = "de442.bsp"
DEFAULT_CACHE_DIR = Path.home() / ".naturaltime" / "kernels"


class EphemerisAcquisitionError(RuntimeError):
    """Raised when the default ephemeris cannot be acquired."""


def _download_file(url: str, destination: Path) -> None:
    destination.parent.mkdir(parents=True, exist_ok=True)
    LOGGER.info(
        json.dumps({"event": "ephemeris_downloading", "url": url, "destination": str(destination)})
    )
    try:
        with httpx.stream("GET", url, timeout=httpx.Timeout(120.0, connect=30.0)) as response:
            response.raise_for_status()
            total = int(response.headers.get("Content-Length", "0")) or None
            received = 0
            with destination.open("wb") as handle:
                for chunk in response.iter_bytes(chunk_size=1 << 20):
                    handle.write(chunk)
                    received += len(chunk)
    except (httpx.HTTPError, OSError) as exc:
        if destination.exists():
            destination.unlink()
        raise EphemerisAcquisitionError(f"Failed to download ephemeris from {url}: {exc}") from exc
    LOGGER.info(
        json.dumps(
            {
                "event": "ephemeris_downloaded",
                "url": url,
                "destination": str(destination),
                "bytes": received,
                "total": total,
            }
        )
    )


def _ensure_ephemeris(path: Path, url: str = DEFAULT_EPHEMERIS_URL) -> Path:
    """Ensure *path* references an existing BSP file or a directory containing one."""

    if path.is_file():
        if path.suffix.lower() != ".bsp":
            raise EphemerisAcquisitionError(f"Ephemeris file must have .bsp extension: {path}")
        return path
    if path.exists() and not path.is_dir():
        raise EphemerisAcquisitionError(f"Ephemeris path is not a file or directory: {path}")

    if path.suffix.lower() == ".bsp":
        _download_file(url, path)
        return path

    path.mkdir(parents=True, exist_ok=True)
    if not any(path.glob("*.bsp")):
        _download_file(url, path / DEFAULT_EPHEMERIS_FILENAME)
    return path


def resolve_ephemeris_source() -> Path:
    """Return a path to a usable ephemeris kernel, downloading it if necessary."""

    override = os.environ.get("DE_BSP")
    if override:
        return _ensure_ephemeris(Path(override).expanduser())

    cache_root = Path(os.environ.get("DE_BSP_CACHE_DIR", str(DEFAULT_CACHE_DIR))).expanduser()
    return _ensure_ephemeris(cache_root / DEFAULT_EPHEMERIS_FILENAME)


def open_ephemeris() -> SpiceEphemeris:
    """Resolve the configured kernel and return an engine reading it."""

    source = resolve_ephemeris_source()
    LOGGER.info(json.dumps({"event": "ephemeris_opening", "source": str(source)}))
    return SpiceEphemeris(str(source))
