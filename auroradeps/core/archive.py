"""Package archive unpacking (gzip-compressed tar)."""

from __future__ import annotations

import io
import tarfile
from pathlib import Path

from auroradeps.core.errors import StoreIOError


def unpack_tgz(data: bytes, destination: Path) -> Path:
    """Unpack a ``.tgz`` payload into *destination* and return it.

    Members are extracted with the ``data`` filter, so absolute paths,
    ``..`` components and device files are rejected.
    """
    destination = Path(destination)
    destination.mkdir(parents=True, exist_ok=True)
    try:
        with tarfile.open(fileobj=io.BytesIO(data), mode="r:gz") as archive:
            archive.extractall(destination, filter="data")
    except (tarfile.TarError, OSError, EOFError) as exc:
        raise StoreIOError(f"Cannot unpack archive into {destination}: {exc}") from exc
    return destination
