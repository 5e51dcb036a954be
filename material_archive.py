"""Material zip archive handling."""

from __future__ import annotations

import io
import logging
import zipfile
import zlib
from typing import Callable, Iterable, Iterator, Tuple

from material_decoder import ImageDecodeError, decode_image
from material_types import DecodedImage, MaterialBundle

log = logging.getLogger(__name__)


def unpack(data: bytes) -> Iterator[Tuple[str, bytes]]:
    """Yield ``(entry_name, entry_bytes)`` for every file entry, in archive order.

    Each entry is read fully into memory before it is yielded. Raises
    zipfile.BadZipFile on the first ``next()`` if *data* is not a zip archive,
    and when an entry cannot be read back.
    """
    with zipfile.ZipFile(io.BytesIO(data)) as archive:
        for info in archive.infolist():
            if info.is_dir():
                continue
            try:
                with archive.open(info) as fh:
                    payload = fh.read()
            except (zipfile.BadZipFile, zlib.error, RuntimeError, NotImplementedError, EOFError) as exc:
                # corrupt streams, encrypted entries, unsupported compression methods
                raise zipfile.BadZipFile(f"entry {info.filename!r}: {exc}") from exc
            yield info.filename, payload


def build_bundle(
    entries: Iterable[Tuple[str, bytes]],
    decoder: Callable[[bytes], DecodedImage] = decode_image,
) -> MaterialBundle:
    bundle = MaterialBundle()
    for name, data in entries:
        if MaterialBundle.slot_for(name) is None:
            log.debug("Skipping archive entry %r", name)
            continue
        try:
            image = decoder(data)
        except ImageDecodeError as exc:
            raise ImageDecodeError(f"archive entry {name!r}: {exc}") from exc
        if not bundle.assign(name, image):
            log.warning("Duplicate archive entry %r ignored", name)
            continue
        log.debug("Loaded %s (%dx%d)", name, image.width, image.height)
    return bundle
