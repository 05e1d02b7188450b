"""Ways of getting hold of an image before it is handed to the minter.

Three representations are accepted downstream: raw bytes, an open binary
file handle, or a content locator string such as ``ipfs://<cid>``. Nothing
here converts one into another.
"""

import re
from pathlib import Path
from typing import BinaryIO

from fastapi import UploadFile

from mint_api.errors import InputMissing, InvalidLocator, IOFailure, UploadTooLarge

_LOCATOR_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*://\S+$")


def read_local_file(path: str | Path) -> bytes:
    try:
        return Path(path).read_bytes()
    except OSError as exc:
        raise IOFailure(f"cannot read image {path}: {exc.strerror or exc}") from exc


def open_local_file(path: str | Path) -> BinaryIO:
    try:
        return open(path, "rb")
    except OSError as exc:
        raise IOFailure(f"cannot open image {path}: {exc.strerror or exc}") from exc


async def read_upload(upload: UploadFile, max_bytes: int | None = None) -> bytes:
    if max_bytes is None:
        content = await upload.read()
    else:
        if upload.size is not None and upload.size > max_bytes:
            raise UploadTooLarge(f"image exceeds {max_bytes} bytes")
        content = await upload.read(max_bytes + 1)
        if len(content) > max_bytes:
            raise UploadTooLarge(f"image exceeds {max_bytes} bytes")
    if not content:
        raise InputMissing("uploaded image is empty")
    return content


def is_content_locator(value: str) -> bool:
    return bool(_LOCATOR_RE.match(value))


def pass_locator(uri: str) -> str:
    if not is_content_locator(uri):
        raise InvalidLocator(f"not a content locator: {uri!r}")
    return uri
