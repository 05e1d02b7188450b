"""Submission paths that end in a mint.

``submit_direct`` runs the mint in-process with the caller's own minter, so
the caller's wallet pays. ``submit_via_backend`` posts the same form to a
backend holding the operator key, so the operator pays. ``mint_locator``
skips acquisition entirely for images that are already pinned.
"""

import logging
from pathlib import Path

import httpx

from mint_api.acquisition import pass_locator, read_local_file
from mint_api.adapter.client.http import post_multipart
from mint_api.errors import InputMissing, NetworkFailure, RemoteOperationFailure
from mint_api.schemas import MintForm, MintRequest, MintResult
from mint_api.service.mint import NFTMinter

logger = logging.getLogger("mint_api.dispatch")


async def submit_direct(form: MintForm, minter: NFTMinter, strict: bool = False) -> MintResult | None:
    if not form.image:
        if strict:
            raise InputMissing("image is required")
        logger.warning("mint_skipped_no_image")
        return None

    request = MintRequest(name=form.name, description=form.description, image=form.image)
    return await minter.mint(
        request,
        to_address=form.address or None,
        filename=form.filename,
        content_type=form.content_type,
    )


async def submit_via_backend(
    form: MintForm,
    backend_url: str,
    user_id: str | None = None,
    strict: bool = False,
    transport: httpx.AsyncBaseTransport | None = None,
) -> dict | None:
    if not form.image:
        if strict:
            raise InputMissing("image is required")
        logger.warning("mint_skipped_no_image")
        return None
    if not form.address:
        raise InputMissing("address is required")

    headers = {"x-user-id": user_id} if user_id else None
    try:
        response = await post_multipart(
            f"{backend_url.rstrip('/')}/mint",
            data={"address": form.address, "name": form.name, "description": form.description},
            files={"image": (form.filename, form.image, form.content_type)},
            headers=headers,
            transport=transport,
        )
    except httpx.HTTPError as exc:
        raise NetworkFailure(f"backend unreachable: {exc}") from exc

    if response.status_code >= 400:
        raise RemoteOperationFailure(
            f"backend rejected mint ({response.status_code}): {_detail(response)}"
        )
    return response.json()


async def mint_local_file(
    minter: NFTMinter,
    path: str | Path,
    name: str,
    description: str,
    to_address: str | None = None,
) -> MintResult:
    request = MintRequest(name=name, description=description, image=read_local_file(path))
    return await minter.mint(request, to_address=to_address, filename=Path(path).name)


async def mint_locator(
    minter: NFTMinter,
    name: str,
    description: str,
    uri: str,
    to_address: str | None = None,
) -> MintResult:
    request = MintRequest(name=name, description=description, image=pass_locator(uri))
    return await minter.mint(request, to_address=to_address)


def _detail(response: httpx.Response) -> str:
    try:
        return str(response.json().get("detail", response.text))
    except (ValueError, AttributeError):
        return response.text[:200]
