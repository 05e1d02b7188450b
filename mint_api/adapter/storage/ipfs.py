import logging

import httpx

from mint_api.config import settings
from mint_api.errors import NetworkFailure, RemoteOperationFailure

logger = logging.getLogger("mint_api.storage")


class PinataStorage:
    """Pins files and JSON documents through the Pinata pinning API."""

    def __init__(
        self,
        jwt: str | None = None,
        base_url: str | None = None,
        timeout_s: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._jwt = jwt if jwt is not None else settings.pinata_jwt
        self._base_url = (base_url or settings.pinata_base_url).rstrip("/")
        self._timeout_s = timeout_s if timeout_s is not None else settings.storage_timeout_s
        self._transport = transport

    async def upload_bytes(
        self,
        content: bytes,
        filename: str = "image.png",
        content_type: str = "application/octet-stream",
    ) -> str:
        data = await self._post(
            "/pinning/pinFileToIPFS",
            files={"file": (filename, content, content_type)},
        )
        uri = _to_locator(data)
        logger.info("pinned_file", extra={"uri": uri, "size": len(content)})
        return uri

    async def upload_json(self, document: dict, name: str = "metadata.json") -> str:
        data = await self._post(
            "/pinning/pinJSONToIPFS",
            json={"pinataContent": document, "pinataMetadata": {"name": name}},
        )
        uri = _to_locator(data)
        logger.info("pinned_json", extra={"uri": uri})
        return uri

    async def _post(self, path: str, **kwargs) -> dict:
        headers = {"Authorization": f"Bearer {self._jwt}"}
        try:
            async with httpx.AsyncClient(timeout=self._timeout_s, transport=self._transport) as client:
                response = await client.post(f"{self._base_url}{path}", headers=headers, **kwargs)
        except httpx.HTTPError as exc:
            raise NetworkFailure(f"storage request failed: {exc}") from exc

        if response.status_code >= 400:
            raise RemoteOperationFailure(
                f"storage upload rejected ({response.status_code}): {response.text[:200]}"
            )
        try:
            return response.json()
        except ValueError as exc:
            raise RemoteOperationFailure("storage returned a non-json body") from exc


def _to_locator(data: dict) -> str:
    cid = data.get("IpfsHash")
    if not cid:
        raise RemoteOperationFailure("storage response has no IpfsHash")
    return f"ipfs://{cid}"


def gateway_url(uri: str, gateway: str | None = None) -> str:
    base = (gateway or settings.ipfs_gateway_url).rstrip("/")
    if uri.startswith("ipfs://"):
        return f"{base}/{uri[len('ipfs://'):]}"
    return uri
