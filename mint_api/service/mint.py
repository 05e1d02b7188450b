import logging
from functools import lru_cache
from pathlib import Path
from typing import Protocol

from starlette.concurrency import run_in_threadpool

from mint_api.acquisition import pass_locator
from mint_api.adapter.chain.contract import ContractMintClient
from mint_api.adapter.storage.ipfs import PinataStorage, gateway_url
from mint_api.config import settings
from mint_api.errors import InputMissing, MintError, MinterNotConfigured
from mint_api.observability import metrics_registry
from mint_api.schemas import ImageInput, MintRequest, MintResult, TokenMetadata

logger = logging.getLogger("mint_api.mint")


class Storage(Protocol):
    async def upload_bytes(self, content: bytes, filename: str = ..., content_type: str = ...) -> str: ...

    async def upload_json(self, document: dict, name: str = ...) -> str: ...


class ChainClient(Protocol):
    @property
    def signer_address(self) -> str: ...

    def mint_to(self, to_address: str, token_uri: str) -> dict: ...


class NFTMinter:
    """Uploads the image and metadata, then mints the token on-chain.

    The wallet behind ``chain`` pays for every transaction. When no
    recipient is given the token goes to that wallet.
    """

    def __init__(self, storage: Storage, chain: ChainClient) -> None:
        self.storage = storage
        self.chain = chain

    async def mint(
        self,
        request: MintRequest,
        to_address: str | None = None,
        filename: str = "image.png",
        content_type: str = "image/png",
    ) -> MintResult:
        recipient = to_address or self.chain.signer_address
        try:
            image_uri = await self._image_uri(request.image, filename, content_type)
            metadata = TokenMetadata(
                name=request.name,
                description=request.description,
                image=image_uri,
                properties=request.properties,
                attributes=[{"trait_type": k, "value": v} for k, v in request.properties.items()],
            )
            token_uri = await self.storage.upload_json(
                metadata.model_dump(), name=f"{request.name or 'token'}.json"
            )
            receipt = await run_in_threadpool(self.chain.mint_to, recipient, token_uri)
        except MintError:
            metrics_registry.record_mint(success=False)
            raise

        metrics_registry.record_mint(success=True)
        result = MintResult(
            tx_hash=receipt["tx_hash"],
            token_uri=token_uri,
            image_uri=image_uri,
            to_address=recipient,
            block_number=receipt.get("block_number"),
            token_id=receipt.get("token_id"),
            status=receipt.get("status", 1),
        )
        logger.info(
            "minted",
            extra={
                "tx_hash": result.tx_hash,
                "token_id": result.token_id,
                "to_address": result.to_address,
                "image_url": gateway_url(image_uri),
            },
        )
        return result

    async def _image_uri(self, image: ImageInput, filename: str, content_type: str) -> str:
        if isinstance(image, str):
            return pass_locator(image)
        if isinstance(image, (bytes, bytearray)):
            content = bytes(image)
        else:
            content = image.read()
            name = getattr(image, "name", None)
            if isinstance(name, str):
                filename = Path(name).name
        if not content:
            raise InputMissing("image is empty")
        return await self.storage.upload_bytes(content, filename=filename, content_type=content_type)


@lru_cache(maxsize=1)
def _build_minter() -> NFTMinter:
    return NFTMinter(storage=PinataStorage(), chain=ContractMintClient())


def get_minter() -> NFTMinter:
    if not settings.minter_configured:
        raise MinterNotConfigured("minting is not configured on this server")
    try:
        return _build_minter()
    except MintError:
        raise
    except Exception as exc:  # noqa: BLE001
        logger.error("minter_init_failed", extra={"error_type": type(exc).__name__})
        raise MinterNotConfigured(f"minter configuration is invalid: {type(exc).__name__}") from exc
