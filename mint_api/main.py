import logging
from pathlib import Path

import uvicorn
from fastapi import Depends, FastAPI, File, Form, HTTPException, UploadFile, status
from fastapi.responses import PlainTextResponse
from web3 import Web3

from mint_api.acquisition import read_upload
from mint_api.config import settings
from mint_api.errors import register_exception_handlers
from mint_api.observability import (
    AccessLogMiddleware,
    RateLimitMiddleware,
    configure_logging,
    metrics_registry,
)
from mint_api.schemas import HealthResponse, MintRequest, MintResponse
from mint_api.security import require_verified_user
from mint_api.service.mint import NFTMinter, get_minter

configure_logging()
logger = logging.getLogger("mint_api")

ALLOWED_IMAGE_EXT = {".png", ".jpg", ".jpeg", ".gif", ".webp", ".svg", ".bmp"}

app = FastAPI(title="NFT Mint API", version="0.1.0")
app.add_middleware(RateLimitMiddleware)
app.add_middleware(AccessLogMiddleware)
register_exception_handlers(app)


@app.on_event("startup")
def log_minter_status() -> None:
    if settings.minter_configured:
        logger.info(
            "minter_configured contract=%s chain_id=%s", settings.nft_contract_address, settings.chain_id
        )
    else:
        logger.warning("minter_not_configured")


@app.get("/health", response_model=HealthResponse)
def health() -> HealthResponse:
    return HealthResponse(
        status="ok",
        minter_configured=settings.minter_configured,
        contract_address=settings.nft_contract_address or None,
        chain_id=settings.chain_id,
    )


@app.get("/metrics", include_in_schema=False)
def metrics() -> PlainTextResponse:
    return PlainTextResponse(metrics_registry.render_prometheus())


@app.get("/auth/verify")
def auth_verify(_: str = Depends(require_verified_user)) -> dict[str, str]:
    return {"status": "ok"}


@app.post("/mint", response_model=MintResponse)
async def mint(
    address: str = Form(...),
    name: str = Form(...),
    description: str = Form(...),
    image: UploadFile = File(...),
    user_id: str = Depends(require_verified_user),
    minter: NFTMinter = Depends(get_minter),
) -> MintResponse:
    for field_name, value in (("address", address), ("name", name), ("description", description)):
        if not value.strip():
            raise HTTPException(status_code=422, detail=f"{field_name} is required")
    if not Web3.is_address(address):
        raise HTTPException(status_code=422, detail="address is not a valid account address")

    if not image.content_type or not image.content_type.startswith("image/"):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Only image uploads are allowed")
    suffix = Path(image.filename or "").suffix.lower() or ".png"
    if suffix not in ALLOWED_IMAGE_EXT:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Unsupported image extension")

    content = await read_upload(image, max_bytes=settings.max_upload_bytes)

    result = await minter.mint(
        MintRequest(name=name.strip(), description=description, image=content),
        to_address=Web3.to_checksum_address(address),
        filename=image.filename or f"image{suffix}",
        content_type=image.content_type,
    )
    logger.info(
        "mint_request_complete",
        extra={"user_id": user_id, "tx_hash": result.tx_hash, "token_id": result.token_id},
    )
    return MintResponse(status="ok")


def run() -> None:
    uvicorn.run(app, host=settings.host, port=settings.port, log_config=None)


if __name__ == "__main__":
    run()
