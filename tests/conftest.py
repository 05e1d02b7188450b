import os

# Keep tests offline: no signer, no pinning credentials, no rate limiting.
os.environ["VERIFIED_USER_IDS"] = "alice"
os.environ["MINTER_PRIVATE_KEY"] = ""
os.environ["NFT_CONTRACT_ADDRESS"] = ""
os.environ["PINATA_JWT"] = ""
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["LOG_JSON"] = "false"

import pytest  # noqa: E402

from mint_api.schemas import MintResult  # noqa: E402

SIGNER = "0x" + "11" * 20
RECIPIENT = "0x" + "ab" * 20


class FakeStorage:
    def __init__(self) -> None:
        self.files: list[tuple[str, bytes, str]] = []
        self.documents: list[dict] = []

    async def upload_bytes(
        self, content: bytes, filename: str = "image.png", content_type: str = "application/octet-stream"
    ) -> str:
        self.files.append((filename, content, content_type))
        return f"ipfs://QmImage{len(self.files)}"

    async def upload_json(self, document: dict, name: str = "metadata.json") -> str:
        self.documents.append(document)
        return f"ipfs://QmMeta{len(self.documents)}"


class FakeChain:
    signer_address = SIGNER

    def __init__(self, error: Exception | None = None) -> None:
        self.calls: list[tuple[str, str]] = []
        self.error = error

    def mint_to(self, to_address: str, token_uri: str) -> dict:
        if self.error is not None:
            raise self.error
        self.calls.append((to_address, token_uri))
        return {"tx_hash": "0xfeed", "block_number": 7, "status": 1, "token_id": len(self.calls)}


class RecordingMinter:
    def __init__(self, error: Exception | None = None) -> None:
        self.calls: list[dict] = []
        self.error = error

    async def mint(self, request, to_address=None, filename="image.png", content_type="image/png"):
        if self.error is not None:
            raise self.error
        self.calls.append(
            {
                "request": request,
                "to_address": to_address,
                "filename": filename,
                "content_type": content_type,
            }
        )
        return MintResult(
            tx_hash="0xfeed",
            token_uri="ipfs://QmMeta1",
            image_uri="ipfs://QmImage1",
            to_address=to_address or SIGNER,
            token_id=1,
        )


@pytest.fixture
def storage() -> FakeStorage:
    return FakeStorage()


@pytest.fixture
def chain() -> FakeChain:
    return FakeChain()


@pytest.fixture
def recording_minter() -> RecordingMinter:
    return RecordingMinter()
