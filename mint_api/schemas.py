from dataclasses import dataclass, field
from typing import Any, BinaryIO, Union

from pydantic import BaseModel, Field

ImageInput = Union[bytes, BinaryIO, str]


@dataclass
class MintRequest:
    name: str
    description: str
    image: ImageInput
    properties: dict[str, Any] = field(default_factory=dict)


@dataclass
class MintForm:
    name: str = ""
    description: str = ""
    image: bytes | None = None
    address: str | None = None
    filename: str = "image.png"
    content_type: str = "image/png"


class MintResult(BaseModel):
    tx_hash: str
    token_uri: str
    image_uri: str
    to_address: str
    block_number: int | None = None
    token_id: int | None = None
    status: int = 1


class MintResponse(BaseModel):
    status: str = "ok"


class HealthResponse(BaseModel):
    status: str
    minter_configured: bool
    contract_address: str | None = None
    chain_id: int | None = None


class TokenMetadata(BaseModel):
    name: str
    description: str
    image: str
    properties: dict[str, Any] = Field(default_factory=dict)
    attributes: list[dict[str, Any]] = Field(default_factory=list)
