import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()


@dataclass(frozen=True)
class Settings:
    minter_private_key: str = os.getenv("MINTER_PRIVATE_KEY", "")
    chain_rpc_url: str = os.getenv("CHAIN_RPC_URL", "https://rpc-amoy.polygon.technology")
    chain_id: int = int(os.getenv("CHAIN_ID", "80002"))
    nft_contract_address: str = os.getenv("NFT_CONTRACT_ADDRESS", "")
    nft_contract_abi_path: str = os.getenv("NFT_CONTRACT_ABI_PATH", "")
    nft_mint_function: str = os.getenv("NFT_MINT_FUNCTION", "mintTo")
    mint_gas_limit: int = int(os.getenv("MINT_GAS_LIMIT", "0"))
    mint_receipt_timeout_s: float = float(os.getenv("MINT_RECEIPT_TIMEOUT_S", "120"))
    pinata_jwt: str = os.getenv("PINATA_JWT", "")
    pinata_base_url: str = os.getenv("PINATA_BASE_URL", "https://api.pinata.cloud")
    ipfs_gateway_url: str = os.getenv("IPFS_GATEWAY_URL", "https://gateway.pinata.cloud/ipfs")
    storage_timeout_s: float = float(os.getenv("STORAGE_TIMEOUT_S", "60"))
    max_upload_bytes: int = int(os.getenv("MAX_UPLOAD_BYTES", str(20 * 1024 * 1024)))
    host: str = os.getenv("HOST", "0.0.0.0")
    port: int = int(os.getenv("PORT", "8000"))
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    log_json: bool = os.getenv("LOG_JSON", "true").lower() == "true"
    enable_metrics: bool = os.getenv("ENABLE_METRICS", "true").lower() == "true"
    rate_limit_enabled: bool = os.getenv("RATE_LIMIT_ENABLED", "true").lower() == "true"
    rate_limit_requests: int = int(os.getenv("RATE_LIMIT_REQUESTS", "10"))
    rate_limit_window_seconds: int = int(os.getenv("RATE_LIMIT_WINDOW_SECONDS", "60"))

    @property
    def minter_configured(self) -> bool:
        return bool(self.minter_private_key and self.nft_contract_address and self.pinata_jwt)


settings = Settings()


def get_verified_user_ids() -> set[str]:
    raw = os.getenv("VERIFIED_USER_IDS", "")
    return {user_id.strip() for user_id in raw.split(",") if user_id.strip()}
