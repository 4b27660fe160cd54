"""
Configuration management for the multisig co-signer.

Supports configuration via environment variables and .env files.
"""

from enum import Enum
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# Export artifact format understood by this release
EXPORT_FORMAT_VERSION = 1


class NetworkType(str, Enum):
    """Ledger network types."""
    MAINNET = "mainnet"
    TESTNET = "testnet"
    LOCAL = "local"


class CosignerConfig(BaseSettings):
    """
    Configuration settings for the co-signer.

    All settings can be configured via environment variables with the COSIGNER_ prefix.
    """

    model_config = SettingsConfigDict(
        env_prefix="COSIGNER_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Network settings
    network: NetworkType = Field(
        default=NetworkType.MAINNET,
        description="Ledger network to connect to"
    )

    # Wallet bridge (signer provider) settings
    wallet_bridge_url: str = Field(
        default="http://localhost:8547",
        description="Base URL of the local wallet signing bridge"
    )

    # Node (broadcast endpoint) settings
    node_url: str = Field(
        default="http://localhost:50051",
        description="Base URL of the node API used for note lookup and submission"
    )
    http_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Timeout for wallet bridge and node requests"
    )

    # Test mode replaces wallet and node with local fixtures
    test_mode: bool = Field(
        default=False,
        description="Use deterministic local wallet fixtures instead of a real wallet"
    )

    # Fee settings
    default_fee_per_word: int = Field(
        default=32768,
        ge=0,
        description="Fee rate (nicks per word) applied to new drafts"
    )
    fee_base_words: int = Field(
        default=100,
        ge=0,
        description="Estimated fixed transaction size in words"
    )
    fee_words_per_input: int = Field(
        default=50,
        ge=0,
        description="Estimated size added per input in words"
    )
    fee_words_per_output: int = Field(
        default=40,
        ge=0,
        description="Estimated size added per output in words"
    )

    # Logging settings
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR)"
    )
    log_json: bool = Field(
        default=False,
        description="Output logs in JSON format"
    )


# Global config instance
_config: Optional[CosignerConfig] = None


def get_config() -> CosignerConfig:
    """Get or create the global configuration instance."""
    global _config
    if _config is None:
        _config = CosignerConfig()
    return _config


def set_config(config: CosignerConfig) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config
