"""
Vault Configuration — Parser limits and key-derivation defaults.

Reads optional settings from environment variables:
    VAULT_ITERATIONS = <positive integer>
    VAULT_ORPHAN_POLICY = error | skip
    VAULT_MAX_CHUNK_LENGTH = <positive integer, bytes>

Security Note:
    Configuration never carries key material or the master password.
"""
import os
import logging

from pydantic import BaseModel, Field, field_validator

from .exceptions import InvalidIterationCount

logger = logging.getLogger("vault_blob")

# Upstream default for newly created accounts.
DEFAULT_ITERATIONS = 100100
DEFAULT_MAX_CHUNK_LENGTH = 64 * 1024 * 1024

ORPHAN_ERROR = "error"
ORPHAN_SKIP = "skip"


def get_iterations(default: int = DEFAULT_ITERATIONS) -> int:
    """Read the fallback iteration count from VAULT_ITERATIONS env var.

    Args:
        default: Value used when the variable is not set.

    Returns:
        Iteration count as a positive integer.

    Raises:
        InvalidIterationCount: If the value is not a positive integer.
    """
    raw = os.environ.get("VAULT_ITERATIONS")
    if raw is None:
        return default
    try:
        iterations = int(raw)
    except ValueError:
        raise InvalidIterationCount(raw) from None
    if iterations < 1:
        raise InvalidIterationCount(iterations)
    return iterations


class VaultConfig(BaseModel):
    """Validated parser and key-derivation settings."""

    iterations: int = Field(default=DEFAULT_ITERATIONS, ge=1)
    orphan_policy: str = Field(default=ORPHAN_ERROR)
    max_chunk_length: int = Field(default=DEFAULT_MAX_CHUNK_LENGTH, ge=1)

    @field_validator("orphan_policy")
    @classmethod
    def validate_orphan_policy(cls, v: str) -> str:
        """Validate the orphan chunk policy is supported."""
        v = v.lower()
        if v not in (ORPHAN_ERROR, ORPHAN_SKIP):
            raise ValueError(f"Unsupported orphan policy: {v}")
        return v

    @property
    def skip_orphans(self) -> bool:
        return self.orphan_policy == ORPHAN_SKIP

    @classmethod
    def from_env(cls) -> "VaultConfig":
        """Create VaultConfig by loading values from environment.

        Returns:
            Populated VaultConfig instance.
        """
        iterations = get_iterations()
        orphan_policy = os.environ.get("VAULT_ORPHAN_POLICY", ORPHAN_ERROR)
        max_chunk_length = int(
            os.environ.get("VAULT_MAX_CHUNK_LENGTH", DEFAULT_MAX_CHUNK_LENGTH)
        )
        logger.debug(
            "Vault config from env: iterations=%d orphan_policy=%s",
            iterations, orphan_policy,
        )
        return cls(
            iterations=iterations,
            orphan_policy=orphan_policy,
            max_chunk_length=max_chunk_length,
        )
