"""Connector options, read from the environment unless given explicitly."""

import os
from typing import Optional, Literal

from pydantic import BaseModel, Field

CASHFREE_API_VERSION = "2023-08-01"
DEFAULT_STOREFRONT_URL = "http://localhost:8000"


def _require(value: Optional[str], env_var: str) -> str:
    value = value or os.getenv(env_var)
    if not value:
        raise ValueError(f"{env_var} must be provided either as argument or environment variable")
    return value


class CashfreeOptions(BaseModel):
    api_key: str
    secret_key: str
    env: Literal["sandbox", "production"] = "sandbox"
    api_version: str = CASHFREE_API_VERSION
    storefront_url: str = DEFAULT_STOREFRONT_URL
    poll_attempts: int = Field(5, ge=1)
    poll_interval: float = Field(2.0, ge=0)  # seconds
    poll_timeout: Optional[float] = Field(10.0, gt=0)  # seconds, whole poll loop
    request_timeout: float = Field(10.0, gt=0)

    @property
    def base_url(self) -> str:
        if self.env == "production":
            return "https://api.cashfree.com/pg"
        return "https://sandbox.cashfree.com/pg"

    @classmethod
    def from_env(
        cls,
        api_key: Optional[str] = None,
        secret_key: Optional[str] = None,
        **overrides,
    ) -> "CashfreeOptions":
        """Build options from arguments, falling back to CASHFREE_* variables.

        Raises:
            ValueError: If the API key or secret is not configured.
        """
        values = {
            "api_key": _require(api_key, "CASHFREE_API_KEY"),
            "secret_key": _require(secret_key, "CASHFREE_SECRET_KEY"),
            "env": os.getenv("CASHFREE_ENV", "sandbox"),
            "storefront_url": os.getenv("STOREFRONT_URL", DEFAULT_STOREFRONT_URL),
        }
        values.update(overrides)
        return cls(**values)


class RazorpayOptions(BaseModel):
    key_id: str
    key_secret: str
    webhook_secret: Optional[str] = None

    @classmethod
    def from_env(
        cls,
        key_id: Optional[str] = None,
        key_secret: Optional[str] = None,
        webhook_secret: Optional[str] = None,
    ) -> "RazorpayOptions":
        """Build options from arguments, falling back to RAZORPAY_* variables.

        The webhook secret is optional; without it every webhook is
        reported as not supported.

        Raises:
            ValueError: If the key id or key secret is not configured.
        """
        return cls(
            key_id=_require(key_id, "RAZORPAY_KEY_ID"),
            key_secret=_require(key_secret, "RAZORPAY_KEY_SECRET"),
            webhook_secret=webhook_secret or os.getenv("RAZORPAY_WEBHOOK_SECRET") or None,
        )
