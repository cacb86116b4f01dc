from __future__ import annotations

import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Iterable, Optional

BASE_DIR = Path(__file__).resolve().parent

MAX_CATALOG_FETCH = 25

GEMINI_API_KEY_PLACEHOLDERS = ("PLACEHOLDER_API_KEY", "YOUR_GEMINI_API_KEY", "YOUR_API_KEY")
SHOPIFY_STORE_DOMAIN_PLACEHOLDER = "YOUR_SHOPIFY_STORE_DOMAIN.myshopify.com"
SHOPIFY_STOREFRONT_ACCESS_TOKEN_PLACEHOLDER = "YOUR_SHOPIFY_STOREFRONT_ACCESS_TOKEN"


class CredentialStatus(str, Enum):
    """Classification of a configured secret."""
    ABSENT = "absent"
    PLACEHOLDER = "placeholder"
    VALID = "valid"


def classify_credential(value: Optional[str], placeholders: Iterable[str] = ()) -> CredentialStatus:
    """Purpose: Classify a raw credential value.
    Inputs/Outputs: Input is the raw value and known placeholder strings; returns CredentialStatus.
    Side Effects / State: None; pure function.
    Dependencies: Used by Settings credential checks.
    Failure Modes: None; whitespace-only values count as absent.
    If Removed: Placeholder values would be sent to remote services as real secrets.
    Testing Notes: Check empty, placeholder and real values.
    """
    # Empty or whitespace-only values are treated as missing.
    if not value or not value.strip():
        return CredentialStatus.ABSENT
    if value.strip() in set(placeholders):
        return CredentialStatus.PLACEHOLDER
    return CredentialStatus.VALID


@dataclass(frozen=True)
class Settings:
    """Configuration container for the assistant, catalog and runtime limits."""
    gemini_api_key: str
    gemini_model: str
    shopify_store_domain: str
    shopify_storefront_token: str
    shopify_api_version: str
    prompts_dir: Path
    catalog_fetch_count: int
    catalog_overview_limit: int

    def assistant_credential(self) -> CredentialStatus:
        return classify_credential(self.gemini_api_key, GEMINI_API_KEY_PLACEHOLDERS)

    def catalog_credentials(self) -> CredentialStatus:
        """Return the weakest status of the store domain and access token pair."""
        domain = classify_credential(self.shopify_store_domain, (SHOPIFY_STORE_DOMAIN_PLACEHOLDER,))
        token = classify_credential(self.shopify_storefront_token, (SHOPIFY_STOREFRONT_ACCESS_TOKEN_PLACEHOLDER,))
        if CredentialStatus.ABSENT in (domain, token):
            return CredentialStatus.ABSENT
        if CredentialStatus.PLACEHOLDER in (domain, token):
            return CredentialStatus.PLACEHOLDER
        return CredentialStatus.VALID

    @property
    def store_display_domain(self) -> str:
        return self.shopify_store_domain or "Shopify domain not configured"

    @property
    def product_base_url(self) -> Optional[str]:
        if self.catalog_credentials() is not CredentialStatus.VALID:
            return None
        return f"https://{normalize_store_domain(self.shopify_store_domain)}"


def normalize_store_domain(domain: str) -> str:
    """Strip scheme and trailing slashes from a store domain."""
    cleaned = domain.strip()
    for prefix in ("https://", "http://"):
        if cleaned.startswith(prefix):
            cleaned = cleaned[len(prefix):]
    return cleaned.rstrip("/")


def load_settings() -> Settings:
    """Purpose: Load configuration from environment variables and defaults.
    Inputs/Outputs: No inputs; returns a Settings instance.
    Side Effects / State: Reads environment variables.
    Dependencies: Uses os.getenv and BASE_DIR for the prompts directory.
    Failure Modes: Invalid CATALOG_FETCH_COUNT/CATALOG_OVERVIEW_LIMIT values raise ValueError.
    If Removed: Pipeline cannot be configured and the app fails at startup.
    Testing Notes: Verify defaults, the API_KEY fallback and count/limit clamping.
    """
    # Resolve prompt path and numeric limits, then build Settings.
    prompts_path = os.getenv("PROMPTS_DIR")
    prompts_dir = Path(prompts_path) if prompts_path else (BASE_DIR / "prompts").resolve()

    fetch_count = int(os.getenv("CATALOG_FETCH_COUNT", str(MAX_CATALOG_FETCH)))
    fetch_count = max(1, min(fetch_count, MAX_CATALOG_FETCH))
    overview_limit = max(1, int(os.getenv("CATALOG_OVERVIEW_LIMIT", "15")))

    return Settings(
        gemini_api_key=os.getenv("GEMINI_API_KEY") or os.getenv("API_KEY", ""),
        gemini_model=os.getenv("GEMINI_MODEL", "gemini-2.5-flash"),
        shopify_store_domain=os.getenv("SHOPIFY_STORE_DOMAIN", ""),
        shopify_storefront_token=os.getenv("SHOPIFY_STOREFRONT_ACCESS_TOKEN", ""),
        shopify_api_version=os.getenv("SHOPIFY_API_VERSION", "2024-07"),
        prompts_dir=prompts_dir,
        catalog_fetch_count=fetch_count,
        catalog_overview_limit=overview_limit,
    )
