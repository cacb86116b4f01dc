"""Shared fakes and settings builders for AudioGuide tests.

Provides:
- make_settings: fully configured Settings with keyword overrides
- FakeCatalog: catalog gateway recording fetch calls
- FakeAssistant: assistant service with scripted fragments and failures
"""

from dataclasses import replace
from typing import Any, Dict, List, Optional

import pytest

from audioguide.config import BASE_DIR, Settings
from audioguide.gemini_client import SessionHandle, StreamFragment


def make_settings(**overrides: Any) -> Settings:
    base = Settings(
        gemini_api_key="test-gemini-key",
        gemini_model="gemini-2.5-flash",
        shopify_store_domain="hifisti.myshopify.com",
        shopify_storefront_token="storefront-token",
        shopify_api_version="2024-07",
        prompts_dir=BASE_DIR / "prompts",
        catalog_fetch_count=25,
        catalog_overview_limit=15,
    )
    return replace(base, **overrides)


def make_product(index: int = 1, **overrides: Any) -> Dict[str, Any]:
    node = {
        "id": f"gid://shopify/Product/{index}",
        "handle": f"turntable-{index}",
        "title": f"Reference Turntable {index}",
        "description": "Belt-driven turntable with a carbon tonearm.",
        "productType": "Turntables",
        "vendor": "Rega",
        "tags": ["vinyl", "analog", "belt-drive", "premium"],
        "priceRange": {"minVariantPrice": {"amount": "999.0", "currencyCode": "EUR"}},
        "variants": {"nodes": [{"id": "v1", "title": "Black", "price": {"amount": "1049.0", "currencyCode": "EUR"}}]},
    }
    node.update(overrides)
    return node


class FakeCatalog:
    def __init__(
        self,
        products: Optional[List[Dict[str, Any]]] = None,
        error: Optional[Exception] = None,
        events: Optional[List[str]] = None,
    ) -> None:
        self.products = products if products is not None else [make_product(1), make_product(2)]
        self.error = error
        self.events = events if events is not None else []
        self.calls: List[int] = []

    async def fetch_products(self, count: int = 20) -> List[Dict[str, Any]]:
        self.calls.append(count)
        self.events.append("catalog")
        if self.error is not None:
            raise self.error
        return self.products


class FakeAssistant:
    def __init__(
        self,
        fragments: Optional[List[StreamFragment]] = None,
        stream_error: Optional[Exception] = None,
        open_error: Optional[Exception] = None,
        events: Optional[List[str]] = None,
    ) -> None:
        self.fragments = fragments or []
        self.stream_error = stream_error
        self.open_error = open_error
        self.events = events if events is not None else []
        self.instructions: List[str] = []
        self.sent: List[str] = []

    async def open_session(self, system_instruction: str, model: Optional[str] = None) -> SessionHandle:
        self.events.append("session")
        self.instructions.append(system_instruction)
        if self.open_error is not None:
            raise self.open_error
        return SessionHandle(chat=object(), system_instruction=system_instruction, model_name="fake-model")

    async def stream_message(self, session: SessionHandle, text: str):
        self.sent.append(text)
        for fragment in self.fragments:
            yield fragment
        if self.stream_error is not None:
            raise self.stream_error


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def events() -> List[str]:
    return []
