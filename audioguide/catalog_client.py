"""Shopify Storefront catalog gateway.

Fetches product records over the Storefront GraphQL API. Every failure mode
(transport, HTTP status, GraphQL errors, unexpected payload shape) is raised
as CatalogError so the pipeline can downgrade it to an advisory.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx

from .config import MAX_CATALOG_FETCH, Settings, normalize_store_domain
from .errors import CatalogError

logger = logging.getLogger("audioguide.catalog")

PRODUCTS_QUERY = """
query GetProducts($first: Int!) {
  products(first: $first, sortKey: TITLE, reverse: false) {
    edges {
      node {
        id
        handle
        title
        description
        productType
        vendor
        tags
        priceRange {
          minVariantPrice {
            amount
            currencyCode
          }
        }
        variants(first: 5) {
          nodes {
            id
            title
            price {
              amount
              currencyCode
            }
          }
        }
      }
    }
  }
}
"""


class ShopifyCatalogClient:
    """Storefront API client returning raw product nodes."""

    def __init__(self, settings: Settings, timeout: float = 15.0) -> None:
        self._store_domain = normalize_store_domain(settings.shopify_store_domain)
        self._access_token = settings.shopify_storefront_token
        self._api_version = settings.shopify_api_version
        self._timeout = timeout

    def _get_endpoint(self) -> str:
        return f"https://{self._store_domain}/api/{self._api_version}/graphql.json"

    def _get_headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "X-Shopify-Storefront-Access-Token": self._access_token,
        }

    async def fetch_products(self, count: int = 20) -> List[Dict[str, Any]]:
        """Purpose: Fetch up to ``count`` product nodes ordered by title.
        Inputs/Outputs: Input is the requested count (capped at 25); returns raw
            product node dicts as sent by the Storefront API.
        Side Effects / State: One POST to the Storefront GraphQL endpoint.
        Dependencies: Uses httpx.AsyncClient and _extract_product_nodes.
        Failure Modes: Transport errors, non-2xx status, non-JSON bodies, GraphQL
            errors and unexpected payload shapes raise CatalogError.
        If Removed: The assistant has no product data for its system instruction.
        Testing Notes: Patch httpx.AsyncClient.post and check each failure mode.
        """
        # Cap the page size before building the GraphQL payload.
        first = max(1, min(count, MAX_CATALOG_FETCH))
        payload = {"query": PRODUCTS_QUERY, "variables": {"first": first}}

        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.post(
                    self._get_endpoint(),
                    headers=self._get_headers(),
                    json=payload,
                )
        except httpx.HTTPError as exc:
            logger.error("catalog fetch transport error: %s", exc)
            raise CatalogError(f"Shopify request failed: {exc}") from exc

        if response.status_code < 200 or response.status_code >= 300:
            logger.error("catalog fetch status=%s body=%s", response.status_code, response.text)
            raise CatalogError(
                f"Shopify API request failed: {response.status_code} {response.reason_phrase}. "
                f"Response: {response.text}"
            )

        try:
            body = response.json()
        except ValueError as exc:
            raise CatalogError("Shopify API returned a non-JSON response") from exc

        return _extract_product_nodes(body)


def _extract_product_nodes(body: Any) -> List[Dict[str, Any]]:
    """Pull product nodes out of a GraphQL response body."""
    if not isinstance(body, dict):
        raise CatalogError("Shopify API returned an unexpected response shape")

    errors: Optional[list] = body.get("errors")
    if errors:
        messages = [str(err.get("message", err)) if isinstance(err, dict) else str(err) for err in errors]
        logger.error("catalog fetch graphql errors=%s", messages)
        raise CatalogError(f"Shopify GraphQL error: {', '.join(messages)}")

    data = body.get("data") or {}
    products = data.get("products") if isinstance(data, dict) else None
    if not isinstance(products, dict):
        raise CatalogError("Shopify API returned an unexpected products payload")
    edges = products.get("edges")
    if edges is None:
        return []
    if not isinstance(edges, list):
        raise CatalogError("Shopify API returned an unexpected products payload")

    nodes = []
    for edge in edges:
        node = edge.get("node") if isinstance(edge, dict) else None
        if isinstance(node, dict):
            nodes.append(node)
    logger.info("catalog fetch products=%d", len(nodes))
    return nodes
