"""Catalog snapshot and system instruction composition.

Turns raw Storefront product nodes into a bounded CatalogSnapshot, renders it as
the catalog overview paragraph, and substitutes that paragraph into the system
prompt template. None of these steps raise on empty or partial input.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional

from .models import CatalogSnapshot, ProductSummary

CATALOG_PLACEHOLDER = "{productCatalogOverview}"
DEFAULT_OVERVIEW_LIMIT = 15
DESCRIPTION_LIMIT = 70
TAG_LIMIT = 3

EMPTY_CATALOG_OVERVIEW = (
    "No products are currently available in the catalog. "
    "I can still offer general advice on Hi-Fi audio."
)
OVERVIEW_HEADER = "Our Hifiisti Product Catalog Overview (highlights):"
NO_DESCRIPTION = "No description available."


def _get_path(data: Any, *keys: Any) -> Any:
    """Walk nested dicts/lists, returning None on any missing step."""
    current = data
    for key in keys:
        if isinstance(key, int):
            if not isinstance(current, list) or len(current) <= key:
                return None
            current = current[key]
        else:
            if not isinstance(current, dict):
                return None
            current = current.get(key)
        if current is None:
            return None
    return current


def truncate_description(description: Optional[str], limit: int = DESCRIPTION_LIMIT) -> str:
    if not description:
        return NO_DESCRIPTION
    if len(description) > limit:
        return description[:limit] + "..."
    return description


def summarize_product(node: Dict[str, Any]) -> ProductSummary:
    """Purpose: Reduce one raw Storefront product node to a ProductSummary.
    Inputs/Outputs: Input is a product node dict; output is a ProductSummary.
    Side Effects / State: None; pure function.
    Dependencies: Uses _get_path and truncate_description.
    Failure Modes: Missing fields fall back to "N/A", "Uncategorized" or empty values.
    If Removed: Catalog records cannot be summarized into the prompt.
    Testing Notes: Cover variant price, priceRange fallback and missing price.
    """
    # Prefer the first variant price, then the minimum price of the range.
    price = _get_path(node, "variants", "nodes", 0, "price", "amount") or _get_path(
        node, "priceRange", "minVariantPrice", "amount"
    )
    currency = _get_path(node, "variants", "nodes", 0, "price", "currencyCode") or _get_path(
        node, "priceRange", "minVariantPrice", "currencyCode"
    )
    tags = node.get("tags") or []
    return ProductSummary(
        title=str(node.get("title") or ""),
        handle=str(node.get("handle") or ""),
        category=str(node.get("productType") or "Uncategorized"),
        description=truncate_description(node.get("description")),
        price=str(price or "N/A"),
        currency=str(currency or ""),
        vendor=str(node.get("vendor") or ""),
        tags=[str(tag) for tag in list(tags)[:TAG_LIMIT]],
    )


def build_catalog_snapshot(
    nodes: Iterable[Dict[str, Any]], limit: int = DEFAULT_OVERVIEW_LIMIT
) -> CatalogSnapshot:
    """Summarize the first ``limit`` products and remember how many there were."""
    records = [node for node in nodes if isinstance(node, dict)]
    return CatalogSnapshot(
        products=[summarize_product(node) for node in records[:limit]],
        total_count=len(records),
    )


def format_product_line(product: ProductSummary) -> str:
    return (
        f"- {product.title} (Handle: {product.handle}, Type: {product.category}): "
        f"{product.description} Price: {product.price} {product.currency}. "
        f"Vendor: {product.vendor}. Tags: {', '.join(product.tags)}."
    )


def generate_catalog_overview(snapshot: CatalogSnapshot) -> str:
    """Render the snapshot as the catalog paragraph of the system instruction."""
    if snapshot.is_empty:
        return EMPTY_CATALOG_OVERVIEW
    lines: List[str] = [OVERVIEW_HEADER]
    lines.extend(format_product_line(product) for product in snapshot.products)
    remaining = snapshot.total_count - len(snapshot.products)
    if remaining > 0:
        lines.append(f"...and {remaining} more products. Ask me about specific types or brands!")
    return "\n".join(lines)


def compose_system_instruction(template: str, snapshot: CatalogSnapshot) -> str:
    """Purpose: Build the system instruction for a chat session.
    Inputs/Outputs: Inputs are the prompt template and a CatalogSnapshot (possibly empty);
        output is the instruction with every placeholder occurrence substituted.
    Side Effects / State: None; pure function.
    Dependencies: Uses generate_catalog_overview.
    Failure Modes: None; a template without the placeholder gets the overview appended.
    If Removed: Sessions open without catalog grounding.
    Testing Notes: Assert no placeholder remains for empty and full snapshots.
    """
    # Substitute the overview, appending it when the template forgot the placeholder.
    overview = generate_catalog_overview(snapshot).replace(CATALOG_PLACEHOLDER, "")
    if CATALOG_PLACEHOLDER in template:
        return template.replace(CATALOG_PLACEHOLDER, overview)
    if not template.strip():
        return overview
    return f"{template}\n\n{overview}"
