"""Test the Shopify Storefront catalog gateway."""

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from audioguide.catalog_client import ShopifyCatalogClient
from audioguide.errors import CatalogError
from conftest import make_product, make_settings


def make_response(status_code=200, body=None, json_error=None):
    response = MagicMock()
    response.status_code = status_code
    response.reason_phrase = "OK" if status_code == 200 else "Internal Server Error"
    response.text = "body text"
    if json_error is not None:
        response.json.side_effect = json_error
    else:
        response.json.return_value = body
    return response


def products_body(nodes):
    return {"data": {"products": {"edges": [{"node": node} for node in nodes]}}}


class TestShopifyCatalogClient:
    @pytest.mark.asyncio
    async def test_fetch_products_returns_nodes(self):
        client = ShopifyCatalogClient(make_settings(shopify_store_domain="https://hifisti.myshopify.com/"))
        nodes = [make_product(1), make_product(2)]

        with patch.object(httpx.AsyncClient, "post", new_callable=AsyncMock) as mock_post:
            mock_post.return_value = make_response(body=products_body(nodes))
            result = await client.fetch_products(10)

        assert result == nodes
        args, kwargs = mock_post.call_args
        assert args[0] == "https://hifisti.myshopify.com/api/2024-07/graphql.json"
        assert kwargs["headers"]["X-Shopify-Storefront-Access-Token"] == "storefront-token"
        assert kwargs["json"]["variables"] == {"first": 10}

    @pytest.mark.asyncio
    async def test_fetch_count_capped(self):
        client = ShopifyCatalogClient(make_settings())
        with patch.object(httpx.AsyncClient, "post", new_callable=AsyncMock) as mock_post:
            mock_post.return_value = make_response(body=products_body([]))
            await client.fetch_products(500)
        assert mock_post.call_args.kwargs["json"]["variables"] == {"first": 25}

    @pytest.mark.asyncio
    async def test_non_2xx_raises(self):
        client = ShopifyCatalogClient(make_settings())
        with patch.object(httpx.AsyncClient, "post", new_callable=AsyncMock) as mock_post:
            mock_post.return_value = make_response(status_code=500)
            with pytest.raises(CatalogError, match="500"):
                await client.fetch_products()

    @pytest.mark.asyncio
    async def test_graphql_errors_raise(self):
        client = ShopifyCatalogClient(make_settings())
        body = {"errors": [{"message": "Access denied"}, {"message": "Throttled"}]}
        with patch.object(httpx.AsyncClient, "post", new_callable=AsyncMock) as mock_post:
            mock_post.return_value = make_response(body=body)
            with pytest.raises(CatalogError, match="Access denied, Throttled"):
                await client.fetch_products()

    @pytest.mark.asyncio
    async def test_transport_error_raises(self):
        client = ShopifyCatalogClient(make_settings())
        with patch.object(httpx.AsyncClient, "post", new_callable=AsyncMock) as mock_post:
            mock_post.side_effect = httpx.ConnectError("connection refused")
            with pytest.raises(CatalogError, match="connection refused"):
                await client.fetch_products()

    @pytest.mark.asyncio
    async def test_non_json_body_raises(self):
        client = ShopifyCatalogClient(make_settings())
        with patch.object(httpx.AsyncClient, "post", new_callable=AsyncMock) as mock_post:
            mock_post.return_value = make_response(json_error=ValueError("bad json"))
            with pytest.raises(CatalogError):
                await client.fetch_products()

    @pytest.mark.asyncio
    async def test_missing_products_raises(self):
        client = ShopifyCatalogClient(make_settings())
        with patch.object(httpx.AsyncClient, "post", new_callable=AsyncMock) as mock_post:
            mock_post.return_value = make_response(body={"data": {}})
            with pytest.raises(CatalogError):
                await client.fetch_products()

    @pytest.mark.asyncio
    async def test_edges_without_nodes_are_skipped(self):
        client = ShopifyCatalogClient(make_settings())
        body = {"data": {"products": {"edges": [{"node": make_product(1)}, {"cursor": "x"}, "junk"]}}}
        with patch.object(httpx.AsyncClient, "post", new_callable=AsyncMock) as mock_post:
            mock_post.return_value = make_response(body=body)
            result = await client.fetch_products()
        assert [node["handle"] for node in result] == ["turntable-1"]
