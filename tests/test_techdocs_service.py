"""
Tests for the techdocs site name lookup
"""

import httpx
import pytest

from adoption_insights.services.techdocs_service import TechdocsMetadataClient


def techdocs_row(name="guide", kind="component", namespace="default", count=3):
    return {"count": count, "last_used": "2025-03-02T10:00:00.000Z", "kind": kind, "name": name, "namespace": namespace}


@pytest.mark.unit
class TestTechdocsMetadataClient:
    """Site name resolution against a stubbed techdocs backend"""

    @pytest.mark.asyncio
    async def test_site_name_taken_from_metadata(self, techdocs_client, techdocs_requests):
        rows = [techdocs_row()]

        result = await techdocs_client.attach_site_names(rows, "Bearer token-123")

        assert result is rows
        assert rows[0]["site_name"] == "Guide Docs"
        request = techdocs_requests[0]
        assert str(request.url) == "http://techdocs.test/api/techdocs/metadata/techdocs/default/component/guide"
        assert request.headers["Authorization"] == "Bearer token-123"
        assert request.headers["Accept"] == "application/json"

    @pytest.mark.asyncio
    async def test_rows_missing_entity_keys_get_empty_site_name(self, techdocs_client, techdocs_requests):
        rows = [techdocs_row(namespace=""), techdocs_row(kind=""), techdocs_row(name="")]

        await techdocs_client.attach_site_names(rows)

        assert [row["site_name"] for row in rows] == ["", "", ""]
        assert techdocs_requests == []

    @pytest.mark.asyncio
    async def test_failed_lookup_falls_back_to_entity_name(self, techdocs_client):
        rows = [techdocs_row(name="broken"), techdocs_row(name="guide")]

        await techdocs_client.attach_site_names(rows)

        assert rows[0]["site_name"] == "broken"
        assert rows[1]["site_name"] == "Guide Docs"

    @pytest.mark.asyncio
    async def test_metadata_without_site_name_uses_entity_name(self, techdocs_client):
        rows = [techdocs_row(name="untitled")]

        await techdocs_client.attach_site_names(rows)

        assert rows[0]["site_name"] == "untitled"

    @pytest.mark.asyncio
    async def test_no_authorization_header_when_caller_sent_none(self, techdocs_client, techdocs_requests):
        await techdocs_client.attach_site_names([techdocs_row()])

        assert "Authorization" not in techdocs_requests[0].headers

    @pytest.mark.asyncio
    async def test_unreachable_backend_falls_back_to_entity_name(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = TechdocsMetadataClient("http://techdocs.test/api/techdocs", transport=httpx.MockTransport(handler))
        rows = [techdocs_row()]

        await client.attach_site_names(rows)

        assert rows[0]["site_name"] == "guide"

    @pytest.mark.asyncio
    async def test_undecodable_body_falls_back_to_entity_name(self):
        client = TechdocsMetadataClient(
            "http://techdocs.test/api/techdocs/",
            transport=httpx.MockTransport(lambda request: httpx.Response(200, text="<html>")),
        )
        rows = [techdocs_row()]

        await client.attach_site_names(rows)

        assert rows[0]["site_name"] == "guide"

    def test_metadata_url_escapes_path_segments(self):
        client = TechdocsMetadataClient("http://techdocs.test/api/techdocs/")

        assert client.metadata_url("default", "component", "a/b") == (
            "http://techdocs.test/api/techdocs/metadata/techdocs/default/component/a%2Fb"
        )
