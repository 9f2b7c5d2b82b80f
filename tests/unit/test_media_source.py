"""Unit tests for the live media stream source."""
import json

import httpx
import pytest

from phonebot.services.media.source import HttpMediaStreamSource, MediaStreamError, StreamNotFoundError


def media_source(handler, chunk_size=4):
    return HttpMediaStreamSource(
        base_url="http://media.test",
        api_key="secret",
        chunk_size=chunk_size,
        transport=httpx.MockTransport(handler),
    )


async def collect(stream):
    return [chunk async for chunk in stream]


class TestResolveEndpoint:
    """Test data endpoint resolution."""

    @pytest.mark.asyncio
    async def test_returns_data_endpoint(self):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json={"DataEndpoint": "http://data.test"})

        endpoint = await media_source(handler).resolve_endpoint("arn:stream")

        assert endpoint == "http://data.test"
        assert requests[0].url.path == "/getDataEndpoint"
        assert json.loads(requests[0].content) == {"APIName": "GET_MEDIA", "StreamARN": "arn:stream"}

    @pytest.mark.asyncio
    async def test_missing_stream(self):
        source = media_source(lambda request: httpx.Response(404))

        with pytest.raises(StreamNotFoundError):
            await source.resolve_endpoint("arn:stream")

    @pytest.mark.asyncio
    async def test_malformed_response(self):
        source = media_source(lambda request: httpx.Response(200, json={}))

        with pytest.raises(MediaStreamError):
            await source.resolve_endpoint("arn:stream")


class TestReadLive:
    """Test live media reads."""

    @pytest.mark.asyncio
    async def test_reads_from_live_edge(self):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, content=b"abcdefghij")

        chunks = await collect(media_source(handler).read_live("http://data.test/", "arn:stream"))

        assert b"".join(chunks) == b"abcdefghij"
        assert all(len(chunk) <= 4 for chunk in chunks)
        assert str(requests[0].url) == "http://data.test/getMedia"
        assert json.loads(requests[0].content) == {
            "StreamARN": "arn:stream",
            "StartSelector": {"StartSelectorType": "NOW"},
        }

    @pytest.mark.asyncio
    async def test_missing_stream(self):
        source = media_source(lambda request: httpx.Response(404))

        with pytest.raises(StreamNotFoundError):
            await collect(source.read_live("http://data.test", "arn:stream"))

    @pytest.mark.asyncio
    async def test_read_failure(self):
        source = media_source(lambda request: httpx.Response(500))

        with pytest.raises(MediaStreamError):
            await collect(source.read_live("http://data.test", "arn:stream"))
