"""Tests for the PropertyLog price-history source."""

from datetime import UTC, datetime
from urllib.parse import parse_qs

import httpx
import pytest

from property_search.models import PriceHistory, PriceHistoryRecord
from property_search.scrapers.property_log import PROPERTY_LOG_URL, PropertyLogSource
from property_search.utils.http_client import RateLimitedHttpClient, UnexpectedStatusError
from property_search.utils.retry import RetryPolicy


def _source(handler, *, retries: int = 2) -> PropertyLogSource:
    http = RateLimitedHttpClient(
        transport=httpx.MockTransport(handler),
        retry_backoff_seconds=0,
        referer="https://www.rightmove.co.uk/",
    )
    return PropertyLogSource(http, user="user-123", retry_policy=RetryPolicy(max_retries=retries))


class TestGetHistory:
    @pytest.mark.asyncio
    async def test_empty_ids_make_no_request(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("no request expected")

        assert await _source(handler).get_history([]) == []

    @pytest.mark.asyncio
    async def test_parses_and_sorts_records(self) -> None:
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(
                200,
                json={
                    "properties": {
                        "128360372": {
                            "prices": [
                                {"date": "07/12/2022", "price": "£16,950,000"},
                                {"date": "25/10/2022", "price": "£17,950,000"},
                            ]
                        }
                    }
                },
            )

        histories = await _source(handler).get_history([128360372])

        assert histories == [
            PriceHistory(
                id=128360372,
                records=(
                    PriceHistoryRecord(date=datetime(2022, 10, 25, tzinfo=UTC), price=17950000),
                    PriceHistoryRecord(date=datetime(2022, 12, 7, tzinfo=UTC), price=16950000),
                ),
            )
        ]
        request = requests[0]
        assert str(request.url) == PROPERTY_LOG_URL
        assert request.headers["Referer"] == "https://www.rightmove.co.uk/"
        form = parse_qs(request.content.decode(), keep_blank_values=True)
        assert form == {
            "properties[0][id]": ["128360372"],
            "properties[0][price]": [""],
            "user": ["user-123"],
        }

    @pytest.mark.asyncio
    async def test_malformed_records_dropped(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200,
                json={
                    "properties": {
                        "1": {
                            "prices": [
                                {"date": "01/01/2023", "price": "£1,000"},
                                {"date": "01/02/2023", "price": "POA"},
                                {"date": "sometime", "price": "£900"},
                            ]
                        }
                    }
                },
            )

        histories = await _source(handler).get_history([1])

        assert len(histories) == 1
        assert [r.price for r in histories[0].records] == [1000]

    @pytest.mark.asyncio
    async def test_whole_batch_retried(self) -> None:
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            if calls < 3:
                return httpx.Response(403, text="Forbidden")
            return httpx.Response(200, json={"properties": {}})

        assert await _source(handler, retries=2).get_history([1, 2]) == []
        assert calls == 3

    @pytest.mark.asyncio
    async def test_exhausted_retries_reraise_last_error(self) -> None:
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            return httpx.Response(403, text="Forbidden")

        with pytest.raises(UnexpectedStatusError):
            await _source(handler, retries=1).get_history([1])
        assert calls == 2
