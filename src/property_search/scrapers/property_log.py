"""PropertyLog price-history source.

PropertyLog keeps the asking-price changes of Rightmove listings. One form
POST fetches the history of a whole batch of listing ids.
"""

from collections.abc import Sequence

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from property_search.logging import get_logger
from property_search.models import PriceHistory, PriceHistoryRecord
from property_search.scrapers.parsing import parse_day_month_year, parse_grouped_integer
from property_search.utils.http_client import FetchError, RateLimitedHttpClient, decode_json
from property_search.utils.retry import RetryPolicy

logger = get_logger(__name__)

PROPERTY_LOG_URL = "https://api.propertylog.net/api/properties"
PROPERTY_LOG_REFERER = "https://www.rightmove.co.uk/"


class PropertyLogPrice(BaseModel):
    """One raw price point; both fields are display strings."""

    model_config = ConfigDict(extra="ignore")

    date: str  # DD/MM/YYYY
    price: str  # e.g. "£1,250,000"


class PropertyLogProperty(BaseModel):
    model_config = ConfigDict(extra="ignore")

    prices: list[PropertyLogPrice] = Field(default_factory=list)


class PropertyLogResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    properties: dict[int, PropertyLogProperty] = Field(default_factory=dict)


PropertyLogAdapter = TypeAdapter(PropertyLogResponse)


def _parse_record(listing_id: int, raw: PropertyLogPrice) -> PriceHistoryRecord | None:
    date = parse_day_month_year(raw.date)
    price = parse_grouped_integer(raw.price)
    if date is None or price is None:
        logger.warning(
            "price_history_record_dropped",
            listing_id=listing_id,
            date=raw.date,
            price=raw.price,
        )
        return None
    return PriceHistoryRecord(date=date, price=price)


def to_histories(response: PropertyLogResponse) -> list[PriceHistory]:
    """Parse raw price points, dropping malformed ones, oldest first."""
    histories = []
    for listing_id, prop in response.properties.items():
        records = [
            record
            for raw in prop.prices
            if (record := _parse_record(listing_id, raw)) is not None
        ]
        records.sort(key=lambda r: r.date)
        histories.append(PriceHistory(id=listing_id, records=tuple(records)))
    return histories


class PropertyLogSource:
    """Batch price-history lookups against PropertyLog."""

    def __init__(
        self,
        http: RateLimitedHttpClient,
        *,
        user: str,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        """Initialize the source.

        Args:
            http: Client dedicated to PropertyLog (it has its own, smaller gate).
            user: PropertyLog API user identifier.
            retry_policy: Retries for the whole batch, fixed delay.
        """
        self._http = http
        self._user = user
        self._retry_policy = retry_policy or RetryPolicy(max_retries=5, delay=10.0)

    def _build_form(self, ids: Sequence[int]) -> dict[str, str]:
        form: dict[str, str] = {}
        for i, listing_id in enumerate(ids):
            form[f"properties[{i}][id]"] = str(listing_id)
            form[f"properties[{i}][price]"] = ""
        form["user"] = self._user
        return form

    async def get_history(self, ids: Sequence[int]) -> list[PriceHistory]:
        """Fetch the price history of every listing in ``ids``.

        Returns:
            One history per id PropertyLog knows about, records sorted by date.
            An empty ``ids`` returns ``[]`` without a request.

        Raises:
            FetchError: The batch kept failing after every retry.
        """
        if not ids:
            return []

        form = self._build_form(ids)

        async def fetch() -> PropertyLogResponse:
            response = await self._http.post_with_form(PROPERTY_LOG_URL, form)
            return decode_json(
                response, PropertyLogAdapter, context=f"Property log query for {len(ids)} ids"
            )

        response = await self._retry_policy.run(
            fetch,
            retry_on=(FetchError,),
            event="price_history_retrying",
            batch_size=len(ids),
        )
        histories = to_histories(response)
        logger.debug("price_history_fetched", requested=len(ids), returned=len(histories))
        return histories
