"""Exchange rate providers."""

import logging
import threading
from collections.abc import Callable, Mapping
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from typing import TYPE_CHECKING

import httpx

from ..exceptions import RateUnavailable
from ..models import ExchangeRate

if TYPE_CHECKING:
    from ..db import Database

logger = logging.getLogger(__name__)

# Units of each currency per 1 USD, used for the offline static table
DEFAULT_BASE_RATES: dict[str, Decimal] = {
    "USD": Decimal("1.0"),
    "EUR": Decimal("0.85"),
    "GBP": Decimal("0.73"),
    "JPY": Decimal("110.0"),
    "CAD": Decimal("1.25"),
    "AUD": Decimal("1.35"),
    "CHF": Decimal("0.92"),
    "CNY": Decimal("6.45"),
    "INR": Decimal("74.5"),
    "BRL": Decimal("5.2"),
    "MXN": Decimal("20.1"),
    "SGD": Decimal("1.35"),
    "HKD": Decimal("7.75"),
    "NZD": Decimal("1.42"),
    "SEK": Decimal("8.5"),
    "NOK": Decimal("8.8"),
    "DKK": Decimal("6.2"),
    "PLN": Decimal("3.8"),
    "CZK": Decimal("21.5"),
    "HUF": Decimal("300.0"),
}

RATE_QUANTUM = Decimal("0.000001")


def _utcnow() -> datetime:
    return datetime.now(UTC)


class StaticRateProvider:
    """Serves rates from a fixed in-memory table."""

    def __init__(
        self,
        rates: Mapping[tuple[str, str], Decimal],
        as_of: datetime | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        """Initialize the provider with (from, to) -> rate pairs."""
        self.rates = {
            (source.upper(), target.upper()): Decimal(rate)
            for (source, target), rate in rates.items()
        }
        self.as_of = as_of
        self.clock = clock

    @classmethod
    def from_base_rates(
        cls,
        base_rates: Mapping[str, Decimal] = DEFAULT_BASE_RATES,
        as_of: datetime | None = None,
    ) -> "StaticRateProvider":
        """
        Build every cross rate from per-base-currency rates.

        rate(A -> B) = base[B] / base[A], quantized to six decimal places.
        """
        rates = {
            (source, target): (base_rates[target] / base_rates[source]).quantize(
                RATE_QUANTUM
            )
            for source in base_rates
            for target in base_rates
            if source != target
        }
        return cls(rates, as_of=as_of)

    def get_rate(self, from_currency: str, to_currency: str) -> ExchangeRate:
        """Look up a rate; same-currency pairs always quote 1."""
        source, target = from_currency.upper(), to_currency.upper()
        as_of = self.as_of or self.clock()

        if source == target:
            rate = Decimal(1)
        elif (source, target) in self.rates:
            rate = self.rates[(source, target)]
        else:
            raise RateUnavailable(f"No rate configured for {source}->{target}")

        return ExchangeRate(
            from_currency=source, to_currency=target, rate=rate, as_of=as_of
        )


class HttpRateProvider:
    """Client for an exchangerate.host / Fixer style `latest` endpoint."""

    def __init__(
        self,
        base_url: str,
        api_key: str | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        """Initialize the HTTP rate client."""
        self.api_key = api_key
        self.client = httpx.Client(
            base_url=base_url,
            headers={"Accept": "application/json"},
            timeout=30.0,
            transport=transport,
        )

    def close(self):
        """Close the HTTP client."""
        self.client.close()

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()

    def get_rate(self, from_currency: str, to_currency: str) -> ExchangeRate:
        """
        Fetch the latest rate for a currency pair.

        Args:
            from_currency: Source currency code
            to_currency: Target currency code

        Returns:
            The quoted rate

        Raises:
            RateUnavailable: On any HTTP failure or if the pair is missing
        """
        source, target = from_currency.upper(), to_currency.upper()
        params: dict[str, str] = {"base": source, "symbols": target}
        if self.api_key:
            params["access_key"] = self.api_key

        try:
            response = self.client.get("/latest", params=params)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(f"Rate API error: {e}")
            logger.error(f"Response body: {e.response.text}")
            raise RateUnavailable(
                f"Rate API returned an error for {source}->{target}"
            ) from e
        except httpx.HTTPError as e:
            logger.warning(f"Error fetching rate {source}->{target}: {e}")
            raise RateUnavailable(
                f"Rate API unreachable for {source}->{target}"
            ) from e

        data = response.json()
        if data.get("success") is False:
            raise RateUnavailable(
                f"Rate API refused {source}->{target}: {data.get('error')}"
            )

        value = data.get("rates", {}).get(target)
        if value is None:
            raise RateUnavailable(f"Rate API has no rate for {source}->{target}")

        timestamp = data.get("timestamp")
        as_of = (
            datetime.fromtimestamp(timestamp, tz=UTC) if timestamp else _utcnow()
        )

        logger.debug(f"Fetched rate {source}->{target} = {value} (as of {as_of})")
        return ExchangeRate(
            from_currency=source,
            to_currency=target,
            rate=Decimal(str(value)),
            as_of=as_of,
        )


class CachingRateProvider:
    """Wraps another provider with a TTL cache in memory and, optionally, SQLite.

    A cached rate is served until `ttl` has passed since it was fetched;
    after that the inner provider is asked again.
    """

    def __init__(
        self,
        inner,
        ttl: timedelta = timedelta(hours=1),
        database: "Database | None" = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        """Initialize the cache around an inner provider."""
        self.inner = inner
        self.ttl = ttl
        self.db = database
        self.clock = clock
        self._memory: dict[tuple[str, str], tuple[ExchangeRate, datetime]] = {}
        self._lock = threading.Lock()

    def _is_fresh(self, fetched_at: datetime) -> bool:
        return self.clock() - fetched_at < self.ttl

    def get_rate(self, from_currency: str, to_currency: str) -> ExchangeRate:
        """Serve a cached rate if fresh, otherwise refetch and cache it."""
        key = (from_currency.upper(), to_currency.upper())

        with self._lock:
            cached = self._memory.get(key)
        if cached and self._is_fresh(cached[1]):
            return cached[0]

        if self.db is not None:
            stored = self.db.get_exchange_rate(*key)
            if stored and self._is_fresh(stored[1]):
                with self._lock:
                    self._memory[key] = stored
                logger.debug(f"Cache hit (database) for {key[0]}->{key[1]}")
                return stored[0]

        rate = self.inner.get_rate(*key)
        fetched_at = self.clock()
        with self._lock:
            self._memory[key] = (rate, fetched_at)
        if self.db is not None:
            self.db.save_exchange_rate(rate, fetched_at)

        logger.info(f"Fetched and cached rate {key[0]}->{key[1]} = {rate.rate}")
        return rate

    def clear_expired(self) -> int:
        """Drop expired in-memory entries. Returns how many were removed."""
        with self._lock:
            expired = [
                key
                for key, (_rate, fetched_at) in self._memory.items()
                if not self._is_fresh(fetched_at)
            ]
            for key in expired:
                del self._memory[key]
        return len(expired)
