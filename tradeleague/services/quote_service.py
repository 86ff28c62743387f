"""Market quotes as seen by the engine.

The engine only needs ``get_quote(symbol) -> Quote`` and treats any failure as
``QuoteUnavailable``. Fetching from real market-data vendors lives outside
this package; a vendor client is plugged in by wrapping it with the cache and
timeout guards below.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Dict, Optional, Protocol, Tuple

from tradeleague.core.clock import Clock, SystemClock
from tradeleague.core.errors import QuoteUnavailable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Quote:
    symbol: str
    price: Decimal
    as_of: datetime


class QuoteProvider(Protocol):
    def get_quote(self, symbol: str) -> Quote:
        ...


class StaticQuoteProvider:
    """In-memory price table. Symbols without a price are unavailable."""

    def __init__(self, prices: Optional[Dict[str, object]] = None, clock: Clock = None):
        self.clock = clock or SystemClock()
        self._prices: Dict[str, Decimal] = {}
        for symbol, price in (prices or {}).items():
            self.set_price(symbol, price)

    def set_price(self, symbol: str, price) -> None:
        self._prices[symbol.upper()] = Decimal(str(price))

    def remove(self, symbol: str) -> None:
        self._prices.pop(symbol.upper(), None)

    def get_quote(self, symbol: str) -> Quote:
        price = self._prices.get(symbol.upper())
        if price is None:
            raise QuoteUnavailable(f"No quote for {symbol}")
        return Quote(symbol=symbol.upper(), price=price, as_of=self.clock.now())


class CachedQuoteProvider:
    """Per-instance TTL cache in front of another provider.

    Expiry is computed from the injected clock, so two caches never share
    entries and tests control time directly.
    """

    def __init__(self, inner: QuoteProvider, clock: Clock, ttl_seconds: float = 120.0):
        self.inner = inner
        self.clock = clock
        self.ttl = timedelta(seconds=ttl_seconds)
        self._entries: Dict[str, Tuple[Quote, datetime]] = {}
        self._lock = threading.Lock()

    def get_quote(self, symbol: str) -> Quote:
        key = symbol.upper()
        now = self.clock.now()
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None:
                quote, expires = entry
                if now <= expires:
                    return quote
                del self._entries[key]

        quote = self.inner.get_quote(symbol)
        with self._lock:
            self._entries[key] = (quote, now + self.ttl)
        return quote

    def invalidate(self, symbol: Optional[str] = None) -> None:
        with self._lock:
            if symbol is None:
                self._entries.clear()
            else:
                self._entries.pop(symbol.upper(), None)

    def cleanup(self) -> int:
        """Drop expired entries; returns how many were removed."""
        now = self.clock.now()
        with self._lock:
            expired = [k for k, (_, expires) in self._entries.items() if now > expires]
            for key in expired:
                del self._entries[key]
        return len(expired)

    def __len__(self) -> int:
        return len(self._entries)


class TimeoutQuoteProvider:
    """Bounds every lookup; a slow or failing provider becomes QuoteUnavailable."""

    def __init__(self, inner: QuoteProvider, timeout_seconds: float = 5.0, max_workers: int = 4):
        self.inner = inner
        self.timeout_seconds = timeout_seconds
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="quote")

    def get_quote(self, symbol: str) -> Quote:
        future = self._executor.submit(self.inner.get_quote, symbol)
        try:
            return future.result(timeout=self.timeout_seconds)
        except FutureTimeout:
            future.cancel()
            raise QuoteUnavailable(f"Quote lookup for {symbol} timed out after {self.timeout_seconds}s")
        except QuoteUnavailable:
            raise
        except Exception as exc:
            raise QuoteUnavailable(f"Quote lookup for {symbol} failed: {exc}") from exc

    def shutdown(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)


def build_quote_provider(inner: QuoteProvider, clock: Clock, timeout_seconds: float,
                         cache_ttl_seconds: float) -> QuoteProvider:
    """Cache outermost so hits never consume a worker thread."""
    return CachedQuoteProvider(
        TimeoutQuoteProvider(inner, timeout_seconds=timeout_seconds),
        clock=clock,
        ttl_seconds=cache_ttl_seconds,
    )
