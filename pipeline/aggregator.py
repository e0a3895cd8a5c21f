from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, List, Sequence

from arbitrage.models import BookTicker, ExchangeSnapshot, MarketSnapshot, Symbol
from config import ADAPTER_TIMEOUT_SECONDS, DEPTH_CONCURRENCY, DEPTH_LIMIT
from exchanges.base import ExchangeAdapter

from .market_state import MarketStateCache

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str, dict[str, Any]], None]


def _emit(progress_cb: ProgressCallback | None, event: str, payload: dict[str, Any]) -> None:
    if progress_cb:
        progress_cb(event, payload)


class SnapshotAggregator:
    """Fan out to every adapter and merge whatever comes back in time."""

    def __init__(
        self,
        adapters: Sequence[ExchangeAdapter],
        state: MarketStateCache,
        *,
        timeout: float = ADAPTER_TIMEOUT_SECONDS,
        reference: ExchangeAdapter | None = None,
        progress_cb: ProgressCallback | None = None,
    ) -> None:
        self._adapters = list(adapters)
        self._state = state
        self._timeout = timeout
        self._reference = reference or (self._adapters[0] if self._adapters else None)
        self._progress_cb = progress_cb

    @property
    def adapters(self) -> List[ExchangeAdapter]:
        return list(self._adapters)

    @property
    def reference(self) -> ExchangeAdapter | None:
        return self._reference

    async def collect(self) -> MarketSnapshot:
        """Run one acquisition cycle; never raises for adapter failures."""

        generated_at = datetime.now(timezone.utc)
        results = await asyncio.gather(
            *(self._run_adapter(adapter) for adapter in self._adapters)
        )
        succeeded = tuple(item for item in results if item.ok)
        failed = tuple(item for item in results if not item.ok)

        for item in succeeded:
            self._state.put_book_tickers(item.exchange, item.tickers.values())

        if not succeeded:
            logger.warning(
                "No exchange returned book tickers this cycle (%s adapters failed)",
                len(failed),
            )
        elif failed:
            logger.info(
                "Missing data from exchanges: %s",
                ", ".join(sorted(item.exchange for item in failed)),
            )

        _emit(
            self._progress_cb,
            "exchange:complete",
            {
                "message": "Exchange polling finished",
                "summary": [item.to_dict() for item in results],
            },
        )
        return MarketSnapshot(generated_at=generated_at, exchanges=succeeded, failures=failed)

    async def _run_adapter(self, adapter: ExchangeAdapter) -> ExchangeSnapshot:
        started = time.perf_counter()
        try:
            tickers = await asyncio.wait_for(adapter.fetch_book_tickers(), timeout=self._timeout)
            indexed = _index_tickers(adapter.name, tickers)
        except asyncio.CancelledError:
            raise
        except asyncio.TimeoutError:
            elapsed = time.perf_counter() - started
            logger.warning("%s: book tickers timed out after %.1fs", adapter.name, elapsed)
            return self._failed(adapter, f"timeout after {self._timeout:.1f}s", elapsed)
        except Exception as exc:  # pylint: disable=broad-except
            elapsed = time.perf_counter() - started
            logger.warning("%s adapter failed: %s", adapter.name, exc)
            return self._failed(adapter, str(exc) or type(exc).__name__, elapsed)

        elapsed = time.perf_counter() - started
        snapshot = ExchangeSnapshot(
            exchange=adapter.name,
            tickers=indexed,
            elapsed=elapsed,
        )
        logger.info("%s: fetched %s book tickers in %.2fs", adapter.name, len(snapshot.tickers), elapsed)
        _emit(
            self._progress_cb,
            "exchange:success",
            {
                "exchange": adapter.name,
                "message": f"{adapter.name}: fetched {len(snapshot.tickers)} book tickers",
                "count": len(snapshot.tickers),
            },
        )
        return snapshot

    def _failed(self, adapter: ExchangeAdapter, error: str, elapsed: float) -> ExchangeSnapshot:
        _emit(
            self._progress_cb,
            "exchange:error",
            {
                "exchange": adapter.name,
                "message": f"{adapter.name} failed: {error}",
                "error": error,
            },
        )
        return ExchangeSnapshot.failed(adapter.name, error, elapsed=elapsed)

    async def refresh_symbols(self) -> List[Symbol]:
        """Pull exchange info from the reference exchange; return tradeable symbols."""

        if self._reference is None:
            return []
        symbols = await asyncio.wait_for(
            self._reference.fetch_exchange_info(), timeout=self._timeout
        )
        self._state.put_symbols(symbols)
        tradeable = [item for item in symbols if item.is_tradeable]
        logger.info(
            "%s: %s symbols, %s tradeable",
            self._reference.name,
            len(symbols),
            len(tradeable),
        )
        return tradeable

    async def refresh_depths(
        self,
        symbols: Iterable[str],
        *,
        limit: int = DEPTH_LIMIT,
        concurrency: int = DEPTH_CONCURRENCY,
    ) -> int:
        """Refresh order-book depth for ``symbols`` on the reference exchange."""

        reference = self._reference
        if reference is None:
            return 0
        semaphore = asyncio.Semaphore(max(concurrency, 1))

        async def _fetch(symbol: str) -> bool:
            async with semaphore:
                try:
                    depth = await asyncio.wait_for(
                        reference.fetch_orderbook_depth(symbol, limit),
                        timeout=self._timeout,
                    )
                except asyncio.CancelledError:
                    raise
                except Exception as exc:  # pylint: disable=broad-except
                    logger.debug("%s: depth fetch failed for %s: %s", reference.name, symbol, exc)
                    return False
            self._state.put_depth(depth)
            return True

        unique = list(dict.fromkeys(symbols))
        results = await asyncio.gather(*(_fetch(symbol) for symbol in unique))
        refreshed = sum(1 for ok in results if ok)
        logger.info("%s: refreshed depth for %s/%s symbols", reference.name, refreshed, len(unique))
        return refreshed


def _index_tickers(exchange: str, tickers: Iterable[BookTicker]) -> dict[str, BookTicker]:
    indexed: dict[str, BookTicker] = {}
    for ticker in tickers:
        if not ticker.symbol:
            continue
        if ticker.symbol in indexed:
            logger.debug("%s: duplicate ticker for %s ignored", exchange, ticker.symbol)
            continue
        indexed[ticker.symbol] = ticker
    return indexed
