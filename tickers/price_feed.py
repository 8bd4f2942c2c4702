"""
CoinGecko price snapshot fetcher.

One GET per cycle returns price and 24h change for every tracked asset:

  GET https://api.coingecko.com/api/v3/coins/markets
      ?vs_currency=usd&ids=cosmos,bitcoin,ethereum&sparkline=false
  Header: x-cg-demo-api-key: <CG_API>
  Response: [{"id": "bitcoin", "current_price": 65000.0,
              "price_change_percentage_24h": -0.5, ...}, ...]

The snapshot is all-or-nothing: a transport error, a non-2xx status, a
non-JSON body or any missing/malformed asset yields no snapshot at all.
There is no internal retry; the scheduler simply tries again next cycle.
"""

import asyncio
import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence

import aiohttp

from tickers.config import TRACKED_ASSETS, TrackedAsset

logger = logging.getLogger(__name__)

COINGECKO_BASE = "https://api.coingecko.com"
MARKETS_ENDPOINT = "/api/v3/coins/markets"
API_KEY_HEADER = "x-cg-demo-api-key"

# HTTP timeout per request (seconds)
HTTP_TIMEOUT = 10.0


class FetchError(Exception):
    """The price feed returned nothing usable for this cycle."""


@dataclass(frozen=True)
class AssetRecord:
    """Price data for one asset, valid for a single cycle."""
    asset_key: str          # "atom", "btc", "eth"
    asset_id: str           # CoinGecko id
    label: str
    price: float            # USD, > 0
    change_pct_24h: float   # any sign


# Asset key -> record. Always holds every tracked asset.
Snapshot = Dict[str, AssetRecord]


def _as_float(value: Any, field_name: str, coin_id: str) -> float:
    # bool is an int subclass; CoinGecko never sends one for these fields
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise FetchError(f"{coin_id}: {field_name} is not a number ({value!r})")
    if not math.isfinite(value):
        raise FetchError(f"{coin_id}: {field_name} is not finite ({value!r})")
    return float(value)


def parse_snapshot(payload: Any, assets: Sequence[TrackedAsset] = TRACKED_ASSETS) -> Snapshot:
    """
    Turn a /coins/markets response body into a Snapshot.

    Raises FetchError if the body is not a list of objects or any tracked
    asset is missing or malformed.
    """
    if not isinstance(payload, list):
        raise FetchError(f"expected a JSON array, got {type(payload).__name__}")

    by_id: Dict[str, dict] = {}
    for item in payload:
        if isinstance(item, dict) and isinstance(item.get("id"), str):
            by_id[item["id"]] = item

    snapshot: Snapshot = {}
    for asset in assets:
        item = by_id.get(asset.coin_id)
        if item is None:
            raise FetchError(f"{asset.coin_id}: missing from response")
        price = _as_float(item.get("current_price"), "current_price", asset.coin_id)
        if price <= 0:
            raise FetchError(f"{asset.coin_id}: non-positive price {price}")
        change = _as_float(
            item.get("price_change_percentage_24h"), "price_change_percentage_24h", asset.coin_id
        )
        snapshot[asset.key] = AssetRecord(
            asset_key=asset.key,
            asset_id=asset.coin_id,
            label=asset.label,
            price=price,
            change_pct_24h=change,
        )
    return snapshot


class PriceFeed:
    """
    Fetches one Snapshot per call from CoinGecko.

    Constructor args:
        api_key:  CoinGecko demo key, sent as a header when set
        assets:   Tracked assets (defaults to the compiled-in set)
        session:  Optional aiohttp session; one is created lazily otherwise
        base_url: Override for the CoinGecko host
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        assets: Sequence[TrackedAsset] = TRACKED_ASSETS,
        session: Optional[aiohttp.ClientSession] = None,
        base_url: str = COINGECKO_BASE,
    ):
        self.api_key = api_key
        self.assets = list(assets)
        self.base_url = base_url
        self._session = session
        self._owns_session = session is None

    def _params(self) -> Dict[str, str]:
        return {
            "vs_currency": "usd",
            "ids": ",".join(asset.coin_id for asset in self.assets),
            "sparkline": "false",
        }

    def _headers(self) -> Dict[str, str]:
        if not self.api_key:
            return {}
        return {API_KEY_HEADER: self.api_key}

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            timeout = aiohttp.ClientTimeout(total=HTTP_TIMEOUT)
            self._session = aiohttp.ClientSession(timeout=timeout)
            self._owns_session = True
        return self._session

    async def _request(self) -> Any:
        url = f"{self.base_url}{MARKETS_ENDPOINT}"
        session = self._get_session()
        async with session.get(url, params=self._params(), headers=self._headers()) as resp:
            if resp.status < 200 or resp.status >= 300:
                raise FetchError(f"HTTP {resp.status}")
            # content_type=None: accept a JSON body whatever the declared type
            return await resp.json(content_type=None)

    async def fetch(self) -> Optional[Snapshot]:
        """Fetch a Snapshot, or None if anything about the call failed."""
        try:
            payload = await self._request()
            snapshot = parse_snapshot(payload, self.assets)
        except FetchError as e:
            logger.error("Price fetch failed: %s", e)
            return None
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error("Price fetch transport error: %r", e)
            return None
        except ValueError as e:
            # json.JSONDecodeError
            logger.error("Price fetch returned invalid JSON: %s", e)
            return None

        logger.info(
            "Prices: %s",
            ", ".join(
                f"{rec.asset_key}={rec.price} ({rec.change_pct_24h:+.2f}%)"
                for rec in snapshot.values()
            ),
        )
        return snapshot

    async def close(self):
        """Close the HTTP session if this feed created it."""
        if self._session is not None and self._owns_session:
            await self._session.close()
        self._session = None
