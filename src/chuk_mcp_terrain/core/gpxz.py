"""
GPXZ hi-res raster adapter.

Discovers the caller's plan limits, splits the requested area into chunks
that respect the 10 km² per-request ceiling, and fetches them with
plan-appropriate concurrency, pacing and bounded retries.
"""

import asyncio
import contextlib
import logging
import math
from collections.abc import AsyncIterator, Callable, Mapping
from dataclasses import dataclass

import httpx

from ..constants import (
    GPXZ_BASE_URL,
    GPXZ_CHUNK_BUFFER_M,
    GPXZ_FREE_TIER_MIN_DELAY_S,
    GPXZ_PLAN_TIERS,
    GPXZ_POINTS_PATH,
    GPXZ_PROBE_PATH,
    GPXZ_RASTER_PATH,
    GPXZ_SAFE_AREA_KM2,
    GPXZ_SMOOTH_RESOLUTION_M,
    METERS_PER_DEG_LAT,
    TILE_TIMEOUT_S,
    ElevationSource,
    PlanTier,
)
from .cancellation import CancellationToken, TerrainCancelledError
from .concurrency import bounded_map
from .geo import GeoBounds, LatLng, meters_per_deg_lng, normalize_lng
from .geotiff import GeoTiffRaster, decode_geotiff
from .retry import (
    GPXZ_RETRY_POLICY,
    ProviderResponseError,
    RateLimitedError,
    RetryPolicy,
    parse_retry_after,
)
from .sources import SourceFetchResult

logger = logging.getLogger(__name__)

ProgressFn = Callable[[str], None]


@dataclass
class RateLimitState:
    """Last known GPXZ quota for one API key."""

    used: int = 0
    limit: int = 100
    remaining: int = 100
    reset_seconds: int = 0
    requests_per_second: int = 1
    concurrency: int = 1
    plan: str = PlanTier.FREE
    key_valid: bool | None = None

    @property
    def request_delay_s(self) -> float:
        """Per-lane pause before each request that keeps all lanes under the plan's rps."""
        delay = math.ceil(self.concurrency / self.requests_per_second * 1000) / 1000.0
        if self.plan == PlanTier.FREE:
            return max(delay, GPXZ_FREE_TIER_MIN_DELAY_S)
        return delay


def classify_plan(limit: int) -> tuple[str, int, int]:
    """Map a daily request limit to (plan, requests_per_second, concurrency)."""
    for ceiling, plan, rps, concurrency in GPXZ_PLAN_TIERS:
        if ceiling is None or limit <= ceiling:
            return plan, rps, concurrency
    _, plan, rps, concurrency = GPXZ_PLAN_TIERS[-1]
    return plan, rps, concurrency


def _header_int(headers: Mapping[str, str], name: str, default: int | None) -> int | None:
    value = headers.get(name)
    if value is None:
        return default
    try:
        return int(float(value))
    except ValueError:
        return default


def state_from_headers(headers: Mapping[str, str]) -> RateLimitState:
    used = _header_int(headers, "x-ratelimit-used", 0) or 0
    limit = _header_int(headers, "x-ratelimit-limit", 100) or 100
    remaining = _header_int(headers, "x-ratelimit-remaining", None)
    if remaining is None:
        remaining = max(0, limit - used)
    reset = _header_int(headers, "x-ratelimit-reset", 0) or 0

    plan, rps, concurrency = classify_plan(limit)
    return RateLimitState(
        used=used,
        limit=limit,
        remaining=remaining,
        reset_seconds=reset,
        requests_per_second=rps,
        concurrency=concurrency,
        plan=plan,
    )


def plan_chunks(bounds: GeoBounds) -> list[GeoBounds]:
    """
    Split bounds into request boxes that each stay under the GPXZ area ceiling.

    Each chunk is at most `sqrt(safe area) - 2 * buffer` metres on a side and is
    then grown by the buffer on every edge so neighbouring chunks overlap.
    Longitude degrees are sized at the latitude nearest the equator, where a
    degree is widest, so no chunk exceeds the ceiling anywhere in the box.
    A buffered chunk that crosses the antimeridian becomes two requests.
    """
    side_m = math.sqrt(GPXZ_SAFE_AREA_KM2) * 1000.0 - 2 * GPXZ_CHUNK_BUFFER_M

    if bounds.south <= 0.0 <= bounds.north:
        ref_lat = 0.0
    else:
        ref_lat = min(abs(bounds.south), abs(bounds.north))
    m_per_deg_lng = max(meters_per_deg_lng(ref_lat), 1.0)

    chunk_lat_deg = side_m / METERS_PER_DEG_LAT
    chunk_lng_deg = side_m / m_per_deg_lng
    buffer_lat_deg = GPXZ_CHUNK_BUFFER_M / METERS_PER_DEG_LAT
    buffer_lng_deg = GPXZ_CHUNK_BUFFER_M / m_per_deg_lng

    lat_span = bounds.lat_span
    lng_span = bounds.lng_span
    rows = max(1, math.ceil(lat_span / chunk_lat_deg))
    cols = max(1, math.ceil(lng_span / chunk_lng_deg))

    chunks: list[GeoBounds] = []
    for r in range(rows):
        south = bounds.south + r * lat_span / rows - buffer_lat_deg
        north = bounds.south + (r + 1) * lat_span / rows + buffer_lat_deg
        south = max(south, -90.0)
        north = min(north, 90.0)

        for c in range(cols):
            west = normalize_lng(bounds.west + c * lng_span / cols - buffer_lng_deg)
            east = normalize_lng(bounds.west + (c + 1) * lng_span / cols + buffer_lng_deg)

            if east > west:
                chunks.append(GeoBounds(north=north, south=south, east=east, west=west))
            elif east == -180.0:
                chunks.append(GeoBounds(north=north, south=south, east=180.0, west=west))
            else:
                chunks.append(GeoBounds(north=north, south=south, east=180.0, west=west))
                chunks.append(GeoBounds(north=north, south=south, east=east, west=-180.0))

    return chunks


def _notify(on_progress: ProgressFn | None, message: str) -> None:
    if on_progress is not None:
        on_progress(message)


class GPXZAdapter:
    """Fetches 1 m GPXZ rasters; owns the per-key rate-limit state."""

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        base_url: str = GPXZ_BASE_URL,
        retry_policy: RetryPolicy = GPXZ_RETRY_POLICY,
    ) -> None:
        self._client = client
        self.base_url = base_url.rstrip("/")
        self.retry_policy = retry_policy
        self._limits: dict[str, RateLimitState] = {}

    # ------------------------------------------------------------------
    # Rate-limit state
    # ------------------------------------------------------------------

    def rate_limit_info(self, api_key: str) -> RateLimitState | None:
        """Last known limits for api_key, or None if it has never been probed."""
        return self._limits.get(api_key)

    async def probe_limits(
        self, api_key: str, cancel: CancellationToken | None = None
    ) -> RateLimitState:
        """Discover plan limits with a single cheap point query.

        A transport failure falls back to free-tier assumptions; a 401/403
        marks the key invalid.
        """
        cancel = cancel or CancellationToken()
        url = f"{self.base_url}{GPXZ_PROBE_PATH}"

        async with self._client_scope() as client:
            try:
                response = await cancel.guard(
                    client.get(url, params={"lat": 0, "lon": 0}, headers=_auth(api_key))
                )
            except TerrainCancelledError:
                raise
            except httpx.HTTPError as e:
                logger.warning(f"[GPXZ] Failed to probe rate limits: {e}")
                state = RateLimitState()
            else:
                state = state_from_headers(response.headers)
                if response.status_code in (401, 403):
                    state.key_valid = False
                elif response.is_success:
                    state.key_valid = True

        self._limits[api_key] = state
        logger.info(
            f"[GPXZ] Plan: {state.plan} | Limit: {state.limit}/day | Used: {state.used} | "
            f"Remaining: {state.remaining} | Concurrency: {state.concurrency}"
        )
        return state

    def _update_from_headers(self, state: RateLimitState, headers: Mapping[str, str]) -> None:
        used = _header_int(headers, "x-ratelimit-used", None)
        remaining = _header_int(headers, "x-ratelimit-remaining", None)
        if used is not None:
            state.used = used
        if remaining is not None:
            state.remaining = remaining
        elif used is not None:
            state.remaining = max(0, state.limit - state.used)

    # ------------------------------------------------------------------
    # Fetch
    # ------------------------------------------------------------------

    async def check_resolution(
        self,
        client: httpx.AsyncClient,
        center: LatLng,
        api_key: str,
        cancel: CancellationToken,
    ) -> bool:
        """True when the dataset under center is coarser than 2 m and needs smoothing."""
        url = f"{self.base_url}{GPXZ_POINTS_PATH}"
        try:
            response = await cancel.guard(
                client.get(
                    url,
                    params={"latlons": f"{center.lat},{center.lng}"},
                    headers=_auth(api_key),
                )
            )
            if not response.is_success:
                return False
            results = response.json().get("results") or []
            if not results:
                return False
            resolution = results[0].get("resolution")
            logger.info(f"[GPXZ] Dataset resolution: {resolution}m")
            return resolution is not None and float(resolution) > GPXZ_SMOOTH_RESOLUTION_M
        except TerrainCancelledError:
            raise
        except Exception as e:
            logger.warning(f"[GPXZ] Failed to check resolution: {e}")
            return False

    async def fetch(
        self,
        bounds: GeoBounds,
        api_key: str,
        on_progress: ProgressFn | None = None,
        cancel: CancellationToken | None = None,
    ) -> SourceFetchResult:
        """
        Fetch 1 m rasters covering bounds.

        Args:
            bounds: Requested area
            api_key: GPXZ API key
            on_progress: Optional progress callback
            cancel: Optional cancellation token

        Returns:
            Success with every chunk that downloaded, or failure if none did
        """
        cancel = cancel or CancellationToken()
        cancel.raise_if_cancelled()

        state = self._limits.get(api_key)
        if state is None:
            _notify(on_progress, "Checking GPXZ account limits...")
            state = await self.probe_limits(api_key, cancel)
        if state.key_valid is False:
            logger.warning("[GPXZ] API key rejected; skipping GPXZ")
            return SourceFetchResult.failure(ElevationSource.GPXZ, "invalid API key")

        delay = state.request_delay_s
        logger.info(f"[GPXZ] Total requested area: {bounds.area_km2():.2f} km²")

        async with self._client_scope() as client:
            await self._sleep(delay, cancel)
            smooth = await self.check_resolution(client, bounds.center, api_key, cancel)

            chunks = plan_chunks(bounds)
            logger.info(
                f"[GPXZ] Split into {len(chunks)} chunks. "
                f"Concurrency: {state.concurrency}, delay: {delay:.2f}s"
            )
            _notify(
                on_progress,
                f"Fetching {len(chunks)} GPXZ tiles ({state.plan} plan, "
                f"{state.concurrency}x concurrent)...",
            )

            completed = 0

            async def fetch_one(chunk: GeoBounds) -> GeoTiffRaster | None:
                nonlocal completed
                await self._sleep(delay, cancel)
                raster = await self._fetch_chunk(client, chunk, api_key, state, on_progress, cancel)
                if raster is not None:
                    completed += 1
                    _notify(
                        on_progress,
                        f"Fetching GPXZ tiles... {completed}/{len(chunks)} "
                        f"({state.remaining} API calls remaining today)",
                    )
                return raster

            results = await bounded_map(chunks, fetch_one, state.concurrency, cancel)

        rasters = [r for r in results if r is not None]
        failed = len(chunks) - len(rasters)
        if not rasters:
            logger.warning(f"[GPXZ] All {len(chunks)} chunks failed")
            return SourceFetchResult.failure(
                ElevationSource.GPXZ,
                "all chunks failed",
                chunks_total=len(chunks),
                chunks_failed=failed,
            )
        if failed:
            logger.warning(f"[GPXZ] {failed}/{len(chunks)} chunks failed; gaps use the baseline")

        return SourceFetchResult.success(
            ElevationSource.GPXZ,
            rasters,
            smooth=smooth,
            chunks_total=len(chunks),
            chunks_failed=failed,
        )

    async def _fetch_chunk(
        self,
        client: httpx.AsyncClient,
        chunk: GeoBounds,
        api_key: str,
        state: RateLimitState,
        on_progress: ProgressFn | None,
        cancel: CancellationToken,
    ) -> GeoTiffRaster | None:
        url = f"{self.base_url}{GPXZ_RASTER_PATH}"
        params = {
            "bbox_top": chunk.north,
            "bbox_bottom": chunk.south,
            "bbox_left": chunk.west,
            "bbox_right": chunk.east,
            "res_m": 1,
            "projection": "latlon",
        }

        async def attempt() -> GeoTiffRaster | None:
            response = await cancel.guard(client.get(url, params=params, headers=_auth(api_key)))
            if response.status_code == 429:
                raise RateLimitedError(url, parse_retry_after(response.headers.get("retry-after")))
            if response.status_code >= 500:
                raise ProviderResponseError(url, response.status_code)
            if response.status_code in (401, 403):
                state.key_valid = False
            if not response.is_success:
                logger.error(f"[GPXZ] Chunk rejected: HTTP {response.status_code}")
                return None

            self._update_from_headers(state, response.headers)
            return await asyncio.to_thread(decode_geotiff, response.content)

        def on_retry(exc: BaseException, attempt_number: int, wait: float) -> None:
            if isinstance(exc, RateLimitedError):
                reason = "Rate limited"
            elif isinstance(exc, httpx.TransportError):
                reason = "Network error"
            else:
                reason = "Download interrupted"
            _notify(on_progress, f"{reason}, retrying in {math.ceil(wait)}s...")

        try:
            return await self.retry_policy.run(
                attempt,
                sleep=lambda seconds: self._sleep(seconds, cancel),
                on_retry=on_retry,
            )
        except self.retry_policy.retry_on as e:
            logger.error(
                f"[GPXZ] Chunk failed after {self.retry_policy.max_attempts} attempts: {e}"
            )
            return None

    async def _sleep(self, seconds: float, cancel: CancellationToken) -> None:
        await cancel.sleep(seconds)

    @contextlib.asynccontextmanager
    async def _client_scope(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._client is not None:
            yield self._client
            return
        # Raster downloads rely on retries rather than a hard read timeout
        timeout = httpx.Timeout(TILE_TIMEOUT_S, read=None)
        async with httpx.AsyncClient(timeout=timeout) as client:
            yield client


def _auth(api_key: str) -> dict[str, str]:
    return {"x-api-key": api_key}
