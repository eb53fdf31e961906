"""
USGS 3DEP 1 m adapter via The National Map products API.

Only boxes strictly inside CONUS, Alaska or Hawaii are eligible. Product
downloads run one at a time since 1 m tiles are large.
"""

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator, Callable

import httpx

from ..constants import (
    USGS_DATASET,
    USGS_MAX_PRODUCTS,
    USGS_PRODUCT_API,
    USGS_QUERY_TIMEOUT_S,
    USGS_REGIONS,
    USGS_STATUS_TIMEOUT_S,
    ElevationSource,
)
from .cancellation import CancellationToken, TerrainCancelledError
from .geo import GeoBounds
from .geotiff import GeoTiffRaster, decode_geotiff
from .retry import USGS_QUERY_RETRY_POLICY, ProviderResponseError, RetryPolicy
from .sources import SourceFetchResult

logger = logging.getLogger(__name__)


def usgs_region(bounds: GeoBounds) -> str | None:
    """Name of the US region that strictly contains bounds, if any."""
    if bounds.crosses_antimeridian:
        return None
    for name, (west, south, east, north) in USGS_REGIONS.items():
        if (
            bounds.north < north
            and bounds.south > south
            and bounds.west > west
            and bounds.east < east
        ):
            return name
    return None


def in_usgs_coverage(bounds: GeoBounds) -> bool:
    return usgs_region(bounds) is not None


class USGSAdapter:
    """Queries TNM for 1 m DEM products covering a box and downloads them."""

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        product_api: str = USGS_PRODUCT_API,
        retry_policy: RetryPolicy = USGS_QUERY_RETRY_POLICY,
    ) -> None:
        self._client = client
        self.product_api = product_api
        self.retry_policy = retry_policy

    async def fetch(
        self,
        bounds: GeoBounds,
        on_progress: Callable[[str], None] | None = None,
        cancel: CancellationToken | None = None,
    ) -> SourceFetchResult:
        """
        Fetch the 1 m DEM products covering bounds.

        Args:
            bounds: Requested area (must lie inside a USGS region)
            on_progress: Optional progress callback
            cancel: Optional cancellation token

        Returns:
            Success with every decoded product, or failure with a reason
        """
        cancel = cancel or CancellationToken()
        cancel.raise_if_cancelled()

        async with self._client_scope() as client:
            try:
                items = await self._query_products(client, bounds, cancel)
            except TerrainCancelledError:
                raise
            except Exception as e:
                logger.warning(
                    f"[USGS] Failed to query API after {self.retry_policy.max_attempts} attempts: {e}"
                )
                return SourceFetchResult.failure(ElevationSource.USGS, "query failed")

            if not items:
                logger.info("[USGS] No products found for bounds")
                return SourceFetchResult.failure(ElevationSource.USGS, "no coverage")

            if on_progress is not None:
                on_progress(f"Found {len(items)} USGS tiles. Downloading...")

            rasters: list[GeoTiffRaster] = []
            for i, item in enumerate(items):
                cancel.raise_if_cancelled()
                if on_progress is not None:
                    on_progress(f"Downloading USGS tile {i + 1}/{len(items)}...")
                raster = await self._download(client, item.get("downloadURL"), cancel)
                if raster is not None:
                    rasters.append(raster)

        if not rasters:
            logger.warning("[USGS] All tile downloads failed")
            return SourceFetchResult.failure(
                ElevationSource.USGS,
                "all downloads failed",
                chunks_total=len(items),
                chunks_failed=len(items),
            )

        return SourceFetchResult.success(
            ElevationSource.USGS,
            rasters,
            chunks_total=len(items),
            chunks_failed=len(items) - len(rasters),
        )

    async def _query_products(
        self, client: httpx.AsyncClient, bounds: GeoBounds, cancel: CancellationToken
    ) -> list[dict]:
        bbox = ",".join(f"{v:.6f}" for v in bounds.as_bbox())
        params = {
            "datasets": USGS_DATASET,
            "bbox": bbox,
            "prodFormats": "GeoTIFF",
            "max": USGS_MAX_PRODUCTS,
        }
        logger.info(f"[USGS] Querying products for bbox {bbox}")

        async def attempt() -> list[dict]:
            response = await cancel.guard(
                client.get(self.product_api, params=params, timeout=USGS_QUERY_TIMEOUT_S)
            )
            if not response.is_success:
                raise ProviderResponseError(self.product_api, response.status_code)
            return list(response.json().get("items") or [])

        return await self.retry_policy.run(attempt, sleep=lambda seconds: self._sleep(seconds, cancel))

    async def _download(
        self, client: httpx.AsyncClient, url: str | None, cancel: CancellationToken
    ) -> GeoTiffRaster | None:
        if not url:
            return None
        try:
            response = await cancel.guard(client.get(url))
            if not response.is_success:
                logger.warning(f"[USGS] Failed to download tile: HTTP {response.status_code}")
                return None
            return await asyncio.to_thread(decode_geotiff, response.content)
        except TerrainCancelledError:
            raise
        except Exception as e:
            logger.warning(f"[USGS] Failed to read tile {url}: {e}")
            return None

    async def _sleep(self, seconds: float, cancel: CancellationToken) -> None:
        await cancel.sleep(seconds)

    @contextlib.asynccontextmanager
    async def _client_scope(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._client is not None:
            yield self._client
            return
        timeout = httpx.Timeout(USGS_QUERY_TIMEOUT_S, read=None)
        async with httpx.AsyncClient(timeout=timeout, follow_redirects=True) as client:
            yield client


async def check_usgs_status(client: httpx.AsyncClient | None = None) -> bool:
    """Whether the TNM products API answers within the status timeout."""
    try:
        if client is not None:
            response = await client.get(
                USGS_PRODUCT_API, params={"max": 1}, timeout=USGS_STATUS_TIMEOUT_S
            )
        else:
            async with httpx.AsyncClient(timeout=USGS_STATUS_TIMEOUT_S) as owned:
                response = await owned.get(USGS_PRODUCT_API, params={"max": 1})
        return response.is_success
    except httpx.HTTPError as e:
        logger.info(f"[USGS] Status check failed: {e}")
        return False
