"""Outcome of a high-resolution elevation source fetch."""

from dataclasses import dataclass, field

from .geotiff import GeoTiffRaster


@dataclass
class SourceFetchResult:
    """Either decoded rasters from one provider, or the reason there are none."""

    ok: bool
    source: str
    rasters: list[GeoTiffRaster] = field(default_factory=list)
    smooth: bool = False
    reason: str | None = None
    chunks_total: int = 0
    chunks_failed: int = 0

    @property
    def raw_geotiffs(self) -> list[bytes]:
        return [r.raw for r in self.rasters]

    @classmethod
    def success(
        cls,
        source: str,
        rasters: list[GeoTiffRaster],
        smooth: bool = False,
        chunks_total: int = 0,
        chunks_failed: int = 0,
    ) -> "SourceFetchResult":
        return cls(
            ok=True,
            source=source,
            rasters=rasters,
            smooth=smooth,
            chunks_total=chunks_total,
            chunks_failed=chunks_failed,
        )

    @classmethod
    def failure(
        cls,
        source: str,
        reason: str,
        chunks_total: int = 0,
        chunks_failed: int = 0,
    ) -> "SourceFetchResult":
        return cls(
            ok=False,
            source=source,
            reason=reason,
            chunks_total=chunks_total,
            chunks_failed=chunks_failed,
        )
