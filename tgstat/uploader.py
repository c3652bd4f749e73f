"""Upload backfilled series to VictoriaMetrics."""
import gzip
import io
import logging
from datetime import timedelta
from typing import Optional, Tuple

import httpx

from tgstat.backfill import Metrics
from tgstat.config import VictoriaMetricsConfig

logger = logging.getLogger(__name__)

DELETE_SERIES_PATH = "/api/v1/admin/tsdb/delete_series"
IMPORT_PROMETHEUS_PATH = "/api/v1/import/prometheus"


class UploadError(Exception):
    """Raised when VictoriaMetrics rejects a request or cannot be reached."""


def compress_exposition(metrics: Metrics, resolution: timedelta) -> Tuple[bytes, int]:
    """Render the metrics into a gzip-compressed exposition payload."""
    buf = io.BytesIO()
    with gzip.GzipFile(fileobj=buf, mode="wb") as gz:
        count = metrics.write(gz, resolution)
    return buf.getvalue(), count


class VictoriaMetricsClient:
    """Small client for the VictoriaMetrics admin and import endpoints."""

    def __init__(self, config: VictoriaMetricsConfig, transport: Optional[httpx.BaseTransport] = None):
        self.config = config
        self.client = httpx.Client(
            base_url=config.url.rstrip("/"),
            timeout=config.timeout_s,
            transport=transport
        )

    def close(self):
        self.client.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def _check(self, response: httpx.Response, action: str):
        if response.status_code != httpx.codes.NO_CONTENT:
            raise UploadError(
                f"{action}: response status {response.status_code} {response.reason_phrase}"
            )

    def delete_series(self, prefix: str):
        """Delete every stored series whose name starts with ``prefix``."""
        try:
            response = self.client.get(
                DELETE_SERIES_PATH,
                params={"match[]": f'{{__name__=~"{prefix}.*"}}'}
            )
        except httpx.HTTPError as e:
            raise UploadError(f"delete series: {e}") from e
        self._check(response, "delete series")
        logger.info(f"Deleted remote series matching {prefix}.*")

    def import_prometheus(self, payload: bytes):
        """Import a gzip-compressed exposition payload."""
        try:
            response = self.client.post(
                IMPORT_PROMETHEUS_PATH,
                content=payload,
                headers={"Content-Encoding": "gzip"}
            )
        except httpx.HTTPError as e:
            raise UploadError(f"import: {e}") from e
        self._check(response, "import")

    def upload(self, metrics: Metrics, resolution: timedelta, prefix: str) -> int:
        """
        Replace all remote series under ``prefix`` with the rendered metrics.

        Rendering happens before anything is deleted, so an empty recorder
        leaves the remote data untouched.
        """
        payload, count = compress_exposition(metrics, resolution)
        logger.info(f"Compressed {count} samples into {len(payload)} bytes")

        self.delete_series(prefix)
        self.import_prometheus(payload)

        logger.info(f"Imported {count} samples into {self.config.url}")
        return count
