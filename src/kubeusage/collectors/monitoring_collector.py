# src/kubeusage/collectors/monitoring_collector.py

"""
MonitoringCollector issues Monitoring Query Language queries against the
Cloud Monitoring API and returns the label-grouped time series.
"""

import logging
from typing import Any, Dict, List, Optional

import httpx

from ..core.exceptions import TelemetryError
from ..models.telemetry import Sample, TimeSeriesGroup
from ..utils.date_utils import ensure_utc
from .base_collector import BaseCollector

logger = logging.getLogger(__name__)


def _label_value(label: Dict[str, Any]) -> str:
    for key in ("stringValue", "int64Value", "boolValue"):
        if key in label:
            return str(label[key])
    return ""


def _point_value(point: Dict[str, Any]) -> float:
    values = point.get("values") or []
    if not values:
        raise ValueError("point carries no values")
    value = values[0]
    if "doubleValue" in value:
        return float(value["doubleValue"])
    if "int64Value" in value:
        return float(value["int64Value"])
    raise ValueError(f"unsupported point value: {value}")


class MonitoringCollector(BaseCollector):
    """
    Client for projects.timeSeries.query.
    """

    def _query_url(self) -> str:
        base = self.settings.MONITORING_API_URL.rstrip("/")
        return f"{base}/projects/{self.settings.PROJECT_ID}/timeSeries:query"

    async def query(self, query_text: str) -> List[TimeSeriesGroup]:
        """
        Runs a query and follows pagination.

        Raises:
            TelemetryError: If the query cannot be issued or a page cannot be read.
        """
        client = self._ensure_client()
        url = self._query_url()
        groups: List[TimeSeriesGroup] = []
        page_token: Optional[str] = None

        while True:
            body = {"query": query_text}
            if page_token:
                body["pageToken"] = page_token
            try:
                resp = await client.post(url, json=body)
                resp.raise_for_status()
                data = resp.json()
            except httpx.HTTPError as e:
                raise TelemetryError(f"could not query time series: {e}") from e
            except ValueError as e:
                raise TelemetryError(f"could not decode time series response: {e}") from e

            for entry in data.get("timeSeriesData", []):
                groups.append(self._parse_series(entry))

            page_token = data.get("nextPageToken")
            if not page_token:
                break

        logger.info("Found %d time series for query.", len(groups))
        return groups

    @staticmethod
    def _parse_series(entry: Dict[str, Any]) -> TimeSeriesGroup:
        samples = []
        for point in entry.get("pointData", []):
            interval = point.get("timeInterval", {})
            try:
                end = ensure_utc(interval["endTime"])
                # A missing startTime denotes a point-in-time value.
                start = ensure_utc(interval["startTime"]) if interval.get("startTime") else end
                samples.append(Sample(start_time=start, end_time=end, value=_point_value(point)))
            except (KeyError, ValueError) as e:
                logger.warning("Skipping unreadable point %s: %s", point, e)
        return TimeSeriesGroup(
            label_values=[_label_value(label) for label in entry.get("labelValues", [])],
            samples=samples,
        )
