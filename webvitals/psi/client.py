"""Google PageSpeed Insights API client.

Fetches a Lighthouse run for a URL and converts it into a ``VitalsSnapshot``.
Timing metrics are stored in seconds, INP in milliseconds, CLS unitless and
category scores on a 0-100 scale.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Optional

import httpx

from webvitals.models.vitals import Opportunity, VitalsSnapshot
from webvitals.url_utils import InvalidTargetError, normalize_target_url

logger = logging.getLogger(__name__)

PAGESPEED_API_URL = "https://www.googleapis.com/pagespeedonline/v5/runPagespeed"
CATEGORIES = ("PERFORMANCE", "ACCESSIBILITY", "BEST_PRACTICES", "SEO")

# Tried in order; the FID audits are fallbacks for older Lighthouse versions
INP_AUDITS = (
    "interaction-to-next-paint",
    "experimental-interaction-to-next-paint",
    "max-potential-fid",
    "first-input-delay",
)

OPPORTUNITY_AUDITS = (
    "unused-css-rules",
    "unused-javascript",
    "render-blocking-resources",
    "unminified-css",
    "unminified-javascript",
    "efficient-animated-content",
    "offscreen-images",
    "webp-images",
    "uses-optimized-images",
    "modern-image-formats",
    "uses-text-compression",
    "dom-size",
    "mainthread-work-breakdown",
    "bootup-time",
    "uses-passive-event-listeners",
    "font-display",
)
MAX_OPPORTUNITIES = 5

# Values below this with no declared unit are taken to be seconds already
LEGACY_SECONDS_CUTOFF = 50

_DISPLAY_NUMBER_RE = re.compile(r"^([\d.,]+)")


class PageSpeedError(RuntimeError):
    """Raised when PageSpeed Insights returns an error or an unusable payload."""


def _raw_value(audit: dict) -> tuple[Optional[float], Optional[str]]:
    """Numeric value and its unit, falling back to parsing ``displayValue``."""
    value = audit.get("numericValue")
    unit = audit.get("numericUnit")
    if value is not None:
        return float(value), unit

    display = audit.get("displayValue")
    if not isinstance(display, str):
        return None, None
    match = _DISPLAY_NUMBER_RE.match(display.strip())
    if not match:
        return None, None
    try:
        value = float(match.group(1).replace(",", ""))
    except ValueError:
        return None, None
    if "ms" in display:
        return value, "millisecond"
    if display.rstrip().endswith("s"):
        return value, "second"
    return value, None


def extract_seconds(audit: Optional[dict]) -> Optional[float]:
    """Timing audit value in seconds, rounded to milliseconds."""
    if not audit:
        return None
    value, unit = _raw_value(audit)
    if value is None:
        return None
    if unit == "millisecond":
        return round(value / 1000, 3)
    if unit == "second":
        return round(value, 3)
    if value < LEGACY_SECONDS_CUTOFF:
        return round(value, 3)
    return round(value) / 1000


def extract_milliseconds(audit: Optional[dict]) -> Optional[float]:
    """Interaction audit value in whole milliseconds."""
    if not audit:
        return None
    value, unit = _raw_value(audit)
    if value is None:
        return None
    if unit == "second":
        value *= 1000
    return float(round(value))


def extract_unitless(audit: Optional[dict]) -> Optional[float]:
    if not audit:
        return None
    value, _ = _raw_value(audit)
    return round(value, 3) if value is not None else None


def _category_score(categories: dict, key: str) -> Optional[float]:
    score = (categories.get(key) or {}).get("score")
    return float(round(score * 100)) if score is not None else None


def _opportunity_savings_ms(audit_id: str, audit: dict) -> float:
    details = audit.get("details") or {}
    if details.get("overallSavingsMs"):
        return float(details["overallSavingsMs"])
    numeric = audit.get("numericValue")
    if not numeric:
        return 0.0
    if audit_id == "dom-size":
        # DOM size has no savings estimate; approximate its cost past 3000 nodes
        return min((numeric - 3000) * 0.1, 1000.0) if numeric > 3000 else 0.0
    if "blocking" in audit_id or "bootup" in audit_id or "mainthread" in audit_id:
        return float(numeric)
    return 0.0


def extract_opportunities(audits: dict) -> list[Opportunity]:
    """Top improvement opportunities, largest estimated savings first."""
    opportunities = []
    for audit_id in OPPORTUNITY_AUDITS:
        audit = audits.get(audit_id)
        if not audit:
            continue
        savings_ms = _opportunity_savings_ms(audit_id, audit)
        score = audit.get("score")
        if savings_ms > 100 or (score is not None and score < 0.9):
            opportunities.append(Opportunity(
                id=audit_id,
                title=audit.get("title") or audit_id,
                description=audit.get("description") or "Performance improvement opportunity",
                savings_seconds=round(savings_ms / 1000, 2),
                score=score,
                display_value=audit.get("displayValue"),
            ))
    opportunities.sort(key=lambda o: o.savings_seconds, reverse=True)
    return opportunities[:MAX_OPPORTUNITIES]


def parse_pagespeed_response(payload: dict[str, Any]) -> VitalsSnapshot:
    """Convert a raw PSI v5 response into a snapshot.

    Missing audits or categories produce ``None`` fields; a response without
    ``lighthouseResult`` raises ``PageSpeedError``.
    """
    lighthouse = payload.get("lighthouseResult")
    if not lighthouse:
        raise PageSpeedError("Invalid PageSpeed Insights response: missing lighthouseResult")

    audits = lighthouse.get("audits") or {}
    categories = lighthouse.get("categories") or {}
    config_settings = lighthouse.get("configSettings") or {}
    strategy = (
        config_settings.get("emulatedFormFactor")
        or config_settings.get("formFactor")
        or "mobile"
    )

    inp = None
    for audit_id in INP_AUDITS:
        if audit_id in audits:
            inp = extract_milliseconds(audits[audit_id])
            break

    snapshot = VitalsSnapshot(
        performance=_category_score(categories, "performance"),
        accessibility=_category_score(categories, "accessibility"),
        best_practices=_category_score(categories, "best-practices"),
        seo=_category_score(categories, "seo"),
        lcp=extract_seconds(audits.get("largest-contentful-paint")),
        fcp=extract_seconds(audits.get("first-contentful-paint")),
        cls=extract_unitless(audits.get("cumulative-layout-shift")),
        ttfb=extract_seconds(audits.get("server-response-time")),
        inp=inp,
        speed_index=extract_seconds(audits.get("speed-index")),
        total_blocking_time=extract_seconds(audits.get("total-blocking-time")),
        opportunities=extract_opportunities(audits),
        strategy=strategy,
        raw_url=payload.get("id") or lighthouse.get("requestedUrl") or lighthouse.get("finalUrl"),
        lighthouse_version=lighthouse.get("lighthouseVersion"),
    )

    if not snapshot.has_performance_data:
        logger.warning(
            "No performance data in PageSpeed response (missing: %s)",
            ", ".join(snapshot.missing_categories) or "none",
        )
    return snapshot


class PageSpeedClient:
    """HTTP client for the PageSpeed Insights v5 API."""

    def __init__(
        self,
        api_key: str,
        strategy: str = "mobile",
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.strategy = strategy
        self.timeout = timeout
        self._transport = transport

    def _params(self, url: str) -> list[tuple[str, str]]:
        params = [("url", url), ("key", self.api_key), ("strategy", self.strategy)]
        params.extend(("category", cat) for cat in CATEGORIES)
        return params

    async def fetch(self, url: str) -> VitalsSnapshot:
        """Run PageSpeed Insights for ``url`` and return the parsed snapshot."""
        if not self.api_key:
            raise PageSpeedError("Google PageSpeed Insights API key is required")
        try:
            target = normalize_target_url(url)
        except InvalidTargetError as e:
            raise PageSpeedError(str(e)) from e

        logger.info("[PSI] Analyzing %s (%s)", target, self.strategy)
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.get(PAGESPEED_API_URL, params=self._params(target))
        except httpx.TimeoutException as e:
            raise PageSpeedError(f"Request timed out after {self.timeout:.0f}s") from e
        except httpx.HTTPError as e:
            raise PageSpeedError(f"Request failed: {e}") from e

        if not response.is_success:
            raise PageSpeedError(self._error_message(response))

        try:
            payload = response.json()
        except ValueError as e:
            raise PageSpeedError("PageSpeed Insights returned invalid JSON") from e
        return parse_pagespeed_response(payload)

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            message = (response.json().get("error") or {}).get("message")
        except ValueError:
            message = None
        if message:
            return message
        if response.status_code == 429:
            return "Rate limit exceeded"
        return f"API request failed with status {response.status_code}"


async def validate_api_key(
    api_key: str, transport: Optional[httpx.AsyncBaseTransport] = None,
) -> bool:
    """Check an API key by analyzing a known public page."""
    if not api_key:
        return False
    client = PageSpeedClient(api_key, transport=transport)
    try:
        snapshot = await client.fetch("https://example.com")
    except PageSpeedError as e:
        logger.error("API key validation failed: %s", e)
        return False
    if not snapshot.has_performance_data:
        logger.warning(
            "API key is valid but missing categories: %s",
            ", ".join(snapshot.missing_categories),
        )
    return True
