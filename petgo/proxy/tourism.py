"""
Tourism Services
================

Korea Tourism Organization (KTO) calls that need more than a single
pass-through request:

- ``fetch_combined_listing``: general or pet-friendly listings for one area,
  optionally collecting every pet-friendly page for the area.
- ``fetch_tour_detail``: common/intro/image detail for one content id.
- ``run_api_probes``: diagnostics against the listing endpoints.

All calls are issued sequentially through ``UpstreamClient``.
"""

import asyncio
import logging
import re
from typing import Any, Dict, List, Optional

from ..errors import UpstreamError, UpstreamHTTPError, UpstreamUnreachable, truncate
from ..models import ApiProbeResult, utc_timestamp
from .fixtures import tour_listing
from .upstream import UpstreamClient, redact_url

logger = logging.getLogger(__name__)

SERVICE = "KTO"

GENERAL_APP_NAME = "TravelApp"
PET_APP_NAME = "PetTravelApp"

# Pet listing collection
PET_PAGE_SIZE = 100
PET_MAX_PAGES = 5
PET_PAGE_DELAY_SECONDS = 0.3


def kto_params(service_key: str, app_name: str, **params: Any) -> Dict[str, Any]:
    """Common KTO query parameters plus the call-specific ones."""
    base = {
        "serviceKey": service_key,
        "MobileOS": "ETC",
        "MobileApp": app_name,
        "_type": "json",
    }
    base.update(params)
    return base


def extract_items(payload: Any) -> List[Dict[str, Any]]:
    """
    Return ``response.body.items.item`` as a list.

    KTO answers an empty page with ``"items": ""`` and a one-row page with a
    bare object instead of a list.
    """
    if not isinstance(payload, dict):
        return []
    body = (payload.get("response") or {}).get("body") or {}
    items = body.get("items")
    if not isinstance(items, dict):
        return []
    item = items.get("item")
    if item is None:
        return []
    if isinstance(item, list):
        return item
    return [item]


def dedupe_by_content_id(items: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Keep the first occurrence of each ``contentid``, preserving order."""
    seen = set()
    unique = []
    for item in items:
        content_id = item.get("contentid")
        if content_id in seen:
            continue
        seen.add(content_id)
        unique.append(item)
    return unique


# ============================================================================
# Combined listing
# ============================================================================

async def collect_pet_listing(
    upstream: UpstreamClient,
    base_url: str,
    service_key: str,
    area_code: Any,
    delay: float = PET_PAGE_DELAY_SECONDS,
) -> Dict[str, Any]:
    """
    Collect pet-friendly places for an area page by page.

    Stops after ``PET_MAX_PAGES`` pages, on a short or empty page, or when a
    page after the first fails. A failure on the first page is raised.

    Returns:
        A single listing in the KTO layout holding the de-duplicated items
    """
    collected: List[Dict[str, Any]] = []
    url = f"{base_url}/KorPetTourService/areaBasedList"

    for page in range(1, PET_MAX_PAGES + 1):
        params = kto_params(
            service_key,
            PET_APP_NAME,
            areaCode=area_code,
            numOfRows=PET_PAGE_SIZE,
            pageNo=page,
        )
        try:
            payload = await upstream.fetch_json(SERVICE, "GET", url, params=params)
        except UpstreamError as e:
            if page == 1:
                raise
            logger.warning(
                f"Stopping pet listing collection at page {page}: {e.message}",
                extra={"service": SERVICE, "page": page},
            )
            break

        items = extract_items(payload)
        logger.info(
            f"Collected pet listing page {page}",
            extra={"page": page, "count": len(items)},
        )
        collected.extend(items)
        if len(items) < PET_PAGE_SIZE:
            break
        if page < PET_MAX_PAGES:
            await asyncio.sleep(delay)

    unique = dedupe_by_content_id(collected)
    logger.info(
        "Pet listing collection finished",
        extra={"collected": len(collected), "unique": len(unique)},
    )
    return tour_listing(unique, total_count=len(unique), page_no=1, num_of_rows=len(unique))


async def fetch_combined_listing(
    upstream: UpstreamClient,
    base_url: str,
    service_key: str,
    area_code: Any,
    num_of_rows: Any = 10,
    page_no: Any = 1,
    keyword: Optional[str] = None,
    active_tab: str = "general",
    load_all_pet_keywords: bool = False,
) -> Dict[str, Any]:
    """
    Fetch the listing for the requested tab.

    Args:
        upstream: Upstream caller
        base_url: KTO base URL
        service_key: Decoded KTO service key
        area_code: KTO area code
        num_of_rows: Page size
        page_no: Page number
        keyword: Optional search keyword (switches to the keyword endpoint)
        active_tab: ``"general"`` or ``"pet"``
        load_all_pet_keywords: Collect every pet page instead of one page

    Returns:
        ``{tourismData, petTourismData, requestParams, timestamp, status}``
    """
    keyword = (keyword or "").strip() or None
    tourism_data = None
    pet_tourism_data = None

    if active_tab == "general":
        if keyword:
            url = f"{base_url}/KorService2/searchKeyword2"
        else:
            url = f"{base_url}/KorService2/areaBasedList2"
        params = kto_params(
            service_key,
            GENERAL_APP_NAME,
            keyword=keyword,
            areaCode=area_code,
            numOfRows=num_of_rows,
            pageNo=page_no,
        )
        tourism_data = await upstream.fetch_json(SERVICE, "GET", url, params=params)

    elif active_tab == "pet":
        if load_all_pet_keywords:
            pet_tourism_data = await collect_pet_listing(upstream, base_url, service_key, area_code)
        else:
            if keyword:
                url = f"{base_url}/KorPetTourService/searchKeyword"
            else:
                url = f"{base_url}/KorPetTourService/areaBasedList"
            params = kto_params(
                service_key,
                PET_APP_NAME,
                keyword=keyword,
                areaCode=area_code,
                numOfRows=num_of_rows,
                pageNo=page_no,
            )
            pet_tourism_data = await upstream.fetch_json(SERVICE, "GET", url, params=params)

    return {
        "tourismData": tourism_data,
        "petTourismData": pet_tourism_data,
        "requestParams": {
            "areaCode": area_code,
            "numOfRows": num_of_rows,
            "pageNo": page_no,
            "activeTab": active_tab,
        },
        "timestamp": utc_timestamp(),
        "status": {
            "tourism": "success" if active_tab == "general" else "not_requested",
            "petTourism": "success" if active_tab == "pet" else "not_requested",
        },
    }


# ============================================================================
# Detail
# ============================================================================

async def _detail_part(
    upstream: UpstreamClient,
    part: str,
    url: str,
    params: Dict[str, Any],
) -> Optional[Any]:
    try:
        return await upstream.fetch_json(SERVICE, "GET", url, params=params)
    except UpstreamError as e:
        logger.warning(
            f"Tour detail part '{part}' unavailable: {e.message}",
            extra={"part": part, "kind": e.kind},
        )
        return None


async def fetch_tour_detail(
    upstream: UpstreamClient,
    base_url: str,
    service_key: str,
    content_id: Any,
    content_type_id: Optional[Any] = None,
) -> Dict[str, Any]:
    """
    Fetch common info, intro (when ``content_type_id`` is known) and images.

    A part whose upstream call fails is reported as ``None``.

    Returns:
        ``{"common": ..., "intro": ..., "images": ...}``
    """
    params = kto_params(
        service_key,
        PET_APP_NAME,
        contentId=content_id,
        contentTypeId=content_type_id,
    )

    common = await _detail_part(upstream, "common", f"{base_url}/KorService2/detailCommon2", params)

    intro = None
    if content_type_id:
        intro = await _detail_part(upstream, "intro", f"{base_url}/KorService2/detailIntro2", params)

    images = await _detail_part(
        upstream,
        "images",
        f"{base_url}/KorService2/detailImage2",
        dict(params, imageYN="Y", subImageYN="Y"),
    )

    return {"common": common, "intro": intro, "images": images}


# ============================================================================
# Diagnostics
# ============================================================================

SUCCESS_MARKER = "<resultCode>0000</resultCode>"

_ERR_MSG_PATTERN = re.compile(r"<errMsg>(.*?)</errMsg>", re.DOTALL)


def classify_key_status(text: str) -> str:
    if "INVALID_REQUEST_PARAMETER_ERROR" in text:
        return "INVALID_KEY"
    if "SERVICE_TIMEOUT_ERROR" in text:
        return "QUOTA_EXCEEDED"
    if SUCCESS_MARKER in text:
        return "VALID"
    return "UNKNOWN"


def _probe_error(text: str) -> Optional[str]:
    if "SERVICE ERROR" not in text:
        return None
    match = _ERR_MSG_PATTERN.search(text)
    return match.group(1) if match else None


def probe_definitions(base_url: str) -> List[Dict[str, Any]]:
    """The four listing probes; the last one also reports key status."""
    return [
        {
            "name": "일반 목록 API",
            "url": f"{base_url}/KorService2/areaBasedList2",
            "params": {"areaCode": 6, "numOfRows": 5, "pageNo": 1},
        },
        {
            "name": "키워드 검색 API (해운대)",
            "url": f"{base_url}/KorService2/searchKeyword2",
            "params": {"keyword": "해운대", "areaCode": 6, "numOfRows": 5, "pageNo": 1},
        },
        {
            "name": "반려동물 목록 API",
            "url": f"{base_url}/KorPetTourService/areaBasedList2",
            "params": {"areaCode": 6, "numOfRows": 5, "pageNo": 1},
        },
        {
            "name": "API 키 유효성 테스트",
            "url": f"{base_url}/KorService2/areaBasedList2",
            "params": {"areaCode": 1, "numOfRows": 1, "pageNo": 1},
            "key_status": True,
        },
    ]


async def run_probe(
    upstream: UpstreamClient,
    service_key: str,
    probe: Dict[str, Any],
) -> ApiProbeResult:
    """Run one probe; upstream failures are recorded, never raised."""
    params = kto_params(service_key, PET_APP_NAME, **probe["params"])
    params["_type"] = "xml"
    url = redact_url(probe["url"])

    try:
        response = await upstream.fetch(SERVICE, "GET", probe["url"], params=params)
        status_code, text = response.status_code, response.text
    except UpstreamHTTPError as e:
        status_code, text = e.upstream_status, e.body_preview
    except UpstreamUnreachable as e:
        return ApiProbeResult(name=probe["name"], url=url, status="ERROR", success=False, error=e.message)

    return ApiProbeResult(
        name=probe["name"],
        url=url,
        status=status_code,
        success=SUCCESS_MARKER in text,
        error=_probe_error(text),
        preview=truncate(text),
        keyStatus=classify_key_status(text) if probe.get("key_status") else None,
    )


async def run_api_probes(upstream: UpstreamClient, base_url: str, service_key: str) -> Dict[str, Any]:
    results = []
    for probe in probe_definitions(base_url):
        result = await run_probe(upstream, service_key, probe)
        logger.info(
            f"Probe '{result.name}' finished",
            extra={"probe_status": result.status, "success": result.success},
        )
        results.append(result.model_dump())
    return {"timestamp": utc_timestamp(), "tests": results}
