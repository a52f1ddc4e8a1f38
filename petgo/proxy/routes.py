"""
Proxy Routes - Third-Party API Functions
=========================================

This module implements the stateless proxy functions the browser client
calls for maps, place search, beach forecasts and tourism data. Each
function injects a server-held secret, calls its upstream and hands the
upstream JSON back (with request metadata where noted).

Request Model:
--------------
Every function accepts GET with query parameters and POST with a JSON body.
The query string wins; the body only fills parameters the query left unset
(see ``petgo.proxy.params``).

Error Model:
------------
Failures are raised as ``ProxyError`` subclasses and rendered by the
application exception handler. Nothing here retries.

Endpoints (mounted under /functions/v1):
----------------------------------------
- /kakao-proxy: Kakao Local search
- /kakao-map-proxy: Kakao Maps SDK script
- /beach-weather-api: KMA beach forecast
- /korea-tour-api: KTO KorService1 pass-through
- /pet-tour-api: KTO pet-friendly listing
- /combined-tour-api: general or pet listing for one area
- /tour-detail-api: common/intro/image detail for one place
- /busan-animal-hospital-api: built-in hospital list
- /mock-tour-api: fixed sample listings
- /test-api-key: KTO key presence report
- /test-api-status: KTO endpoint probes
"""

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, Request, Response

from ..config import Settings, get_settings, require_secret
from ..errors import InvalidParameter
from ..models import ApiKeyStatus, HospitalListResponse, utc_timestamp
from . import fixtures, tourism
from .forecast import BEACH_NUMBERS, forecast_base
from .params import LabelLookup, Param, ParamSpec, resolve_request
from .upstream import UpstreamClient, decode_service_key, get_upstream_client

logger = logging.getLogger(__name__)

# Create router
proxy_router = APIRouter()

PROXY_METHODS = ["GET", "POST"]


# ============================================================================
# Parameter Specs
# ============================================================================

KAKAO_SEARCH_PREFIX = "/v2/local/search/"

KAKAO_SEARCH_PARAMS = ParamSpec(
    params=[
        Param(name="op", required=True),
        Param(name="query", required=True),
        Param(name="x"),
        Param(name="y"),
        Param(name="radius"),
        Param(name="page", default="1"),
        Param(name="size", default="15"),
    ],
)

BEACH_FORECAST_PARAMS = ParamSpec(
    params=[
        Param(name="beach_num", required=True),
        Param(name="beach_name"),
        Param(name="numOfRows", default="100"),
    ],
    label_lookup=LabelLookup(
        code_param="beach_num",
        label_param="beach_name",
        table=BEACH_NUMBERS,
        available_key="availableBeaches",
    ),
    missing_message="beach_num 또는 beach_name 파라미터가 필요합니다",
)

KOREA_TOUR_PARAMS = ParamSpec(
    params=[
        Param(name="op", default="areaBasedList1"),
        Param(name="pageNo", default=1),
        Param(name="numOfRows", default=10),
        Param(name="keyword"),
        Param(name="areaCode"),
        Param(name="sigunguCode"),
    ],
)

PET_TOUR_PARAMS = ParamSpec(
    params=[
        Param(name="pageNo", default=1),
        Param(name="numOfRows", default=100),
        Param(name="keyword"),
        Param(name="areaCode"),
        Param(name="sigunguCode"),
    ],
)

COMBINED_TOUR_PARAMS = ParamSpec(
    params=[
        Param(name="areaCode", required=True),
        Param(name="numOfRows", default=10),
        Param(name="pageNo", default=1),
        Param(name="keyword"),
        Param(name="activeTab", default="general"),
        Param(name="loadAllPetKeywords"),
    ],
)

TOUR_DETAIL_PARAMS = ParamSpec(
    params=[
        Param(name="contentId", required=True),
        Param(name="contentTypeId"),
    ],
    missing_message="contentId is required",
)

HOSPITAL_PARAMS = ParamSpec(
    params=[
        Param(name="gugun", default=""),
        Param(name="hospitalName", default=""),
    ],
)

MOCK_TOUR_PARAMS = ParamSpec(
    params=[
        Param(name="areaCode", default="1"),
        Param(name="numOfRows", default="10"),
        Param(name="pageNo", default="1"),
    ],
)

KTO_OPERATION_CHARS = set("abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789")


# ============================================================================
# Helpers
# ============================================================================

def as_int(name: str, value: Any) -> int:
    """
    Coerce a numeric parameter.

    Raises:
        InvalidParameter: If the value is not an integer
    """
    try:
        return int(value)
    except (TypeError, ValueError):
        raise InvalidParameter(f"{name} must be an integer", extra={"parameter": name})


def as_flag(value: Any) -> bool:
    """Interpret a JSON boolean or a query-string flag."""
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() in ("1", "true", "yes", "on")


# ============================================================================
# Kakao Endpoints
# ============================================================================

@proxy_router.api_route("/kakao-proxy", methods=PROXY_METHODS)
async def kakao_proxy(
    request: Request,
    settings: Settings = Depends(get_settings),
    upstream: UpstreamClient = Depends(get_upstream_client),
):
    """
    Proxy a Kakao Local search.

    ``op`` selects the search path (e.g. ``/v2/local/search/keyword.json``)
    and is restricted to the Local search API.

    Returns:
        Kakao JSON body unchanged
    """
    values = await resolve_request(request, KAKAO_SEARCH_PARAMS)
    op = str(values["op"])
    if not op.startswith(KAKAO_SEARCH_PREFIX) or ".." in op:
        raise InvalidParameter(
            f"op must be a Kakao Local search path ({KAKAO_SEARCH_PREFIX}...)",
            extra={"parameter": "op"},
        )

    api_key = require_secret(settings, "KAKAO_REST_API_KEY")

    params = {name: values[name] for name in ("query", "x", "y", "radius", "page", "size")}
    data = await upstream.fetch_json(
        "Kakao",
        "GET",
        f"{settings.KAKAO_API_BASE_URL}{op}",
        params=params,
        headers={"Authorization": f"KakaoAK {api_key}"},
    )

    documents = data.get("documents") if isinstance(data, dict) else None
    logger.info(
        "Kakao search completed",
        extra={"op": op, "documents": len(documents or [])},
    )
    return data


@proxy_router.api_route("/kakao-map-proxy", methods=PROXY_METHODS)
async def kakao_map_proxy(
    settings: Settings = Depends(get_settings),
    upstream: UpstreamClient = Depends(get_upstream_client),
):
    """
    Serve the Kakao Maps SDK loader with the JavaScript key injected.

    Returns:
        JavaScript body cacheable for one hour
    """
    js_key = require_secret(settings, "KAKAO_JS_KEY")

    script = await upstream.fetch_text(
        "KakaoMaps",
        "GET",
        f"{settings.KAKAO_API_BASE_URL}/v2/maps/sdk.js",
        params={"appkey": js_key, "autoload": "false", "libraries": "services,clusterer"},
        headers={"Accept": "*/*"},
    )

    logger.info("Kakao Maps SDK loaded", extra={"length": len(script)})
    return Response(
        content=script,
        media_type="application/javascript; charset=utf-8",
        headers={"Cache-Control": "public, max-age=3600"},
    )


# ============================================================================
# Weather Endpoint
# ============================================================================

@proxy_router.api_route("/beach-weather-api", methods=PROXY_METHODS)
async def beach_weather(
    request: Request,
    settings: Settings = Depends(get_settings),
    upstream: UpstreamClient = Depends(get_upstream_client),
):
    """
    Fetch the village forecast for one Busan beach.

    The beach is chosen by ``beach_num`` or by ``beach_name`` (e.g. 해운대).
    The base date/time is the latest forecast run in KST.

    Returns:
        KMA JSON plus ``request_info``
    """
    values = await resolve_request(request, BEACH_FORECAST_PARAMS)
    service_key = decode_service_key(require_secret(settings, "KMA_API_KEY"))

    date, time = forecast_base()
    beach_num = str(values["beach_num"])
    lookup = BEACH_FORECAST_PARAMS.label_lookup
    beach_name = lookup.label_for(beach_num) or values["beach_name"]

    return await upstream.fetch_json(
        "KMA",
        "GET",
        f"{settings.KMA_BASE_URL}/BeachInfoservice/getVilageFcstBeach",
        params={
            "serviceKey": service_key,
            "dataType": "JSON",
            "pageNo": 1,
            "numOfRows": values["numOfRows"],
            "base_date": date,
            "base_time": time,
            "beach_num": beach_num,
        },
        metadata={
            "request_info": {
                "beach_num": beach_num,
                "beach_name": beach_name,
                "base_date": date,
                "base_time": time,
            }
        },
    )


# ============================================================================
# Tourism Endpoints
# ============================================================================

@proxy_router.api_route("/korea-tour-api", methods=PROXY_METHODS)
async def korea_tour(
    request: Request,
    settings: Settings = Depends(get_settings),
    upstream: UpstreamClient = Depends(get_upstream_client),
):
    """Pass-through to a KTO KorService1 operation (default ``areaBasedList1``)."""
    values = await resolve_request(request, KOREA_TOUR_PARAMS)
    operation = str(values["op"])
    if not set(operation) <= KTO_OPERATION_CHARS:
        raise InvalidParameter("op must be a KTO operation name", extra={"parameter": "op"})

    service_key = decode_service_key(require_secret(settings, "KTO_TOUR_SERVICE_KEY"))
    request_info = {
        "op": operation,
        "pageNo": as_int("pageNo", values["pageNo"]),
        "numOfRows": as_int("numOfRows", values["numOfRows"]),
        "keyword": values["keyword"],
        "areaCode": values["areaCode"],
        "sigunguCode": values["sigunguCode"],
    }

    return await upstream.fetch_json(
        "KTO",
        "GET",
        f"{settings.KTO_BASE_URL}/KorService1/{operation}",
        params=tourism.kto_params(
            service_key,
            tourism.GENERAL_APP_NAME,
            pageNo=request_info["pageNo"],
            numOfRows=request_info["numOfRows"],
            keyword=values["keyword"],
            areaCode=values["areaCode"],
            sigunguCode=values["sigunguCode"],
        ),
        metadata={"request_info": request_info},
    )


@proxy_router.api_route("/pet-tour-api", methods=PROXY_METHODS)
async def pet_tour(
    request: Request,
    settings: Settings = Depends(get_settings),
    upstream: UpstreamClient = Depends(get_upstream_client),
):
    """Pass-through to the KTO pet-friendly area listing."""
    values = await resolve_request(request, PET_TOUR_PARAMS)
    service_key = decode_service_key(require_secret(settings, "KOREA_TOUR_API_KEY"))
    request_info = {
        "pageNo": as_int("pageNo", values["pageNo"]),
        "numOfRows": as_int("numOfRows", values["numOfRows"]),
        "keyword": values["keyword"],
        "areaCode": values["areaCode"],
        "sigunguCode": values["sigunguCode"],
    }

    return await upstream.fetch_json(
        "KTO",
        "GET",
        f"{settings.KTO_BASE_URL}/KorPetTourService/areaBasedList2",
        params=tourism.kto_params(service_key, tourism.PET_APP_NAME, **request_info),
        metadata={"request_info": request_info},
    )


@proxy_router.api_route("/combined-tour-api", methods=PROXY_METHODS)
async def combined_tour(
    request: Request,
    settings: Settings = Depends(get_settings),
    upstream: UpstreamClient = Depends(get_upstream_client),
):
    """
    General or pet-friendly listing for one area, selected by ``activeTab``.

    With ``loadAllPetKeywords`` on the pet tab, every page for the area is
    collected (see ``tourism.collect_pet_listing``).
    """
    values = await resolve_request(request, COMBINED_TOUR_PARAMS)
    active_tab = str(values["activeTab"])
    if active_tab not in ("general", "pet"):
        raise InvalidParameter(
            "activeTab must be 'general' or 'pet'",
            extra={"parameter": "activeTab"},
        )

    service_key = decode_service_key(require_secret(settings, "KOREA_TOUR_API_KEY"))

    return await tourism.fetch_combined_listing(
        upstream,
        settings.KTO_BASE_URL,
        service_key,
        area_code=values["areaCode"],
        num_of_rows=as_int("numOfRows", values["numOfRows"]),
        page_no=as_int("pageNo", values["pageNo"]),
        keyword=values["keyword"],
        active_tab=active_tab,
        load_all_pet_keywords=as_flag(values["loadAllPetKeywords"]),
    )


@proxy_router.api_route("/tour-detail-api", methods=PROXY_METHODS)
async def tour_detail(
    request: Request,
    settings: Settings = Depends(get_settings),
    upstream: UpstreamClient = Depends(get_upstream_client),
):
    values = await resolve_request(request, TOUR_DETAIL_PARAMS)
    service_key = decode_service_key(require_secret(settings, "KOREA_TOUR_API_KEY"))

    logger.info(
        "Fetching tour detail",
        extra={"content_id": values["contentId"], "content_type_id": values["contentTypeId"]},
    )
    return await tourism.fetch_tour_detail(
        upstream,
        settings.KTO_BASE_URL,
        service_key,
        content_id=values["contentId"],
        content_type_id=values["contentTypeId"],
    )


# ============================================================================
# Built-in Data Endpoints
# ============================================================================

@proxy_router.api_route(
    "/busan-animal-hospital-api",
    methods=PROXY_METHODS,
    response_model=HospitalListResponse,
)
async def busan_animal_hospitals(request: Request):
    """Filter the built-in Busan hospital list by district and name."""
    values = await resolve_request(request, HOSPITAL_PARAMS)
    gugun = str(values["gugun"])
    hospital_name = str(values["hospitalName"])

    hospitals = fixtures.filter_hospitals(gugun, hospital_name)
    logger.info(
        "Hospital list filtered",
        extra={"gugun": gugun, "hospital_name": hospital_name, "count": len(hospitals)},
    )
    return HospitalListResponse(
        success=True,
        hospitals=hospitals,
        totalCount=len(hospitals),
        filters={"gugun": gugun, "hospitalName": hospital_name},
        note=fixtures.HOSPITAL_DATA_NOTE,
    )


@proxy_router.api_route("/mock-tour-api", methods=PROXY_METHODS)
async def mock_tour(request: Request) -> Dict[str, Any]:
    """Fixed sample listings in the KTO layout."""
    values = await resolve_request(request, MOCK_TOUR_PARAMS)
    page_no = as_int("pageNo", values["pageNo"])
    num_of_rows = as_int("numOfRows", values["numOfRows"])

    return {
        "tourismData": fixtures.tour_listing(
            fixtures.MOCK_TOURISM_ITEMS, total_count=150, page_no=page_no, num_of_rows=num_of_rows
        ),
        "petTourismData": fixtures.tour_listing(
            fixtures.MOCK_PET_TOURISM_ITEMS, total_count=50, page_no=page_no, num_of_rows=num_of_rows
        ),
        "requestParams": {
            "areaCode": values["areaCode"],
            "numOfRows": values["numOfRows"],
            "pageNo": values["pageNo"],
        },
        "timestamp": utc_timestamp(),
        "status": {"tourism": "success", "petTourism": "success"},
        "note": "Mock data for testing - replace with real API once fixed",
    }


# ============================================================================
# Diagnostics Endpoints
# ============================================================================

@proxy_router.api_route("/test-api-key", methods=PROXY_METHODS, response_model=ApiKeyStatus)
async def test_api_key(settings: Settings = Depends(get_settings)):
    """Report whether the KorService1 key is configured, without revealing it."""
    key = settings.KTO_TOUR_SERVICE_KEY or ""
    result = ApiKeyStatus(
        hasApiKey=bool(key),
        keyLength=len(key),
        keyStart=f"{key[:10]}..." if key else "NO_KEY",
    )
    logger.info("API key check", extra={"has_api_key": result.hasApiKey, "key_length": result.keyLength})
    return result


@proxy_router.api_route("/test-api-status", methods=PROXY_METHODS)
async def test_api_status(
    settings: Settings = Depends(get_settings),
    upstream: UpstreamClient = Depends(get_upstream_client),
):
    """Probe the KTO listing endpoints with the configured key."""
    service_key = decode_service_key(require_secret(settings, "KOREA_TOUR_API_KEY"))
    return await tourism.run_api_probes(upstream, settings.KTO_BASE_URL, service_key)
