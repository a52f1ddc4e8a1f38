"""
Built-in datasets.

The Busan animal hospital open API has been unavailable, so the hospital
function serves this curated list instead. The mock tour samples mirror the
KTO response layout for client development without a service key.
"""

from typing import Any, Dict, List

HOSPITAL_DATA_NOTE = "현재 테스트 데이터를 사용 중입니다. 실제 API 연동이 필요합니다."

BUSAN_ANIMAL_HOSPITALS: List[Dict[str, Any]] = [
    {
        "animal_hospital": "부산대학교 동물병원",
        "road_address": "부산광역시 금정구 부산대학로63번길 2",
        "tel": "051-510-8670",
        "gugun": "금정구",
        "lat": 35.2300,
        "lon": 129.0834,
        "approval_date": "2020-01-15",
        "business_status": "정상영업",
    },
    {
        "animal_hospital": "해운대 24시 동물병원",
        "road_address": "부산광역시 해운대구 해운대로 570",
        "tel": "051-746-7582",
        "gugun": "해운대구",
        "lat": 35.1630,
        "lon": 129.1635,
        "approval_date": "2019-03-20",
        "business_status": "정상영업",
    },
    {
        "animal_hospital": "센텀동물메디컬센터",
        "road_address": "부산광역시 해운대구 센텀중앙로 97",
        "tel": "051-745-7979",
        "gugun": "해운대구",
        "lat": 35.1694,
        "lon": 129.1306,
        "approval_date": "2021-07-10",
        "business_status": "정상영업",
    },
    {
        "animal_hospital": "서면동물병원",
        "road_address": "부산광역시 부산진구 서면로 68",
        "tel": "051-818-7975",
        "gugun": "부산진구",
        "lat": 35.1579,
        "lon": 129.0595,
        "approval_date": "2018-11-05",
        "business_status": "정상영업",
    },
    {
        "animal_hospital": "광안리 동물병원",
        "road_address": "부산광역시 수영구 광안해변로 162",
        "tel": "051-754-7582",
        "gugun": "수영구",
        "lat": 35.1532,
        "lon": 129.1185,
        "approval_date": "2020-09-18",
        "business_status": "정상영업",
    },
    {
        "animal_hospital": "남포동 동물클리닉",
        "road_address": "부산광역시 중구 광복로 55",
        "tel": "051-245-7582",
        "gugun": "중구",
        "lat": 35.0980,
        "lon": 129.0274,
        "approval_date": "2019-12-03",
        "business_status": "정상영업",
    },
    {
        "animal_hospital": "동래 펫케어병원",
        "road_address": "부산광역시 동래구 충렬대로 295",
        "tel": "051-552-7582",
        "gugun": "동래구",
        "lat": 35.2048,
        "lon": 129.0779,
        "approval_date": "2021-02-28",
        "business_status": "정상영업",
    },
    {
        "animal_hospital": "사상 종합동물병원",
        "road_address": "부산광역시 사상구 광장로 15",
        "tel": "051-304-7582",
        "gugun": "사상구",
        "lat": 35.1537,
        "lon": 128.9943,
        "approval_date": "2020-06-12",
        "business_status": "정상영업",
    },
]


def filter_hospitals(gugun: str = "", hospital_name: str = "") -> List[Dict[str, Any]]:
    """
    Filter the hospital list.

    Args:
        gugun: District substring; empty or ``"all"`` disables the filter
        hospital_name: Name substring; blank disables the filter
    """
    results = BUSAN_ANIMAL_HOSPITALS
    if gugun and gugun != "all":
        results = [h for h in results if gugun in h["gugun"]]
    name = (hospital_name or "").strip()
    if name:
        results = [h for h in results if name in h["animal_hospital"]]
    return list(results)


MOCK_TOURISM_ITEMS: List[Dict[str, str]] = [
    {
        "contentid": "126508",
        "title": "경복궁",
        "addr1": "서울특별시 종로구 사직로 161",
        "addr2": "(세종로)",
        "firstimage": "http://tong.visitkorea.or.kr/cms/resource/23/2476623_image2_1.jpg",
        "firstimage2": "http://tong.visitkorea.or.kr/cms/resource/23/2476623_image3_1.jpg",
        "tel": "02-3700-3900",
        "mapx": "126.977041000000",
        "mapy": "37.578606000000",
        "areacode": "1",
        "sigungucode": "1",
    },
    {
        "contentid": "264384",
        "title": "창덕궁",
        "addr1": "서울특별시 종로구 율곡로 99",
        "addr2": "(원서동)",
        "firstimage": "http://tong.visitkorea.or.kr/cms/resource/83/2678083_image2_1.jpg",
        "firstimage2": "http://tong.visitkorea.or.kr/cms/resource/83/2678083_image3_1.jpg",
        "tel": "02-3668-2300",
        "mapx": "126.991117000000",
        "mapy": "37.578501000000",
        "areacode": "1",
        "sigungucode": "1",
    },
    {
        "contentid": "126485",
        "title": "남산서울타워",
        "addr1": "서울특별시 용산구 남산공원길 105",
        "addr2": "(용산동2가)",
        "firstimage": "http://tong.visitkorea.or.kr/cms/resource/18/2476318_image2_1.jpg",
        "firstimage2": "http://tong.visitkorea.or.kr/cms/resource/18/2476318_image3_1.jpg",
        "tel": "02-3455-9277",
        "mapx": "126.988227000000",
        "mapy": "37.551169000000",
        "areacode": "1",
        "sigungucode": "1",
    },
]

MOCK_PET_TOURISM_ITEMS: List[Dict[str, str]] = [
    {
        "contentid": "2830983",
        "title": "한강공원 반포지구",
        "addr1": "서울특별시 서초구 신반포로11길 40",
        "addr2": "",
        "firstimage": "http://tong.visitkorea.or.kr/cms/resource/50/2830950_image2_1.jpg",
        "firstimage2": "http://tong.visitkorea.or.kr/cms/resource/50/2830950_image3_1.jpg",
        "tel": "02-3780-0501",
        "mapx": "126.996917000000",
        "mapy": "37.508147000000",
        "areacode": "1",
        "sigungucode": "1",
    },
    {
        "contentid": "2830985",
        "title": "올림픽공원",
        "addr1": "서울특별시 송파구 올림픽로 424",
        "addr2": "(방이동)",
        "firstimage": "http://tong.visitkorea.or.kr/cms/resource/52/2830952_image2_1.jpg",
        "firstimage2": "http://tong.visitkorea.or.kr/cms/resource/52/2830952_image3_1.jpg",
        "tel": "02-410-1114",
        "mapx": "127.124041000000",
        "mapy": "37.519401000000",
        "areacode": "1",
        "sigungucode": "1",
    },
]


def tour_listing(items: List[Dict[str, Any]], total_count: int, page_no: int, num_of_rows: int) -> Dict[str, Any]:
    """Wrap items in the KTO ``response.header/body.items.item`` layout."""
    return {
        "response": {
            "header": {"resultCode": "0000", "resultMsg": "OK"},
            "body": {
                "items": {"item": list(items)},
                "totalCount": total_count,
                "pageNo": page_no,
                "numOfRows": num_of_rows,
            },
        }
    }
