"""Locale-keyed vocabulary tables used by classification and scoring.

Tables are built once at import and never mutated. Look them up with
`get_vocabulary(locale)`.
"""

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Mapping


class Locale(str, Enum):
    KO = "ko"
    JA = "ja"


@dataclass(frozen=True)
class Vocabulary:
    """Term lists for one locale. Matching is case-insensitive substring."""

    medical: tuple[str, ...]
    structural: tuple[str, ...]
    non_hospital: tuple[str, ...]
    deep_content: tuple[str, ...]
    address_cues: tuple[str, ...]
    risk: tuple[str, ...]
    doctor: tuple[str, ...]
    cause: tuple[str, ...]
    symptom: tuple[str, ...]
    treatment: tuple[str, ...]
    check_labels: Mapping[str, str]


_KO_LABELS = {
    "title_has_keyword": "Title에 진료 키워드 포함",
    "title_has_hospital": "Title에 병원명 포함",
    "h1_matches_keyword": "H1에 진료 키워드 포함",
    "has_service_page": "진료/시술 페이지 존재",
    "has_location_info": "주소/전화/진료시간 표기",
    "has_meta_description": "메타 설명(meta) 충분",
    "has_canonical": "canonical 존재",
    "has_sitemap": "sitemap 존재",
    "og_ok": "OG 태그 존재",
    "viewport_ok": "모바일 viewport 설정",
    "good_h1_structure": "H1 1개 구조 유지",
    "rich_h2_structure": "H2 3개 이상 구성",
    "sufficient_content_length": "본문 길이(900자+) 확보",
    "internal_linking_ok": "내부 링크 충분",
    "heading_hierarchy_ok": "헤딩 계층(H1/H2) 구성",
    "has_doctor_page": "의료진/자격 정보 확인",
    "has_contact_hours_phone": "연락처/진료시간 확인",
    "has_risk_info": "부작용/주의/사후관리 단서",
    "semantic_flow_ok": "원인-증상-치료 흐름 단서",
    "has_faq_schema": "FAQPage 스키마 존재",
    "has_medical_schema": "Medical/Organization 스키마",
    "faq_count_5plus": "FAQ 5문항 이상 페이지",
    "faq_count_3plus": "FAQ 3문항 이상 페이지",
}

_JA_LABELS = {
    "title_has_keyword": "Titleに診療キーワードを含む",
    "title_has_hospital": "Titleに医院名を含む",
    "h1_matches_keyword": "H1に診療キーワードを含む",
    "has_service_page": "診療/施術ページが存在",
    "has_location_info": "住所/電話/診療時間の表記",
    "has_meta_description": "メタ説明(meta)が十分",
    "has_canonical": "canonicalが存在",
    "has_sitemap": "sitemapが存在",
    "og_ok": "OGタグが存在",
    "viewport_ok": "モバイルviewport設定",
    "good_h1_structure": "H1が1つの構造",
    "rich_h2_structure": "H2が3つ以上",
    "sufficient_content_length": "本文量(900字+)を確保",
    "internal_linking_ok": "内部リンクが十分",
    "heading_hierarchy_ok": "見出し階層(H1/H2)を構成",
    "has_doctor_page": "医師/資格情報の記載",
    "has_contact_hours_phone": "連絡先/診療時間の記載",
    "has_risk_info": "副作用/注意/アフターケア",
    "semantic_flow_ok": "原因-症状-治療の流れ",
    "has_faq_schema": "FAQPageスキーマが存在",
    "has_medical_schema": "Medical/Organizationスキーマ",
    "faq_count_5plus": "FAQが5問以上のページ",
    "faq_count_3plus": "FAQが3問以上のページ",
}

VOCABULARIES: Mapping[Locale, Vocabulary] = MappingProxyType(
    {
        Locale.KO: Vocabulary(
            medical=(
                "병원", "의원", "클리닉", "진료", "시술", "치료", "의료진", "의사",
                "전문의", "예약", "상담", "내원", "부작용", "회복", "비용", "가격",
            ),
            structural=("진료시간", "오시는길", "FAQ", "문의", "전화"),
            non_hospital=(
                "채용", "인재", "IR", "회사소개", "기업", "쇼핑", "구매", "장바구니",
                "카트", "결제", "제품",
            ),
            deep_content=(
                "원인", "증상", "치료", "시술", "부작용", "주의", "회복", "비용", "가격",
                "faq", "질문",
            ),
            address_cues=("주소", "오시는 길", "위치", "진료시간", "영업시간", "전화", "문의"),
            risk=(
                "부작용", "주의", "주의사항", "금기", "합병증", "회복", "사후관리", "통증",
                "붓기", "멍",
            ),
            doctor=("의료진", "원장", "의사", "전문의", "경력", "학회", "자격"),
            cause=("원인",),
            symptom=("증상",),
            treatment=("치료", "시술", "관리"),
            check_labels=MappingProxyType(_KO_LABELS),
        ),
        Locale.JA: Vocabulary(
            medical=(
                "病院", "クリニック", "診療", "施術", "治療", "医師", "専門医", "予約",
                "相談", "来院", "副作用", "回復", "費用", "料金",
            ),
            structural=("診療時間", "アクセス", "FAQ", "よくある質問", "お問い合わせ", "電話"),
            non_hospital=(
                "採用", "求人", "IR", "会社概要", "企業", "購入", "カート", "決済", "製品",
            ),
            deep_content=(
                "原因", "症状", "治療", "施術", "副作用", "注意", "回復", "費用", "料金",
                "faq", "質問",
            ),
            address_cues=("住所", "アクセス", "所在地", "診療時間", "営業時間", "電話", "お問い合わせ"),
            risk=(
                "副作用", "注意", "注意事項", "禁忌", "合併症", "回復", "アフターケア", "痛み",
                "腫れ", "内出血",
            ),
            doctor=("医師", "院長", "医者", "専門医", "経歴", "学会", "資格"),
            cause=("原因",),
            symptom=("症状",),
            treatment=("治療", "施術"),
            check_labels=MappingProxyType(_JA_LABELS),
        ),
    }
)


def get_vocabulary(locale: Locale | str) -> Vocabulary:
    """Return the tables for `locale`. Raises ValueError for unknown locales."""
    return VOCABULARIES[Locale(locale)]


def contains_any(text: str, needles: tuple[str, ...] | list[str]) -> bool:
    hay = (text or "").lower()
    return any(needle and needle.lower() in hay for needle in needles)
