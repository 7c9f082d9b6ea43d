"""
Category Registry

A thin facade over the finance store's category table. It adds two things:
1. (name, type) uniqueness, which the store already enforces
2. Resolution of free text onto an existing category

Categories are never created from AI output. Free text that matches
nothing confidently resolves to the fallback category ("Lainnya").
"""

from typing import Callable, Optional, Sequence

from src.config import get_settings
from src.models.finance import CategoryState, TransactionType
from src.services.storage.interface import FinanceStorageInterface


# (free_text, candidates) -> best candidate or None
CategoryMatcher = Callable[[str, Sequence[str]], Optional[str]]

# Minimum text length for the containment step
MIN_CONTAINMENT_LENGTH = 3


def _normalize(text: str) -> str:
    return " ".join((text or "").lower().split())


def match_category(
    free_text: str,
    candidates: Sequence[str],
    matcher: Optional[CategoryMatcher] = None,
    fallback: str = "Lainnya",
) -> str:
    """
    Map free text onto one of ``candidates``.

    Order of preference:
    1. Exact match, ignoring case and extra whitespace
    2. The pluggable matcher, if its answer is one of the candidates
    3. Containment either way ("makan" -> "Makanan"), for text of at
       least MIN_CONTAINMENT_LENGTH characters
    4. ``fallback``
    """
    wanted = _normalize(free_text)
    if not wanted or not candidates:
        return fallback

    by_normalized = {_normalize(c): c for c in candidates}
    if wanted in by_normalized:
        return by_normalized[wanted]

    if matcher is not None:
        suggestion = matcher(free_text, candidates)
        if suggestion is not None and _normalize(suggestion) in by_normalized:
            return by_normalized[_normalize(suggestion)]

    if len(wanted) < MIN_CONTAINMENT_LENGTH:
        return fallback

    for normalized, original in by_normalized.items():
        if normalized == _normalize(fallback) or len(normalized) < MIN_CONTAINMENT_LENGTH:
            continue
        if wanted in normalized or normalized in wanted:
            return original

    return fallback


# Default category -> words students actually type
CATEGORY_KEYWORDS: dict[str, list[str]] = {
    "Makanan": [
        "makan", "nasi", "bakso", "mie", "ayam", "jajan", "snack",
        "kopi", "minum", "sarapan", "warteg", "kantin", "food",
    ],
    "Transportasi": [
        "ojek", "ojol", "gojek", "grab", "bensin", "bus", "angkot",
        "kereta", "krl", "parkir", "tol", "transport",
    ],
    "Buku/Alat Tulis": [
        "buku", "pensil", "pulpen", "pena", "kertas", "fotokopi",
        "print", "alat tulis", "atk",
    ],
    "Pulsa/Data": ["pulsa", "kuota", "paket data", "internet", "wifi"],
    "Hiburan": [
        "nonton", "bioskop", "film", "game", "netflix", "spotify",
        "konser", "main",
    ],
    "Tabungan": ["tabung", "nabung", "celengan", "dana darurat"],
    "Investasi": ["investasi", "emas", "reksa dana", "reksadana", "saham"],
    "Zakat/Infaq/Sedekah": ["zakat", "infaq", "infak", "sedekah", "amal", "donasi"],
    "Uang Saku": ["uang saku", "jajan bulanan", "kiriman", "transfer ortu"],
    "Hadiah": ["hadiah", "angpao", "thr", "kado"],
    "Kerja Part-time": ["gaji", "part-time", "part time", "freelance", "honor"],
}


def keyword_matcher(free_text: str, candidates: Sequence[str]) -> Optional[str]:
    """
    Guess a category from common keywords.

    Only returns a category that is present in ``candidates``.
    """
    text = _normalize(free_text)
    if not text:
        return None

    available = set(candidates)
    for category, keywords in CATEGORY_KEYWORDS.items():
        if category not in available:
            continue
        if any(kw in text for kw in keywords):
            return category
    return None


class CategoryRegistry:
    """Category view with uniqueness and free-text resolution."""

    def __init__(
        self,
        storage: FinanceStorageInterface,
        matcher: Optional[CategoryMatcher] = None,
        fallback: Optional[str] = None,
    ):
        self._storage = storage
        self._matcher = matcher
        self._fallback = fallback or get_settings().app.fallback_category

    @property
    def fallback(self) -> str:
        return self._fallback

    async def list(self) -> CategoryState:
        return await self._storage.list_categories()

    async def add(self, category_type: TransactionType, name: str) -> bool:
        """Add a category. Duplicates are a silent no-op (returns False)."""
        return await self._storage.add_category(category_type, name)

    async def exists(self, category_type: TransactionType, name: str) -> bool:
        categories = await self.list()
        return name in categories.for_type(category_type)

    async def resolve(self, category_type: TransactionType, free_text: str) -> str:
        """Closest existing category of that type, or the fallback."""
        categories = await self.list()
        return match_category(
            free_text,
            categories.for_type(category_type),
            matcher=self._matcher,
            fallback=self._fallback,
        )
