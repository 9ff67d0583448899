"""
search_engine.py — In-memory filtering, sorting and pagination of the catalog.

Works on the enriched plant dicts returned by the catalog service (plant
fields plus benefits / usage_methods / scientific_backings lists). Nothing in
this module touches the database or mutates its input.

Resetting the current page to 1 when a criterion changes is the caller's job.
"""

import math
from dataclasses import dataclass, field
from typing import Optional, List, Dict, Any

from errors import ValidationError
from models import EVIDENCE_LEVELS

SORT_ORDERS = ('relevance', 'alphabetical', 'evidence')


@dataclass
class FilterCriteria:
    """Search criteria. Empty or None means no constraint."""
    query: Optional[str] = None
    ailment: Optional[str] = None
    part: Optional[str] = None
    evidence: Optional[str] = None

    def is_empty(self) -> bool:
        return not any(_clean(v) for v in (self.query, self.ailment, self.part, self.evidence))


@dataclass
class Page:
    """One page of a filtered list."""
    items: List[Dict[str, Any]] = field(default_factory=list)
    page: int = 1
    page_size: int = 6
    total: int = 0
    page_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'items': self.items,
            'page': self.page,
            'page_size': self.page_size,
            'total': self.total,
            'page_count': self.page_count,
        }


def _clean(value: Optional[str]) -> str:
    """Lowercased, stripped criterion; '' when absent."""
    if not value:
        return ""
    return value.strip().lower()


def _contains(text: Optional[str], needle: str) -> bool:
    return bool(text) and needle in text.lower()


def _searchable_texts(plant: Dict[str, Any]) -> List[Optional[str]]:
    """Every field the free-text query is tested against."""
    texts = [
        plant.get('common_name'),
        plant.get('scientific_name'),
        plant.get('description'),
    ]
    for key in ('benefits', 'usage_methods'):
        for child in plant.get(key) or []:
            texts.append(child.get('description'))
            texts.append(child.get('category'))
    for backing in plant.get('scientific_backings') or []:
        texts.append(backing.get('finding'))
    for precaution in plant.get('precautions') or []:
        texts.append(precaution.get('description'))
    for interaction in plant.get('interactions') or []:
        texts.append(interaction.get('drug_name'))
    return texts


def matches_query(plant: Dict[str, Any], query: str) -> bool:
    needle = _clean(query)
    if not needle:
        return True
    return any(_contains(t, needle) for t in _searchable_texts(plant))


def matches_ailment(plant: Dict[str, Any], ailment: str) -> bool:
    """A benefit's category, or its description when it has none."""
    needle = _clean(ailment)
    if not needle:
        return True
    for benefit in plant.get('benefits') or []:
        label = benefit.get('category') or benefit.get('description')
        if _contains(label, needle):
            return True
    return False


def matches_part(plant: Dict[str, Any], part: str) -> bool:
    needle = _clean(part)
    if not needle:
        return True
    return any(
        _contains(method.get('category'), needle)
        for method in plant.get('usage_methods') or []
    )


def matches_evidence(plant: Dict[str, Any], evidence: str) -> bool:
    wanted = _clean(evidence)
    if not wanted:
        return True
    return _clean(plant.get('evidence_level')) == wanted


def matches(plant: Dict[str, Any], criteria: FilterCriteria) -> bool:
    """True when the plant satisfies every non-empty criterion."""
    return (
        matches_query(plant, criteria.query)
        and matches_ailment(plant, criteria.ailment)
        and matches_part(plant, criteria.part)
        and matches_evidence(plant, criteria.evidence)
    )


def filter_plants(plants: List[Dict[str, Any]], criteria: Optional[FilterCriteria] = None) -> List[Dict[str, Any]]:
    """
    Filter plants by criteria (AND of all provided criteria).

    Returns:
        New list holding the matching plants in their original order.
    """
    if criteria is None or criteria.is_empty():
        return list(plants)
    return [p for p in plants if matches(p, criteria)]


def sort_plants(plants: List[Dict[str, Any]], order: str = 'relevance') -> List[Dict[str, Any]]:
    """
    Sort plants for display.

    Orders:
    - relevance: keep the input order
    - alphabetical: by common name, case-insensitive
    - evidence: strongest evidence level first, then alphabetical
    """
    order = (order or 'relevance').strip().lower()
    if order not in SORT_ORDERS:
        raise ValidationError(f"Orden desconocido: {order}")

    if order == 'alphabetical':
        return sorted(plants, key=lambda p: (p.get('common_name') or '').lower())

    if order == 'evidence':
        rank = {level: i for i, level in enumerate(EVIDENCE_LEVELS)}
        return sorted(
            plants,
            key=lambda p: (
                rank.get(_clean(p.get('evidence_level')), len(EVIDENCE_LEVELS)),
                (p.get('common_name') or '').lower(),
            )
        )

    return list(plants)


def paginate(items: List[Dict[str, Any]], page: int = 1, page_size: int = 6) -> Page:
    """
    Slice a (filtered) list into one page.

    Page numbers are 1-based. A page past the last one is empty, not an error.
    """
    if page_size < 1:
        raise ValidationError("El tamaño de página debe ser mayor que cero.")
    if page < 1:
        raise ValidationError("El número de página debe ser mayor que cero.")

    total = len(items)
    start = (page - 1) * page_size
    return Page(
        items=list(items[start:start + page_size]),
        page=page,
        page_size=page_size,
        total=total,
        page_count=math.ceil(total / page_size),
    )


def search(
    plants: List[Dict[str, Any]],
    criteria: Optional[FilterCriteria] = None,
    page: int = 1,
    page_size: int = 6,
    order: str = 'relevance'
) -> Page:
    """Filter, sort and paginate in one call."""
    return paginate(sort_plants(filter_plants(plants, criteria), order), page, page_size)


def extract_categories(plants: List[Dict[str, Any]]) -> Dict[str, List[str]]:
    """
    Distinct benefit and usage-method category labels across the catalog.

    Returns:
        Dict with 'ailments' and 'parts', each sorted and duplicate-free.
    """
    ailments = set()
    parts = set()

    for plant in plants:
        for benefit in plant.get('benefits') or []:
            label = (benefit.get('category') or '').strip()
            if label:
                ailments.add(label)
        for method in plant.get('usage_methods') or []:
            label = (method.get('category') or '').strip()
            if label:
                parts.add(label)

    return {
        'ailments': sorted(ailments, key=lambda s: (s.lower(), s)),
        'parts': sorted(parts, key=lambda s: (s.lower(), s)),
    }
