"""
utils/validators.py — Input validation and normalization helpers.

Validates:
- Plant scalar fields (common name and slug non-empty, evidence level known)
- Child entries (benefits, usage methods, scientific backings, precautions)
  given either as plain strings or as dicts, and drug interactions (dicts)
- Legacy JSON shapes (claim -> summary maps) sent by older admin panels

Every failure raises errors.ValidationError before anything is written.
"""

import json
import re
import unicodedata
from typing import Optional, List, Dict, Any

from errors import ValidationError
from models import (
    EVIDENCE_LEVELS, DEFAULT_EVIDENCE_LEVEL,
    INTERACTION_SEVERITIES, DEFAULT_INTERACTION_SEVERITY,
    Benefit, UsageMethod, ScientificBacking, Precaution, Interaction, Plant,
)


def slugify(common_name: str) -> str:
    """
    Derive a URL-safe slug from a common name.

    Rules:
    - lowercase and trim
    - remove diacritics (accents, ñ -> n)
    - any run of characters other than a-z / 0-9 becomes one hyphen
    - no leading or trailing hyphen

    Examples:
        "Uña de Gato" -> "una-de-gato"
        "  Sangre de Drago " -> "sangre-de-drago"
        "Copaiba (aceite)" -> "copaiba-aceite"
    """
    if not common_name:
        return ""

    result = common_name.lower().strip()

    # NFD decomposition separates base characters from combining diacritical marks
    result = unicodedata.normalize('NFD', result)
    result = ''.join(c for c in result if unicodedata.category(c) != 'Mn')

    result = re.sub(r'[^a-z0-9]+', '-', result)
    return result.strip('-')


def clean_text(value: Any) -> Optional[str]:
    """Trim strings; return None for None or blank values."""
    if value is None:
        return None
    if not isinstance(value, str):
        value = str(value)
    value = value.strip()
    return value or None


def validate_slug(slug: str) -> str:
    slug = (slug or '').strip()
    if not slug:
        raise ValidationError("El slug es requerido.")
    if slug != slugify(slug):
        raise ValidationError(f"Slug inválido: « {slug} » (solo minúsculas, números y guiones).")
    return slug


def validate_evidence_level(level: Optional[str]) -> str:
    level = (level or '').strip().lower()
    if not level:
        return DEFAULT_EVIDENCE_LEVEL
    if level not in EVIDENCE_LEVELS:
        raise ValidationError(
            f"Nivel de evidencia inválido: {level} (valores: {', '.join(EVIDENCE_LEVELS)})."
        )
    return level


def parse_json_field(raw: Any, field_name: str) -> Any:
    """
    Decode a structured form field.

    Form posts send collections as JSON strings; JSON bodies send them as
    lists already. Blank strings mean an empty collection.
    """
    if raw is None:
        return []
    if isinstance(raw, str):
        if not raw.strip():
            return []
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            raise ValidationError(f"El campo « {field_name} » no es un JSON válido: {e}")
    return raw


def _as_entries(raw: Any, field_name: str) -> List[Any]:
    """Accept a list, or a legacy {claim: summary} map, as a list of entries."""
    raw = parse_json_field(raw, field_name)
    if isinstance(raw, dict):
        return [
            {'description': f"{claim}: {summary}" if clean_text(summary) else claim,
             'category': claim}
            for claim, summary in raw.items()
        ]
    if not isinstance(raw, list):
        raise ValidationError(f"El campo « {field_name} » debe ser una lista.")
    return raw


def parse_described_entries(raw: Any, field_name: str, cls) -> list:
    """
    Parse benefits or usage methods.

    Entries are strings (description only) or dicts with 'description' and an
    optional 'category' (legacy key 'tipo'). Blank descriptions are skipped.
    """
    records = []
    for entry in _as_entries(raw, field_name):
        if isinstance(entry, str):
            description, category = clean_text(entry), None
        elif isinstance(entry, dict):
            description = clean_text(entry.get('description'))
            category = clean_text(entry.get('category') or entry.get('tipo'))
        else:
            raise ValidationError(f"Entrada inválida en « {field_name} »: {entry!r}")

        if description:
            records.append(cls(description=description, category=category))
    return records


def parse_backings(raw: Any) -> List[ScientificBacking]:
    """Parse scientific backings (strings or dicts with 'finding')."""
    records = []
    for entry in _as_entries(raw, 'scientific_backings'):
        if isinstance(entry, str):
            finding = clean_text(entry)
            language = source_url = year = None
        elif isinstance(entry, dict):
            finding = clean_text(entry.get('finding') or entry.get('description'))
            language = clean_text(entry.get('language'))
            source_url = clean_text(entry.get('source_url'))
            year = entry.get('year')
            if year in (None, ''):
                year = None
            else:
                try:
                    year = int(year)
                except (TypeError, ValueError):
                    raise ValidationError(f"Año inválido: {year!r}")
        else:
            raise ValidationError(f"Entrada inválida en « scientific_backings »: {entry!r}")

        if finding:
            records.append(ScientificBacking(
                finding=finding, language=language, year=year, source_url=source_url
            ))
    return records


def parse_precautions(raw: Any) -> List[Precaution]:
    records = []
    for entry in _as_entries(raw, 'precautions'):
        if isinstance(entry, str):
            description = clean_text(entry)
        elif isinstance(entry, dict):
            description = clean_text(entry.get('description'))
        else:
            raise ValidationError(f"Entrada inválida en « precautions »: {entry!r}")

        if description:
            records.append(Precaution(description=description))
    return records


def validate_severity(severity: Optional[str]) -> str:
    severity = (severity or '').strip().lower()
    if not severity:
        return DEFAULT_INTERACTION_SEVERITY
    if severity not in INTERACTION_SEVERITIES:
        raise ValidationError(
            f"Severidad inválida: {severity} (valores: {', '.join(INTERACTION_SEVERITIES)})."
        )
    return severity


def parse_interactions(raw: Any) -> List[Interaction]:
    """
    Parse drug interactions.

    Each entry is a dict with drug_name (legacy key 'drugName'),
    recommendation, and optional mechanism and severity. Entries without a
    drug name are skipped; a drug name without a recommendation is an error.
    """
    raw = parse_json_field(raw, 'interactions')
    if not isinstance(raw, list):
        raise ValidationError("El campo « interactions » debe ser una lista.")

    records = []
    for entry in raw:
        if not isinstance(entry, dict):
            raise ValidationError(f"Entrada inválida en « interactions »: {entry!r}")

        drug_name = clean_text(entry.get('drug_name') or entry.get('drugName'))
        if not drug_name:
            continue
        recommendation = clean_text(entry.get('recommendation'))
        if not recommendation:
            raise ValidationError(f"Falta la recomendación de la interacción con {drug_name}.")

        records.append(Interaction(
            drug_name=drug_name,
            mechanism=clean_text(entry.get('mechanism')),
            recommendation=recommendation,
            severity=validate_severity(entry.get('severity')),
        ))
    return records


def validate_plant_input(data: Dict[str, Any]) -> Plant:
    """
    Validate a create/update payload and build an unsaved Plant.

    The slug falls back to slugify(common_name) when omitted. The returned
    Plant has no id; the caller assigns ids.
    """
    if not isinstance(data, dict):
        raise ValidationError("Datos de planta inválidos.")

    common_name = clean_text(data.get('common_name'))
    if not common_name:
        raise ValidationError("El nombre común es requerido.")

    slug = clean_text(data.get('slug')) or slugify(common_name)
    slug = validate_slug(slug)

    return Plant(
        slug=slug,
        common_name=common_name,
        scientific_name=clean_text(data.get('scientific_name')),
        description=clean_text(data.get('description')),
        image_url=clean_text(data.get('image_url')),
        evidence_level=validate_evidence_level(data.get('evidence_level')),
        benefits=parse_described_entries(data.get('benefits'), 'benefits', Benefit),
        usage_methods=parse_described_entries(data.get('usage_methods'), 'usage_methods', UsageMethod),
        scientific_backings=parse_backings(data.get('scientific_backings')),
        precautions=parse_precautions(data.get('precautions')),
        interactions=parse_interactions(data.get('interactions')),
    )
