"""
catalog_service.py — Use cases of the plant catalog.

Composes catalog_store calls into all-or-nothing units of work:
- create_plant: plant row + every child row in one transaction
- update_plant: scalar update + full replace of each child collection
- delete_plant: plant row + every child row
- list_all_with_details / get_by_slug / get_by_id: reads with children
- export_catalog_json / import_catalog_json: bulk JSON exchange

Validation runs before any write. Store failures other than constraint
violations are re-raised as PersistenceError; a failed step rolls back every
row written by the same call.

Concurrent edits of one plant are not detected: the last write wins.
"""

import uuid
from contextlib import contextmanager
from typing import List, Dict, Any

import catalog_store
from errors import ValidationError, NotFound, ConstraintViolation, PersistenceError, StoreError
from logging_config import get_logger
from models import CHILD_KINDS, Plant
from utils.validators import slugify, validate_plant_input

logger = get_logger(__name__)

# Legacy field names of the original JSON catalog -> current names
LEGACY_FIELDS = {
    'commonName': 'common_name',
    'scientificName': 'scientific_name',
    'Descripción': 'description',
    'imageUrl': 'image_url',
    'evidenceLevel': 'evidence_level',
    'Beneficios medicinales y respaldo científico': 'benefits',
    'Modo de uso': 'usage_methods',
    'usageMethods': 'usage_methods',
    'scientificBackings': 'scientific_backings',
}

SCALAR_FIELDS = ('slug', 'common_name', 'scientific_name', 'description',
                 'image_url', 'evidence_level')


def new_id() -> str:
    return str(uuid.uuid4())


@contextmanager
def _unit_of_work(operation: str):
    """Transaction whose raw store failures surface as PersistenceError."""
    try:
        with catalog_store.transaction() as conn:
            yield conn
    except StoreError as e:
        logger.error("%s rolled back: %s", operation, e)
        raise PersistenceError(f"Error al guardar ({operation}).") from e
    except ConstraintViolation:
        logger.warning("%s rolled back on a constraint violation", operation)
        raise


@contextmanager
def _read(operation: str):
    try:
        with catalog_store.reading() as conn:
            yield conn
    except StoreError as e:
        raise PersistenceError(f"Error al leer ({operation}).") from e


def _insert_children(conn, plant: Plant) -> None:
    """Insert every child record of the plant, assigning fresh ids."""
    for kind in CHILD_KINDS:
        for record in plant.children(kind):
            record.id = new_id()
            record.plant_id = plant.id
            catalog_store.insert_child(conn, kind, record)


# ========================================
# Writes
# ========================================

def create_plant(data: Dict[str, Any]) -> str:
    """
    Create a plant with its benefits, usage methods and scientific backings.

    Args:
        data: dict with common_name (required), slug (derived from
              common_name when omitted), scientific_name, description,
              image_url, evidence_level, and the child lists

    Returns:
        The new plant id

    Raises:
        ValidationError: invalid input, nothing written
        ConstraintViolation: slug already used, nothing written
        PersistenceError: any other datastore failure, nothing written
    """
    plant = validate_plant_input(data)
    plant.id = new_id()

    with _unit_of_work('create_plant') as conn:
        catalog_store.insert_plant(conn, plant)
        _insert_children(conn, plant)

    logger.info("Created plant %s (%s)", plant.slug, plant.id)
    return plant.id


def update_plant(plant_id: str, data: Dict[str, Any]) -> None:
    """
    Update a plant and replace its child collections.

    Scalar fields absent from data keep their current value. Each child
    collection is replaced as a whole: an empty or omitted list empties it.
    Child records get new ids.

    Raises:
        NotFound: no plant with this id
        ValidationError, ConstraintViolation, PersistenceError: as create_plant
    """
    if not isinstance(data, dict):
        raise ValidationError("Datos de planta inválidos.")

    with _read('update_plant') as conn:
        existing = catalog_store.find_plant_by_id(conn, plant_id, with_children=False)
    if not existing:
        raise NotFound("Planta no encontrada.")

    merged = {field: existing[field] for field in SCALAR_FIELDS}
    for field in SCALAR_FIELDS:
        if field in data:
            merged[field] = data[field]
    for kind, (_, key) in CHILD_KINDS.items():
        merged[key] = data.get(key)

    plant = validate_plant_input(merged)
    plant.id = plant_id

    with _unit_of_work('update_plant') as conn:
        fields = plant.row()
        del fields['id']
        if catalog_store.update_plant(conn, plant_id, fields) == 0:
            # Deleted between the existence check and the write
            raise NotFound("Planta no encontrada.")
        for kind in CHILD_KINDS:
            catalog_store.delete_children_of_kind(conn, kind, plant_id)
        _insert_children(conn, plant)

    logger.info("Updated plant %s (%s)", plant.slug, plant_id)


def delete_plant(plant_id: str) -> None:
    """
    Delete a plant and every child row that references it.

    Raises:
        NotFound: no plant with this id
        PersistenceError: datastore failure, nothing deleted
    """
    with _unit_of_work('delete_plant') as conn:
        deleted = catalog_store.delete_plant(conn, plant_id)
        if deleted == 0:
            raise NotFound("Planta no encontrada.")

    logger.info("Deleted plant %s", plant_id)


# ========================================
# Reads
# ========================================

def list_all_with_details() -> List[Dict[str, Any]]:
    """Every plant with its children, in insertion order."""
    with _read('list_all_with_details') as conn:
        return catalog_store.list_plants(conn, with_children=True)


def get_by_slug(slug: str) -> Dict[str, Any]:
    """
    Get one plant with its children.

    Raises:
        NotFound: no plant with this slug (distinct from PersistenceError)
    """
    with _read('get_by_slug') as conn:
        plant = catalog_store.find_plant_by_slug(conn, slug)
    if not plant:
        raise NotFound(f"Planta no encontrada: {slug}")
    return plant


def get_by_id(plant_id: str) -> Dict[str, Any]:
    with _read('get_by_id') as conn:
        plant = catalog_store.find_plant_by_id(conn, plant_id)
    if not plant:
        raise NotFound("Planta no encontrada.")
    return plant


def count_plants() -> int:
    with _read('count_plants') as conn:
        return catalog_store.count_plants(conn)


# ========================================
# JSON Export / Import
# ========================================

def _export_children(plant: Dict[str, Any], key: str) -> List[Dict[str, Any]]:
    return [
        {k: v for k, v in child.items() if k not in ('id', 'plant_id')}
        for child in plant[key]
    ]


def export_catalog_json() -> Dict[str, Any]:
    """
    Export the entire catalog as JSON.

    Returns:
        Dict with 'plants' key containing list of plant objects (no ids)
    """
    result = []
    for plant in list_all_with_details():
        entry = {field: plant[field] for field in SCALAR_FIELDS}
        for _, key in CHILD_KINDS.values():
            entry[key] = _export_children(plant, key)
        result.append(entry)
    return {'plants': result}


def _normalize_legacy(entry: Dict[str, Any]) -> Dict[str, Any]:
    normalized = dict(entry)
    for legacy, current in LEGACY_FIELDS.items():
        if legacy in normalized and current not in normalized:
            normalized[current] = normalized.pop(legacy)
    # Older catalogs built slugs by hyphenating the name, accents and case kept
    if normalized.get('slug'):
        normalized['slug'] = slugify(str(normalized['slug']))
    return normalized


def import_catalog_json(data: Dict[str, Any], mode: str = 'merge') -> Dict[str, int]:
    """
    Import plants from JSON data in one transaction.

    Args:
        data: JSON data with 'plants' key (current or legacy field names)
        mode: 'merge' adds plants whose slug is not used yet and skips the
              others; 'replace' clears the catalog first

    Returns:
        stats dict: added, skipped, errors (entries failing validation)
    """
    if mode not in ('merge', 'replace'):
        raise ValidationError(f"Modo de importación desconocido: {mode}")
    if not isinstance(data, dict) or 'plants' not in data:
        raise ValidationError("Formato JSON inválido: falta la clave 'plants'.")
    if not isinstance(data['plants'], list):
        raise ValidationError("Formato JSON inválido: 'plants' debe ser una lista.")

    stats = {'added': 0, 'skipped': 0, 'errors': 0}

    plants = []
    for entry in data['plants']:
        if not isinstance(entry, dict):
            stats['errors'] += 1
            continue
        try:
            plants.append(validate_plant_input(_normalize_legacy(entry)))
        except ValidationError as e:
            logger.warning("Skipping invalid import entry: %s", e.message)
            stats['errors'] += 1

    with _unit_of_work('import_catalog_json') as conn:
        if mode == 'replace':
            catalog_store.delete_all_plants(conn)

        seen = set()
        for plant in plants:
            if plant.slug in seen or catalog_store.find_plant_by_slug(conn, plant.slug, with_children=False):
                stats['skipped'] += 1
                continue
            seen.add(plant.slug)
            plant.id = new_id()
            catalog_store.insert_plant(conn, plant)
            _insert_children(conn, plant)
            stats['added'] += 1

    logger.info(
        "Import (%s): %d added, %d skipped, %d errors",
        mode, stats['added'], stats['skipped'], stats['errors']
    )
    return stats
