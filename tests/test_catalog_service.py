"""
tests/test_catalog_service.py — Tests for the catalog use cases.

Tests cover:
- Create / update / delete / read scenarios
- Validation before any write and slug derivation
- Atomicity of create and update when a child insert fails
- Cascade on delete and slug uniqueness
- JSON export / import
"""

import os
import tempfile

import pytest

import catalog_service
import catalog_store
from catalog_store import init_catalog_db, reading, count_children
from errors import ValidationError, NotFound, ConstraintViolation, PersistenceError, StoreError


@pytest.fixture
def temp_catalog_db(monkeypatch):
    """Create a temporary catalog database for testing."""
    db_fd, db_path = tempfile.mkstemp(suffix='.db')
    monkeypatch.setenv('CATALOG_DB_PATH', db_path)

    init_catalog_db()

    yield db_path

    os.close(db_fd)
    for suffix in ('', '-wal', '-shm'):
        try:
            os.unlink(db_path + suffix)
        except (FileNotFoundError, PermissionError):
            pass


def table_count(table):
    with reading() as conn:
        return conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]


def fail_on_child_insert(monkeypatch, fail_at):
    """Make the n-th insert_child call (1-based) raise a StoreError."""
    original = catalog_store.insert_child
    calls = {'n': 0}

    def flaky_insert_child(conn, kind, record):
        calls['n'] += 1
        if calls['n'] == fail_at:
            raise StoreError(f'insert_child[{kind}]', RuntimeError('connection lost'))
        return original(conn, kind, record)

    monkeypatch.setattr(catalog_store, 'insert_child', flaky_insert_child)
    return calls


UNA_DE_GATO = {
    'slug': 'una-de-gato',
    'common_name': 'Uña de Gato',
    'scientific_name': 'Uncaria tomentosa',
    'description': 'Liana amazónica de uso tradicional.',
    'benefits': ['Inmunidad', 'Artritis'],
}

GINKGO = {
    'common_name': 'Ginkgo',
    'scientific_name': 'Ginkgo biloba',
    'benefits': [{'description': 'Memoria', 'category': 'Cognitivo'}],
    'usage_methods': [{'description': 'Infusión', 'category': 'Hojas'}],
    'scientific_backings': [{'finding': 'Efecto sobre la memoria', 'year': 2008}],
    'precautions': ['Suspender antes de una cirugía'],
    'interactions': [{'drug_name': 'Warfarina', 'recommendation': 'Evitar', 'severity': 'alta'}],
}


# ========================================
# Scenario Tests
# ========================================

class TestScenarios:
    """Create, replace children, delete."""

    def test_create_then_list(self, temp_catalog_db):
        plant_id = catalog_service.create_plant(UNA_DE_GATO)

        plants = catalog_service.list_all_with_details()
        assert len(plants) == 1
        assert plants[0]['id'] == plant_id
        assert sorted(b['description'] for b in plants[0]['benefits']) == ['Artritis', 'Inmunidad']

    def test_update_replaces_benefits(self, temp_catalog_db):
        plant_id = catalog_service.create_plant(UNA_DE_GATO)

        catalog_service.update_plant(plant_id, {'benefits': ['Digestivo']})

        plant = catalog_service.get_by_slug('una-de-gato')
        assert [b['description'] for b in plant['benefits']] == ['Digestivo']
        assert table_count('benefits') == 1

    def test_delete_then_not_found(self, temp_catalog_db):
        plant_id = catalog_service.create_plant({
            **UNA_DE_GATO,
            'usage_methods': [{'description': 'Decocción', 'category': 'Corteza'}],
        })

        catalog_service.delete_plant(plant_id)

        with pytest.raises(NotFound):
            catalog_service.get_by_slug('una-de-gato')
        with reading() as conn:
            assert sum(count_children(conn, plant_id).values()) == 0

    def test_duplicate_slug(self, temp_catalog_db):
        first_id = catalog_service.create_plant(UNA_DE_GATO)

        with pytest.raises(ConstraintViolation):
            catalog_service.create_plant({**UNA_DE_GATO, 'common_name': 'Otra planta', 'benefits': ['X']})

        assert catalog_service.count_plants() == 1
        plant = catalog_service.get_by_id(first_id)
        assert plant['common_name'] == 'Uña de Gato'
        assert len(plant['benefits']) == 2
        assert table_count('benefits') == 2


# ========================================
# Create Tests
# ========================================

class TestCreate:
    """Tests for create_plant."""

    def test_slug_derived_from_common_name(self, temp_catalog_db):
        catalog_service.create_plant({'common_name': 'Sangre de Drago'})

        plant = catalog_service.get_by_slug('sangre-de-drago')
        assert plant['common_name'] == 'Sangre de Drago'
        assert plant['evidence_level'] == 'moderada'

    def test_accented_name_slug(self, temp_catalog_db):
        catalog_service.create_plant({'common_name': 'Uña de Gato'})
        assert catalog_service.get_by_slug('una-de-gato')

    def test_missing_common_name(self, temp_catalog_db):
        with pytest.raises(ValidationError):
            catalog_service.create_plant({'slug': 'sin-nombre', 'common_name': '   '})
        assert table_count('plants') == 0

    def test_invalid_slug(self, temp_catalog_db):
        with pytest.raises(ValidationError):
            catalog_service.create_plant({'slug': 'Con Espacios', 'common_name': 'Boldo'})

    def test_invalid_evidence_level(self, temp_catalog_db):
        with pytest.raises(ValidationError):
            catalog_service.create_plant({'common_name': 'Boldo', 'evidence_level': 'altísima'})

    def test_malformed_json_field(self, temp_catalog_db):
        with pytest.raises(ValidationError):
            catalog_service.create_plant({'common_name': 'Boldo', 'benefits': '{no es json'})
        assert table_count('plants') == 0

    def test_blank_children_skipped(self, temp_catalog_db):
        plant_id = catalog_service.create_plant({
            'common_name': 'Copaiba',
            'benefits': ['Antiinflamatorio', '  ', ''],
            'usage_methods': [{'description': 'Aceite tópico', 'tipo': 'Resina'}, {'description': ''}],
        })

        plant = catalog_service.get_by_id(plant_id)
        assert [b['description'] for b in plant['benefits']] == ['Antiinflamatorio']
        assert plant['usage_methods'][0]['category'] == 'Resina'

    def test_null_category_falls_back_to_legacy_key(self, temp_catalog_db):
        plant_id = catalog_service.create_plant({
            'common_name': 'Copaiba',
            'usage_methods': [{'description': 'Aceite tópico', 'category': None, 'tipo': 'Resina'}],
            'scientific_backings': [{'finding': None, 'description': 'Cicatrizante en modelos animales'}],
        })

        plant = catalog_service.get_by_id(plant_id)
        assert plant['usage_methods'][0]['category'] == 'Resina'
        assert plant['scientific_backings'][0]['finding'] == 'Cicatrizante en modelos animales'

    def test_precautions_and_interactions(self, temp_catalog_db):
        plant_id = catalog_service.create_plant({
            'common_name': 'Hipérico',
            'precautions': ['Evitar la exposición solar prolongada', '  '],
            'interactions': [
                {'drug_name': 'Anticonceptivos orales', 'mechanism': 'Inducción de CYP3A4',
                 'recommendation': 'No combinar', 'severity': 'alta'},
                {'drugName': 'Digoxina', 'recommendation': 'Vigilar niveles'},
                {'drug_name': '', 'recommendation': 'ignorada'},
            ],
        })

        plant = catalog_service.get_by_id(plant_id)
        assert [p['description'] for p in plant['precautions']] == ['Evitar la exposición solar prolongada']
        assert [i['drug_name'] for i in plant['interactions']] == ['Anticonceptivos orales', 'Digoxina']
        assert plant['interactions'][0]['mechanism'] == 'Inducción de CYP3A4'
        assert plant['interactions'][1]['severity'] == 'moderada'
        assert plant['has_interactions'] is True

    def test_no_interactions_flag(self, temp_catalog_db):
        plant_id = catalog_service.create_plant({'common_name': 'Manzanilla'})
        assert catalog_service.get_by_id(plant_id)['has_interactions'] is False

    @pytest.mark.parametrize('interaction', [
        {'drug_name': 'Warfarina'},
        {'drug_name': 'Warfarina', 'recommendation': 'Evitar', 'severity': 'grave'},
        'Warfarina',
    ])
    def test_invalid_interaction(self, temp_catalog_db, interaction):
        with pytest.raises(ValidationError):
            catalog_service.create_plant({'common_name': 'Ginkgo', 'interactions': [interaction]})
        assert table_count('plants') == 0

    def test_scientific_backings(self, temp_catalog_db):
        plant_id = catalog_service.create_plant({
            'common_name': 'Boldo',
            'scientific_backings': [
                {'finding': 'Efecto hepatoprotector', 'language': 'es', 'year': '2015',
                 'source_url': 'https://example.org/boldo'},
                'Actividad antioxidante',
            ],
        })

        backings = catalog_service.get_by_id(plant_id)['scientific_backings']
        assert backings[0]['year'] == 2015
        assert backings[1]['finding'] == 'Actividad antioxidante'
        assert backings[1]['year'] is None

    def test_atomic_when_child_insert_fails(self, temp_catalog_db, monkeypatch):
        fail_on_child_insert(monkeypatch, fail_at=2)

        with pytest.raises(PersistenceError):
            catalog_service.create_plant({
                **UNA_DE_GATO,
                'usage_methods': ['Infusión de hojas'],
            })

        assert table_count('plants') == 0
        assert table_count('benefits') == 0
        assert table_count('usage_methods') == 0
        with pytest.raises(NotFound):
            catalog_service.get_by_slug('una-de-gato')


# ========================================
# Update Tests
# ========================================

class TestUpdate:
    """Tests for update_plant."""

    def test_not_found(self, temp_catalog_db):
        with pytest.raises(NotFound):
            catalog_service.update_plant('missing', {'common_name': 'Boldo'})

    def test_absent_scalars_kept(self, temp_catalog_db):
        plant_id = catalog_service.create_plant({**UNA_DE_GATO, 'image_url': 'https://img/x.jpg'})

        catalog_service.update_plant(plant_id, {'description': 'Nueva descripción'})

        plant = catalog_service.get_by_id(plant_id)
        assert plant['description'] == 'Nueva descripción'
        assert plant['image_url'] == 'https://img/x.jpg'
        assert plant['slug'] == 'una-de-gato'
        assert plant['scientific_name'] == 'Uncaria tomentosa'

    def test_omitted_collection_is_emptied(self, temp_catalog_db):
        plant_id = catalog_service.create_plant(UNA_DE_GATO)

        catalog_service.update_plant(plant_id, {'common_name': 'Uña de gato'})

        plant = catalog_service.get_by_id(plant_id)
        assert plant['common_name'] == 'Uña de gato'
        assert plant['benefits'] == []

    def test_children_get_new_ids(self, temp_catalog_db):
        plant_id = catalog_service.create_plant(UNA_DE_GATO)
        old_ids = {b['id'] for b in catalog_service.get_by_id(plant_id)['benefits']}

        catalog_service.update_plant(plant_id, {'benefits': ['Inmunidad', 'Artritis']})

        new_ids = {b['id'] for b in catalog_service.get_by_id(plant_id)['benefits']}
        assert old_ids.isdisjoint(new_ids)

    def test_replaces_every_child_kind(self, temp_catalog_db):
        plant_id = catalog_service.create_plant(GINKGO)

        catalog_service.update_plant(plant_id, {
            'usage_methods': [{'description': 'Cápsulas de extracto', 'category': 'Hojas'}],
            'scientific_backings': [{'finding': 'Mejora la microcirculación', 'year': 2021}],
        })

        plant = catalog_service.get_by_id(plant_id)
        assert [u['description'] for u in plant['usage_methods']] == ['Cápsulas de extracto']
        assert [s['finding'] for s in plant['scientific_backings']] == ['Mejora la microcirculación']
        assert plant['benefits'] == []
        assert plant['precautions'] == []
        assert plant['interactions'] == []
        assert plant['has_interactions'] is False
        assert table_count('usage_methods') == 1
        assert table_count('scientific_backings') == 1
        assert table_count('precautions') == 0
        assert table_count('interactions') == 0

    def test_empty_lists_empty_every_kind(self, temp_catalog_db):
        plant_id = catalog_service.create_plant(GINKGO)

        catalog_service.update_plant(plant_id, {
            'benefits': [], 'usage_methods': [], 'scientific_backings': [],
            'precautions': [], 'interactions': [],
        })

        with reading() as conn:
            assert sum(count_children(conn, plant_id).values()) == 0
        assert catalog_service.get_by_id(plant_id)['common_name'] == 'Ginkgo'

    def test_empty_common_name_rejected(self, temp_catalog_db):
        plant_id = catalog_service.create_plant(UNA_DE_GATO)

        with pytest.raises(ValidationError):
            catalog_service.update_plant(plant_id, {'common_name': '', 'benefits': ['Otro']})

        assert len(catalog_service.get_by_id(plant_id)['benefits']) == 2

    def test_slug_collision(self, temp_catalog_db):
        catalog_service.create_plant({'common_name': 'Boldo'})
        plant_id = catalog_service.create_plant(UNA_DE_GATO)

        with pytest.raises(ConstraintViolation):
            catalog_service.update_plant(plant_id, {'slug': 'boldo', 'benefits': []})

        plant = catalog_service.get_by_id(plant_id)
        assert plant['slug'] == 'una-de-gato'
        assert len(plant['benefits']) == 2

    def test_atomic_when_child_insert_fails(self, temp_catalog_db, monkeypatch):
        plant_id = catalog_service.create_plant(UNA_DE_GATO)
        fail_on_child_insert(monkeypatch, fail_at=2)

        with pytest.raises(PersistenceError):
            catalog_service.update_plant(plant_id, {
                'description': 'No debería guardarse',
                'benefits': ['Digestivo', 'Respiratorio', 'Dermatológico'],
            })

        plant = catalog_service.get_by_id(plant_id)
        assert sorted(b['description'] for b in plant['benefits']) == ['Artritis', 'Inmunidad']
        assert plant['description'] == UNA_DE_GATO['description']

    def test_atomic_across_child_kinds(self, temp_catalog_db, monkeypatch):
        plant_id = catalog_service.create_plant(GINKGO)
        before = catalog_service.get_by_id(plant_id)
        # benefit, usage method and backing go in; the interaction insert fails
        fail_on_child_insert(monkeypatch, fail_at=4)

        with pytest.raises(PersistenceError):
            catalog_service.update_plant(plant_id, {
                'benefits': ['Nuevo beneficio'],
                'usage_methods': ['Nuevo uso'],
                'scientific_backings': ['Nuevo hallazgo'],
                'interactions': [{'drug_name': 'Aspirina', 'recommendation': 'Vigilar'}],
            })

        after = catalog_service.get_by_id(plant_id)
        for key in ('benefits', 'usage_methods', 'scientific_backings', 'precautions', 'interactions'):
            assert after[key] == before[key]


# ========================================
# Delete Tests
# ========================================

class TestDelete:
    """Tests for delete_plant."""

    def test_unknown_id(self, temp_catalog_db):
        with pytest.raises(NotFound):
            catalog_service.delete_plant('missing')

    def test_leaves_other_plants(self, temp_catalog_db):
        doomed = catalog_service.create_plant(UNA_DE_GATO)
        kept = catalog_service.create_plant({'common_name': 'Boldo', 'benefits': ['Digestivo']})

        catalog_service.delete_plant(doomed)

        assert [p['id'] for p in catalog_service.list_all_with_details()] == [kept]
        assert table_count('benefits') == 1


# ========================================
# JSON Export / Import Tests
# ========================================

class TestJSONExportImport:
    """Tests for export_catalog_json and import_catalog_json."""

    def test_export(self, temp_catalog_db):
        catalog_service.create_plant({
            **UNA_DE_GATO,
            'usage_methods': [{'description': 'Decocción', 'category': 'Corteza'}],
        })

        data = catalog_service.export_catalog_json()

        assert len(data['plants']) == 1
        exported = data['plants'][0]
        assert exported['slug'] == 'una-de-gato'
        assert 'id' not in exported
        assert exported['usage_methods'] == [{'description': 'Decocción', 'category': 'Corteza'}]

    def test_import_merge_skips_existing_slug(self, temp_catalog_db):
        catalog_service.create_plant({'common_name': 'Boldo', 'description': 'original'})

        stats = catalog_service.import_catalog_json({
            'plants': [
                {'common_name': 'Boldo', 'description': 'importada'},
                {'common_name': 'Copaiba'},
            ]
        })

        assert stats == {'added': 1, 'skipped': 1, 'errors': 0}
        assert catalog_service.get_by_slug('boldo')['description'] == 'original'

    def test_import_replace(self, temp_catalog_db):
        catalog_service.create_plant(UNA_DE_GATO)
        catalog_service.create_plant({'common_name': 'Boldo'})

        catalog_service.import_catalog_json({'plants': [{'common_name': 'Copaiba'}]}, mode='replace')

        assert [p['slug'] for p in catalog_service.list_all_with_details()] == ['copaiba']
        assert table_count('benefits') == 0

    def test_import_legacy_fields(self, temp_catalog_db):
        stats = catalog_service.import_catalog_json({
            'plants': [{
                'id': '17',
                'commonName': 'Sangre de Drago',
                'scientificName': 'Croton lechleri',
                'Descripción': 'Resina rojiza cicatrizante.',
                'Beneficios medicinales y respaldo científico': {
                    'Cicatrización': 'Acelera el cierre de heridas.',
                },
                'Modo de uso': {'Resina': 'Aplicar directamente.'},
            }]
        })

        assert stats['added'] == 1
        plant = catalog_service.get_by_slug('sangre-de-drago')
        assert plant['description'] == 'Resina rojiza cicatrizante.'
        assert plant['benefits'][0]['category'] == 'Cicatrización'
        assert plant['usage_methods'][0]['category'] == 'Resina'

    def test_import_legacy_slugs_normalized(self, temp_catalog_db):
        stats = catalog_service.import_catalog_json({
            'plants': [
                {'id': '1', 'slug': 'uña-de-gato', 'commonName': 'Uña de Gato'},
                {'id': '2', 'slug': 'Sangre-de-Drago', 'commonName': 'Sangre de Drago'},
            ]
        })

        assert stats == {'added': 2, 'skipped': 0, 'errors': 0}
        assert catalog_service.get_by_slug('una-de-gato')['common_name'] == 'Uña de Gato'
        assert catalog_service.get_by_slug('sangre-de-drago')['common_name'] == 'Sangre de Drago'

    def test_import_legacy_slug_matches_existing(self, temp_catalog_db):
        catalog_service.create_plant({'common_name': 'Uña de Gato'})

        stats = catalog_service.import_catalog_json({
            'plants': [{'slug': 'uña-de-gato', 'commonName': 'Uña de Gato'}]
        })

        assert stats == {'added': 0, 'skipped': 1, 'errors': 0}

    def test_import_interactions(self, temp_catalog_db):
        catalog_service.import_catalog_json({
            'plants': [{
                'commonName': 'Ginkgo',
                'hasInteractions': True,
                'precautions': ['Suspender antes de una cirugía'],
                'interactions': [{'drugName': 'Warfarina', 'recommendation': 'Evitar', 'severity': 'alta'}],
            }]
        })

        plant = catalog_service.get_by_slug('ginkgo')
        assert plant['has_interactions'] is True
        assert plant['interactions'][0]['drug_name'] == 'Warfarina'

    def test_import_counts_invalid_entries(self, temp_catalog_db):
        stats = catalog_service.import_catalog_json({
            'plants': [{'common_name': ''}, 'not a dict', {'common_name': 'Boldo'}]
        })
        assert stats == {'added': 1, 'skipped': 0, 'errors': 2}

    def test_import_invalid_format(self, temp_catalog_db):
        with pytest.raises(ValidationError):
            catalog_service.import_catalog_json({})
        with pytest.raises(ValidationError):
            catalog_service.import_catalog_json({'plants': 'x'})
        with pytest.raises(ValidationError):
            catalog_service.import_catalog_json({'plants': []}, mode='append')

    def test_roundtrip(self, temp_catalog_db):
        catalog_service.create_plant({
            **UNA_DE_GATO,
            'evidence_level': 'alta',
            'scientific_backings': [{'finding': 'Inmunomodulador', 'year': 2019}],
        })

        exported = catalog_service.export_catalog_json()
        catalog_service.import_catalog_json(exported, mode='replace')

        plant = catalog_service.get_by_slug('una-de-gato')
        assert plant['evidence_level'] == 'alta'
        assert len(plant['benefits']) == 2
        assert plant['scientific_backings'][0]['year'] == 2019
