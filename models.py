"""
models.py — Python dataclasses for the plant catalog.

Maps to the SQLite tables created in catalog_store.init_catalog_db().
Each child dataclass knows its table and the columns it owns.
"""

from dataclasses import dataclass, field, asdict
from typing import Optional, List

# Ordered from strongest to weakest evidence
EVIDENCE_LEVELS = ('alta', 'moderada', 'baja', 'sin-evidencia')
DEFAULT_EVIDENCE_LEVEL = 'moderada'

# Drug interaction severities, most serious first
INTERACTION_SEVERITIES = ('alta', 'moderada', 'baja')
DEFAULT_INTERACTION_SEVERITY = 'moderada'


@dataclass
class Benefit:
    """Medicinal claim attached to a plant. category is the ailment label."""
    id: str = ""
    plant_id: str = ""
    description: str = ""
    category: Optional[str] = None

    table = 'benefits'
    columns = ('id', 'plant_id', 'description', 'category')


@dataclass
class UsageMethod:
    """Preparation or application method. category is the plant part used."""
    id: str = ""
    plant_id: str = ""
    description: str = ""
    category: Optional[str] = None

    table = 'usage_methods'
    columns = ('id', 'plant_id', 'description', 'category')


@dataclass
class ScientificBacking:
    """Citation of a scientific finding about a plant."""
    id: str = ""
    plant_id: str = ""
    finding: str = ""
    language: Optional[str] = None
    year: Optional[int] = None
    source_url: Optional[str] = None

    table = 'scientific_backings'
    columns = ('id', 'plant_id', 'finding', 'language', 'year', 'source_url')


@dataclass
class Precaution:
    id: str = ""
    plant_id: str = ""
    description: str = ""

    table = 'precautions'
    columns = ('id', 'plant_id', 'description')


@dataclass
class Interaction:
    """Known interaction with a drug. severity is one of INTERACTION_SEVERITIES."""
    id: str = ""
    plant_id: str = ""
    drug_name: str = ""
    mechanism: Optional[str] = None
    recommendation: str = ""
    severity: str = DEFAULT_INTERACTION_SEVERITY

    table = 'interactions'
    columns = ('id', 'plant_id', 'drug_name', 'mechanism', 'recommendation', 'severity')


# Child kind name -> (dataclass, key used in plant dicts)
CHILD_KINDS = {
    'benefit': (Benefit, 'benefits'),
    'usage_method': (UsageMethod, 'usage_methods'),
    'scientific_backing': (ScientificBacking, 'scientific_backings'),
    'precaution': (Precaution, 'precautions'),
    'interaction': (Interaction, 'interactions'),
}


@dataclass
class Plant:
    """Root catalog entity. Children are exclusively owned by the plant."""
    id: str = ""
    slug: str = ""
    common_name: str = ""
    scientific_name: Optional[str] = None
    description: Optional[str] = None
    image_url: Optional[str] = None
    evidence_level: str = DEFAULT_EVIDENCE_LEVEL
    benefits: List[Benefit] = field(default_factory=list)
    usage_methods: List[UsageMethod] = field(default_factory=list)
    scientific_backings: List[ScientificBacking] = field(default_factory=list)
    precautions: List[Precaution] = field(default_factory=list)
    interactions: List[Interaction] = field(default_factory=list)

    columns = ('id', 'slug', 'common_name', 'scientific_name', 'description',
               'image_url', 'evidence_level')

    def row(self) -> dict:
        """Scalar columns only, ready for an INSERT."""
        data = asdict(self)
        return {col: data[col] for col in self.columns}

    def children(self, kind: str) -> list:
        return getattr(self, CHILD_KINDS[kind][1])


def child_row(record) -> dict:
    """Column dict for a Benefit / UsageMethod / ScientificBacking."""
    data = asdict(record)
    return {col: data[col] for col in record.columns}
