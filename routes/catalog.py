"""
routes/catalog.py — Public catalog API routes.

Provides:
- GET /api/plants/ — Search, filter and paginate the catalog
- GET /api/plants/categories — Ailment and plant-part labels for the filters
- GET /api/plants/health — Check catalog database health
- GET /api/plants/<slug> — Get plant details by slug

Read-only: nothing here writes to the catalog.
"""

from flask import Blueprint, request, jsonify, current_app

import catalog_service
from catalog_store import check_catalog_db_health
from search_engine import FilterCriteria, search, extract_categories

catalog_bp = Blueprint('catalog', __name__, url_prefix='/api/plants')

MAX_PAGE_SIZE = 100


# ========================================
# Listing and Search
# ========================================

@catalog_bp.route('/')
def list_plants():
    """
    Filtered, paginated plant list (JSON API).

    Query args: q, ailment, part, evidence, sort, page, page_size.
    """
    criteria = FilterCriteria(
        query=request.args.get('q', ''),
        ailment=request.args.get('ailment', ''),
        part=request.args.get('part', ''),
        evidence=request.args.get('evidence', ''),
    )
    page = request.args.get('page', 1, type=int)
    page_size = request.args.get('page_size', current_app.config['PAGE_SIZE'], type=int)
    page_size = min(page_size, MAX_PAGE_SIZE)
    order = request.args.get('sort', 'relevance')

    plants = catalog_service.list_all_with_details()
    result = search(plants, criteria, page=page, page_size=page_size, order=order)

    return jsonify({'success': True, **result.to_dict()})


@catalog_bp.route('/categories')
def categories():
    """Distinct filter labels across the catalog (JSON API)."""
    plants = catalog_service.list_all_with_details()
    return jsonify({'success': True, **extract_categories(plants)})


@catalog_bp.route('/health')
def catalog_health():
    """Check catalog database health (JSON API)."""
    healthy, message = check_catalog_db_health()
    return jsonify({'success': healthy, 'message': message}), (200 if healthy else 503)


# ========================================
# Plant Detail
# ========================================

@catalog_bp.route('/<slug>')
def get_plant_detail(slug):
    """Get a single plant with benefits, usage methods and backings (JSON API)."""
    plant = catalog_service.get_by_slug(slug)
    return jsonify({'success': True, 'plant': plant})
