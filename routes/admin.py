"""
routes/admin.py — Administration API routes.

Provides:
- POST /admin/login — Open an admin session (password from ADMIN_PASSWORD)
- POST /admin/logout — Close the admin session
- GET /admin/session — Report whether the session is authenticated
- POST /admin/plants — Add a new plant
- PUT /admin/plants/<id> — Edit a plant (child collections are replaced)
- DELETE /admin/plants/<id> — Delete a plant and its children
- POST /admin/upload — Upload a plant image, returns its permanent URL
- GET /admin/export — Export the catalog as JSON
- POST /admin/import — Import plants from JSON

Every route except login/logout/session requires an admin session. POST,
PUT and DELETE requests must carry the CSRF token (X-CSRFToken header or
csrf_token form field) handed out by GET /admin/session.
"""

import hmac
import json
from functools import wraps

from flask import Blueprint, request, jsonify, session, current_app, Response
from flask_wtf.csrf import generate_csrf

import catalog_service
from errors import ValidationError
from logging_config import get_logger
from utils.media_upload import upload_image

admin_bp = Blueprint('admin', __name__, url_prefix='/admin')

logger = get_logger(__name__)

SESSION_FLAG = 'is_admin'


def admin_required(view):
    """Reject the request with 401 unless the admin session flag is set."""
    @wraps(view)
    def wrapped(*args, **kwargs):
        if not session.get(SESSION_FLAG):
            return jsonify({'success': False, 'error': 'Acceso no autorizado'}), 401
        return view(*args, **kwargs)
    return wrapped


def _plant_payload():
    """Read a plant payload from a JSON body or from form fields."""
    if request.is_json:
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            raise ValidationError("Cuerpo JSON inválido.")
        return data

    # Form submission: collections arrive as JSON strings
    data = {}
    for key in ('slug', 'common_name', 'scientific_name', 'description',
                'image_url', 'evidence_level'):
        if key in request.form:
            data[key] = request.form.get(key)
    for key in ('benefits', 'usage_methods', 'scientific_backings',
                'precautions', 'interactions'):
        data[key] = request.form.get(key, '')
    return data


# ========================================
# Session
# ========================================

@admin_bp.route('/login', methods=['POST'])
def login():
    """Compare the submitted password with the configured one."""
    if request.is_json:
        password = (request.get_json(silent=True) or {}).get('password', '')
    else:
        password = request.form.get('password', '')

    expected = current_app.config.get('ADMIN_PASSWORD') or ''
    if not expected or not hmac.compare_digest(str(password), expected):
        logger.warning("Rejected admin login from %s", request.remote_addr)
        return jsonify({'success': False, 'error': 'Contraseña incorrecta'}), 401

    session[SESSION_FLAG] = True
    return jsonify({'success': True})


@admin_bp.route('/logout', methods=['POST'])
def logout():
    session.pop(SESSION_FLAG, None)
    return jsonify({'success': True})


@admin_bp.route('/session')
def session_status():
    """Authentication state plus the CSRF token admin writes must send."""
    return jsonify({
        'success': True,
        'authenticated': bool(session.get(SESSION_FLAG)),
        'csrf_token': generate_csrf(),
    })


# ========================================
# Plant CRUD
# ========================================

@admin_bp.route('/plants', methods=['POST'])
@admin_required
def add_plant():
    """Add a new plant with its child collections."""
    plant_id = catalog_service.create_plant(_plant_payload())
    plant = catalog_service.get_by_id(plant_id)
    return jsonify({'success': True, 'plant_id': plant_id, 'plant': plant}), 201


@admin_bp.route('/plants/<plant_id>', methods=['PUT'])
@admin_required
def edit_plant(plant_id):
    """Edit a plant. Benefits, usage methods and backings are fully replaced."""
    catalog_service.update_plant(plant_id, _plant_payload())
    plant = catalog_service.get_by_id(plant_id)
    return jsonify({'success': True, 'plant': plant})


@admin_bp.route('/plants/<plant_id>', methods=['DELETE'])
@admin_required
def remove_plant(plant_id):
    """Delete a plant and everything attached to it."""
    catalog_service.delete_plant(plant_id)
    return jsonify({'success': True})


# ========================================
# Image Upload
# ========================================

@admin_bp.route('/upload', methods=['POST'])
@admin_required
def upload():
    """Send the 'image' file to the media host and return its URL."""
    image_url = upload_image(request.files.get('image'), current_app.config)
    return jsonify({'success': True, 'image_url': image_url})


# ========================================
# JSON Export / Import
# ========================================

@admin_bp.route('/export')
@admin_required
def export_json():
    """Export the catalog as JSON file download."""
    data = catalog_service.export_catalog_json()

    return Response(
        json.dumps(data, indent=2, ensure_ascii=False),
        mimetype='application/json',
        headers={
            'Content-Disposition': 'attachment; filename=catalog.json'
        }
    )


@admin_bp.route('/import', methods=['POST'])
@admin_required
def import_json():
    """Import plants from an uploaded JSON file or a JSON body."""
    if request.is_json:
        data = request.get_json(silent=True)
        mode = request.args.get('mode', 'merge')
    else:
        mode = request.form.get('mode', 'merge')
        file = request.files.get('file')
        if file is None or file.filename == '':
            raise ValidationError("Ningún archivo seleccionado.")
        try:
            data = json.load(file)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ValidationError(f"JSON inválido: {str(e)}")

    stats = catalog_service.import_catalog_json(data, mode=mode)
    message = (
        f"Importación terminada: {stats['added']} añadidas, "
        f"{stats['skipped']} omitidas, {stats['errors']} errores"
    )
    return jsonify({'success': True, 'message': message, 'stats': stats})
