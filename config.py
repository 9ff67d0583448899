"""
config.py — Environment-driven configuration.

Values are read from the process environment after loading an optional .env
file. create_app() copies the result into app.config.
"""

import os
from dotenv import load_dotenv

# Load environment variables from .env file.
load_dotenv()


def load_config():
    """
    Load configuration from environment variables and return a dictionary.
    """
    try:
        page_size = int(os.getenv('PAGE_SIZE', '6'))
    except ValueError:
        page_size = 6

    return {
        # General
        'DEBUG_MODE': os.getenv('DEBUG_MODE', 'False').lower() == 'true',
        'SECRET_KEY': os.getenv('SECRET_KEY', 'herbario-local-dev-secret-key'),

        # Admin panel
        'ADMIN_PASSWORD': os.getenv('ADMIN_PASSWORD', ''),

        # Media host (Cloudinary)
        'CLOUDINARY_CLOUD_NAME': os.getenv('CLOUDINARY_CLOUD_NAME', ''),
        'CLOUDINARY_API_KEY': os.getenv('CLOUDINARY_API_KEY', ''),
        'CLOUDINARY_API_SECRET': os.getenv('CLOUDINARY_API_SECRET', ''),
        'CLOUDINARY_FOLDER': os.getenv('CLOUDINARY_FOLDER', 'herbario'),

        # Search page
        'PAGE_SIZE': page_size if page_size > 0 else 6,
    }
