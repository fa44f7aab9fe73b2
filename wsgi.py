"""
Flask-Migrate / Alembic and WSGI entry point.

Usage:
    export FLASK_APP=wsgi.py
    flask db init       # first time only (adds env.py next to migrations/versions)
    flask db upgrade
    gunicorn wsgi:app
"""

from timeflow import create_app

app = create_app()
