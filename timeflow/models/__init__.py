"""
Timeflow Process Tracking
Shared Flask-SQLAlchemy handle.

Every model module imports ``db`` from here; the app factory binds it to the
Flask application with ``db.init_app(app)``.
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
