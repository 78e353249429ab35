"""
Print Production Workflow
Shared SQLAlchemy handle.

All model modules import ``db`` from here; ``create_app`` binds it to the
Flask app with ``db.init_app(app)``.
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
