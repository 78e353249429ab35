"""
Flask-Migrate / Alembic entry point.

Usage:
    flask db upgrade
    flask seed-departments
    gunicorn wsgi:app
"""

from printflow import create_app

app = create_app()
