"""
WSGI entry point and Flask-Migrate / Alembic CLI target.

Usage:
    gunicorn wsgi:app
    flask --app wsgi db upgrade
    flask --app wsgi seed-reference-data --admin-password <password>
    flask --app wsgi mark-overdue
"""

from licitaflow import create_app

app = create_app()
