"""
WSGI / Flask CLI entry point.

Usage:
    gunicorn wsgi:app
    flask --app wsgi run-job escalation_sweep
    flask --app wsgi db migrate -m "description"
"""

from clearance import create_app

app = create_app()
