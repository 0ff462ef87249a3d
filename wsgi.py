"""WSGI entry point: gunicorn -c gunicorn_config.py wsgi:app"""
from suchak import create_app

app = create_app()
