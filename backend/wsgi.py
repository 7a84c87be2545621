# backend/wsgi.py
from pos_server import create_app

app = create_app()
