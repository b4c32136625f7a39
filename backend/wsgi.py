# backend/wsgi.py
from watchshop import create_app

app = create_app()
