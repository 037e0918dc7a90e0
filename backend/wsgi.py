# backend/wsgi.py
from invtrack import create_app

app = create_app()
