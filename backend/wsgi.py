# backend/wsgi.py
from tradeops import create_app

app = create_app()
