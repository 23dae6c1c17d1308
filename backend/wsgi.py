# backend/wsgi.py
from pharmasys import create_app

app = create_app()
