# main.py
# Entrada do servidor: uvicorn main:app
from authcore.app import create_app

app = create_app()
