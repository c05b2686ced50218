# -*- coding: utf-8 -*-
"""
backend/app/__init__.py

Paquete principal 'app' del backend de WedAI.

Permite importar los módulos internos como 'app.*' cuando la carpeta
'backend' está en PYTHONPATH (uvicorn app.main:app).

Autor: WedAI
Fecha: 2025-11-07
"""

# Fin del archivo backend/app/__init__.py
