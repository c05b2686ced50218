# -*- coding: utf-8 -*-
"""
backend/app/shared/__init__.py

Infraestructura compartida de WedAI: configuración, base de datos, Redis,
errores de dominio, middlewares y utilidades HTTP.

No importa submódulos en import-time para evitar efectos colaterales
durante la recolección de tests.
"""
