# -*- coding: utf-8 -*-
"""
backend/app/shared/utils/__init__.py

Utilidades comunes: JWT (decodificación del proveedor de identidad) y
respuestas JSON UTF-8.

Autor: WedAI
Fecha: 2025-10-18
"""

from .json_response import UTF8JSONResponse, json_response_utf8
from .jwt_utils import create_access_token, decode_token, get_subject

__all__ = [
    "UTF8JSONResponse",
    "json_response_utf8",
    "create_access_token",
    "decode_token",
    "get_subject",
]
