# -*- coding: utf-8 -*-
"""
backend/app/shared/http_utils/__init__.py

Lectura de IP, User-Agent y bearer token del request.
"""

from .request_meta import get_bearer_token, get_client_ip, get_user_agent

__all__ = ["get_client_ip", "get_user_agent", "get_bearer_token"]
