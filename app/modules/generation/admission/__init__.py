# -*- coding: utf-8 -*-
"""
backend/app/modules/generation/admission/__init__.py

Control de admisión de solicitudes de generación.

Autor: WedAI
Fecha: 2026-01-20
"""

from .identity import CallerIdentity, resolve_identity, resolve_tier
from .stores import CounterStore, RedisCounterStore, SqlCounterStore, WindowCounts
from .controller import AdmissionController, Decision, window_bounds

__all__ = [
    "CallerIdentity",
    "resolve_identity",
    "resolve_tier",
    "CounterStore",
    "RedisCounterStore",
    "SqlCounterStore",
    "WindowCounts",
    "AdmissionController",
    "Decision",
    "window_bounds",
]
