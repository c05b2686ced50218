#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
backend/scripts/create_api_key.py

Alta y baja de llaves de API para el endpoint de generación.

La llave en claro se imprime UNA vez; en la base solo queda su sha256.

Uso:
    python scripts/create_api_key.py create partner-x --rate-limit 200 --expires-days 90
    python scripts/create_api_key.py deactivate partner-x

Autor: WedAI
Fecha: 2026-01-22
"""

import argparse
import asyncio
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

from dotenv import load_dotenv

load_dotenv(BACKEND_ROOT / ".env")

from app.modules.generation.services import ApiKeyService  # noqa: E402
from app.shared.database import session_scope  # noqa: E402


async def create(name: str, rate_limit: int | None, expires_days: int | None) -> int:
    expires_at = None
    if expires_days:
        expires_at = datetime.now(timezone.utc) + timedelta(days=expires_days)

    async with session_scope() as session:
        api_key, raw_key = await ApiKeyService().create(
            session,
            name,
            rate_limit_per_hour=rate_limit,
            expires_at=expires_at,
        )

    print(f"✅ Llave creada: {api_key.key_name}")
    print(f"   {raw_key}")
    print("   Guárdala ahora: no se puede volver a mostrar.")
    return 0


async def deactivate(name: str) -> int:
    async with session_scope() as session:
        changed = await ApiKeyService().deactivate(session, name)

    if not changed:
        print(f"❌ No hay llave activa con nombre {name!r}")
        return 1
    print(f"🔒 Llave desactivada: {name}")
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description="Gestión de llaves de API de WedAI")
    sub = parser.add_subparsers(dest="command", required=True)

    p_create = sub.add_parser("create", help="Crea una llave nueva")
    p_create.add_argument("name")
    p_create.add_argument("--rate-limit", type=int, default=None, help="Solicitudes por hora")
    p_create.add_argument("--expires-days", type=int, default=None)

    p_off = sub.add_parser("deactivate", help="Desactiva una llave")
    p_off.add_argument("name")

    args = parser.parse_args()
    if args.command == "create":
        return asyncio.run(create(args.name, args.rate_limit, args.expires_days))
    return asyncio.run(deactivate(args.name))


if __name__ == "__main__":
    sys.exit(main())
