#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
backend/scripts/replay_failed_events.py

Re-procesa eventos de pago con outcome=failure a partir del payload
guardado en payment_events.

Cada evento corre en su propia transacción: un fallo no bloquea al resto.
La re-admisión usa el mismo UPDATE condicional que el webhook, así que un
reenvío del proveedor concurrente no duplica el efecto.

Uso:
    python scripts/replay_failed_events.py --dry-run
    python scripts/replay_failed_events.py --limit 20
    python scripts/replay_failed_events.py --event-id evt_123

Autor: WedAI
Fecha: 2026-01-15
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

from dotenv import load_dotenv

load_dotenv(BACKEND_ROOT / ".env")

from app.modules.billing.webhooks import IdempotencyGate, WebhookProcessor  # noqa: E402
from app.shared.config import get_settings  # noqa: E402
from app.shared.config.logging_config import setup_logging  # noqa: E402
from app.shared.database import session_scope  # noqa: E402

logger = logging.getLogger("replay_failed_events")


async def replay(event_ids: list[str] | None, limit: int, dry_run: bool) -> int:
    gate = IdempotencyGate()
    processor = WebhookProcessor(gate=gate)

    if event_ids is None:
        async with session_scope() as session:
            event_ids = await gate.list_failed(session, limit=limit)

    print(f"📋 Eventos en failure: {len(event_ids)}")
    if dry_run:
        for event_id in event_ids:
            print(f"  - {event_id}")
        print("Modo DRY-RUN: no se re-procesó ningún evento")
        return 0

    recovered = failed = skipped = 0
    for event_id in event_ids:
        async with session_scope() as session:
            result = await processor.replay_failed(session, event_id)

        if result is None:
            skipped += 1
            print(f"  ⏭️  {event_id}: omitido")
        elif result.success:
            recovered += 1
            print(f"  ✅ {event_id}: {result.event_type} (créditos={result.credits_applied})")
        else:
            failed += 1
            print(f"  ❌ {event_id}: {result.error}")

    print(f"\nRecuperados: {recovered}  Fallidos: {failed}  Omitidos: {skipped}")
    return 1 if failed else 0


def main() -> int:
    parser = argparse.ArgumentParser(description="Re-procesa eventos de pago fallidos")
    parser.add_argument("--event-id", action="append", dest="event_ids", help="Evento específico (repetible)")
    parser.add_argument("--limit", type=int, default=100, help="Máximo de eventos a re-procesar")
    parser.add_argument("--dry-run", action="store_true", help="Listar sin re-procesar")
    args = parser.parse_args()

    settings = get_settings()
    setup_logging(settings.log_level, settings.log_format)

    return asyncio.run(replay(args.event_ids, args.limit, args.dry_run))


if __name__ == "__main__":
    sys.exit(main())
