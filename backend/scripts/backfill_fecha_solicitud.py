"""
One-off backfill: solicitudes created before ``fecha_solicitud`` existed get
their creation timestamp as the requested date.

Usage:
    python scripts/backfill_fecha_solicitud.py [--dry-run]
"""

import argparse
import asyncio
import logging

from sqlalchemy import select, update

from atmos.core.database import AsyncSessionLocal
from atmos.core.logging import setup_logging
from atmos.models.solicitud import Solicitud

logger = logging.getLogger("atmos.scripts.backfill_fecha_solicitud")


async def backfill(dry_run: bool = False) -> int:
    async with AsyncSessionLocal() as db:
        result = await db.execute(
            select(Solicitud.id, Solicitud.created_at).where(
                Solicitud.fecha_solicitud.is_(None)
            )
        )
        rows = result.all()
        logger.info("backfill_found", extra={"count": len(rows)})

        for solicitud_id, created_at in rows:
            if not dry_run:
                await db.execute(
                    update(Solicitud)
                    .where(Solicitud.id == solicitud_id)
                    .values(fecha_solicitud=created_at)
                )
            logger.info(
                "backfill_updated",
                extra={
                    "solicitud_id": solicitud_id,
                    "fecha_solicitud": created_at.isoformat(),
                    "dry_run": dry_run,
                },
            )

        if not dry_run:
            await db.commit()
    return len(rows)


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--dry-run", action="store_true", help="Only report what would change")
    args = parser.parse_args()

    setup_logging()
    asyncio.run(backfill(dry_run=args.dry_run))


if __name__ == "__main__":
    main()
