#!/usr/bin/env python3
"""Setup script for the tour booking API: migrate, then seed a demo catalogue."""

import asyncio
import logging
import sys
from datetime import timedelta
from pathlib import Path

# Add the server directory to the Python path
server_dir = Path(__file__).parent.parent / "server"
sys.path.insert(0, str(server_dir))

from alembic import command
from alembic.config import Config
from sqlalchemy import func, select

from tourbook.core.database import async_session_factory, close_db, utcnow
from tourbook.models import Destination, Tour, TourAvailability, User, UserRole

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def run_migrations():
    """Apply Alembic migrations up to head."""
    logger.info("Running database migrations...")
    alembic_cfg = Config(str(server_dir / "db" / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(server_dir / "db" / "alembic"))
    command.upgrade(alembic_cfg, "head")
    logger.info("Database migrations completed")


async def create_sample_data():
    """Seed an admin, one destination and a tour with weekly availabilities."""
    logger.info("Creating sample data...")

    async with async_session_factory() as db:
        try:
            existing_tours = await db.scalar(select(func.count()).select_from(Tour))
            if existing_tours:
                logger.info("Sample data already exists, skipping...")
                return

            db.add(User(email="admin@tourbook.local", name="Tourbook Admin", role=UserRole.ADMIN))

            destination = Destination(name="Reykjavik", country="Iceland")
            db.add(destination)
            await db.flush()

            tour = Tour(
                destination_id=destination.id,
                title="Northern Lights Adventure",
                description="Chase the Aurora Borealis across Iceland with expert guides",
                price_per_person=299.99,
                max_group_size=12,
            )
            db.add(tour)
            await db.flush()

            base_date = utcnow().replace(hour=9, minute=0, second=0, microsecond=0) + timedelta(days=30)
            for week in range(5):
                start = base_date + timedelta(days=week * 7)
                db.add(TourAvailability(
                    tour_id=tour.id,
                    start_date=start,
                    end_date=start + timedelta(days=3),
                    available_slots=12,
                ))

            await db.commit()
            logger.info("Sample data created", extra={"tour_id": tour.id})

        except Exception as e:
            await db.rollback()
            logger.error(f"Failed to create sample data: {e}")
            raise


async def main():
    logger.info("Starting tour booking API setup...")

    # Alembic's env.py drives its own event loop
    await asyncio.to_thread(run_migrations)
    await create_sample_data()
    await close_db()

    logger.info("Setup completed successfully!")
    logger.info("Start the API with: cd server && uvicorn tourbook.main:app --reload")


if __name__ == "__main__":
    asyncio.run(main())
