# clinicmis/db/init_db.py
from __future__ import annotations

import argparse
import logging

from sqlalchemy import inspect
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from clinicmis.db.base import Base
from clinicmis.models.clinic import Clinic

logger = logging.getLogger(__name__)

DEFAULT_CLINICS = [
    ("Cardiology", "Heart and cardiovascular diseases", "Building A, Floor 2"),
    ("Oncology", "Cancer treatment and care", "Building B, Floor 1"),
    ("Neurology", "Brain and nervous system disorders", "Building A, Floor 3"),
    ("Orthopedics", "Bone and joint disorders", "Building C, Floor 1"),
    ("Pediatrics", "Child healthcare", "Building A, Floor 1"),
    ("General Medicine", "General healthcare services", "Building A, Ground Floor"),
]


def seed_clinics(db: Session) -> int:
    """
    Insert ONLY missing departments; safe to run multiple times.
    """
    added = 0
    for name, description, location in DEFAULT_CLINICS:
        exists = (db.query(Clinic.id).filter(Clinic.name == name).
                  execution_options(include_deleted=True).first())
        if not exists:
            db.add(Clinic(name=name, description=description,
                          location=location, is_active=True))
            added += 1
    return added


def run(engine: Engine, fresh: bool = False) -> None:
    if fresh:
        logger.warning("Dropping ALL tables (dev only)")
        Base.metadata.drop_all(bind=engine)

    logger.info("Creating all missing tables")
    Base.metadata.create_all(bind=engine)
    logger.info("Tables: %s", sorted(inspect(engine).get_table_names()))

    try:
        with Session(engine) as db:
            added = seed_clinics(db)
            db.commit()
            logger.info("Clinics seeded (%s inserted)", added)
    except SQLAlchemyError:
        logger.exception("Seeding failed")
        raise


if __name__ == "__main__":
    from clinicmis.db.session import engine as default_engine

    logging.basicConfig(level=logging.INFO)
    parser = argparse.ArgumentParser(
        description="Initialize DB (create tables, seed clinics).")
    parser.add_argument(
        "--fresh",
        action="store_true",
        help="Drop & recreate all tables (DEV ONLY).",
    )
    args = parser.parse_args()
    run(default_engine, fresh=args.fresh)
