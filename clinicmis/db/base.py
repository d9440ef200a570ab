# clinicmis/db/base.py
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """All clinic tables (patients, staff, pharmacy, billing, etc.) inherit from this."""
    pass


# Import all models so metadata is complete for create_all()
from clinicmis.models import (  # noqa: F401,E402
    user,
    clinic,
    staff,
    patient,
    visit,
    pharmacy,
    prescription,
    billing,
    audit,
)
from clinicmis.db import soft_delete  # noqa: F401,E402
