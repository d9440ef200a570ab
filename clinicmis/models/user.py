from sqlalchemy import Column, Integer, String, Boolean, DateTime
from sqlalchemy.orm import relationship

from clinicmis.db.base import Base
from clinicmis.models.mixins import TABLE_OPTS
from clinicmis.utils.timezone import utcnow


class User(Base):
    """
    Login identity. Credentials are handled by the identity provider;
    this row only maps a token subject (email) to a staff record.
    """
    __tablename__ = "users"
    __table_args__ = TABLE_OPTS

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(120), nullable=False)
    email = Column(String(191), unique=True,
                   nullable=False)  # <= 191, no index=True

    is_active = Column(Boolean, nullable=False, default=True)
    is_admin = Column(Boolean, nullable=False, default=False)

    last_login_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    staff = relationship("Staff", back_populates="user", uselist=False)
