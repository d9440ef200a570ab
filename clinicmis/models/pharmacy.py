# FILE: clinicmis/models/pharmacy.py
from __future__ import annotations

from decimal import Decimal

from sqlalchemy import (
    Column,
    Integer,
    String,
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    CheckConstraint,
    UniqueConstraint,
    Index,
)
from sqlalchemy.orm import relationship

from clinicmis.db.base import Base
from clinicmis.models.mixins import (
    DEC_MONEY,
    TABLE_OPTS,
    TimestampMixin,
    SoftDeleteMixin,
    AuditActorMixin,
)
from clinicmis.utils.timezone import utcnow, today_local


class Drug(Base, TimestampMixin, SoftDeleteMixin, AuditActorMixin):
    """
    Drug master + on-hand stock.

    quantity_in_stock is only changed by dispensing and manual stock
    adjustment. `version` guards concurrent master edits.
    """
    __tablename__ = "drugs"
    __table_args__ = (
        CheckConstraint("quantity_in_stock >= 0",
                        name="ck_drugs_stock_nonneg"),
        CheckConstraint("unit_price > 0", name="ck_drugs_unit_price_pos"),
        CheckConstraint("reorder_level >= 1", name="ck_drugs_reorder_min"),
        Index("ix_drugs_name", "name"),
        TABLE_OPTS,
    )

    id = Column(Integer, primary_key=True, index=True)
    drug_code = Column(String(50), nullable=False, unique=True)

    name = Column(String(100), nullable=False)
    generic_name = Column(String(100), nullable=True)
    manufacturer = Column(String(100), nullable=True)
    category = Column(String(50), nullable=True)
    dosage_form = Column(String(50), nullable=True)  # tablet, syrup, ...
    strength = Column(String(50), nullable=True)  # 500mg

    unit_price = Column(DEC_MONEY, nullable=False)
    quantity_in_stock = Column(Integer, nullable=False, default=0)
    reorder_level = Column(Integer, nullable=False, default=10)

    expiry_date = Column(Date, nullable=True)
    storage_instructions = Column(String(500), nullable=True)
    requires_prescription = Column(Boolean, nullable=False, default=True)
    is_active = Column(Boolean, nullable=False, default=True)

    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    dispensings = relationship("Dispensing", back_populates="drug")

    @property
    def is_low_stock(self) -> bool:
        return (self.quantity_in_stock or 0) <= (self.reorder_level or 0)

    @property
    def is_expired(self) -> bool:
        return self.expiry_date is not None and self.expiry_date < today_local()

    @property
    def display_name(self) -> str:
        if self.strength:
            return f"{self.name} ({self.strength})"
        return self.name


class Dispensing(Base, TimestampMixin):
    """
    Immutable stock ledger. One row per item handed out; all rows of a
    single dispensing call share `dispensing_number` and are told apart
    by `line_no`.
    """
    __tablename__ = "dispensings"
    __table_args__ = (
        UniqueConstraint("dispensing_number",
                         "line_no",
                         name="uq_dispensings_number_line"),
        CheckConstraint("quantity > 0", name="ck_dispensings_qty_pos"),
        Index("ix_dispensings_drug_date", "drug_id", "dispensing_date"),
        TABLE_OPTS,
    )

    id = Column(Integer, primary_key=True, index=True)
    dispensing_number = Column(String(20), nullable=False,
                               index=True)  # DSP-20240115-0001
    line_no = Column(Integer, nullable=False, default=1)

    # set on every row of a call, ad-hoc lines included
    prescription_id = Column(Integer,
                             ForeignKey("prescriptions.id"),
                             nullable=True,
                             index=True)
    prescription_item_id = Column(Integer,
                                  ForeignKey("prescription_items.id"),
                                  nullable=True)
    drug_id = Column(Integer, ForeignKey("drugs.id"), nullable=False)
    pharmacist_id = Column(Integer, ForeignKey("staff.id"), nullable=False)

    dispensing_date = Column(DateTime, nullable=False, default=utcnow)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(DEC_MONEY, nullable=False)

    stock_before = Column(Integer, nullable=False)
    stock_after = Column(Integer, nullable=False)
    notes = Column(String(500), nullable=True)

    drug = relationship("Drug", back_populates="dispensings")
    pharmacist = relationship("Staff")
    prescription_item = relationship("PrescriptionItem",
                                     back_populates="dispensings")

    @property
    def total_amount(self) -> Decimal:
        return Decimal(self.quantity or 0) * Decimal(self.unit_price or 0)
