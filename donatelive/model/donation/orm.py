from sqlalchemy.orm import declarative_base
from sqlalchemy import (
    Column,
    Index,
    Integer,
    String,
    Float,
)


Base = declarative_base()


# ----------------------------
# ORM models
# ----------------------------
class Donation(Base):
    __tablename__ = "donations"
    reference = Column(String, primary_key=True)
    amount = Column(Integer, nullable=False)  # kobo
    email = Column(String, nullable=False)
    donor_name = Column(String, nullable=False, default="Anonymous")
    comment = Column(String, nullable=True)

    # pending | success
    status = Column(String, nullable=False, default="pending")
    created_at = Column(Float, nullable=False)
    paid_at = Column(Float, nullable=True)

    __table_args__ = (
        Index("idx_donations_status_created_at", "status", "created_at"),
    )
