"""
Errand Model - Posted Tasks

Owned by the posting/assignment flows; the settlement core only reads it.
"""
import enum
from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, Enum as SQLEnum, ForeignKey

from errands.db.database import Base


class ErrandStatus(str, enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    RUNNER_COMPLETED = "runner_completed"
    COMPLETED = "completed"


class Errand(Base):
    """Errand posted by a customer and fulfilled by a runner"""

    __tablename__ = "errands"

    id = Column(Integer, primary_key=True, index=True)
    customer_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    runner_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    title = Column(String(255), nullable=True)
    status = Column(
        SQLEnum(
            ErrandStatus,
            name="errand_status",
            values_callable=lambda x: [e.value for e in x],
        ),
        default=ErrandStatus.PENDING,
        nullable=False,
        index=True,
    )

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
