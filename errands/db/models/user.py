"""
User Model - Customers, Runners and Admins

Any user can post errands and any user can run them; admins are flagged.
"""
from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, Boolean, Text

from errands.db.database import Base


class User(Base):
    """Marketplace account"""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=True)
    email = Column(String(255), unique=True, nullable=True, index=True)
    is_admin = Column(Boolean, default=False, nullable=False)

    # Set by the balance escalation job; cleared only by an admin outside this service
    is_banned = Column(Boolean, default=False, nullable=False, index=True)
    banned_at = Column(DateTime, nullable=True)
    ban_reason = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
