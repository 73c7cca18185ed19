import uuid
from datetime import datetime

from sqlalchemy import Column, DateTime, String

from ..database import Base
from ..roles import Role


def new_id() -> str:
    return str(uuid.uuid4())


class User(Base):
    """SQLAlchemy model for application users."""

    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String, nullable=False)
    email = Column(String, unique=True, index=True, nullable=False)
    password_hash = Column(String, nullable=False)
    role = Column(String, default=Role.STUDENT.value, nullable=False)
    avatar_url = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
