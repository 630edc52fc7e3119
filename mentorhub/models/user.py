"""User model definitions."""

from sqlalchemy import Column, Integer, String
from mentorhub.database import Base

ROLE_MENTOR = "mentor"
ROLE_MENTEE = "mentee"


class User(Base):
    """Represents an application user."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True)
    hashed_password = Column(String)
    role = Column(String)  # mentor/mentee
