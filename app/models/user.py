from sqlalchemy import Column, Integer, String, Boolean, DateTime, Text
from sqlalchemy.sql import func
from app.db.base import Base


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    email = Column(String, unique=True, index=True, nullable=False)  # Stored lower-cased
    hashed_password = Column(String, nullable=False)  # Never serialized
    username = Column(String, unique=True, index=True, nullable=True)
    bio = Column(Text, nullable=True)
    avatar = Column(String, nullable=True)
    plan_tier = Column(String, default="free", nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    last_login = Column(DateTime, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    @property
    def initials(self) -> str:
        if not self.name or not self.name.strip():
            return "U"
        names = self.name.split()
        if len(names) >= 2:
            return (names[0][0] + names[1][0]).upper()
        return self.name.strip()[:2].upper()

    def __repr__(self):
        return f"<User(id={self.id}, email={self.email}, plan={self.plan_tier})>"
