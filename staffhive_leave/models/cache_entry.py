from sqlalchemy import Column, Integer, String, Text, DateTime
from sqlalchemy.sql import func
from staffhive_leave.database import Base

class CacheEntry(Base):
    __tablename__ = "cache_entries"

    id = Column(Integer, primary_key=True, index=True)
    key = Column(String, unique=True, index=True, nullable=False)
    payload = Column(Text, nullable=False, default="[]") # JSON document, read and written wholesale
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
