from sqlalchemy import Column, String, DateTime
from sqlalchemy.orm import relationship

from raggy.db.database import Base
from .base import JSONType, TimestampMixin


class User(TimestampMixin, Base):
    __tablename__ = "users"

    # Opaque id supplied by the caller (no auth layer issues ids)
    id = Column(String(255), primary_key=True, index=True)

    # Ordered list of attribute names the extraction engine tries to learn
    required_attributes = Column(JSONType, nullable=False, default=list)
    # name -> string value, keys always a subset of required_attributes
    extracted_attributes = Column(JSONType, nullable=False, default=dict)
    # Extraction checkpoint (start time of the last run that changed something)
    last_extraction_date = Column(DateTime(timezone=True), nullable=True)

    # Relationships - User OWNS these
    conversations = relationship("Conversation", back_populates="user", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<User(id={self.id})>"
