from sqlalchemy import Column, String, Integer, BigInteger, Text, DateTime
from .base import BaseModel

class Resource(BaseModel):
    __tablename__ = "resources"

    # created_at doubles as the upload time
    filename = Column(String(255), nullable=True)
    mime_type = Column(String(100), nullable=False)
    file_size = Column(BigInteger, nullable=False)  # Size in bytes
    status = Column(String(20), default="pending", nullable=False)  # pending, processing, ready, failed
    error_message = Column(Text, nullable=True)
    chunk_count = Column(Integer, default=0, nullable=False)
    processed_at = Column(DateTime(timezone=True), nullable=True)

    @property
    def uploaded_at(self):
        return self.created_at
