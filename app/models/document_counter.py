from sqlalchemy import Column, String, Integer

from app.database import Base


class DocumentCounter(Base):
    """Last issued sequence number per document prefix (LOAN, RET, VCH, ...)."""

    __tablename__ = "document_counters"

    prefix = Column(String(20), primary_key=True)
    seq = Column(Integer, nullable=False, default=0)

    def __repr__(self):
        return f"<DocumentCounter {self.prefix}={self.seq}>"
