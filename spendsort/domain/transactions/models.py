from datetime import datetime
from sqlalchemy import (
    Column,
    Integer,
    String,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Text,
    Index,
)
from sqlalchemy.orm import relationship
from spendsort.core.database import Base


class Transaction(Base):
    """Transaction model for financial transactions."""

    __tablename__ = "transactions"
    __table_args__ = (
        Index("ix_transactions_date", "transaction_date"),
        Index("ix_transactions_category", "category_id"),
    )

    id = Column(Integer, primary_key=True, index=True)
    transaction_date = Column(Date, nullable=False)
    description = Column(Text, nullable=False)
    amount = Column(Float, nullable=False)
    transaction_type = Column(String, nullable=False)  # income, expense
    merchant = Column(String, nullable=True)
    notes = Column(Text, nullable=True)
    category_id = Column(
        Integer,
        ForeignKey("categories.id", ondelete="SET NULL"),
        nullable=True,
    )
    source_hash = Column(String(64), nullable=True, index=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    category_rel = relationship("Category", back_populates="transactions", lazy="joined")

    @property
    def category_name(self) -> str | None:
        return self.category_rel.name if self.category_rel is not None else None
