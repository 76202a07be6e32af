from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.orm import relationship

from spendsort.core.database import Base


class Rule(Base):
    """Rule model for categorizing transactions automatically.

    Active rules are evaluated by ascending ``priority`` and then ``id``;
    the first rule whose condition holds decides the category.
    """

    __tablename__ = "rules"
    __table_args__ = (
        Index("ix_rules_active_priority", "is_active", "priority"),
    )

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    field = Column(String, nullable=False)
    operator = Column(String, nullable=False)
    value = Column(String, nullable=False)
    category_id = Column(Integer, ForeignKey("categories.id"), nullable=False, index=True)
    priority = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    category = relationship("Category", back_populates="rules", lazy="joined")

    @property
    def category_name(self) -> str | None:
        return self.category.name if self.category is not None else None

    def __repr__(self) -> str:
        return (
            f"<Rule(id={self.id}, name='{self.name}', {self.field} {self.operator} "
            f"'{self.value}', priority={self.priority})>"
        )
