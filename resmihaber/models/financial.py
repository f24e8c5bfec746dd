from sqlalchemy import Column, Integer, String, Date, DateTime, Float, Text, UniqueConstraint, Index
from sqlalchemy.sql import func

from resmihaber.database.connection import Base


class ObservationType:
    EXCHANGE_RATE = "exchange_rate"
    GOLD_PRICE = "gold_price"


class FinancialObservation(Base):
    """
    One reference value for a (type, code, date) key.

    Re-fetching the same date updates the row in place; the unique
    constraint backs the upsert.
    """
    __tablename__ = "financial_observations"
    __table_args__ = (
        UniqueConstraint("type", "code", "date", name="uq_financial_observation_key"),
        Index("ix_financial_observation_code_date", "type", "code", "date"),
    )

    id = Column(Integer, primary_key=True, index=True)

    type = Column(String, nullable=False)  # exchange_rate, gold_price
    code = Column(String, nullable=False)  # USD, EUR, XAU
    name = Column(String, nullable=True)
    value = Column(Float, nullable=False)
    unit = Column(String, nullable=False, default="TRY")
    date = Column(Date, nullable=False)
    source = Column(String, nullable=False, default="TCMB")

    # JSON object with the full quote (forex/banknote buy and sell, cross rates)
    details = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    def __repr__(self):
        return f"<FinancialObservation(type='{self.type}', code='{self.code}', date={self.date}, value={self.value})>"
