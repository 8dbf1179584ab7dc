from sqlalchemy import Column, DateTime, Integer, String, DECIMAL, Index
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

Base = declarative_base()

class Round(Base):
    __tablename__ = 'rounds'

    id = Column(Integer, primary_key=True, autoincrement=True)
    round_number = Column(Integer, unique=True, nullable=False, index=True)
    crash_point = Column(DECIMAL(10, 2), nullable=False)
    seed = Column(String(255), nullable=True)  # disclosed at round start for verification
    status = Column(String(20), default='active', nullable=False)  # active, completed
    start_time = Column(DateTime(timezone=True), server_default=func.now())
    end_time = Column(DateTime(timezone=True), nullable=True)

class Transaction(Base):
    __tablename__ = 'transactions'

    id = Column(Integer, primary_key=True, autoincrement=True)
    player_id = Column(String(64), nullable=False, index=True)
    usd_amount = Column(DECIMAL(18, 2), nullable=False)
    crypto_amount = Column(DECIMAL(28, 8), nullable=False)
    currency = Column(String(10), nullable=False)  # BTC, ETH, USDT
    transaction_type = Column(String(10), nullable=False)  # bet, cashout
    transaction_hash = Column(String(64), unique=True, nullable=False)  # illustrative, not on-chain
    price_at_time = Column(DECIMAL(18, 8), nullable=False)
    round_number = Column(Integer, nullable=True)
    timestamp = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index('ix_transactions_player_timestamp', 'player_id', 'timestamp'),
    )
