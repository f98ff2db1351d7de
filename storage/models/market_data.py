"""
Market Data Domain ORM Models.

============================================================
PURPOSE
============================================================
Persistence targets of the three provider feeds.

============================================================
DATA LIFECYCLE ROLE
============================================================
- cryptocurrencies: current-state entity rows (insert-or-replace)
- cryptocurrency_prices: time series, unique (cmc_id, timestamp)
- cryptocurrency_tags: side table, unique (cmc_id, tag)
- fear_greed_index: time series, unique timestamp
- altcoin_season_index: time series, unique timestamp

Time-series rows are immutable once written; a re-fetch of an
overlapping window inserts nothing for points already present.

============================================================
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from storage.models.base import Base, CreatedAtMixin


class Cryptocurrency(Base):
    """
    Listed cryptocurrency, keyed by the provider's numeric id.

    Name, symbol, slug and supply fields are replaced on every
    listings refresh.
    """

    __tablename__ = "cryptocurrencies"

    cmc_id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=False,
        comment="Provider cryptocurrency id"
    )

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    symbol: Mapped[str] = mapped_column(String(20), nullable=False)
    slug: Mapped[str] = mapped_column(String(100), nullable=False)

    max_supply: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    infinite_supply: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    date_added: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        comment="Last listings refresh touching this row"
    )

    prices: Mapped[List["CryptocurrencyPrice"]] = relationship(
        back_populates="cryptocurrency",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    tags: Mapped[List["CryptocurrencyTag"]] = relationship(
        back_populates="cryptocurrency",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        Index("idx_cryptocurrencies_symbol", "symbol"),
    )

    def __repr__(self) -> str:
        return f"<Cryptocurrency {self.cmc_id} {self.symbol}>"


class CryptocurrencyPrice(Base, CreatedAtMixin):
    """USD quote snapshot of a cryptocurrency at the provider's last_updated time."""

    __tablename__ = "cryptocurrency_prices"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    cmc_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("cryptocurrencies.cmc_id", ondelete="CASCADE"),
        nullable=False,
    )
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    price_usd: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    volume_24h: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    volume_change_24h: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    percent_change_1h: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    percent_change_24h: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    percent_change_7d: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    market_cap: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    market_cap_dominance: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    fully_diluted_market_cap: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    circulating_supply: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    total_supply: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    cmc_rank: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    num_market_pairs: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    cryptocurrency: Mapped[Cryptocurrency] = relationship(back_populates="prices")

    __table_args__ = (
        UniqueConstraint("cmc_id", "timestamp", name="uq_cryptocurrency_prices_cmc_id_timestamp"),
        Index("idx_cryptocurrency_prices_cmc_id", "cmc_id"),
        Index("idx_cryptocurrency_prices_timestamp", "timestamp"),
    )


class CryptocurrencyTag(Base, CreatedAtMixin):
    """Provider tag attached to a cryptocurrency."""

    __tablename__ = "cryptocurrency_tags"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    cmc_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("cryptocurrencies.cmc_id", ondelete="CASCADE"),
        nullable=False,
    )
    tag: Mapped[str] = mapped_column(String(100), nullable=False)

    cryptocurrency: Mapped[Cryptocurrency] = relationship(back_populates="tags")

    __table_args__ = (
        UniqueConstraint("cmc_id", "tag", name="uq_cryptocurrency_tags_cmc_id_tag"),
        Index("idx_cryptocurrency_tags_cmc_id", "cmc_id"),
    )


class FearGreedIndex(Base, CreatedAtMixin):
    """Daily fear-and-greed reading."""

    __tablename__ = "fear_greed_index"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        unique=True,
    )
    value: Mapped[int] = mapped_column(Integer, nullable=False)
    value_classification: Mapped[str] = mapped_column(String(50), nullable=False)

    __table_args__ = (
        Index("idx_fear_greed_index_timestamp", "timestamp"),
    )


class AltcoinSeasonIndex(Base, CreatedAtMixin):
    """Altcoin-season index point with the altcoin market cap at that time."""

    __tablename__ = "altcoin_season_index"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        unique=True,
    )
    altcoin_index: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    altcoin_marketcap: Mapped[Decimal] = mapped_column(Numeric(20, 2), nullable=False)

    __table_args__ = (
        Index("idx_altcoin_season_index_timestamp", "timestamp"),
    )
