from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    DateTime,
    Float,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    func,
)

from .session import Base


class Listing(Base):
    """Denormalized, read-optimized listing projection that search runs against.

    Rows are written by ingestion and admin processes; search only reads them.
    """
    __tablename__ = "listings"

    id = Column(BigInteger, primary_key=True, autoincrement=False)
    category = Column("type", String(20), nullable=False, default="car")

    make = Column(String(100), nullable=True)
    model = Column(String(100), nullable=True)
    variant = Column(String(255), nullable=True)

    price = Column(Integer, nullable=True)
    mileage = Column(Integer, nullable=True)
    registration = Column(Integer, nullable=True)
    engine_size = Column(Numeric(4, 1), nullable=True)

    transmission = Column(String(50), nullable=True)
    fuel_type = Column(String(50), nullable=True)
    body_type = Column(String(50), nullable=True)
    emission_group = Column(String(50), nullable=True)
    drivetrain = Column(String(50), nullable=True)
    seats = Column(Integer, nullable=True)
    number_of_doors = Column(Integer, nullable=True)

    customs_paid = Column(Boolean, nullable=True)  # NULL = unknown
    can_exchange = Column(Boolean, default=False)
    sold = Column(Boolean, nullable=False, default=False)
    deleted = Column(String(1), nullable=False, default="0")

    caption = Column(Text, nullable=True)  # base64 of the original caption
    cleaned_caption = Column(Text, nullable=True)  # HTML/emoji stripped

    vendor_id = Column(BigInteger, nullable=True)
    account_name = Column(String(255), nullable=True)
    profile_picture = Column(String(1000), nullable=True)

    # Promotion windows, Unix epoch seconds
    promotion_to = Column(BigInteger, nullable=True)
    highlighted_to = Column(BigInteger, nullable=True)
    renew_to = Column(BigInteger, nullable=True)
    renew_interval = Column(String(20), nullable=True)
    renewed_time = Column(BigInteger, nullable=True)
    most_wanted_to = Column(BigInteger, nullable=True)
    created_time = Column(BigInteger, nullable=True)

    # Market price band for comparable listings
    min_price = Column(Integer, nullable=True)
    max_price = Column(Integer, nullable=True)

    date_created = Column(DateTime(timezone=True), server_default=func.now())
    date_updated = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        Index("ix_listings_browse", "type", "sold", "deleted", "renewed_time"),
        Index("ix_listings_make_model", "make", "model"),
        Index("ix_listings_promotion_to", "promotion_to"),
    )


class CarMakeModel(Base):
    """Make/model catalogue used to correct client spellings and detect variants."""
    __tablename__ = "car_make_model"

    id = Column(Integer, primary_key=True)
    make = Column(String(100), nullable=False, index=True)
    model = Column(String(100), nullable=False)
    is_variant = Column(Boolean, nullable=False, default=False)


class VisitorInterestTerm(Base):
    """Decayed per-visitor interest scores, keyed by the SHA-256 of the visitor id."""
    __tablename__ = "visitor_interest_terms"

    visitor_hash = Column(String(64), primary_key=True)
    term_key = Column(String(64), primary_key=True)
    term_value = Column(String(255), primary_key=True)
    score = Column(Float, nullable=False, default=0.0)
    date_updated = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
