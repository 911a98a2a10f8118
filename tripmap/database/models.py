"""
SQLAlchemy table models for the tripmap row store.

Four logical tables back the system:
- trips: one row per trip
- legs: one row per leg, linked to its trip by ``trip_id`` (enforced by the
  mutation engine, not by a foreign key)
- airport_directory: bulk-loaded airport code -> coordinates table
- geocode_cache: append-only cache of resolved free-text queries

Every table carries an internal autoincrement ``row_id`` that only fixes the
insertion order; callers address rows by 1-based position, never by row_id.
"""

from sqlalchemy import Column, Integer, String, Date, DateTime, Float
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class TripRow(Base):
    """Trip header row: id, name and calendar date range."""
    __tablename__ = 'trips'

    row_id = Column(Integer, primary_key=True, autoincrement=True)

    id = Column(String(100), nullable=False, unique=True, index=True)
    name = Column(String(200), nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)

    def __repr__(self):
        return f"<TripRow(id='{self.id}', name='{self.name}', {self.start_date}..{self.end_date})>"


class LegRow(Base):
    """One directed segment of a trip."""
    __tablename__ = 'legs'

    row_id = Column(Integer, primary_key=True, autoincrement=True)

    trip_id = Column(String(100), nullable=False, index=True)
    order = Column(Integer, nullable=False)
    origin = Column(String(200), nullable=False)
    destination = Column(String(200), nullable=False)
    departure_date = Column(Date, nullable=False)
    arrival_date = Column(Date, nullable=True)
    mode = Column(String(10), nullable=False, default='flight')

    def __repr__(self):
        return (f"<LegRow(trip_id='{self.trip_id}', order={self.order}, "
                f"{self.origin}->{self.destination}, mode='{self.mode}')>")


class AirportDirectoryRow(Base):
    """Airport directory entry keyed by 3-letter IATA code."""
    __tablename__ = 'airport_directory'

    row_id = Column(Integer, primary_key=True, autoincrement=True)

    code = Column(String(3), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    lat = Column(Float, nullable=False)
    lng = Column(Float, nullable=False)

    def __repr__(self):
        return f"<AirportDirectoryRow(code='{self.code}', name='{self.name}')>"


class GeocodeCacheRow(Base):
    """Resolved geocoder answer for a normalized (lowercased, trimmed) query."""
    __tablename__ = 'geocode_cache'

    row_id = Column(Integer, primary_key=True, autoincrement=True)

    query = Column(String(500), nullable=False, index=True)
    name = Column(String(500), nullable=False)
    lat = Column(Float, nullable=False)
    lng = Column(Float, nullable=False)
    cached_at = Column(DateTime, nullable=False)

    def __repr__(self):
        return f"<GeocodeCacheRow(query='{self.query}', name='{self.name}')>"


# Logical table name -> model, the row store's addressing scheme
TABLES = {
    TripRow.__tablename__: TripRow,
    LegRow.__tablename__: LegRow,
    AirportDirectoryRow.__tablename__: AirportDirectoryRow,
    GeocodeCacheRow.__tablename__: GeocodeCacheRow,
}


def create_all_tables(engine):
    """Create all tables on the given engine."""
    Base.metadata.create_all(bind=engine)


__all__ = [
    'Base',
    'TripRow',
    'LegRow',
    'AirportDirectoryRow',
    'GeocodeCacheRow',
    'TABLES',
    'create_all_tables',
]
