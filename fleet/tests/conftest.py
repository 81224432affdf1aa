# fleet/tests/conftest.py

import os

# Settings and the module-level engine are built on import.
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("ENVIRONMENT", "test")

from datetime import date, datetime
from decimal import Decimal

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import fleet.models  # noqa: F401
from fleet.core.clock import FixedClock
from fleet.core.db import Base
from fleet.customers.models import Customer, CustomerStatus
from fleet.rentals.models import Rental, RentalStatus
from fleet.vehicles.models import Vehicle, VehicleStatus


@pytest.fixture
def engine():
    """In-memory SQLite shared by every connection of one test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # pysqlite only gets SAVEPOINT right when it leaves transactions to us
    @event.listens_for(engine, "connect")
    def _set_isolation(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(engine):
    """Database session fixture."""
    TestSession = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    db = TestSession()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def clock():
    return FixedClock(datetime(2024, 3, 1, 9, 0, 0))


@pytest.fixture
def sample_customer(db_session):
    """Create a sample customer for testing"""
    customer = Customer(name="Test Customer", email="test@customer.com", phone="07700 900123",
                        status=CustomerStatus.ACTIVE)
    db_session.add(customer)
    db_session.commit()
    return customer


@pytest.fixture
def sample_vehicle(db_session):
    """Create a sample vehicle for testing"""
    vehicle = Vehicle(reg="AB12 CDE", make="Ford", model="Transit", status=VehicleStatus.AVAILABLE)
    db_session.add(vehicle)
    db_session.commit()
    return vehicle


@pytest.fixture
def sample_rental(db_session, sample_customer, sample_vehicle):
    """Create a sample rental for testing"""
    rental = Rental(
        customer_id=sample_customer.id,
        vehicle_id=sample_vehicle.id,
        start_date=date(2024, 1, 1),
        monthly_amount=Decimal("1000.00"),
        status=RentalStatus.ACTIVE,
    )
    sample_vehicle.status = VehicleStatus.RENTED
    db_session.add(rental)
    db_session.commit()
    return rental
