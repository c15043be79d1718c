from datetime import date
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from patient_ledger.core.security import create_access_token
from patient_ledger.core.settings import settings
from patient_ledger.db.session import get_db
from patient_ledger.main import app
from patient_ledger.models import Base
from patient_ledger.models.patient import Patient, PatientStatus
from patient_ledger.models.user import Role, User


@pytest.fixture()
def engine(tmp_path):
    db_path = tmp_path / "ledger.db"
    engine = create_engine(
        f"sqlite:///{db_path}",
        connect_args={"check_same_thread": False, "timeout": 15},
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture()
def db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def staff_user(db_session):
    user = User(email="accounts@example.com", full_name="Accounts Desk", role=Role.accounts)
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture()
def make_patient(db_session):
    def _make(
        name: str = "Ravi Kumar",
        *,
        monthly_fees: str = "2000",
        other_fees: str = "0",
        blood_test_fee: str = "0",
        pickup_charge: str = "0",
        admission_date: date = date(2024, 1, 5),
        status: PatientStatus = PatientStatus.active,
        registration_id: str | None = None,
    ) -> Patient:
        patient = Patient(
            name=name,
            registration_id=registration_id,
            status=status,
            admission_date=admission_date,
            monthly_fees=Decimal(monthly_fees),
            other_fees=Decimal(other_fees),
            blood_test_fee=Decimal(blood_test_fee),
            pickup_charge=Decimal(pickup_charge),
        )
        db_session.add(patient)
        db_session.commit()
        return patient

    return _make


@pytest.fixture()
def api_client(session_factory):
    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    client = TestClient(app)
    try:
        yield client
    finally:
        app.dependency_overrides.clear()


@pytest.fixture()
def auth_headers(staff_user):
    token = create_access_token(
        subject=str(staff_user.id),
        secret=settings.secret_key,
        alg=settings.jwt_alg,
        expires_minutes=5,
    )
    return {"Authorization": f"Bearer {token}"}
