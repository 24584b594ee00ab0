from __future__ import annotations

import pathlib
import sys
from datetime import time
from types import SimpleNamespace

import pytest
from sqlalchemy.orm import sessionmaker

PROJECT_ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from winterdienst import crud, database, models, schemas


@pytest.fixture()
def session_factory(tmp_path):
    engine = database.make_engine(f"sqlite:///{tmp_path / 'winterdienst-test.db'}")
    models.Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield factory
    engine.dispose()


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def seeded(db):
    admin = crud.create_user(db, schemas.UserCreate(name="Anna Admin", email="anna@example.com", role="admin"))
    worker = crud.create_user(db, schemas.UserCreate(name="Bernd Berg", email="bernd@example.com"))
    colleague = crud.create_user(db, schemas.UserCreate(name="Clara Kurz", email="clara@example.com"))
    guest = crud.create_user(db, schemas.UserCreate(name="Gerd Gast", email="gerd@example.com", role="gast"))
    city = crud.create_city(db, schemas.CityCreate(name="Musterstadt"))
    area = crud.create_area(db, city.id, schemas.AreaCreate(name="Nord"))
    main_street = crud.create_street(db, schemas.StreetCreate(name="Hauptstraße", area_id=area.id))
    school_road = crud.create_street(db, schemas.StreetCreate(name="Schulweg", area_id=area.id, is_bg=True))
    return SimpleNamespace(
        admin=admin,
        worker=worker,
        colleague=colleague,
        guest=guest,
        city=city,
        area=area,
        street=main_street,
        bg_street=school_road,
    )


def add_log(db, user_id, street_id, work_date, start, end, notes=None):
    log = models.WorkLog(
        user_id=user_id,
        street_id=street_id,
        work_date=work_date,
        start_time=time.fromisoformat(start),
        end_time=time.fromisoformat(end) if end else None,
        notes=notes,
    )
    db.add(log)
    db.commit()
    db.refresh(log)
    return log
