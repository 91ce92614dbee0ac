import unittest

from petpulse import models
from petpulse.auth import create_access_token
from petpulse.database import SessionLocal, engine

VET_ATTRS = {
    "owner_name": "Nimal Perera",
    "owner_phone": "0771234567",
    "owner_email": "nimal@petmail.lk",
    "pet_type": "Dog",
    "pet_size": "medium",
    "reason": "Vaccination booster",
}

GROOMING_ATTRS = {
    "owner_name": "Kasun Silva",
    "owner_phone": "0712345678",
    "owner_email": "kasun@petmail.lk",
    "pet_type": "Cat",
    "package_id": "full-grooming",
}

DAYCARE_ATTRS = {
    "owner_name": "Dilini Fernando",
    "owner_phone": "0761112233",
    "owner_email": "dilini@petmail.lk",
    "pet_type": "Dog",
    "pet_name": "Rex",
    "package_id": "full-day",
}


def auth_headers(user_id="user-1", role="user", name="Nimal Perera", email="nimal@petmail.lk"):
    token = create_access_token({"sub": user_id, "role": role, "name": name, "email": email})
    return {"Authorization": f"Bearer {token}"}


class DatabaseTestCase(unittest.TestCase):
    """Fresh schema on the in-memory engine for every test"""

    def setUp(self):
        models.Base.metadata.drop_all(bind=engine)
        models.Base.metadata.create_all(bind=engine)
        self.db = SessionLocal()

    def tearDown(self):
        self.db.close()
