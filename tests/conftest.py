# tests/conftest.py
import os
import tempfile

# Тестова база даних - тимчасовий файл SQLite; змінні задаються до імпорту застосунку
_db_dir = tempfile.mkdtemp(prefix="crm-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_db_dir, 'test.db')}"
os.environ["REDIS_URL"] = ""
os.environ["REQUIRE_EMAIL_CONFIRMATION"] = "false"

import pytest
from fastapi.testclient import TestClient

from app import models
from app.database import engine
from app.main import app

PASSWORD = "secret123"


@pytest.fixture(autouse=True)
def reset_database():
    """
    Фікстура, що створює чисту схему для кожного тесту.
    """
    models.Base.metadata.drop_all(bind=engine)
    models.Base.metadata.create_all(bind=engine)
    yield
    models.Base.metadata.drop_all(bind=engine)


@pytest.fixture
def make_client():
    """
    Фабрика клієнтів з окремими cookies (окремий "браузер" на кожного користувача).
    """
    clients = []

    def factory(email=None, full_name="Test User"):
        test_client = TestClient(app)
        clients.append(test_client)
        if email:
            response = test_client.post("/api/auth/signup", json={
                "email": email,
                "password": PASSWORD,
                "full_name": full_name,
            })
            assert response.status_code == 201, response.text
        return test_client

    yield factory
    for test_client in clients:
        test_client.close()


@pytest.fixture
def client(make_client):
    """
    Клієнт уже зареєстрованого та автентифікованого користувача.
    """
    return make_client("owner@example.com", "Owner")
