import unittest

import mongomock
from fastapi.testclient import TestClient
from jose import jwt

from app.core.auth import AuthService, get_auth_service
from app.core.config import Settings
from app.db.mongodb import get_mongo_db, init_mongo_indexes
from app.main import create_app


TEST_SECRET = 'test-secret'


def make_auth_service() -> AuthService:
    return AuthService(Settings(jwt_secret=TEST_SECRET, salt_rounds=4))


def decode(token: str) -> dict:
    return jwt.decode(token, TEST_SECRET, algorithms=['HS256'])


def bearer(token: str) -> dict:
    return {'Authorization': f'Bearer {token}'}


class ApiTestCase(unittest.TestCase):
    """App wired to an in-memory MongoDB and a fast AuthService."""

    def setUp(self):
        self.mongo = mongomock.MongoClient()
        self.db = self.mongo['batch_manager_test']
        init_mongo_indexes(self.db)
        self.auth = make_auth_service()

        self.app = create_app()
        self.app.dependency_overrides[get_mongo_db] = lambda: self.db
        self.app.dependency_overrides[get_auth_service] = lambda: self.auth
        self.client = TestClient(self.app)

    def tearDown(self):
        self.client.close()
        self.mongo.close()

    def register_admin(self, name='A', email='a@x.com', password='secret1') -> dict:
        response = self.client.post('/admin/register', json={'name': name, 'email': email, 'password': password})
        self.assertEqual(response.status_code, 201, response.text)
        return response.json()

    def create_batch(self, teacher_id: str, batch_code='cs101', name='CS', class_label='10') -> dict:
        response = self.client.post(
            '/admin/batches',
            json={'batch_code': batch_code, 'name': name, 'class': class_label, 'teacher_id': teacher_id},
        )
        self.assertEqual(response.status_code, 201, response.text)
        return response.json()['batch']

    def register_student(self, name='S', email='s@x.com', parent_email='p@x.com', password='secret1') -> dict:
        response = self.client.post(
            '/user/register',
            json={'name': name, 'email': email, 'parentEmail': parent_email, 'password': password},
        )
        self.assertEqual(response.status_code, 201, response.text)
        return response.json()

    def login_parent(self, email='p@x.com', password='secret1') -> dict:
        response = self.client.post('/user/login/parent', json={'email': email, 'password': password})
        self.assertEqual(response.status_code, 200, response.text)
        return response.json()
