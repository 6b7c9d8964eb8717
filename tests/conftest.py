# tests/conftest.py
from datetime import datetime

import cloudinary.uploader
import pytest
from flask_jwt_extended import create_access_token

from config import TestingConfig
from mediconnect import create_app
from mediconnect.extensions import db
from mediconnect.models import Patient, Doctor, Chemist, Prescription, PastTest, Allergy


class FakeCloudinary:
    """Stands in for the Cloudinary upload API; keeps objects in a dict keyed by public id."""

    def __init__(self):
        self.objects = {}
        self.uploads = []
        self.destroyed = []
        self.fail_uploads = False

    def upload(self, file, public_id=None, **options):
        self.uploads.append(public_id)
        if self.fail_uploads:
            raise Exception('Connection reset by peer')
        if public_id in self.objects:
            return {'public_id': public_id, 'existing': True}

        data = file.read() if hasattr(file, 'read') else file
        self.objects[public_id] = data
        return {
            'public_id': public_id,
            'secure_url': f'https://res.cloudinary.com/mediconnect-test/image/upload/{public_id}',
            'bytes': len(data),
        }

    def destroy(self, public_id, **options):
        self.destroyed.append(public_id)
        if self.objects.pop(public_id, None) is None:
            return {'result': 'not found'}
        return {'result': 'ok'}


@pytest.fixture(autouse=True)
def fake_cloudinary(monkeypatch):
    fake = FakeCloudinary()
    monkeypatch.setattr(cloudinary.uploader, 'upload', fake.upload)
    monkeypatch.setattr(cloudinary.uploader, 'destroy', fake.destroy)
    return fake


@pytest.fixture
def app(tmp_path, monkeypatch):
    monkeypatch.setattr(TestingConfig, 'LOG_DIR', str(tmp_path / 'logs'))
    app = create_app('testing')

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def runner(app):
    return app.test_cli_runner()


@pytest.fixture
def alice(app):
    patient = Patient(uid='P100', username='alice', age=34, contact='9876543210')
    db.session.add(patient)
    db.session.commit()
    return patient


@pytest.fixture
def bob(app):
    patient = Patient(uid='P200', username='bob', age=51, contact='9123456780')
    db.session.add(patient)
    db.session.commit()
    return patient


@pytest.fixture
def doctor(app):
    account = Doctor(username='drsmith', full_name='Dr. Jane Smith', contact='9000000001')
    db.session.add(account)
    db.session.commit()
    return account


@pytest.fixture
def chemist(app):
    account = Chemist(username='chem1', full_name='City Pharmacy', contact='9000000002')
    db.session.add(account)
    db.session.commit()
    return account


@pytest.fixture
def alice_history(alice, doctor):
    """Three prescriptions over two months, two tests and one allergy for alice."""
    db.session.add_all([
        Prescription(patient_id=alice.patient_id, doctor_id=doctor.doctor_id, doctor_name=doctor.full_name,
                      medicines='Amoxicillin', dosage='500mg x3', created_at=datetime(2024, 1, 5, 9, 30)),
        Prescription(patient_id=alice.patient_id, doctor_id=doctor.doctor_id, doctor_name=doctor.full_name,
                     medicines='Paracetamol', dosage='650mg SOS', created_at=datetime(2024, 2, 11, 14, 0)),
        Prescription(patient_id=alice.patient_id, doctor_id=doctor.doctor_id, doctor_name=doctor.full_name,
                     medicines='Cetirizine', dosage='10mg nightly', created_at=datetime(2024, 1, 20, 18, 45)),
        PastTest(patient_id=alice.patient_id, test_name='CBC',
                 image_url='https://res.cloudinary.com/mediconnect-test/image/upload/v1/test_images/alice_1.png',
                 created_at=datetime(2024, 1, 6, 8, 0)),
        PastTest(patient_id=alice.patient_id, test_name='Chest X-Ray',
                 image_url='https://res.cloudinary.com/mediconnect-test/image/upload/v1/test_images/alice_2.png',
                 created_at=datetime(2024, 3, 2, 10, 15)),
        Allergy(patient_id=alice.patient_id, allergen='Penicillin', severity='Severe',
                added_by=doctor.full_name, created_at=datetime(2023, 12, 1, 12, 0)),
    ])
    db.session.commit()
    return alice


@pytest.fixture
def auth_headers(app):
    def make(account):
        claims = {'role': account.role}
        if account.role == 'patient':
            claims['uid'] = account.uid
        token = create_access_token(identity=str(account.id), additional_claims=claims)
        return {'Authorization': f'Bearer {token}'}
    return make
