import uuid
from datetime import datetime
from mediconnect.extensions import db


def _generate_uid():
    return str(uuid.uuid4())


class Patient(db.Model):
    """A patient account. `uid` is what patients, doctors and chemists use to find the record."""
    __tablename__ = 'patients'

    patient_id = db.Column(db.Integer, primary_key=True)
    uid = db.Column(db.String(64), unique=True, nullable=False, index=True, default=_generate_uid)
    username = db.Column(db.String(150), unique=True, nullable=False, index=True)
    age = db.Column(db.Integer)
    contact = db.Column(db.String(20))
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    # --- Relationships ---
    prescriptions = db.relationship('Prescription', back_populates='patient', lazy='dynamic')
    past_tests = db.relationship('PastTest', back_populates='patient', lazy='dynamic')
    allergies = db.relationship('Allergy', back_populates='patient', lazy='dynamic')

    role = 'patient'

    @property
    def id(self):
        return self.patient_id

    def to_dict(self):
        return {
            'patient_id': self.patient_id,
            'uid': self.uid,
            'username': self.username,
            'age': self.age,
            'contact': self.contact,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f'<Patient {self.patient_id}: {self.username} ({self.uid})>'


class Doctor(db.Model):
    __tablename__ = 'doctors'

    doctor_id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(150), unique=True, nullable=False, index=True)
    full_name = db.Column(db.String(255))
    contact = db.Column(db.String(20))

    role = 'doctor'

    @property
    def id(self):
        return self.doctor_id

    def to_dict(self):
        return {
            'doctor_id': self.doctor_id,
            'username': self.username,
            'full_name': self.full_name,
            'contact': self.contact,
        }

    def __repr__(self):
        return f'<Doctor {self.doctor_id}: {self.username}>'


class Chemist(db.Model):
    __tablename__ = 'chemists'

    chemist_id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(150), unique=True, nullable=False, index=True)
    full_name = db.Column(db.String(255))
    contact = db.Column(db.String(20))

    role = 'chemist'

    @property
    def id(self):
        return self.chemist_id

    def to_dict(self):
        return {
            'chemist_id': self.chemist_id,
            'username': self.username,
            'full_name': self.full_name,
            'contact': self.contact,
        }

    def __repr__(self):
        return f'<Chemist {self.chemist_id}: {self.username}>'


ACCOUNT_MODELS = {
    'patient': Patient,
    'doctor': Doctor,
    'chemist': Chemist,
}
