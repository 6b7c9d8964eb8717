from datetime import datetime
from mediconnect.extensions import db


def _isoformat(value):
    return value.isoformat() if value else None


class Prescription(db.Model):
    """A prescription written for a patient."""
    __tablename__ = 'prescriptions'

    prescription_id = db.Column(db.Integer, primary_key=True)
    patient_id = db.Column(db.Integer, db.ForeignKey('patients.patient_id'), nullable=False, index=True)
    doctor_id = db.Column(db.Integer, db.ForeignKey('doctors.doctor_id'))
    doctor_name = db.Column(db.String(255))
    medicines = db.Column(db.Text, nullable=False)
    dosage = db.Column(db.Text, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    patient = db.relationship('Patient', back_populates='prescriptions')

    def to_dict(self):
        return {
            'prescription_id': self.prescription_id,
            'patient_id': self.patient_id,
            'doctor_id': self.doctor_id,
            'doctor_name': self.doctor_name,
            'medicines': self.medicines,
            'dosage': self.dosage,
            'created_at': _isoformat(self.created_at),
        }

    def __repr__(self):
        return f'<Prescription {self.prescription_id} for Patient {self.patient_id}>'


class PastTest(db.Model):
    """A test record. `image_url` points at an object already stored in the test_images bucket."""
    __tablename__ = 'past_tests'

    test_id = db.Column(db.Integer, primary_key=True)
    patient_id = db.Column(db.Integer, db.ForeignKey('patients.patient_id'), nullable=False, index=True)
    doctor_id = db.Column(db.Integer, db.ForeignKey('doctors.doctor_id'))
    test_name = db.Column(db.String(255), nullable=False)
    image_url = db.Column(db.String(1024))
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    patient = db.relationship('Patient', back_populates='past_tests')

    def to_dict(self):
        return {
            'test_id': self.test_id,
            'patient_id': self.patient_id,
            'doctor_id': self.doctor_id,
            'test_name': self.test_name,
            'image_url': self.image_url,
            'created_at': _isoformat(self.created_at),
        }

    def __repr__(self):
        return f'<PastTest {self.test_id}: {self.test_name} for Patient {self.patient_id}>'


class Allergy(db.Model):
    __tablename__ = 'allergies'

    allergy_id = db.Column(db.Integer, primary_key=True)
    patient_id = db.Column(db.Integer, db.ForeignKey('patients.patient_id'), nullable=False, index=True)
    doctor_id = db.Column(db.Integer, db.ForeignKey('doctors.doctor_id'))
    allergen = db.Column(db.String(255), nullable=False)
    severity = db.Column(db.String(50), nullable=False)
    added_by = db.Column(db.String(255))
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    patient = db.relationship('Patient', back_populates='allergies')

    def to_dict(self):
        return {
            'allergy_id': self.allergy_id,
            'patient_id': self.patient_id,
            'doctor_id': self.doctor_id,
            'allergen': self.allergen,
            'severity': self.severity,
            'added_by': self.added_by,
            'created_at': _isoformat(self.created_at),
        }

    def __repr__(self):
        return f'<Allergy {self.allergy_id}: {self.allergen} for Patient {self.patient_id}>'
