# tests/test_records_service.py
import random
from datetime import datetime

import pytest
from sqlalchemy.exc import OperationalError

from mediconnect.extensions import db
from mediconnect.models import Patient, Prescription, Allergy
from mediconnect.services.data_service import DataService
from mediconnect.services.records_service import (
    load_patient_records, monthly_histogram, build_insights, add_prescription, add_allergy
)
from mediconnect.utils.errors import NotFound, ValidationFailure, ServiceFailure


class BrokenQuery:
    def filter_by(self, **filters):
        raise OperationalError('SELECT 1', {}, Exception('server closed the connection unexpectedly'))


def _is_newest_first(records):
    stamps = [r.created_at for r in records]
    return all(a > b for a, b in zip(stamps, stamps[1:]))


def test_load_by_uid_returns_collections_newest_first(alice_history):
    bundle = load_patient_records('P100')

    assert bundle.patient.username == 'alice'
    assert [p.medicines for p in bundle.prescriptions] == ['Paracetamol', 'Cetirizine', 'Amoxicillin']
    assert [t.test_name for t in bundle.tests] == ['Chest X-Ray', 'CBC']
    assert [a.allergen for a in bundle.allergies] == ['Penicillin']
    assert _is_newest_first(bundle.prescriptions)
    assert _is_newest_first(bundle.tests)


def test_load_by_username(alice_history):
    bundle = load_patient_records('alice', by='username')
    assert bundle.patient.uid == 'P100'
    assert len(bundle.prescriptions) == 3


def test_load_only_returns_records_of_that_patient(alice_history, bob):
    db.session.add(Prescription(patient_id=bob.patient_id, medicines='Metformin', dosage='500mg'))
    db.session.commit()

    bundle = load_patient_records('P200')
    assert [p.medicines for p in bundle.prescriptions] == ['Metformin']
    assert bundle.tests == []
    assert bundle.allergies == []


def test_equal_timestamps_fall_back_to_insert_order(alice):
    same_time = datetime(2024, 5, 1, 12, 0)
    db.session.add_all([
        Allergy(patient_id=alice.patient_id, allergen='Dust', severity='Mild', created_at=same_time),
        Allergy(patient_id=alice.patient_id, allergen='Pollen', severity='Mild', created_at=same_time),
    ])
    db.session.commit()

    bundle = load_patient_records('P100')
    assert [a.allergen for a in bundle.allergies] == ['Pollen', 'Dust']


def test_unknown_uid_is_not_found(alice):
    with pytest.raises(NotFound) as excinfo:
        load_patient_records('P999')
    assert excinfo.value.kind == 'not_found'


@pytest.mark.parametrize('identifier', ['', '   ', None])
def test_empty_identifier_is_rejected(app, identifier):
    with pytest.raises(ValidationFailure):
        load_patient_records(identifier)


def test_unknown_lookup_field_is_rejected(app):
    with pytest.raises(ValidationFailure):
        load_patient_records('9876543210', by='contact')


def test_database_error_is_service_failure_not_not_found(alice, monkeypatch):
    monkeypatch.setattr(Patient, 'query', BrokenQuery())

    with pytest.raises(ServiceFailure) as excinfo:
        load_patient_records('P100')
    assert excinfo.value.kind == 'service_failure'
    assert not isinstance(excinfo.value, NotFound)


def test_query_single_fails_when_several_rows_match(alice, bob):
    with pytest.raises(NotFound):
        DataService().query('patients', {}, single=True)


def test_query_unknown_collection(app):
    with pytest.raises(ServiceFailure):
        DataService().query('appointments', {})


def test_insert_returns_generated_uid(app):
    patient, = DataService().insert('patients', [{'username': 'carol', 'age': 29, 'contact': '9012345678'}],
                                    returning=True)
    assert patient.uid
    assert Patient.query.filter_by(uid=patient.uid).one().username == 'carol'


def test_insert_constraint_violation_is_service_failure(alice):
    with pytest.raises(ServiceFailure):
        DataService().insert('patients', [{'username': 'alice', 'age': 40, 'contact': '9000000000'}])
    # session is usable again after the rollback
    assert Patient.query.count() == 1


# --- monthly histogram ---------------------------------------------------------------

def test_histogram_groups_by_month_ascending(alice_history):
    bundle = load_patient_records('P100')
    assert monthly_histogram(bundle.prescriptions) == [
        {'month': '2024-01', 'count': 2},
        {'month': '2024-02', 'count': 1},
    ]


def test_histogram_is_order_independent_and_idempotent():
    stamps = [
        datetime(2023, 12, 31, 23, 59),
        datetime(2024, 1, 1, 0, 0),
        datetime(2024, 1, 15),
        datetime(2024, 10, 2),
        datetime(2024, 2, 29),
    ]
    expected = monthly_histogram(stamps)
    for _ in range(5):
        shuffled = stamps[:]
        random.shuffle(shuffled)
        assert monthly_histogram(shuffled) == expected
    assert monthly_histogram(stamps) == expected
    assert [row['month'] for row in expected] == ['2023-12', '2024-01', '2024-02', '2024-10']


def test_histogram_accepts_dicts_and_iso_strings_and_skips_missing():
    records = [
        {'created_at': '2024-03-04T10:00:00'},
        {'created_at': '2024-03-28T23:00:00Z'},
        {'created_at': None},
        {},
    ]
    assert monthly_histogram(records) == [{'month': '2024-03', 'count': 2}]


def test_histogram_skips_unparseable_timestamps():
    records = [{'created_at': 'Jan 5 2024'}, {'created_at': '2024-01-05T09:30:00'}]
    assert monthly_histogram(records) == [{'month': '2024-01', 'count': 1}]


def test_histogram_of_nothing_is_empty():
    assert monthly_histogram([]) == []


def test_build_insights(alice_history):
    insights = build_insights(load_patient_records('P100'))
    assert insights['totals'] == {'prescriptions': 3, 'tests': 2, 'allergies': 1}
    assert insights['tests_per_month'] == [
        {'month': '2024-01', 'count': 1},
        {'month': '2024-03', 'count': 1},
    ]


# --- prescriptions and allergies -------------------------------------------------------

def test_add_prescription_attributes_doctor(alice, doctor):
    prescription = add_prescription(alice, 'Ibuprofen', '400mg x2', doctor=doctor)

    assert prescription.prescription_id is not None
    assert prescription.doctor_id == doctor.doctor_id
    assert prescription.doctor_name == 'Dr. Jane Smith'
    assert load_patient_records('P100').prescriptions[0].medicines == 'Ibuprofen'


@pytest.mark.parametrize('medicines,dosage', [('', '1 tab'), ('Ibuprofen', ''), (None, None), ('  ', '1 tab')])
def test_add_prescription_requires_both_fields(alice, medicines, dosage):
    with pytest.raises(ValidationFailure):
        add_prescription(alice, medicines, dosage)
    assert Prescription.query.count() == 0


def test_add_prescription_requires_patient(app):
    with pytest.raises(ValidationFailure):
        add_prescription(None, 'Ibuprofen', '400mg')


def test_add_allergy_without_author(alice):
    allergy = add_allergy(alice, 'Peanuts', 'Moderate')
    assert allergy.doctor_id is None
    assert allergy.added_by is None
    assert allergy.patient_id == alice.patient_id


def test_add_allergy_records_added_by(alice, doctor):
    allergy = add_allergy(alice, 'Latex', 'Mild', doctor=doctor)
    assert allergy.added_by == 'Dr. Jane Smith'


def test_add_allergy_requires_severity(alice):
    with pytest.raises(ValidationFailure):
        add_allergy(alice, 'Latex', '')
    assert Allergy.query.count() == 0
