from flask import request, jsonify, g, current_app
from mediconnect.services.data_service import data_service
from mediconnect.services.records_service import (
    load_patient_records, add_prescription, add_allergy, add_test_record
)
from mediconnect.utils.errors import RecordError


def _get_patient(uid):
    return data_service.query('patients', {'uid': uid}, single=True)


def _created(message, record, patient):
    # Reload so the new record shows up in its sorted position.
    # The write is committed at this point, so a failed reload still answers 201.
    try:
        records = load_patient_records(patient.uid, by='uid').to_dict()
    except RecordError as e:
        current_app.logger.warning(
            f"Reload after write failed for patient {patient.patient_id}: {e.kind}: {e.message}"
        )
        records = None

    return jsonify({
        'message': message,
        'record': record.to_dict(),
        'records': records,
        'refresh_failed': records is None
    }), 201


def create_prescription(uid):
    """Adds a prescription for the patient with this UID."""
    patient = _get_patient(uid)
    data = request.get_json(silent=True) or {}

    prescription = add_prescription(
        patient, data.get('medicines'), data.get('dosage'), doctor=g.account
    )
    return _created('Prescription added!', prescription, patient)


def create_allergy(uid):
    """Adds an allergy for the patient with this UID."""
    patient = _get_patient(uid)
    data = request.get_json(silent=True) or {}

    allergy = add_allergy(
        patient, data.get('allergen'), data.get('severity'), doctor=g.account
    )
    return _created('Allergy added!', allergy, patient)


def upload_test(uid):
    """Uploads a test image and records the test for the patient with this UID."""
    patient = _get_patient(uid)
    test_name = request.form.get('test_name')

    file = request.files.get('file')
    if file is not None and file.filename == '':
        file = None

    current_app.logger.info(
        f"Test upload: doctor {g.account.doctor_id} adding '{test_name}' for patient {patient.patient_id}"
    )

    test = add_test_record(patient, test_name, image=file, author=g.account)
    return _created('Test added!', test, patient)
