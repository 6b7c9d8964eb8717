import logging
import time
from collections import Counter
from datetime import datetime
from typing import List, Optional

from flask import current_app
from werkzeug.utils import secure_filename

from mediconnect.services.data_service import data_service as default_data_service
from mediconnect.utils.cloudinary_util import cloudinary_manager
from mediconnect.utils.errors import ValidationFailure, ServiceFailure, PartialFailure

logger = logging.getLogger(__name__)

SECTIONS = ('prescriptions', 'tests', 'allergies')
LOOKUP_FIELDS = ('uid', 'username')


class RecordBundle:
    """A patient together with everything recorded for them at load time, newest first."""

    def __init__(self, patient, prescriptions, tests, allergies):
        self.patient = patient
        self.prescriptions = list(prescriptions)
        self.tests = list(tests)
        self.allergies = list(allergies)

    def section(self, name):
        return getattr(self, name)

    def to_dict(self, sections=SECTIONS):
        data = {'patient': self.patient.to_dict()}
        for name in sections:
            data[name] = [record.to_dict() for record in self.section(name)]
        return data

    def __repr__(self):
        return (f'<RecordBundle {self.patient.uid}: {len(self.prescriptions)} prescriptions, '
                f'{len(self.tests)} tests, {len(self.allergies)} allergies>')


def _require(value, message):
    if value is None or not str(value).strip():
        raise ValidationFailure(message)
    return str(value).strip()


def load_patient_records(identifier, by='uid', data_service=None) -> RecordBundle:
    """
    Loads a patient and their prescriptions, past tests and allergies.

    Args:
        identifier (str): the patient's UID or username
        by (str): which of the two `identifier` is
        data_service (DataService, optional): storage boundary, defaults to the app-wide one

    Returns:
        RecordBundle: the patient plus the three collections, each newest first

    Raises:
        ValidationFailure: empty identifier or unknown lookup field
        NotFound: no single patient matches
        ServiceFailure: a storage call failed
    """
    ds = data_service or default_data_service
    if by not in LOOKUP_FIELDS:
        raise ValidationFailure(f"Patients can only be looked up by {' or '.join(LOOKUP_FIELDS)}")
    identifier = _require(identifier, 'Patient identifier is required')

    logger.debug(f"RECORDS: loading patient by {by} '{identifier}'")
    patient = ds.query('patients', {by: identifier}, single=True)

    # Three independent reads; no transaction spans them
    scope = {'patient_id': patient.patient_id}
    prescriptions = ds.query('prescriptions', scope, order_by='created_at', descending=True)
    tests = ds.query('past_tests', scope, order_by='created_at', descending=True)
    allergies = ds.query('allergies', scope, order_by='created_at', descending=True)

    bundle = RecordBundle(patient, prescriptions, tests, allergies)
    logger.info(f"RECORDS: loaded {bundle!r}")
    return bundle


def _created_at(record):
    if isinstance(record, dict):
        value = record.get('created_at')
    elif isinstance(record, (datetime, str)):
        value = record
    else:
        value = getattr(record, 'created_at', None)

    if not value:
        return None
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value.replace('Z', '+00:00'))
        except ValueError:
            return None
    return value


def monthly_histogram(records) -> List[dict]:
    """Counts records per calendar month, oldest month first: [{'month': '2024-01', 'count': 2}, ...]."""
    counts = Counter()
    for record in records:
        created_at = _created_at(record)
        if created_at is None:
            continue
        counts[f"{created_at.year:04d}-{created_at.month:02d}"] += 1
    return [{'month': month, 'count': counts[month]} for month in sorted(counts)]


def build_insights(bundle):
    return {
        'prescriptions_per_month': monthly_histogram(bundle.prescriptions),
        'tests_per_month': monthly_histogram(bundle.tests),
        'totals': {name: len(bundle.section(name)) for name in SECTIONS},
    }


def add_prescription(patient, medicines, dosage, doctor=None, data_service=None):
    """Creates a prescription for `patient`, attributed to `doctor` when given."""
    ds = data_service or default_data_service
    if patient is None:
        raise ValidationFailure('No patient selected!')
    if not (medicines and str(medicines).strip()) or not (dosage and str(dosage).strip()):
        raise ValidationFailure('Fill all fields!')

    row = {
        'patient_id': patient.patient_id,
        'medicines': str(medicines).strip(),
        'dosage': str(dosage).strip(),
    }
    if doctor is not None:
        row['doctor_id'] = doctor.doctor_id
        row['doctor_name'] = doctor.full_name or doctor.username

    created, = ds.insert('prescriptions', [row], returning=True)
    return created


def add_allergy(patient, allergen, severity, doctor=None, data_service=None):
    """Records an allergy for `patient`, attributed to `doctor` when given."""
    ds = data_service or default_data_service
    if patient is None:
        raise ValidationFailure('No patient selected!')
    if not (allergen and str(allergen).strip()) or not (severity and str(severity).strip()):
        raise ValidationFailure('Fill all fields!')

    row = {
        'patient_id': patient.patient_id,
        'allergen': str(allergen).strip(),
        'severity': str(severity).strip(),
    }
    if doctor is not None:
        row['doctor_id'] = doctor.doctor_id
        row['added_by'] = doctor.full_name or doctor.username

    created, = ds.insert('allergies', [row], returning=True)
    return created


def derive_storage_key(username, filename, now=None):
    """`<username>_<epoch millis>.<ext>`, e.g. alice_1706745600000.png."""
    millis = int((now if now is not None else time.time()) * 1000)
    stem = secure_filename(username) or 'patient'
    extension = cloudinary_manager.get_file_extension(filename)
    if extension:
        return f"{stem}_{millis}.{extension}"
    return f"{stem}_{millis}"


class TestRecordUpload:
    """
    Adds a past test with an attached image: upload, resolve the URL, then insert.

    One instance per attempt. `state` moves IDLE -> UPLOADING -> UPLOADED ->
    LINKING -> DONE, or to FAILED with `failed_step` set. A failed attempt is
    not retried; callers start a new one.
    """

    IDLE = 'idle'
    UPLOADING = 'uploading'
    UPLOADED = 'uploaded'
    LINKING = 'linking'
    DONE = 'done'
    FAILED = 'failed'

    __test__ = False  # not a pytest test class

    def __init__(self, patient, test_name, image=None, filename=None, author=None,
                 data_service=None, clock=None):
        self.patient = patient
        self.test_name = test_name
        self.image = image
        self.filename = filename if filename is not None else getattr(image, 'filename', None)
        self.author = author
        self.data_service = data_service or default_data_service
        self.clock = clock or time.time

        self.state = self.IDLE
        self.failed_step: Optional[str] = None
        self.storage_key: Optional[str] = None
        self.image_url: Optional[str] = None
        self.record = None
        self.cleaned_up = False

    @property
    def bucket(self):
        return current_app.config['TEST_IMAGES_BUCKET']

    def validate(self):
        """Presence and format checks. Nothing touches storage before these pass."""
        config = current_app.config
        if self.patient is None:
            raise ValidationFailure('No patient selected!')
        if not self.test_name or not str(self.test_name).strip():
            raise ValidationFailure('Enter test name and select an image!')

        if self.image is None:
            if config['TEST_IMAGE_REQUIRED']:
                raise ValidationFailure('Enter test name and select an image!')
            return

        if not cloudinary_manager.is_allowed_image(self.filename, config['ALLOWED_TEST_IMAGE_EXTENSIONS']):
            raise ValidationFailure('File type not allowed')
        if cloudinary_manager.file_size(self.image) > config['MAX_TEST_IMAGE_BYTES']:
            raise ValidationFailure('File size exceeds the upload limit')

    def run(self):
        if self.state != self.IDLE:
            raise RuntimeError('A test record upload can only run once')

        try:
            self.validate()
        except ValidationFailure:
            self._fail('validation')
            raise

        if self.image is not None:
            self._upload()
            self._resolve()
        return self._link()

    def _fail(self, step):
        self.state = self.FAILED
        self.failed_step = step

    def _upload(self):
        self.state = self.UPLOADING
        self.storage_key = derive_storage_key(self.patient.username, self.filename, self.clock())
        try:
            self.data_service.upload(self.bucket, self.storage_key, self.image)
        except ServiceFailure:
            self._fail('upload')
            current_app.logger.error(f"Upload of '{self.storage_key}' failed; no test record created")
            raise
        self.state = self.UPLOADED

    def _resolve(self):
        try:
            self.image_url = self.data_service.public_url(self.bucket, self.storage_key)
        except ServiceFailure:
            # Counts as an upload failure: nothing usable was stored
            self._fail('upload')
            raise

    def _link(self):
        self.state = self.LINKING
        row = {
            'patient_id': self.patient.patient_id,
            'test_name': str(self.test_name).strip(),
            'image_url': self.image_url,
        }
        if self.author is not None:
            row['doctor_id'] = self.author.doctor_id

        try:
            self.record, = self.data_service.insert('past_tests', [row], returning=True)
        except ServiceFailure as e:
            self._fail('link')
            if self.storage_key is None:
                raise
            self._compensate()
            raise PartialFailure(
                f"Upload error: {e.message}",
                key=self.storage_key,
                orphaned=not self.cleaned_up,
            ) from e

        self.state = self.DONE
        current_app.logger.info(f"Test '{self.record.test_name}' linked to patient {self.patient.patient_id}")
        return self.record

    def _compensate(self):
        if not current_app.config['TEST_IMAGE_CLEANUP_ON_LINK_FAILURE']:
            current_app.logger.warning(f"Insert failed; '{self.storage_key}' left orphaned in storage")
            return
        try:
            self.cleaned_up = self.data_service.remove(self.bucket, self.storage_key)
        except Exception as e:
            current_app.logger.error(f"Cleanup of '{self.storage_key}' failed: {e}")
            self.cleaned_up = False
        current_app.logger.info(f"Cleanup of '{self.storage_key}' after failed insert: {self.cleaned_up}")


def add_test_record(patient, test_name, image=None, author=None, filename=None, data_service=None):
    """Uploads the image and creates the past test that references it."""
    return TestRecordUpload(
        patient, test_name, image=image, filename=filename, author=author, data_service=data_service
    ).run()
