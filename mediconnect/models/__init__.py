from mediconnect.models.user_models import Patient, Doctor, Chemist, ACCOUNT_MODELS
from mediconnect.models.record_models import Prescription, PastTest, Allergy
from mediconnect.models.system_models import RevokedToken
