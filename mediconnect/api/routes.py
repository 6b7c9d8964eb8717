# /mediconnect/api/routes.py

from flask_jwt_extended import jwt_required
from . import api_bp
from mediconnect.extensions import limiter
from mediconnect.utils.decorators import audit_log, role_required
from .controllers import auth_controller, user_controller, patient_controller, record_controller


# --- Authentication Endpoints ---
@api_bp.route('/auth/signup', methods=['POST'])
@limiter.limit("5 per hour")
@audit_log("PATIENT_SIGNUP", "patients")
def signup():
    return auth_controller.signup_patient()

@api_bp.route('/auth/login', methods=['POST'])
@limiter.limit("10 per minute")
@audit_log("USER_LOGIN", "authentication")
def login():
    return auth_controller.login_user()

@api_bp.route('/auth/logout', methods=['POST'])
@jwt_required()
@audit_log("USER_LOGOUT", "authentication")
def logout():
    return auth_controller.logout_user()

@api_bp.route('/auth/refresh', methods=['POST'])
@jwt_required(refresh=True)
def refresh():
    return auth_controller.refresh_token()


# --- User Profile Endpoint ---
@api_bp.route('/users/me', methods=['GET'])
@role_required('patient', 'doctor', 'chemist')
@audit_log("VIEW_OWN_PROFILE", "users")
def get_current_user_route():
    return user_controller.get_current_user_details()


# --- Dashboard ---
@api_bp.route('/dashboard', methods=['GET'])
@role_required('patient', 'doctor', 'chemist')
@audit_log("VIEW_DASHBOARD", "patients")
def get_dashboard_route():
    return patient_controller.get_dashboard()


# --- Patient Record Endpoints ---
@api_bp.route('/patients/search/<string:username>', methods=['GET'])
@role_required('doctor')
@audit_log("SEARCH_PATIENT_BY_USERNAME", "patients")
def search_patient_route(username):
    return patient_controller.search_patient_by_username(username)

@api_bp.route('/patients/<string:uid>/records', methods=['GET'])
@role_required('patient', 'doctor', 'chemist')
@audit_log("VIEW_PATIENT_RECORDS", "patients")
def get_patient_records_route(uid):
    return patient_controller.get_patient_records(uid)

@api_bp.route('/patients/<string:uid>/insights', methods=['GET'])
@role_required('patient', 'doctor')
@audit_log("VIEW_PATIENT_INSIGHTS", "patients")
def get_patient_insights_route(uid):
    return patient_controller.get_patient_insights(uid)

@api_bp.route('/patients/<string:uid>/prescriptions', methods=['POST'])
@role_required('doctor')
@audit_log("CREATE_PRESCRIPTION", "prescriptions")
def create_prescription_route(uid):
    return record_controller.create_prescription(uid)

@api_bp.route('/patients/<string:uid>/allergies', methods=['POST'])
@role_required('doctor')
@audit_log("CREATE_ALLERGY", "allergies")
def create_allergy_route(uid):
    return record_controller.create_allergy(uid)

@api_bp.route('/patients/<string:uid>/tests', methods=['POST'])
@role_required('doctor')
@limiter.limit("10 per minute")
@audit_log("UPLOAD_TEST", "past_tests")
def upload_test_route(uid):
    return record_controller.upload_test(uid)
