import re
from datetime import datetime, timezone
from flask import request, jsonify
from sqlalchemy.exc import IntegrityError
from flask_jwt_extended import (
    create_access_token, create_refresh_token,
    get_jwt_identity, get_jwt
)
from mediconnect.extensions import db
from mediconnect.models import RevokedToken
from mediconnect.services.data_service import data_service
from mediconnect.utils.decorators import load_current_account
from mediconnect.utils.errors import NotFound, ValidationFailure, ServiceFailure
from mediconnect.api.controllers.user_controller import serialize_account

ROLE_COLLECTIONS = {
    'patient': 'patients',
    'doctor': 'doctors',
    'chemist': 'chemists',
}

CONTACT_PATTERN = re.compile(r'^\d{10}$')


def _validate_signup(data):
    """Returns a field -> message dict; empty when the form is valid."""
    errors = {}
    username = str(data.get('username') or '').strip()
    age = data.get('age')
    contact = str(data.get('contact') or '').strip()

    if not username:
        errors['username'] = 'Username is required'

    if age is None or str(age).strip() == '':
        errors['age'] = 'Age is required'
    else:
        try:
            if int(age) < 0:
                errors['age'] = 'Age must be a positive number'
        except (TypeError, ValueError):
            errors['age'] = 'Age must be a number'

    if not contact:
        errors['contact'] = 'Contact number is required'
    elif not CONTACT_PATTERN.match(contact):
        errors['contact'] = 'Please enter a valid 10-digit number'

    return errors


def signup_patient():
    """Registers a patient and returns the generated UID."""
    data = request.get_json(silent=True) or {}

    errors = _validate_signup(data)
    if errors:
        raise ValidationFailure('Please correct the highlighted fields', fields=errors)

    username = str(data['username']).strip()
    try:
        data_service.query('patients', {'username': username}, single=True)
        return jsonify({'error': 'Username already exists. Try another one.'}), 409
    except NotFound:
        pass

    try:
        patient, = data_service.insert('patients', [{
            'username': username,
            'age': int(data['age']),
            'contact': str(data['contact']).strip(),
        }], returning=True)
    except ServiceFailure as e:
        # A concurrent signup took the username between the check and the insert
        if isinstance(e.__cause__, IntegrityError):
            return jsonify({'error': 'Username already exists. Try another one.'}), 409
        raise

    return jsonify({
        'message': 'Registered successfully! You can now login.',
        'uid': patient.uid,
        'patient': patient.to_dict()
    }), 201


def login_user():
    """Username login for all three roles; patients also present their UID."""
    data = request.get_json(silent=True) or {}
    role = data.get('role') or 'patient'
    if role not in ROLE_COLLECTIONS:
        return jsonify({'error': 'Invalid role'}), 400

    username = str(data.get('username') or '').strip()
    if not username:
        return jsonify({'error': 'Username is required'}), 400

    filters = {'username': username}
    if role == 'patient':
        uid = str(data.get('uid') or '').strip()
        if not uid:
            return jsonify({'error': 'Patient UID is required'}), 400
        filters['uid'] = uid

    try:
        account = data_service.query(ROLE_COLLECTIONS[role], filters, single=True)
    except NotFound:
        return jsonify({'error': 'Invalid credentials or role mismatch.'}), 401

    claims = {'role': role}
    if role == 'patient':
        claims['uid'] = account.uid

    access_token = create_access_token(identity=str(account.id), additional_claims=claims)
    refresh_token = create_refresh_token(identity=str(account.id), additional_claims=claims)

    return jsonify({
        'access_token': access_token,
        'refresh_token': refresh_token,
        'user': serialize_account(account)
    }), 200


def logout_user():
    token = get_jwt()
    revoked_token = RevokedToken(
        jti=token['jti'],
        expires_at=datetime.fromtimestamp(token['exp'], tz=timezone.utc).replace(tzinfo=None)
    )
    db.session.add(revoked_token)
    db.session.commit()
    return jsonify({'message': 'Successfully logged out'}), 200


def refresh_token():
    account = load_current_account()
    if account is None:
        return jsonify({'error': 'User not found'}), 403

    claims = {'role': account.role}
    if account.role == 'patient':
        claims['uid'] = account.uid

    access_token = create_access_token(identity=get_jwt_identity(), additional_claims=claims)
    return jsonify({'access_token': access_token}), 200

