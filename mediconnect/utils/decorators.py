from functools import wraps
from flask import request, current_app, jsonify, make_response, g
from flask_jwt_extended import get_jwt_identity, get_jwt, verify_jwt_in_request
from mediconnect.extensions import db
from mediconnect.models import ACCOUNT_MODELS


def audit_log(action, resource):
    """Writes one audit line per request to the audit logger."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            account = None
            ip_address = request.remote_addr

            try:
                # Attempt to get the account from a valid JWT token
                account = f"{get_jwt().get('role')}:{get_jwt_identity()}"
            except RuntimeError:
                # No JWT token present (e.g., for signup or login)
                pass

            try:
                # Use make_response to handle both Response objects and tuples.
                response = make_response(f(*args, **kwargs))
            except Exception as e:
                current_app.audit_logger.error(
                    f"Action='{action}', Resource='{resource}', Account='{account}', IP='{ip_address}', "
                    f"Success='False', Details='{type(e).__name__}: {e}'"
                )
                raise

            success = response.status_code < 400
            current_app.audit_logger.info(
                f"Action='{action}', Resource='{resource}', Account='{account}', IP='{ip_address}', "
                f"Success='{success}', Details='Status: {response.status_code}'"
            )
            return response

        return decorated_function
    return decorator


def load_current_account():
    """Resolve the JWT identity to its Patient, Doctor or Chemist row."""
    claims = get_jwt()
    model = ACCOUNT_MODELS.get(claims.get('role'))
    if model is None:
        return None
    return db.session.get(model, int(get_jwt_identity()))


def role_required(*roles):
    """Checks that the authenticated account has one of `roles` and exposes it as `g.account`."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            verify_jwt_in_request()
            account = load_current_account()

            if account is None:
                return jsonify({'error': 'User not found'}), 403

            if account.role not in roles:
                return jsonify({'error': 'Permission denied'}), 403

            g.account = account
            return f(*args, **kwargs)
        return decorated_function
    return decorator
