from flask import request, jsonify, g
from mediconnect.services import dashboard_state
from mediconnect.services.records_service import (
    SECTIONS, load_patient_records, build_insights
)
from mediconnect.utils.errors import NotFound, ServiceFailure


def _check_patient_access(uid):
    """Patients may only look at their own records."""
    if g.account.role == 'patient' and g.account.uid != uid:
        return jsonify({'error': 'Can only view your own records'}), 403
    return None


def _sections_for_role():
    return dashboard_state.ROLE_SECTIONS[g.account.role]


def get_patient_records(uid):
    """Retrieves a patient and their records by UID."""
    denied = _check_patient_access(uid)
    if denied:
        return denied

    bundle = load_patient_records(uid, by='uid')
    return jsonify(bundle.to_dict(sections=_sections_for_role())), 200


def search_patient_by_username(username):
    """Retrieves a patient and their records by username."""
    bundle = load_patient_records(username, by='username')
    return jsonify(bundle.to_dict()), 200


def get_patient_insights(uid):
    """Monthly histograms and totals for a patient's records."""
    denied = _check_patient_access(uid)
    if denied:
        return denied

    bundle = load_patient_records(uid, by='uid')
    return jsonify({
        'patient': bundle.patient.to_dict(),
        **build_insights(bundle)
    }), 200


def get_dashboard():
    """
    Builds the dashboard view for the authenticated account.

    Query parameters:
        uid: patient to show (staff only; patients always see themselves)
        expand: section to show in full, may be repeated
        image: test_id whose image should open in the viewer
    """
    account = g.account
    state = dashboard_state.DashboardState(role=account.role)

    if account.role == 'patient':
        uid = request.args.get('uid') or account.uid
        if uid != account.uid:
            return jsonify({'error': 'Can only view your own records'}), 403
    else:
        uid = (request.args.get('uid') or '').strip()
        if not uid:
            return jsonify(dashboard_state.render(state)), 200

    try:
        bundle = load_patient_records(uid, by='uid')
    except (NotFound, ServiceFailure) as e:
        state = dashboard_state.reduce(state, dashboard_state.load_failed(e.kind))
        return jsonify(dashboard_state.render(state)), e.status_code

    state = dashboard_state.reduce(state, dashboard_state.patient_loaded(bundle))

    for section in request.args.getlist('expand'):
        if section not in SECTIONS:
            return jsonify({'error': f"Unknown section '{section}'"}), 400
        state = dashboard_state.reduce(state, dashboard_state.show_more(section))

    image = request.args.get('image', type=int)
    if image is not None:
        state = dashboard_state.reduce(state, dashboard_state.open_image(image))

    return jsonify(dashboard_state.render(state)), 200
