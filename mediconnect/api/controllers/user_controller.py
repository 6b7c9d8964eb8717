from flask import jsonify, g


def serialize_account(account):
    """Account data shown in the profile dropdown."""
    profile = {'role': account.role, 'username': account.username}
    if account.role == 'patient':
        profile.update({
            'patient_id': account.patient_id,
            'uid': account.uid,
            'age': account.age,
            'contact': account.contact,
        })
    else:
        profile.update({
            'id': account.id,
            'full_name': account.full_name,
            'contact': account.contact,
        })
    return profile


def get_current_user_details():
    """
    Get details for the currently authenticated account.
    """
    return jsonify(serialize_account(g.account)), 200
