from flask import Blueprint, current_app, jsonify, request
from sqlalchemy.exc import SQLAlchemyError

from reachout.errors import EngineError, ValidationError
from reachout.extensions import db
from reachout.models.donor_model import Donor
from reachout.services.candidate_selector import find_candidates_for_request
from reachout.services.geo import distance_km

# Define Blueprint for the Donor Match controller
donor_match_bp = Blueprint('donor_match_bp', __name__)


def _coordinator():
    return current_app.extensions['match_coordinator']


def _match_details(match):
    match_data = match.to_dict()
    blood_request = match.request
    if blood_request:
        match_data['request_details'] = {
            'patient_name': blood_request.patient_name,
            'blood_type': blood_request.blood_type,
            'urgency': blood_request.urgency,
        }
    for candidate in match_data['candidates']:
        donor = db.session.get(Donor, candidate['donor_id'])
        if donor and blood_request:
            distance = distance_km(blood_request.latitude, blood_request.longitude,
                                   donor.latitude, donor.longitude)
            candidate['distance_km'] = round(distance, 2) if distance is not None else None
    return match_data


@donor_match_bp.route('/', methods=['POST'])
def create_donor_match():
    try:
        data = request.get_json(silent=True) or {}
        request_id = data.get('request_id')
        if request_id is None:
            raise ValidationError('Missing required field: request_id')

        candidate_ids = data.get('candidate_ids')
        if candidate_ids is None:
            candidate_ids = find_candidates_for_request(request_id)
        match = _coordinator().create_match(request_id, candidate_ids)
        return jsonify(_match_details(match)), 201
    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except SQLAlchemyError:
        db.session.rollback()
        return jsonify({'error': 'Database error occurred'}), 500


@donor_match_bp.route('/candidates-for-request/<int:request_id>', methods=['GET'])
def get_candidates_for_request(request_id):
    try:
        return jsonify({'request_id': request_id,
                        'candidate_ids': find_candidates_for_request(request_id)}), 200
    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except SQLAlchemyError:
        return jsonify({'error': 'Database error occurred'}), 500


@donor_match_bp.route('/<int:match_id>', methods=['GET'])
def get_donor_match(match_id):
    try:
        match = _coordinator().get_match(match_id)
        return jsonify(_match_details(match)), 200
    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except SQLAlchemyError:
        return jsonify({'error': 'Database error occurred'}), 500


@donor_match_bp.route('/<int:match_id>/respond', methods=['POST'])
def respond_to_match(match_id):
    try:
        data = request.get_json(silent=True) or {}
        if data.get('donor_id') is None:
            raise ValidationError('Missing required field: donor_id')
        match = _coordinator().respond(match_id, data['donor_id'], data.get('response'),
                                       reason=data.get('reason'))
        return jsonify(_match_details(match)), 200
    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except SQLAlchemyError:
        db.session.rollback()
        return jsonify({'error': 'Database error occurred'}), 500


@donor_match_bp.route('/candidates/<int:candidate_id>/expire', methods=['POST'])
def expire_candidate(candidate_id):
    try:
        match = _coordinator().expire(candidate_id)
        return jsonify(_match_details(match)), 200
    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except SQLAlchemyError:
        db.session.rollback()
        return jsonify({'error': 'Database error occurred'}), 500


@donor_match_bp.route('/<int:match_id>/cancel', methods=['POST'])
def cancel_donor_match(match_id):
    try:
        data = request.get_json(silent=True) or {}
        match = _coordinator().cancel(match_id, reason=data.get('reason'))
        return jsonify(_match_details(match)), 200
    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except SQLAlchemyError:
        db.session.rollback()
        return jsonify({'error': 'Database error occurred'}), 500
