from flask import Blueprint, jsonify, request
from sqlalchemy.exc import SQLAlchemyError

from reachout.constants import BLOOD_TYPES, URGENCY_LEVELS, URGENCY_NORMAL
from reachout.extensions import db
from reachout.models.blood_request_model import BloodRequest

# Define the Blueprint for blood requests
blood_request_bp = Blueprint('blood_request_bp', __name__)


@blood_request_bp.route('/', methods=['POST'])
def create_blood_request():
    try:
        data = request.get_json(silent=True)
        if not data:
            return jsonify({'error': 'No input data provided'}), 400

        for field in ('patient_name', 'blood_type'):
            if not data.get(field):
                return jsonify({'error': f'Missing required field: {field}'}), 400
        if data['blood_type'] not in BLOOD_TYPES:
            return jsonify({'error': f'blood_type must be one of {", ".join(BLOOD_TYPES)}'}), 400
        urgency = data.get('urgency', URGENCY_NORMAL)
        if urgency not in URGENCY_LEVELS:
            return jsonify({'error': f'urgency must be one of {", ".join(URGENCY_LEVELS)}'}), 400

        blood_request = BloodRequest(
            patient_name=data['patient_name'],
            blood_type=data['blood_type'],
            urgency=urgency,
            units_required=data.get('units_required', 1),
            latitude=data.get('latitude'),
            longitude=data.get('longitude'),
        )
        db.session.add(blood_request)
        db.session.commit()
        return jsonify(blood_request.to_dict()), 201
    except SQLAlchemyError:
        db.session.rollback()
        return jsonify({'error': 'Database error occurred'}), 500


@blood_request_bp.route('/<int:request_id>', methods=['GET'])
def get_blood_request(request_id):
    try:
        blood_request = db.session.get(BloodRequest, request_id)
        if not blood_request:
            return jsonify({'error': 'Blood request not found'}), 404
        return jsonify(blood_request.to_dict()), 200
    except SQLAlchemyError:
        return jsonify({'error': 'Database error occurred'}), 500
