from flask import Blueprint, current_app, jsonify, request
from sqlalchemy.exc import SQLAlchemyError

from reachout.clock import get_clock
from reachout.errors import EngineError
from reachout.extensions import db
from reachout.services import donor_store
from reachout.services.eligibility_evaluator import check_donor_eligibility, get_donor_statistics

# Define Blueprint for donors and their donation records
donor_bp = Blueprint('donor_bp', __name__)


@donor_bp.route('/donors/', methods=['POST'])
def create_donor():
    try:
        data = request.get_json(silent=True) or {}
        data.setdefault('timezone', current_app.config['DEFAULT_TIMEZONE'])
        donor = donor_store.create_donor(data)
        return jsonify(donor.to_dict()), 201
    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except SQLAlchemyError:
        db.session.rollback()
        return jsonify({'error': 'Database error occurred'}), 500


@donor_bp.route('/donors/<int:donor_id>', methods=['GET'])
def get_donor(donor_id):
    try:
        return jsonify(donor_store.get_donor(donor_id).to_dict()), 200
    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except SQLAlchemyError:
        return jsonify({'error': 'Database error occurred'}), 500


@donor_bp.route('/donors/<int:donor_id>', methods=['PUT'])
def update_donor(donor_id):
    try:
        data = request.get_json(silent=True) or {}
        donor = donor_store.update_donor(donor_id, data)
        return jsonify(donor.to_dict()), 200
    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except SQLAlchemyError:
        db.session.rollback()
        return jsonify({'error': 'Database error occurred'}), 500


@donor_bp.route('/donors/<int:donor_id>/eligibility', methods=['GET'])
def get_donor_eligibility(donor_id):
    try:
        eligibility = check_donor_eligibility(donor_id)
        return jsonify(eligibility.to_dict()), 200
    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except SQLAlchemyError:
        return jsonify({'error': 'Database error occurred'}), 500


@donor_bp.route('/donors/<int:donor_id>/statistics', methods=['GET'])
def get_statistics(donor_id):
    try:
        return jsonify(get_donor_statistics(donor_id)), 200
    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except SQLAlchemyError:
        return jsonify({'error': 'Database error occurred'}), 500


@donor_bp.route('/donors/<int:donor_id>/donations', methods=['POST'])
def record_donation(donor_id):
    try:
        data = request.get_json(silent=True) or {}
        record = donor_store.record_donation(donor_id, data, get_clock().now())
        return jsonify(record.to_dict()), 201
    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except SQLAlchemyError:
        db.session.rollback()
        return jsonify({'error': 'Database error occurred'}), 500


@donor_bp.route('/donations/<int:record_id>', methods=['PUT'])
def update_donation(record_id):
    try:
        data = request.get_json(silent=True) or {}
        record = donor_store.update_donation(record_id, data, get_clock().now())
        return jsonify(record.to_dict()), 200
    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except SQLAlchemyError:
        db.session.rollback()
        return jsonify({'error': 'Database error occurred'}), 500


@donor_bp.route('/donations/<int:record_id>/<action>', methods=['POST'])
def change_donation_status(record_id, action):
    """verify / reject / lock / unlock, all admin actions on a donation record"""
    try:
        data = request.get_json(silent=True) or {}
        if action == 'verify':
            record = donor_store.verify_donation(record_id, get_clock().now())
        elif action == 'reject':
            record = donor_store.reject_donation(record_id, data.get('reason'))
        elif action == 'lock':
            record = donor_store.lock_donation(record_id, data.get('reason'), actor=data.get('actor'))
        elif action == 'unlock':
            record = donor_store.unlock_donation(record_id, data.get('reason'), actor=data.get('actor'))
        else:
            return jsonify({'error': f'Unknown action: {action}'}), 404
        return jsonify(record.to_dict()), 200
    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except SQLAlchemyError:
        db.session.rollback()
        return jsonify({'error': 'Database error occurred'}), 500
