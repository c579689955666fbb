from datetime import datetime

from flask import Blueprint, current_app, jsonify, request
from sqlalchemy.exc import SQLAlchemyError

from reachout.clock import get_clock
from reachout.errors import EngineError, ValidationError
from reachout.extensions import db
from reachout.services import schedule_store
from reachout.services.donor_store import get_donor
from reachout.services.schedule_evaluator import is_available, next_available_window

# Define Blueprint for the donor availability schedule
availability_bp = Blueprint('availability_bp', __name__)


def _parse_instant(value):
    if not value:
        return get_clock().now()
    try:
        return datetime.fromisoformat(value.replace('Z', '+00:00'))
    except (AttributeError, ValueError):
        raise ValidationError('Invalid dateTime format')


def _schedule_payload(donor_id):
    donor = get_donor(donor_id)
    schedule = schedule_store.get_schedule(donor_id)
    data = schedule.to_dict()
    data['timezone'] = donor.timezone
    data['is_available'] = donor.is_available
    return data


@availability_bp.route('/<int:donor_id>', methods=['GET'])
def get_availability_schedule(donor_id):
    try:
        return jsonify(_schedule_payload(donor_id)), 200
    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except SQLAlchemyError:
        return jsonify({'error': 'Database error occurred'}), 500


@availability_bp.route('/<int:donor_id>/toggle', methods=['PUT'])
def toggle_scheduled_availability(donor_id):
    try:
        data = request.get_json(silent=True) or {}
        schedule = schedule_store.set_schedule_enabled(donor_id, data.get('enabled'))
        return jsonify({'enabled': schedule.enabled}), 200
    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except SQLAlchemyError:
        db.session.rollback()
        return jsonify({'error': 'Database error occurred'}), 500


@availability_bp.route('/<int:donor_id>/weekly', methods=['POST'])
@availability_bp.route('/<int:donor_id>/weekly/<int:slot_id>', methods=['PUT'])
def upsert_weekly_slot(donor_id, slot_id=None):
    try:
        data = request.get_json(silent=True) or {}
        slot = schedule_store.upsert_weekly_slot(donor_id, data, slot_id=slot_id)
        return jsonify(slot.to_dict()), 201 if slot_id is None else 200
    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except SQLAlchemyError:
        db.session.rollback()
        return jsonify({'error': 'Database error occurred'}), 500


@availability_bp.route('/<int:donor_id>/weekly/<int:slot_id>', methods=['DELETE'])
def delete_weekly_slot(donor_id, slot_id):
    try:
        schedule_store.delete_weekly_slot(donor_id, slot_id)
        return jsonify({'message': 'Weekly slot deleted'}), 200
    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except SQLAlchemyError:
        db.session.rollback()
        return jsonify({'error': 'Database error occurred'}), 500


@availability_bp.route('/<int:donor_id>/custom', methods=['POST'])
@availability_bp.route('/<int:donor_id>/custom/<int:range_id>', methods=['PUT'])
def upsert_custom_range(donor_id, range_id=None):
    try:
        data = request.get_json(silent=True) or {}
        custom = schedule_store.upsert_custom_range(donor_id, data, range_id=range_id)
        return jsonify(custom.to_dict()), 201 if range_id is None else 200
    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except SQLAlchemyError:
        db.session.rollback()
        return jsonify({'error': 'Database error occurred'}), 500


@availability_bp.route('/<int:donor_id>/custom/<int:range_id>', methods=['DELETE'])
def delete_custom_range(donor_id, range_id):
    try:
        schedule_store.delete_custom_range(donor_id, range_id)
        return jsonify({'message': 'Custom availability deleted'}), 200
    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except SQLAlchemyError:
        db.session.rollback()
        return jsonify({'error': 'Database error occurred'}), 500


@availability_bp.route('/<int:donor_id>/check', methods=['POST'])
def check_availability(donor_id):
    try:
        data = request.get_json(silent=True) or {}
        check_time = _parse_instant(data.get('dateTime'))
        donor = get_donor(donor_id)
        schedule = schedule_store.get_schedule(donor_id)
        return jsonify({
            'donor_id': donor.id,
            'check_time': check_time.isoformat(),
            'is_available': is_available(schedule, donor.timezone, check_time),
            'scheduled_availability_enabled': bool(schedule.enabled),
        }), 200
    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except SQLAlchemyError:
        return jsonify({'error': 'Database error occurred'}), 500


@availability_bp.route('/<int:donor_id>/next-window', methods=['GET'])
def get_next_window(donor_id):
    try:
        after = _parse_instant(request.args.get('after'))
        donor = get_donor(donor_id)
        schedule = schedule_store.get_schedule(donor_id)
        window = next_available_window(
            schedule, donor.timezone, after,
            lookahead_days=current_app.config['SCHEDULE_LOOKAHEAD_DAYS'],
            step_minutes=current_app.config['SCHEDULE_STEP_MINUTES'])
        return jsonify({'donor_id': donor.id, 'window': window.to_dict() if window else None}), 200
    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except SQLAlchemyError:
        return jsonify({'error': 'Database error occurred'}), 500
