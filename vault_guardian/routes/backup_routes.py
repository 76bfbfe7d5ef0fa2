"""
Backup routes - status, manual trigger and settings endpoints.
"""

import logging
from flask import Blueprint, current_app, jsonify, request

from vault_guardian import EXTENSION_KEY
from vault_guardian.backup import ConfigurationError


bp = Blueprint('backup', __name__, url_prefix='/api/backup')
logger = logging.getLogger(__name__)


def _components():
    return current_app.extensions[EXTENSION_KEY]


@bp.route('/status', methods=['GET'])
def get_status():
    """
    Get backup status.

    Returns:
        JSON with:
        - status_text: Status bar line (countdown or progress)
        - in_progress: Whether a backup is running
        - next_backup_time / last_backup_time: ISO timestamps
        - seconds_remaining: Countdown to the next backup
        - message: Current notifier message, if any
        - last_result: Result of the most recent run in this process
    """
    components = _components()
    orchestrator = components['orchestrator']
    scheduler = components['scheduler']

    next_time = scheduler.next_backup_time
    last_time = orchestrator.last_backup_time
    last_result = orchestrator.last_result

    return jsonify({
        'status_text': scheduler.status_text(),
        'in_progress': orchestrator.is_backing_up,
        'next_backup_time': next_time.isoformat() if next_time else None,
        'last_backup_time': last_time.isoformat() if last_time else None,
        'seconds_remaining': int(scheduler.time_remaining().total_seconds()),
        'message': components['notifier'].current_message,
        'scheduler_running': scheduler.running,
        'last_result': last_result.to_dict() if last_result else None,
        'diagnostics': scheduler.get_diagnostics()
    })


@bp.route('/run', methods=['POST'])
def run_backup():
    """
    Start a backup now.

    The backup runs on the scheduler's worker when the scheduler is running,
    otherwise in this request.

    Returns:
        202 when queued, 200 with the result when run inline,
        400 when no primary backup path is set, 409 when a backup is running
    """
    components = _components()
    orchestrator = components['orchestrator']
    scheduler = components['scheduler']

    if not orchestrator.configuration.has_primary_destination:
        return jsonify({'error': 'No primary backup path set'}), 400

    if orchestrator.is_backing_up:
        return jsonify({'error': 'Backup already in progress'}), 409

    logger.info("Manual backup requested via API")

    if scheduler.running:
        job_id = scheduler.trigger_backup_now()
        return jsonify({'message': 'Backup queued', 'job_id': job_id}), 202

    try:
        result = scheduler.force_backup_now()
    except ConfigurationError as e:
        return jsonify({'error': str(e)}), 400

    return jsonify(result.to_dict()), 200


@bp.route('/settings', methods=['GET'])
def get_settings():
    """
    Get backup settings.

    Returns:
        JSON with configuration fields and schedule state
    """
    orchestrator = _components()['orchestrator']
    last_time = orchestrator.last_backup_time

    data = orchestrator.configuration.to_dict()
    data['last_backup_time'] = last_time.isoformat() if last_time else None
    return jsonify(data)


@bp.route('/settings', methods=['PUT'])
def update_settings():
    """
    Update backup settings.

    Request body: any subset of backup_path, secondary_backup_path,
    auto_backup_interval, max_backup_count, secondary_max_backup_count,
    compression_level.

    Returns:
        JSON with the updated settings, or 400 on validation errors
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({'error': 'JSON object body is required'}), 400

    components = _components()
    orchestrator = components['orchestrator']
    scheduler = components['scheduler']

    try:
        interval_changed = orchestrator.set_configuration(**data)
    except ConfigurationError as e:
        return jsonify({'error': str(e)}), 400

    if interval_changed:
        scheduler.reschedule_from_now()

    next_time = scheduler.next_backup_time
    response = orchestrator.configuration.to_dict()
    response['next_backup_time'] = next_time.isoformat() if next_time else None
    return jsonify(response)
