from datetime import datetime, timezone
from math import ceil

from flask import jsonify


def _timestamp():
    return datetime.now(timezone.utc).isoformat()


def api_success(data=None, status_code=200, message=''):
    payload = {'success': True, 'timestamp': _timestamp(), 'status_code': status_code}
    if message:
        payload['message'] = message
    if data is not None:
        payload['data'] = data
    return jsonify(payload), status_code


def api_error(message, status_code=400, errors=None):
    payload = {
        'success': False,
        'message': message,
        'timestamp': _timestamp(),
        'status_code': status_code,
    }
    if errors:
        payload['errors'] = errors
    return jsonify(payload), status_code


def api_paginated(data, total, page, per_page, message=''):
    total_pages = ceil(total / per_page) if per_page else 0
    payload = {
        'success': True,
        'timestamp': _timestamp(),
        'status_code': 200,
        'data': data,
        'pagination': {
            'total': total,
            'per_page': per_page,
            'current_page': page,
            'total_pages': total_pages,
            'has_next': page < total_pages,
            'has_prev': page > 1,
        },
    }
    if message:
        payload['message'] = message
    return jsonify(payload), 200
