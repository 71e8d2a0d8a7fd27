import logging
from flask import Blueprint, Response, current_app, jsonify
from flask_cors import cross_origin

from config import Config

logger = logging.getLogger(__name__)

events_bp = Blueprint('events_bp', __name__, url_prefix='/api/events')


def _get_broker():
    return current_app.extensions.get('event_broker')


@events_bp.route('/stream')
@cross_origin(origins=Config.CORS_ALLOWED_ORIGINS)
def stream_events():
    """Server-sent events for playlist and track changes."""
    broker = _get_broker()
    if broker is None:
        return jsonify({'error': 'Library events unavailable'}), 503

    def _gen():
        try:
            for chunk in broker.subscribe():
                yield chunk
        except GeneratorExit:
            logger.info('SSE client disconnected')

    headers = {
        'Content-Type': 'text/event-stream',
        'Cache-Control': 'no-cache, no-transform',
        'Connection': 'keep-alive',
        'X-Accel-Buffering': 'no',
    }
    return Response(_gen(), headers=headers)


@events_bp.route('/snapshot')
@cross_origin(origins=Config.CORS_ALLOWED_ORIGINS)
def events_snapshot():
    broker = _get_broker()
    if broker is None:
        return jsonify({'error': 'Library events unavailable'}), 503

    snapshot = broker.snapshot()
    if snapshot is None:
        return Response(status=204)

    return jsonify(snapshot)


__all__ = ['events_bp']
