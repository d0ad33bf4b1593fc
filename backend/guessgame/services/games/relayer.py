import time
from typing import Set

from guessgame import db, socketio
from guessgame.models import DecryptionRequest
from .errors import GameError
from .oracle import decryption_callback


_scheduled_requests: Set[int] = set()


def deliver(app, request_id: int) -> bool:
    """Ask the KMS for a request's cleartexts and feed them to the callback.

    Returns False when the request is no longer pending or the callback is
    rejected. Must run inside an application context.
    """
    request = db.session.get(DecryptionRequest, request_id)
    if request is None or request.status != 'pending':
        app.logger.info(f"[relayer-abort] request={request_id} not pending")
        return False
    cleartexts, proof = app.extensions['kms'].fulfil(request.id, request.handle_list)
    try:
        return decryption_callback(request.id, cleartexts, proof)
    except GameError as exc:
        app.logger.warning(f"[relayer-abort] request={request_id} callback rejected: {exc.code}")
        return False


def schedule_delivery(app, request_id: int) -> None:
    """Deliver the oracle response for ``request_id`` after a delay.

    - No-ops unless ORACLE_AUTO_DELIVER is set
    - No-ops in TESTING mode unless ENABLE_RELAYER_IN_TESTS is set, and then runs inline
    - Ensures a single delivery per request id
    Nothing here times out: a request that is never delivered stays pending.
    """
    if not app.config.get('ORACLE_AUTO_DELIVER'):
        return
    if app.config.get('TESTING') and not app.config.get('ENABLE_RELAYER_IN_TESTS'):
        return
    if request_id in _scheduled_requests:
        app.logger.info(f"[relayer-skip] request={request_id} already scheduled")
        return
    _scheduled_requests.add(request_id)

    delay = int(app.config.get('ORACLE_DELIVERY_DELAY_SEC', 3))
    app.logger.info(f"[relayer-set] request={request_id} delay={delay}s")

    def _worker(rid: int, wait: int):
        if wait:
            time.sleep(wait)
        with app.app_context():
            _scheduled_requests.discard(rid)
            app.logger.info(f"[relayer-fire] request={rid}")
            deliver(app, rid)

    if app.config.get('TESTING'):
        _worker(request_id, delay)
    else:
        socketio.start_background_task(_worker, request_id, delay)
