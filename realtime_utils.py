"""Per-user fan-out of cart/wishlist changes to a user's other open sessions.

Clients speak JSON frames over ``/ws``:

* ``{"type": "auth", "userId": 1}`` registers the socket under that user
  (a ``token`` field wins over ``userId``; with ``WS_REQUIRE_TOKEN`` set
  the token is mandatory),
* ``{"type": "sync_request"}`` is answered with ``SYNC_DATA`` holding the
  user's cart, wishlist and profile,
* ``{"type": "update", "action": "CART_UPDATED", "payload": {...}}`` is sent
  as ``{"type": action, "payload": payload}`` to every other socket of the
  same user.

Delivery is best effort: there are no acknowledgements and a socket that
fails to send is dropped from the registry.
"""
import json
import logging
import threading

from flask import current_app

from auth_utils import user_from_token
from models import db, CartItem, User, WishlistItem

logger = logging.getLogger(__name__)


class ConnectionRegistry:

    def __init__(self):
        self._clients = {}
        self._lock = threading.Lock()

    def register(self, user_id, ws):
        with self._lock:
            self._clients.setdefault(user_id, set()).add(ws)
            count = len(self._clients[user_id])
        logger.info('User %s connected. Total connections: %s', user_id, count)

    def unregister(self, user_id, ws):
        with self._lock:
            connections = self._clients.get(user_id)
            if connections is None:
                return
            connections.discard(ws)
            if not connections:
                del self._clients[user_id]
            remaining = len(connections)
        logger.info('User %s disconnected. Remaining connections: %s', user_id, remaining)

    def connections(self, user_id):
        with self._lock:
            return list(self._clients.get(user_id, ()))

    def broadcast(self, user_id, message, exclude=None):
        """Send ``message`` to the user's sockets except ``exclude``; returns the delivery count."""
        frame = json.dumps(message)
        delivered = 0
        for ws in self.connections(user_id):
            if ws is exclude:
                continue
            try:
                ws.send(frame)
                delivered += 1
            except Exception as e:
                logger.warning('Dropping socket of user %s: %s', user_id, e)
                self.unregister(user_id, ws)
        return delivered


def get_registry():
    return current_app.extensions['realtime']


def notify_user(user_id, action, payload):
    return get_registry().broadcast(user_id, {'type': action, 'payload': payload})


def user_snapshot(user_id):
    user = db.session.get(User, user_id)
    return {
        'cart': [item.to_dict() for item in CartItem.query.filter_by(user_id=user_id).all()],
        'wishlist': [item.to_dict() for item in WishlistItem.query.filter_by(user_id=user_id).all()],
        'profile': user.to_dict() if user else None,
    }


class SyncSession:
    """State of one socket: which user it declared, and what to do with its frames."""

    def __init__(self, ws, registry):
        self.ws = ws
        self.registry = registry
        self.user_id = None

    def handle(self, raw):
        try:
            data = json.loads(raw)
        except (TypeError, ValueError):
            logger.warning('Ignoring malformed frame: %r', raw)
            return
        if not isinstance(data, dict):
            return

        kind = data.get('type')
        if kind == 'auth':
            self.authenticate(data)
        elif kind == 'sync_request' and self.user_id is not None:
            self.ws.send(json.dumps({'type': 'SYNC_DATA', 'payload': user_snapshot(self.user_id)}))
        elif kind == 'update' and self.user_id is not None:
            message = {'type': data.get('action'), 'payload': data.get('payload')}
            self.registry.broadcast(self.user_id, message, exclude=self.ws)

    def authenticate(self, data):
        user_id = data.get('userId')
        token = data.get('token')
        if token:
            user = user_from_token(token)
            if user is None:
                return
            user_id = user.id
        elif current_app.config.get('WS_REQUIRE_TOKEN'):
            logger.warning('Rejecting socket auth without a token for user %s', user_id)
            return
        if user_id is None:
            return
        try:
            user_id = int(user_id)
        except (TypeError, ValueError):
            pass
        if self.user_id is not None:
            self.registry.unregister(self.user_id, self.ws)
        self.user_id = user_id
        self.registry.register(user_id, self.ws)

    def close(self):
        if self.user_id is not None:
            self.registry.unregister(self.user_id, self.ws)


def serve_connection(ws):
    session = SyncSession(ws, get_registry())
    logger.info('New WebSocket connection')
    try:
        while True:
            raw = ws.receive()
            if raw is None:
                break
            session.handle(raw)
    finally:
        session.close()
