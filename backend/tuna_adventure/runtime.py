import threading

from flask import current_app

from tuna_adventure import SOCKET_NAMESPACE
from tuna_adventure.realtime import RealtimeBroker
from tuna_adventure.session_cache import SessionCache
from tuna_adventure.services.game.decisions import DecisionCoordinator
from tuna_adventure.services.game.session import SessionService


class GameRuntime:
    """Long-lived services shared by the HTTP and Socket.IO surfaces.

    Construction has no side effects. `start()` restores the cache, resyncs
    it from the database and starts the backup loop; it runs once, on the
    first request or socket connection unless the server calls it earlier.
    `shutdown()` flushes the cache.
    """

    def __init__(self, app, socketio, scorer):
        self.app = app
        self.cache = SessionCache(
            snapshot_path=app.config.get('CACHE_SNAPSHOT_PATH') or None,
            debounce_sec=float(app.config.get('CACHE_SAVE_DEBOUNCE_SEC', 1.0)),
            backup_interval_sec=float(app.config.get('CACHE_BACKUP_INTERVAL_SEC', 60)),
            spawn=socketio.start_background_task,
        )
        self.broker = RealtimeBroker(socketio, self.cache, namespace=SOCKET_NAMESPACE)
        self.scorer = scorer
        self.decisions = DecisionCoordinator(self.cache, self.broker, scorer)
        self.sessions = SessionService(self.cache, self.broker)
        self.started = False
        self.stopped = False
        self._start_lock = threading.Lock()

    def start(self) -> None:
        if self.started or self.stopped:
            return
        with self._start_lock:
            if self.started or self.stopped:
                return
            restored = self.cache.load()
            with self.app.app_context():
                self.sessions.rebuild_cache()
            self.cache.start()
            self.started = True
        self.app.logger.info(f"[runtime] started restored_snapshot={restored}")

    def shutdown(self, reason: str = 'shutdown') -> None:
        if not self.started:
            return
        self.cache.shutdown(reason)
        self.started = False
        self.stopped = True
        self.app.logger.info(f"[runtime] stopped reason={reason}")


def get_runtime() -> GameRuntime:
    return current_app.extensions['tuna_adventure']
