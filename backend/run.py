import atexit
import signal
import sys

from tuna_adventure import create_app, socketio

app = create_app()
runtime = app.extensions['tuna_adventure']
# Any server importing `app` flushes the session cache on exit
atexit.register(runtime.shutdown, 'exit')


def _stop(signum, frame):
    runtime.shutdown(reason=signal.Signals(signum).name)
    sys.exit(0)


if __name__ == '__main__':
    runtime.start()
    signal.signal(signal.SIGINT, _stop)
    signal.signal(signal.SIGTERM, _stop)
    # Use SocketIO server to enable websockets in dev
    socketio.run(app, debug=True, use_reloader=False)
