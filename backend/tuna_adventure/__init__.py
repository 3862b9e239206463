from flask import Flask, jsonify
from flask_sqlalchemy import SQLAlchemy
from flask_bcrypt import Bcrypt
from flask_login import LoginManager
from flask_cors import CORS
from flask_migrate import Migrate
from flask_socketio import SocketIO
import importlib
import click
from config import Config

db = SQLAlchemy()
bcrypt = Bcrypt()
login_manager = LoginManager()
migrate = Migrate()
socketio = SocketIO(async_mode=None)

SOCKET_NAMESPACE = '/ws'


def load_scorer(dotted: str):
    """Instantiate a scorer from a "module:ClassName" string."""
    module_name, _, class_name = dotted.partition(':')
    if not module_name or not class_name:
        raise ValueError(f"SCORER must look like 'module:ClassName', got {dotted!r}")
    module = importlib.import_module(module_name)
    return getattr(module, class_name)()


def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)
    allowed_origins = flask_app.config.get('CORS_ORIGINS') or []

    db.init_app(flask_app)
    bcrypt.init_app(flask_app)
    login_manager.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, supports_credentials=True, origins=allowed_origins)

    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    # Long-lived services. Started on first use; shutdown is driven by the caller.
    from tuna_adventure.runtime import GameRuntime
    runtime = GameRuntime(flask_app, socketio, scorer=load_scorer(flask_app.config['SCORER']))
    flask_app.extensions['tuna_adventure'] = runtime

    @flask_app.before_request
    def ensure_runtime_started():
        runtime.start()

    from tuna_adventure.api.auth import auth
    flask_app.register_blueprint(auth, url_prefix='/api/auth')

    from tuna_adventure.api.game import game
    flask_app.register_blueprint(game, url_prefix='/api/game')

    from tuna_adventure.api.admin import admin
    flask_app.register_blueprint(admin, url_prefix='/api/admin')

    from tuna_adventure.socketio_events import register_socketio_handlers
    register_socketio_handlers()

    from tuna_adventure.access import load_principal
    login_manager.user_loader(load_principal)

    @flask_app.route('/api/health')
    def health():
        state = runtime.cache.get_game_state()
        return jsonify({
            'status': 'ok',
            'service': 'tuna-adventure',
            'phase': state['phase'],
            'connected_teams': state['connected_count'],
        })

    @click.command('db-reset')
    def db_reset_command():
        """Drops, recreates, and seeds the database."""
        from tuna_adventure.seed import seed_all
        with flask_app.app_context():
            db.drop_all()
            db.create_all()
            seed_all(flask_app.config)
            print('Database has been reset and seeded!')

    @click.command('seed-scenarios')
    def seed_scenarios_command():
        """Inserts or refreshes the seven reference scenarios."""
        from tuna_adventure.seed import seed_scenarios
        with flask_app.app_context():
            count = seed_scenarios()
            print(f'Seeded {count} scenarios.')

    flask_app.cli.add_command(db_reset_command)
    flask_app.cli.add_command(seed_scenarios_command)

    return flask_app
