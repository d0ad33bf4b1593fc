from flask import Flask, jsonify
from flask_sqlalchemy import SQLAlchemy
from flask_login import LoginManager
from flask_cors import CORS
from flask_migrate import Migrate
from flask_socketio import SocketIO
import click
from config import Config

db = SQLAlchemy()
login_manager = LoginManager()
migrate = Migrate()
allowed_origins = [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
]
socketio = SocketIO(cors_allowed_origins=allowed_origins, async_mode=None)

from guessgame.fhe.coprocessor import Coprocessor  # noqa: E402
from guessgame.fhe.kms import KeyManagementService  # noqa: E402

coprocessor = Coprocessor()
kms = KeyManagementService()


def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)

    db.init_app(flask_app)
    login_manager.init_app(flask_app)
    migrate.init_app(flask_app, db)
    coprocessor.init_app(flask_app)
    kms.init_app(flask_app)
    CORS(flask_app, supports_credentials=True, origins=allowed_origins)

    # Initialize Socket.IO after app is created
    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    from guessgame.main import main
    flask_app.register_blueprint(main)

    from guessgame.api.games import games
    flask_app.register_blueprint(games, url_prefix='/api/games')

    from guessgame.api.oracle import oracle
    flask_app.register_blueprint(oracle, url_prefix='/api/oracle')

    from guessgame.api.fhe import fhe
    flask_app.register_blueprint(fhe, url_prefix='/api/fhe')

    from guessgame.socketio_events import register_socketio_handlers
    register_socketio_handlers(testing=flask_app.config.get('TESTING', False))

    from guessgame.services.games.errors import GameError

    @flask_app.errorhandler(GameError)
    def handle_game_error(exc):
        flask_app.logger.info(f"[rejected] {exc.code}: {exc.message}")
        return jsonify(exc.to_dict()), exc.status_code

    from guessgame.models import Account

    @login_manager.user_loader
    def load_user(user_id):
        return db.session.get(Account, int(user_id))

    @click.command('db-reset')
    def db_reset_command():
        """Drops, recreates, and seeds the database."""
        with flask_app.app_context():
            db.drop_all()
            db.create_all()

            # Seed funded accounts
            for name in ['alice', 'bob', 'carol']:
                account = Account(username=name, balance=flask_app.config['INITIAL_BALANCE'])
                account.set_password('password')
                db.session.add(account)

            db.session.commit()
            print('Database has been reset and seeded!')

    flask_app.cli.add_command(db_reset_command)

    return flask_app
