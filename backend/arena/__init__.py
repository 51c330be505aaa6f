from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from flask_cors import CORS
from flask_migrate import Migrate
from flask_socketio import SocketIO
import json
import click
from config import Config

db = SQLAlchemy()
migrate = Migrate()
allowed_origins = [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
    "http://localhost:5174",
    "http://127.0.0.1:5174",
]
socketio = SocketIO(cors_allowed_origins=allowed_origins, async_mode=None)

def create_app(config_class=Config, scheduler=None, gateway=None, rng=None):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)

    db.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, supports_credentials=True, origins=allowed_origins)

    # Initialize Socket.IO after app is created
    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    from arena.services.games.matchmaking import init_arena
    init_arena(flask_app, scheduler=scheduler, gateway=gateway, rng=rng)

    from arena.main import main
    flask_app.register_blueprint(main)

    from arena.api.games import games
    flask_app.register_blueprint(games, url_prefix='/api/games')

    from arena.api.payments import payments
    flask_app.register_blueprint(payments, url_prefix='/api/payments')

    # Handlers bind to the initialized socketio instance
    from arena.socketio_events import register_socketio_handlers
    register_socketio_handlers(testing=flask_app.config.get('TESTING', False))

    @click.command('db-reset')
    def db_reset_command():
        """Drops and recreates the outcome tables."""
        with flask_app.app_context():
            db.drop_all()
            db.create_all()
            print('Database has been reset!')

    @click.command('outcome-show')
    @click.argument('address')
    def outcome_show_command(address):
        """Prints the stored outcome record for an address."""
        from arena.models import OutcomeRecord
        with flask_app.app_context():
            record = db.session.get(OutcomeRecord, address)
            if record is None:
                print(f'No outcome record for {address}')
                return
            print(json.dumps(record.to_dict(), indent=2))

    flask_app.cli.add_command(db_reset_command)
    flask_app.cli.add_command(outcome_show_command)

    return flask_app
