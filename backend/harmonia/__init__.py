from flask import Flask, jsonify
from flask_sqlalchemy import SQLAlchemy
from flask_bcrypt import Bcrypt
from flask_login import LoginManager
from flask_cors import CORS
from flask_migrate import Migrate
from flask_socketio import SocketIO
from sqlalchemy.exc import OperationalError
from werkzeug.exceptions import HTTPException
import click
from config import Config

db = SQLAlchemy()
bcrypt = Bcrypt()
login_manager = LoginManager()
migrate = Migrate()
socketio = SocketIO(async_mode=None)

def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)
    flask_app.logger.setLevel(flask_app.config.get('LOG_LEVEL', 'INFO'))
    allowed_origins = flask_app.config.get('ALLOWED_ORIGINS') or []

    db.init_app(flask_app)
    bcrypt.init_app(flask_app)
    login_manager.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, supports_credentials=True, origins=allowed_origins)
    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    from harmonia.main import main
    flask_app.register_blueprint(main)

    from harmonia.api.game import game
    flask_app.register_blueprint(game, url_prefix='/api/game')

    from harmonia.api.admin import admin
    flask_app.register_blueprint(admin, url_prefix='/api/admin')

    from harmonia.socketio_events import register_socketio_handlers
    register_socketio_handlers(testing=flask_app.config.get('TESTING', False))

    _register_error_handlers(flask_app)

    from harmonia.models import Profile

    @login_manager.user_loader
    def load_user(user_id):
        return db.session.get(Profile, int(user_id))

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({'error': 'Authentication required', 'code': 'unauthenticated'}), 401

    @click.command('db-reset')
    def db_reset_command():
        """Drops, recreates, and seeds the database."""
        from harmonia.models import GameType, Profile, Role
        with flask_app.app_context():
            db.drop_all()
            db.create_all()

            db.session.add(GameType(key_name='vrai-faux', name='Vrai ou Faux'))
            admin = Profile(username='admin', role=Role.SUPREME)
            admin.set_password('password')
            db.session.add(admin)
            for u in ['player1', 'player2', 'player3']:
                player = Profile(username=u, solde_cfa=1000)
                player.set_password('password')
                db.session.add(player)

            db.session.commit()
            print('Database has been reset and seeded!')

    flask_app.cli.add_command(db_reset_command)

    return flask_app


def _register_error_handlers(flask_app):
    from harmonia.errors import DependencyError, HarmoniaError

    @flask_app.errorhandler(HarmoniaError)
    def handle_harmonia_error(exc):
        return jsonify(exc.to_dict()), exc.status_code

    @flask_app.errorhandler(OperationalError)
    def handle_store_unreachable(exc):
        db.session.rollback()
        flask_app.logger.error(f"[store] operational error: {exc.orig}")
        err = DependencyError('Storage backend unavailable')
        return jsonify(err.to_dict()), err.status_code

    @flask_app.errorhandler(HTTPException)
    def handle_http_exception(exc):
        return jsonify({'error': exc.description, 'code': exc.name.lower().replace(' ', '_')}), exc.code

    @flask_app.errorhandler(Exception)
    def handle_unexpected(exc):
        db.session.rollback()
        flask_app.logger.exception(f"[unhandled] {type(exc).__name__}")
        return jsonify({'error': 'Internal server error', 'code': 'internal_error'}), 500
