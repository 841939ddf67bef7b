from flask import Flask
from sqlalchemy import event
from sqlalchemy.engine import Engine
from werkzeug.exceptions import HTTPException
from config import Config
from app.extensions import db, migrate, login_manager
from app.errors import AgendaError
from app.settings import Settings
from app.utils.responses import api_error


def create_app(config_class=Config):
    app = Flask(__name__)
    app.config.from_object(config_class)
    app.logger.setLevel(app.config.get('LOG_LEVEL', 'INFO'))

    # 1. Init Extensions
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)

    # 2. Import Models (Penting agar db.create_all mendeteksi tabel)
    from app import models

    # 3. User Loader (Wajib untuk Flask-Login)
    @login_manager.user_loader
    def load_user(user_id):
        return db.session.get(models.User, int(user_id))

    @login_manager.unauthorized_handler
    def unauthorized():
        return api_error('Silakan login terlebih dahulu', 401)

    # 4. Service wiring: settings dibaca sekali lalu diteruskan ke service
    from app.services.registry import EXTENSION_KEY, build_services
    app.extensions[EXTENSION_KEY] = build_services(Settings.from_mapping(app.config))

    # 5. Error handler -> envelope JSON
    register_error_handlers(app)

    # 6. Registrasi Blueprint
    from app.routes.auth import auth_bp
    from app.routes.main import main_bp
    from app.routes.agendas import agenda_bp
    from app.routes.users import user_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(main_bp)
    app.register_blueprint(agenda_bp, url_prefix='/agendas')
    app.register_blueprint(user_bp, url_prefix='/users')

    return app


def register_error_handlers(app):
    @app.errorhandler(AgendaError)
    def handle_agenda_error(exc):
        if exc.status_code >= 500:
            app.logger.error("Request failed: %s", exc.message)
        return api_error(exc.message, exc.status_code, errors=exc.errors)

    @app.errorhandler(HTTPException)
    def handle_http_error(exc):
        return api_error(exc.description or exc.name, exc.code)

    @app.errorhandler(Exception)
    def handle_unexpected(exc):
        app.logger.exception("Unhandled error")
        return api_error('Terjadi kesalahan sistem', 500)


@event.listens_for(Engine, "connect")
def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    # SQLite mematikan foreign key secara default; ON DELETE SET NULL butuh ini
    if type(dbapi_connection).__module__.startswith('sqlite3'):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()
