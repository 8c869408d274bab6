from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from flask_bcrypt import Bcrypt
from flask_migrate import Migrate
from flask_login import LoginManager

db = SQLAlchemy()
bcrypt = Bcrypt()
migrate = Migrate()
login_manager = LoginManager()
# A sessão vem do cookie assinado, validado a cada requisição
login_manager.session_protection = None


def create_app(config_overrides=None):
    from salao.config import Config, validar_config

    app = Flask(__name__)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)
    validar_config(app.config)

    from salao.logs import configurar_logs
    configurar_logs(app)

    db.init_app(app)
    bcrypt.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)

    from salao.rate_limit import init_rate_limiters
    from salao.errors import register_error_handlers
    init_rate_limiters(app)
    register_error_handlers(app)

    with app.app_context():
        from salao import models  # noqa: F401
        from salao.views import bp
        from salao.cli import register_commands

        app.register_blueprint(bp)
        register_commands(app)

    return app
