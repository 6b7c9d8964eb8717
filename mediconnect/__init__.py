from flask import Flask
from mediconnect.extensions import db, migrate, jwt, limiter, cors
from mediconnect.utils.cloudinary_util import cloudinary_manager
from mediconnect.utils.error_handlers import register_error_handlers
from mediconnect.commands import register_commands
import os
from config import config


def create_app(config_name=None):
    app = Flask(__name__)
    config_name = config_name or os.getenv('FLASK_CONFIG', 'default')
    config_class = config[config_name]
    app.config.from_object(config_class)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)
    jwt.init_app(app)
    limiter.init_app(app)
    cors.init_app(app,
                  origins=app.config['ALLOWED_ORIGINS'],
                  supports_credentials=True,
                  allow_headers=['Content-Type', 'Authorization', 'X-Requested-With'],
                  methods=['GET', 'POST', 'OPTIONS'])

    # Initialize custom utilities
    cloudinary_manager.init_app(app)

    # Initialize app with config
    config_class.init_app(app)

    # Register blueprints
    from mediconnect.api import api_bp
    app.register_blueprint(api_bp, url_prefix='/api')

    # Register error handlers and commands
    register_error_handlers(app)
    register_commands(app)

    # JWT token blacklist checker
    @jwt.token_in_blocklist_loader
    def check_if_token_revoked(jwt_header, jwt_payload):
        from mediconnect.models import RevokedToken
        jti = jwt_payload['jti']
        return RevokedToken.query.filter_by(jti=jti).first() is not None

    return app
