import logging

import click
from dotenv import load_dotenv
from flask import Flask, jsonify

from config import Config
from .extensions import db, login_manager, mail, migrate, celery, csrf
from .celery_utils import init_celery
from .models import User

load_dotenv()


def configure_logging(app):
    level = getattr(logging, str(app.config.get('LOG_LEVEL', 'INFO')).upper(), logging.INFO)
    logging.basicConfig(level=level, format='%(asctime)s %(levelname)s %(name)s: %(message)s')
    logging.getLogger('request_system').setLevel(level)
    app.logger.setLevel(level)


def create_app(config_class=Config):
    app = Flask(__name__)
    app.config.from_object(config_class)
    configure_logging(app)

    # Initialize Extensions
    db.init_app(app)
    mail.init_app(app)
    login_manager.init_app(app)
    migrate.init_app(app, db)
    csrf.init_app(app)
    init_celery(app, celery)

    @login_manager.user_loader
    def load_user(user_id):
        return db.session.get(User, int(user_id))

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({'kind': 'Unauthenticated', 'message': 'Please log in.'}), 401

    from .blueprints.main import main_bp
    from .blueprints.auth import auth_bp
    from .blueprints.admin import admin_bp
    from .blueprints.reports import reports_bp

    app.register_blueprint(main_bp, url_prefix='/api')
    app.register_blueprint(auth_bp, url_prefix='/auth')
    app.register_blueprint(admin_bp, url_prefix='/admin')
    app.register_blueprint(reports_bp, url_prefix='/reports')

    @app.cli.command('seed-db')
    def seed_db():
        """Creates tables and demo branches, departments and users."""
        from .services.admin_service import seed_demo_data
        db.create_all()
        click.echo(f"Seeded {seed_demo_data()} users.")

    # Development convenience; production schemas go through 'flask db upgrade'
    with app.app_context():
        db.create_all()

    return app
