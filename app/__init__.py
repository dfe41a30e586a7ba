# app/__init__.py

import logging
import os
import time
import click
from flask import Flask, request
from flask_cors import CORS
from werkzeug.exceptions import HTTPException
from .config import Config
from db.extensions import db, migrate, mail, check_database_health
from controllers.settlement_controller import settlement_bp


def create_app(config_object=Config):
    app = Flask(__name__)

    # Load configuration
    app.config.from_object(config_object)

    CORS(app,
         origins=app.config.get('CORS_ORIGINS') or [],
         methods=['GET', 'POST', 'OPTIONS'],
         allow_headers=['Content-Type', 'Authorization', 'X-User-Id', 'X-User-Role'],
         supports_credentials=True,
         max_age=3600
    )

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)
    mail.init_app(app)

    # Mapped classes must be imported before migrations or create_all see them
    from models import shop, order, sellerBalance, settlement, orderSettlement, earningCredit  # noqa: F401

    # Register blueprints
    app.register_blueprint(settlement_bp, url_prefix='/api')

    # Configure logging
    debug_mode = os.getenv("DEBUG_MODE", "false").lower() == "true"
    log_level = logging.DEBUG if debug_mode else logging.INFO
    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    app.logger.setLevel(log_level)

    # Request timing middleware for performance monitoring
    @app.before_request
    def before_request():
        request.start_time = time.time()

    @app.after_request
    def after_request(response):
        if hasattr(request, 'start_time'):
            elapsed = (time.time() - request.start_time) * 1000

            # Log slow requests (over 500ms)
            if elapsed > 500:
                app.logger.warning(
                    f"⚠️  SLOW REQUEST: {request.method} {request.path} "
                    f"took {elapsed:.2f}ms - Status: {response.status_code}"
                )
            elif debug_mode:
                app.logger.info(
                    f"✅ {request.method} {request.path} "
                    f"took {elapsed:.2f}ms - Status: {response.status_code}"
                )

        return response

    # Global error handler
    @app.errorhandler(Exception)
    def handle_exception(e):
        if isinstance(e, HTTPException):
            return e
        app.logger.error(f"❌ Unhandled exception: {str(e)}", exc_info=True)
        return {
            'success': False,
            'message': 'Internal server error. Please try again.'
        }, 500

    # Health check endpoint
    @app.route('/api/health', methods=['GET'])
    def health_check():
        """Health check endpoint for monitoring"""
        if check_database_health():
            return {'status': 'ok', 'database': 'connected', 'timestamp': time.time()}, 200
        return {'status': 'error', 'database': 'unreachable', 'timestamp': time.time()}, 500

    register_commands(app)
    return app


def register_commands(app):
    @app.cli.group('settlements')
    def settlements_cli():
        """Settlement maintenance commands."""

    @settlements_cli.command('release-holds')
    def release_holds():
        """Move matured order proceeds from pending to available balance."""
        from services.earning_service import EarningService
        from services.settlement_policy import SettlementPolicy

        summary = EarningService(db.session, SettlementPolicy.from_config(app.config)).release_matured_earnings()
        click.echo(
            f"Released {summary['amount']} from {summary['credits']} orders "
            f"across {summary['shops']} shops ({len(summary['failed_shops'])} failed)"
        )
