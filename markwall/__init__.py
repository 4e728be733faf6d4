from flask import Flask

from markwall.api import api_bp
from markwall.auth import auth_bp
from markwall.config import Config
from markwall.extensions import db, login_manager, migrate
from markwall.jobs.scheduler import start_scheduler
from markwall.services.image_store import init_image_store
from markwall.services.promotion_jobs import run_transient_image_sweep


def create_app(config_object=Config):
    app = Flask(__name__)
    app.config.from_object(config_object)

    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)
    init_image_store(app)

    app.register_blueprint(auth_bp)
    app.register_blueprint(api_bp)

    @app.cli.command("init-db")
    def init_db_command():
        db.create_all()
        print("Initialized MarkWall database.")

    @app.cli.command("sweep-images")
    def sweep_images_command():
        counts = run_transient_image_sweep(app)
        print(f"Transient image sweep: {counts or 'nothing to promote'}")

    with app.app_context():
        db.create_all()

    start_scheduler(app)
    return app
