import os
import logging
from dotenv import load_dotenv
from flask import Flask
from flask_cors import CORS
from flask_sqlalchemy import SQLAlchemy
from sqlalchemy.orm import DeclarativeBase
from werkzeug.middleware.proxy_fix import ProxyFix

load_dotenv()

# Configure logging
logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

class Base(DeclarativeBase):
    pass

db = SQLAlchemy(model_class=Base)


def load_config():
    """Settings from the environment; overridden by create_app(test_config)."""
    max_upload = int(os.environ.get("MAX_UPLOAD_BYTES", 10 * 1024 * 1024))
    return {
        "SQLALCHEMY_DATABASE_URI": os.environ.get("DATABASE_URL", "sqlite:///taskstake.db"),
        "SQLALCHEMY_ENGINE_OPTIONS": {
            "pool_recycle": 300,
            "pool_pre_ping": True,
        },
        "UPLOAD_FOLDER": os.environ.get("UPLOAD_FOLDER", "uploads"),
        "MAX_UPLOAD_BYTES": max_upload,
        # room for the other multipart fields around the file
        "MAX_CONTENT_LENGTH": max_upload + 64 * 1024,
        "CORS_ORIGINS": os.environ.get("CORS_ORIGINS", "*"),
        "LEDGER_RPC_URL": os.environ.get("LEDGER_RPC_URL"),
        "LEDGER_CONTRACT_ADDRESS": os.environ.get("LEDGER_CONTRACT_ADDRESS"),
        "LEDGER_PRIVATE_KEY": os.environ.get("LEDGER_PRIVATE_KEY"),
        "LEDGER_ABI_PATH": os.environ.get("LEDGER_ABI_PATH"),
        "LEDGER_RECEIPT_TIMEOUT": int(os.environ.get("LEDGER_RECEIPT_TIMEOUT", 120)),
    }


def ledger_configured(config):
    return all(config.get(k) for k in ("LEDGER_RPC_URL", "LEDGER_CONTRACT_ADDRESS", "LEDGER_PRIVATE_KEY"))


def create_app(test_config=None, blob_store=None, ledger=None):
    # Create the app
    app = Flask(__name__)
    app.config.from_mapping(load_config())
    if test_config:
        app.config.update(test_config)
    app.wsgi_app = ProxyFix(app.wsgi_app, x_proto=1, x_host=1)

    origins = app.config["CORS_ORIGINS"]
    CORS(app, origins=origins if origins == "*" else [o.strip() for o in origins.split(",")])

    # Initialize the app with the extension
    db.init_app(app)

    # Import routes after db creation to avoid circular imports
    from ledger import Web3Ledger
    from routes import api, register_error_handlers
    from services import TaskService, TaskStore
    from storage import LocalBlobStore

    if blob_store is None:
        blob_store = LocalBlobStore(app.config["UPLOAD_FOLDER"], max_size=app.config["MAX_UPLOAD_BYTES"])
    if ledger is None and ledger_configured(app.config):
        ledger = Web3Ledger.from_config(app.config)
        logging.info("Ledger staking enabled for contract %s", app.config["LEDGER_CONTRACT_ADDRESS"])

    app.extensions["taskstake"] = TaskService(TaskStore(db.session), blob_store, ledger)

    app.register_blueprint(api)
    register_error_handlers(app)

    with app.app_context():
        # Import models to ensure tables are created
        import models  # noqa: F401
        db.create_all()

    return app


if __name__ == "__main__":
    # go through the importable module so models and this app share one db
    from app import create_app as _create_app
    _create_app().run(host="0.0.0.0", port=int(os.environ.get("PORT", 3000)))
