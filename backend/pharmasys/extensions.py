# Overview: Flask extension instances and the per-app collaborators stored on app.extensions.

from flask import current_app
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

db = SQLAlchemy()
migrate = Migrate()

NOTIFIER_KEY = "pharmasys.notifier"
MAILER_KEY = "pharmasys.mailer"


def get_notifier():
    """The EventNotifier built by create_app() for the current app."""
    return current_app.extensions[NOTIFIER_KEY]


def get_mailer():
    return current_app.extensions[MAILER_KEY]
