# Overview: Shared Flask extension instances (Flask-SQLAlchemy, Flask-Migrate).

from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

db = SQLAlchemy()
migrate = Migrate()
