# Overview: Shared extension instances, bound to the app in create_app.

from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy

# One scoped session per app context; services import db from here.
db = SQLAlchemy()
# Revisions live in backend/migrations/versions.
migrate = Migrate()
