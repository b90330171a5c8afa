"""
Innovation Review Portal
SQLAlchemy instance shared by every model module.

Model modules import ``db`` from here; ``create_app`` binds it to the app.
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
