"""
Smart Clearance
SQLAlchemy instance shared by all models.

Usage:
    from clearance.models import db
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
