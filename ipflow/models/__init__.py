"""
IP Portfolio Workflow Service
SQLAlchemy extension shared by all models.

Usage:
    from ipflow.models import db
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
