"""
Checklist Automation Service
SQLAlchemy extension instance shared by every model module.

Usage:
    from checklist_automation.models import db
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
