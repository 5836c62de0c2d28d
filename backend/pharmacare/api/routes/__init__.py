# API routes
from pharmacare.api.routes import health
from pharmacare.api.routes import auth
from pharmacare.api.routes import payments
from pharmacare.api.routes import company
from pharmacare.api.routes import admin
from pharmacare.api.routes import access

__all__ = ["health", "auth", "payments", "company", "admin", "access"]
