# API routes
from pmo.api.routes import health
from pmo.api.routes import auth
from pmo.api.routes import tenants
from pmo.api.routes import modules
from pmo.api.routes import clients
from pmo.api.routes import projects
from pmo.api.routes import accounts
from pmo.api.routes import expenses
from pmo.api.routes import admin_users

__all__ = [
    "health",
    "auth",
    "tenants",
    "modules",
    "clients",
    "projects",
    "accounts",
    "expenses",
    "admin_users",
]
