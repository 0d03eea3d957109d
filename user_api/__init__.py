"""User management REST API - Backend.

A deliberately small service:
- Accounts (name, username, password hash)
- Password login issuing a signed bearer token (JWT)
- Token-gated CRUD over accounts

The password hash never leaves the backend; every account returned by the
API is the public representation.

See README for setup and usage.
"""

__all__ = ["__version__"]

__version__ = "0.1.0"
