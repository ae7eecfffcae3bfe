from .db import db
from .migrate import migrate
from .jwt import jwt
from .ma import ma

__all__ = ["db", "migrate", "jwt", "ma"]
