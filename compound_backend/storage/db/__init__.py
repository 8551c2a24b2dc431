from .connection import close_pool, create_pool
from .schema import SCHEMA_STATEMENTS, apply_schema

__all__ = ["SCHEMA_STATEMENTS", "apply_schema", "close_pool", "create_pool"]
