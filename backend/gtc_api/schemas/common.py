"""
Common schemas shared across endpoints.
"""
from pydantic import BaseModel


class HealthResponse(BaseModel):
    code: int
    message: str
