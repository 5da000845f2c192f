from __future__ import annotations

from pydantic import BaseModel


class InvoiceAmount(BaseModel):
    # RPC results may carry extra columns; only these two are part of the response.
    amount: int
    name: str | None = None


class SeedResponse(BaseModel):
    message: str


class ErrorResponse(BaseModel):
    error: str
