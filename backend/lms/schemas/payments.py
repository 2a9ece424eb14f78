from __future__ import annotations

from typing import Optional

from pydantic import BaseModel


class PaymentReviewRequest(BaseModel):
    status: Optional[str] = None
    notes: Optional[str] = None
