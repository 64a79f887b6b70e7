from pydantic import BaseModel
from typing import Optional, List
from datetime import datetime

class ShiftOpenIn(BaseModel):
    bartenders: List[str] = []
    opening_note: Optional[str] = None
    opening_cash_amount: Optional[float] = None

class ShiftCloseIn(BaseModel):
    closing_note: Optional[str] = None
    closing_cash_amount: Optional[float] = None

class BartenderOut(BaseModel):
    id: str
    name: str

class ShiftOut(BaseModel):
    id: str
    status: str
    opened_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None
    opened_by_staff_id: Optional[str] = None
    opening_note: Optional[str] = None
    closing_note: Optional[str] = None
    opening_cash_amount: Optional[float] = None
    closing_cash_amount: Optional[float] = None
    summary: Optional[dict] = None
    bartenders: List[BartenderOut] = []
