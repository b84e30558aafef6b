from typing import Optional

from fastapi import Header, HTTPException

from bazart.core.config import settings
from bazart.db.session import SessionLocal
from bazart.services.payment_client import PaymentClient

def get_db():
    db = SessionLocal()
    try: yield db
    finally: db.close()

def get_payment_client() -> PaymentClient:
    return PaymentClient()

def internal_only(x_internal_key: Optional[str] = Header(default=None, alias="X-Internal-Key")):
    if not x_internal_key or x_internal_key != settings.SVC_INTERNAL_KEY:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return True
