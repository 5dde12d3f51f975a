# Small helpers shared by the service modules
import math
import secrets
from datetime import datetime, timezone
from decimal import Decimal

TXID_MIN = 10 ** 13
TXID_MAX = 10 ** 14  # exclusive

def generate_transaction_id() -> str:
    # 14-digit decimal string from a CSPRNG; collisions are not checked
    return str(TXID_MIN + secrets.randbelow(TXID_MAX - TXID_MIN))

def signed_amount(entry_type: str, amount) -> Decimal:
    amount = Decimal(str(amount))
    return amount if entry_type == "IN" else -amount

def utcnow() -> datetime:
    return datetime.now(timezone.utc)

def pagination(page: int, limit: int, total: int) -> dict:
    return {
        "currentPage": page,
        "totalPages": math.ceil(total / limit) if limit else 0,
        "totalElements": total,
        "limit": limit,
    }
