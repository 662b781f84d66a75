# repos/audit.py
from typing import Dict, Any, List, Optional
from datetime import datetime
from pymongo.database import Database
from pymongo import ASCENDING, DESCENDING


def ensure_indexes(db: Database) -> None:
    db.admin_audit.create_index([("created_at", DESCENDING)], name="recent_first")
    db.admin_audit.create_index([("actor_id", ASCENDING), ("created_at", DESCENDING)], name="by_actor")


def insert_action(db: Database, *, actor_id: str, actor_email: Optional[str], action: str,
                  target_type: str, target_id: str, details: Optional[Dict[str, Any]], ts: datetime) -> str:
    res = db.admin_audit.insert_one({
        "actor_id": actor_id,
        "actor_email": actor_email,
        "action": action,
        "target_type": target_type,
        "target_id": target_id,
        "details": details or {},
        "created_at": ts,
    })
    return str(res.inserted_id)


def list_recent(db: Database, *, limit: int = 50, actor_id: Optional[str] = None) -> List[Dict[str, Any]]:
    query = {"actor_id": actor_id} if actor_id else {}
    cur = db.admin_audit.find(query).sort("created_at", DESCENDING).limit(limit)
    out = []
    for doc in cur:
        doc["_id"] = str(doc["_id"])
        out.append(doc)
    return out
