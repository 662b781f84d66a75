# schemas/auth_schemas.py
from typing import List, Optional
from pydantic import BaseModel


class Viewer(BaseModel):
    id: str
    email: Optional[str] = None
    display_name: Optional[str] = None
    is_admin: bool = False
    token: str


def is_admin_email(email: Optional[str], allow_list: List[str]) -> bool:
    if not email:
        return False
    return email.strip().lower() in allow_list
