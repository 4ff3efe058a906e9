from sqlmodel import SQLModel, Field
from typing import Optional
from .helper import id_generator


class User(SQLModel, table=True):
    """Person who owns boards, is assigned to cards and writes comments.

    Credentials live with the external auth layer; only identity is kept here.
    """
    id: str = Field(default_factory=id_generator('user', 10), primary_key=True)
    username: str = Field(unique=True, index=True)
    email: Optional[str] = Field(default=None, unique=True, index=True)
    display_name: Optional[str] = Field(default=None)
