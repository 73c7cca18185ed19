"""Request and response bodies exchanged over HTTP."""

from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .models.post import Category


class _Schema(BaseModel):
    model_config = ConfigDict(
        from_attributes=True, populate_by_name=True, alias_generator=to_camel
    )


class UserOut(_Schema):
    """Identity projection; the password hash is never part of it."""

    id: str
    name: str
    email: str
    role: str
    avatar_url: Optional[str] = None


class TagOut(_Schema):
    id: str
    name: str


class PostOut(_Schema):
    """Serialized article with its author and tags inlined."""

    id: str
    title: str
    content: str
    excerpt: str
    category: str
    tags: List[TagOut] = []
    author: UserOut
    published: bool
    views: int
    likes: int
    comments_count: int = Field(0, alias="comments_count")
    created_at: datetime
    updated_at: datetime


class AuthRequest(BaseModel):
    """Body of ``POST /auth``. Fields are checked by the credential issuer."""

    email: Any = None
    password: Any = None
    action: Optional[str] = None


class RegisterRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=255)
    password: str = Field(..., min_length=1, max_length=72)
    name: str = Field(..., min_length=1, max_length=100)


class AuthResponse(BaseModel):
    token: str
    user: UserOut


class PostCreate(BaseModel):
    """Request body for creating a post. Any ``author`` field is ignored."""

    title: str = Field(..., min_length=1, max_length=200)
    content: str = Field(..., min_length=1)
    category: Category
    tags: List[str] = Field(default_factory=list)
    excerpt: Optional[str] = None
    published: bool = True


class PostUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    content: Optional[str] = Field(None, min_length=1)
    category: Optional[Category] = None
    tags: Optional[List[str]] = None
    excerpt: Optional[str] = None
    published: Optional[bool] = None


class LikeResponse(BaseModel):
    likes: int
