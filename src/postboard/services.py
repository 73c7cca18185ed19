"""Service layer for posts and tags."""

import logging
from typing import Iterable, List, Optional

from prometheus_client import Counter
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .config import settings
from .errors import ApiError, Forbidden, InternalError, NotFound
from .models.post import Post, Tag
from .models.user import User
from .roles import Role, has_role
from .schemas import PostCreate, PostUpdate


logger = logging.getLogger(__name__)

POST_COUNTER = Counter("posts_created_total", "Total posts created")


def _handle_service_error(session: Session, exc: Exception) -> None:
    """Rollback the transaction and re-raise as an API error."""
    session.rollback()
    if isinstance(exc, ApiError):
        raise exc
    logger.exception("service layer error", exc_info=exc)
    raise InternalError() from exc


def normalize_tag_names(names: Iterable[str]) -> List[str]:
    """Strip names, drop blanks and collapse duplicates keeping first-seen order."""
    seen = []
    for name in names:
        name = name.strip()
        if name and name not in seen:
            seen.append(name)
    return seen


def get_or_create_tags(session: Session, names: Iterable[str]) -> List[Tag]:
    """Resolve each tag name to its row, creating rows for unseen names."""
    wanted = normalize_tag_names(names)
    if not wanted:
        return []
    existing = {
        tag.name: tag for tag in session.query(Tag).filter(Tag.name.in_(wanted)).all()
    }
    tags = []
    for name in wanted:
        tag = existing.get(name)
        if tag is None:
            tag = Tag(name=name)
            session.add(tag)
            existing[name] = tag
        tags.append(tag)
    return tags


def make_excerpt(content: str, length: Optional[int] = None) -> str:
    length = length or settings.excerpt_length
    if len(content) <= length:
        return content
    return content[:length].rstrip() + "..."


def can_modify(user: User, post: Post) -> bool:
    """Authors may change their own posts; admins may change any."""
    return post.author_id == user.id or has_role(user.role, Role.ADMIN)


def list_posts(session: Session) -> List[Post]:
    try:
        return session.query(Post).order_by(Post.created_at.desc()).all()
    except Exception as exc:
        _handle_service_error(session, exc)


def _get_post_or_404(session: Session, post_id: str) -> Post:
    post = session.get(Post, post_id)
    if post is None:
        raise NotFound("Post not found")
    return post


def get_post(session: Session, post_id: str) -> Post:
    """Return a post and count the view."""
    try:
        post = _get_post_or_404(session, post_id)
        post.views = (post.views or 0) + 1
        session.commit()
        session.refresh(post)
        return post
    except Exception as exc:
        _handle_service_error(session, exc)


def create_post(session: Session, author: User, payload: PostCreate) -> Post:
    """Persist a new post written by ``author``."""
    try:
        post = Post(
            title=payload.title,
            content=payload.content,
            excerpt=payload.excerpt or make_excerpt(payload.content),
            category=payload.category.value,
            published=payload.published,
            author_id=author.id,
        )
        post.tags = get_or_create_tags(session, payload.tags)
        session.add(post)
        session.commit()
        session.refresh(post)
    except Exception as exc:
        _handle_service_error(session, exc)
    POST_COUNTER.inc()
    logger.info("user %s created post %s", author.id, post.id)
    return post


def update_post(session: Session, user: User, post_id: str, payload: PostUpdate) -> Post:
    try:
        post = _get_post_or_404(session, post_id)
        if not can_modify(user, post):
            raise Forbidden()
        changes = payload.model_dump(exclude_unset=True)
        tag_names = changes.pop("tags", None)
        # a hand-written excerpt survives content edits
        excerpt_was_generated = post.excerpt == make_excerpt(post.content)
        if changes.get("category") is not None:
            changes["category"] = changes["category"].value
        for field, value in changes.items():
            if value is not None:
                setattr(post, field, value)
        new_content = changes.get("content")
        if excerpt_was_generated and new_content is not None and changes.get("excerpt") is None:
            post.excerpt = make_excerpt(post.content)
        if tag_names is not None:
            post.tags = get_or_create_tags(session, tag_names)
        session.commit()
        session.refresh(post)
        return post
    except Exception as exc:
        _handle_service_error(session, exc)


def delete_post(session: Session, user: User, post_id: str) -> None:
    try:
        post = _get_post_or_404(session, post_id)
        if not can_modify(user, post):
            raise Forbidden()
        session.delete(post)
        session.commit()
    except Exception as exc:
        _handle_service_error(session, exc)
    logger.info("user %s deleted post %s", user.id, post_id)


def like_post(session: Session, post_id: str) -> int:
    """Increment a post's like counter and return the new total."""
    try:
        post = _get_post_or_404(session, post_id)
        post.likes = Post.likes + 1
        session.commit()
        session.refresh(post)
        return post.likes
    except Exception as exc:
        _handle_service_error(session, exc)


def list_tags(session: Session) -> List[Tag]:
    try:
        return session.query(Tag).order_by(Tag.name).all()
    except Exception as exc:
        _handle_service_error(session, exc)
