"""Client helpers for talking to the postboard API.

``AuthState`` keeps the token and the identity projection in an injected
key-value store and answers permission questions locally. Its answers only
decide what a client offers to the user; the server enforces every write.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Protocol

import requests
from pydantic import ValidationError

from .config import settings
from .roles import has_role
from .schemas import UserOut

logger = logging.getLogger(__name__)

TOKEN_KEY = "token"
USER_KEY = "user"

NETWORK_ERROR_MESSAGE = "Network error, please try again"
DEFAULT_ERROR_MESSAGE = "Request failed"


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str) -> None:
        ...

    def delete(self, key: str) -> None:
        ...


class MemoryStore:
    """Dict-backed store, mostly useful in tests and short-lived scripts."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


class JsonFileStore:
    """Store persisted as a single JSON object on disk.

    An unreadable or corrupt file behaves like an empty store.
    """

    def __init__(self, path: os.PathLike | str):
        self.path = Path(path)

    def _load(self) -> Dict[str, str]:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            return {}
        return data if isinstance(data, dict) else {}

    def _dump(self, data: Dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(data), encoding="utf-8")

    def get(self, key: str) -> Optional[str]:
        value = self._load().get(key)
        return value if isinstance(value, str) else None

    def set(self, key: str, value: str) -> None:
        data = self._load()
        data[key] = value
        self._dump(data)

    def delete(self, key: str) -> None:
        data = self._load()
        if key in data:
            del data[key]
            self._dump(data)


class AuthState:
    """Locally cached authentication state."""

    def __init__(self, store: KeyValueStore):
        self.store = store

    def token(self) -> Optional[str]:
        return self.store.get(TOKEN_KEY) or None

    def is_authenticated(self) -> bool:
        return self.token() is not None

    def current_user(self) -> Optional[UserOut]:
        """Return the cached identity, or ``None`` when it is missing or corrupt."""
        raw = self.store.get(USER_KEY)
        if not raw:
            return None
        try:
            return UserOut.model_validate(json.loads(raw))
        except (ValueError, TypeError, ValidationError):
            logger.warning("discarding unreadable cached user")
            return None

    def has_permission(self, required_role: str) -> bool:
        user = self.current_user()
        if user is None:
            return False
        return has_role(user.role, required_role)

    def save(self, token: str, user: Dict[str, Any]) -> None:
        self.store.set(TOKEN_KEY, token)
        self.store.set(USER_KEY, json.dumps(user))

    def clear_auth(self) -> None:
        self.store.delete(TOKEN_KEY)
        self.store.delete(USER_KEY)


class ClientError(Exception):
    """Raised for failed API calls. ``status`` is ``0`` when nothing came back."""

    def __init__(self, status: int, message: str, data: Any = None):
        super().__init__(message)
        self.status = status
        self.message = message
        self.data = data


class ApiClient:
    """Thin wrapper over the HTTP API that sends the cached bearer token."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        auth: Optional[AuthState] = None,
        session: Any = None,
        timeout: float = 10,
    ):
        self.base_url = (base_url or settings.api_base_url).rstrip("/")
        self.auth = auth or AuthState(MemoryStore())
        self.session = session or requests.Session()
        self.timeout = timeout

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        token = self.auth.token()
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    def _request(self, method: str, path: str, body: Any = None) -> Any:
        url = f"{self.base_url}{path}"
        try:
            response = self.session.request(
                method, url, json=body, headers=self._headers(), timeout=self.timeout
            )
        except requests.RequestException as exc:
            logger.warning("%s %s failed: %s", method, url, exc)
            raise ClientError(0, NETWORK_ERROR_MESSAGE) from exc
        return self._handle_response(response)

    def _handle_response(self, response) -> Any:
        if response.status_code >= 400:
            try:
                data = response.json()
            except ValueError:
                data = {}
            message = DEFAULT_ERROR_MESSAGE
            if isinstance(data, dict) and data.get("message"):
                message = data["message"]
            if response.status_code == 401:
                self.auth.clear_auth()
            raise ClientError(response.status_code, message, data)
        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            raise ClientError(response.status_code, DEFAULT_ERROR_MESSAGE)

    def login(self, email: str, password: str) -> Dict[str, Any]:
        result = self._request(
            "POST", "/auth", {"email": email, "password": password, "action": "login"}
        )
        self.auth.save(result["token"], result["user"])
        return result

    def register(self, email: str, password: str, name: str) -> Dict[str, Any]:
        result = self._request(
            "POST", "/auth/register", {"email": email, "password": password, "name": name}
        )
        self.auth.save(result["token"], result["user"])
        return result

    def logout(self) -> None:
        self.auth.clear_auth()

    def get_posts(self) -> List[Dict[str, Any]]:
        return self._request("GET", "/posts")

    def get_post(self, post_id: str) -> Dict[str, Any]:
        return self._request("GET", f"/posts/{post_id}")

    def create_post(
        self, title: str, content: str, category: str, tags: Iterable[str] = ()
    ) -> Dict[str, Any]:
        body = {"title": title, "content": content, "category": category, "tags": list(tags)}
        return self._request("POST", "/posts", body)

    def update_post(self, post_id: str, **fields: Any) -> Dict[str, Any]:
        return self._request("PUT", f"/posts/{post_id}", fields)

    def delete_post(self, post_id: str) -> None:
        self._request("DELETE", f"/posts/{post_id}")

    def like_post(self, post_id: str) -> Dict[str, int]:
        return self._request("POST", f"/posts/{post_id}/like")

    def get_tags(self) -> List[Dict[str, Any]]:
        return self._request("GET", "/tags")


def split_tags(text: str) -> List[str]:
    """Split a comma-separated tag field into clean names."""
    return [tag.strip() for tag in text.split(",") if tag.strip()]


def filter_posts(
    posts: Iterable[Dict[str, Any]], query: str = "", category: str = "all"
) -> List[Dict[str, Any]]:
    """Filter serialized posts by a search query and a category.

    The query matches case-insensitively against the title, the content and
    tag names. ``"all"`` disables the category filter.
    """
    needle = query.lower()
    matches = []
    for post in posts:
        if category != "all" and post.get("category") != category:
            continue
        haystacks = [post.get("title") or "", post.get("content") or ""]
        haystacks.extend(tag.get("name") or "" for tag in post.get("tags") or [])
        if any(needle in text.lower() for text in haystacks):
            matches.append(post)
    return matches
