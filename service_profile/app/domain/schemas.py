"""
Response schemas for the user-with-posts payload.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, StrictInt, ValidationError

from shared.errors import format_validation_errors


EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


class Address(BaseModel):
    street: str
    suite: str
    city: str
    zipcode: str


class Company(BaseModel):
    name: str
    catchPhrase: str
    bs: str


class User(BaseModel):
    id: StrictInt = Field(gt=0)
    name: str
    username: str
    email: str = Field(pattern=EMAIL_PATTERN)
    address: Address
    phone: str
    website: str
    company: Company


class Post(BaseModel):
    userId: StrictInt
    id: StrictInt
    title: str
    body: str


class UserWithPosts(BaseModel):
    user: User
    posts: List[Post]


@dataclass(frozen=True)
class ValidationOutcome:
    """Result of checking an upstream payload against :class:`UserWithPosts`.

    This, not the raw payload, is what the cache stores, so a cache hit
    never needs to be validated again.
    """

    success: bool
    data: Optional[UserWithPosts] = None
    errors: Optional[Dict[str, List[str]]] = None


def validate_user_with_posts(payload: Any) -> ValidationOutcome:
    try:
        data = UserWithPosts.model_validate(payload)
    except ValidationError as exc:
        return ValidationOutcome(success=False, errors=format_validation_errors(exc))
    return ValidationOutcome(success=True, data=data)
