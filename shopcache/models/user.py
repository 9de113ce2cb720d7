"""
User models.

``User`` is the persisted account; ``UserDTO`` is the minimal projection
kept in the session hash and bound to the request context.
"""

from shopcache.models.shop import CamelModel


class User(CamelModel):
    id: int | None = None
    phone: str
    password: str | None = None
    nick_name: str = ""
    icon: str = ""


class UserDTO(CamelModel):
    id: int
    nick_name: str = ""
    icon: str = ""

    @classmethod
    def from_user(cls, user: User) -> "UserDTO":
        return cls(id=user.id, nick_name=user.nick_name, icon=user.icon)

    def to_hash(self) -> dict[str, str]:
        """Flatten to a Redis hash mapping (all values as strings)."""
        return {key: str(value) for key, value in self.model_dump(by_alias=True).items()}

    @classmethod
    def from_hash(cls, mapping: dict[str, str]) -> "UserDTO":
        return cls.model_validate(mapping)
