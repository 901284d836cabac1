"""Owner scope: the organization or user that owns the packages."""

from dataclasses import dataclass

from ..exceptions import ConfigurationError

__all__ = ["Organization", "OwnerScope", "User", "resolve_owner_scope"]


@dataclass(frozen=True)
class Organization:
    """Packages owned by a GitHub organization."""

    name: str

    @property
    def api_path(self) -> str:
        return f"orgs/{self.name}"

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class User:
    """Packages owned by a GitHub user."""

    name: str

    @property
    def api_path(self) -> str:
        return f"users/{self.name}"

    def __str__(self) -> str:
        return self.name


type OwnerScope = Organization | User


def resolve_owner_scope(
    *, organization: str | None = None, user: str | None = None
) -> OwnerScope:
    """Build an owner scope from exactly one of an organization or a user.

    Empty strings count as not supplied.

    Raises
    ------
    ConfigurationError
        Raised if neither or both owners are given.
    """
    if organization and user:
        raise ConfigurationError(
            f"Both organization ('{organization}') and user ('{user}') were"
            " given; specify exactly one"
        )
    if organization:
        return Organization(name=organization)
    if user:
        return User(name=user)
    raise ConfigurationError("Neither an organization nor a user was given")
