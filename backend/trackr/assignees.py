"""Assignee resolution.

Turns an assignee reference into a user record. Identifier references are
the reliable path; name references exist for the legacy subtask flow and
resolve only on an exact, unambiguous match. Mention handles from comments
follow the same rule against each user's handle forms.
"""

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Union

if TYPE_CHECKING:
    from .models import User
    from .read_model import UserDirectory

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AssigneeId:
    """Reference to a user by identifier."""

    user_id: int


@dataclass(frozen=True)
class AssigneeName:
    """Reference to a user by display name."""

    name: str


@dataclass(frozen=True)
class AssigneeHandle:
    """Reference to a user by an @mention handle (without the @)."""

    handle: str


AssigneeReference = Union[AssigneeId, AssigneeName, AssigneeHandle]

MENTION_PATTERN = re.compile(r"@([A-Za-z0-9_]+)")


class MissReason(Enum):
    """Why a reference could not be resolved."""

    UNKNOWN_ID = "unknown-id"
    NOT_FOUND = "not-found"
    AMBIGUOUS = "ambiguous"


@dataclass(frozen=True)
class ResolutionMiss:
    """A reference that did not resolve to exactly one user."""

    reference: AssigneeReference
    reason: MissReason

    def __str__(self) -> str:
        return f"{self.reason.value}: {self.reference}"


def normalize_name(name: str) -> str:
    """Trim and case-fold a display name for comparison."""
    return (name or "").strip().casefold()


def extract_mentions(content: str) -> list[str]:
    """Get the distinct @handles in a comment, in order of appearance."""
    return list(dict.fromkeys(MENTION_PATTERN.findall(content or "")))


def handle_forms(user: "User") -> set[str]:
    """Handles that refer to a user.

    "Jane Doe" <jdoe@example.com> answers to @JaneD, @JaneDoe and @jdoe
    (the e-mail local part), all case-insensitive.
    """
    name = normalize_name(user.name)
    parts = name.split()
    forms = {"".join(parts)}
    if len(parts) >= 2:
        forms.add(parts[0] + parts[-1][0])
    if user.email:
        forms.add(user.email.split("@")[0].casefold())
    forms.discard("")
    return forms


class AssigneeResolver:
    """Resolves assignee references against the user directory."""

    def __init__(self, directory: "UserDirectory"):
        self.directory = directory

    def resolve(self, reference: AssigneeReference) -> Union["User", ResolutionMiss]:
        """Resolve a reference to a user.

        Users without an e-mail address still resolve; deciding the address
        is unusable is left to the dispatcher.

        Args:
            reference: AssigneeId, AssigneeName or AssigneeHandle

        Returns:
            The matching User, or a ResolutionMiss with the reason
        """
        if isinstance(reference, AssigneeId):
            user = self.directory.get(reference.user_id)
            if user is None:
                logger.warning(
                    f"Assignee id {reference.user_id} does not exist (data integrity)"
                )
                return ResolutionMiss(reference, MissReason.UNKNOWN_ID)
            return user

        if isinstance(reference, AssigneeName):
            wanted = normalize_name(reference.name)
            matches = [
                u for u in self.directory.all() if normalize_name(u.name) == wanted
            ]
            if not wanted or not matches:
                logger.warning(f"No user named {reference.name!r}")
                return ResolutionMiss(reference, MissReason.NOT_FOUND)
            if len(matches) > 1:
                logger.warning(
                    f"Name {reference.name!r} matches {len(matches)} users, not guessing"
                )
                return ResolutionMiss(reference, MissReason.AMBIGUOUS)
            return matches[0]

        if isinstance(reference, AssigneeHandle):
            wanted = reference.handle.strip().lstrip("@").casefold()
            matches = [u for u in self.directory.all() if wanted in handle_forms(u)]
            if not wanted or not matches:
                logger.warning(f"No user answers to @{reference.handle}")
                return ResolutionMiss(reference, MissReason.NOT_FOUND)
            if len(matches) > 1:
                logger.warning(
                    f"Handle @{reference.handle} matches {len(matches)} users, not guessing"
                )
                return ResolutionMiss(reference, MissReason.AMBIGUOUS)
            return matches[0]

        raise TypeError(f"Unsupported assignee reference: {reference!r}")
