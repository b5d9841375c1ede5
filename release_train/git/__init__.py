"""Git operations on the release checkout.

Usage:
    from release_train.git import ReleaseCheckout

    checkout = ReleaseCheckout(gateway)
    checkout.fetch("origin", "master")
"""

from release_train.git.repository import (
    ConflictSide,
    GitError,
    ReleaseCheckout,
)

__all__ = [
    "ConflictSide",
    "GitError",
    "ReleaseCheckout",
]
