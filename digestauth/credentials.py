"""
Credential providers for Digest Authentication.

A credential provider maps a username to its HA1 secret,
MD5(username:realm:password). The digest auth handler never sees plain
passwords. Implementations:
- InMemoryCredentialProvider: Users configured in code
- HtdigestCredentialProvider: Apache htdigest file (user:realm:HA1 lines)
"""

import logging
import re
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from digestauth.digest import compute_ha1

logger = logging.getLogger(__name__)

_HA1_PATTERN = re.compile(r"[0-9a-f]{32}")


class CredentialProvider(ABC):
    """
    Abstract credential lookup interface.

    Implementations must be safe for concurrent calls from async code.
    """

    # Realm the stored secrets belong to, if the provider knows it
    realm: Optional[str] = None

    @abstractmethod
    async def lookup(self, username: str) -> Optional[str]:
        """
        Get the HA1 secret for a user.

        Args:
            username: The username from the Authorization header

        Returns:
            Lowercase hex HA1, or None if the user is unknown

        Raises:
            Exception: If the backing store is unreachable. This is a
                configuration failure and is not turned into a 401.
        """


class InMemoryCredentialProvider(CredentialProvider):
    """Credentials held in a dict."""

    def __init__(self, realm: str, ha1_by_user: Optional[Dict[str, str]] = None):
        """
        Initialize provider.

        Args:
            realm: Realm the secrets belong to
            ha1_by_user: Mapping of username to precomputed HA1
        """
        self.realm = realm
        self._ha1_by_user: Dict[str, str] = {
            username: ha1.lower() for username, ha1 in (ha1_by_user or {}).items()
        }

    @classmethod
    def from_passwords(cls, realm: str, passwords: Dict[str, str]) -> "InMemoryCredentialProvider":
        """Build a provider from plain passwords, hashing them immediately."""
        return cls(
            realm,
            {username: compute_ha1(username, realm, password) for username, password in passwords.items()},
        )

    def add_user(self, username: str, password: str) -> None:
        self._ha1_by_user[username] = compute_ha1(username, self.realm, password)

    async def lookup(self, username: str) -> Optional[str]:
        return self._ha1_by_user.get(username)


def parse_htdigest(content: str) -> List[Tuple[str, str, str]]:
    """
    Parse htdigest file content.

    Blank lines and lines starting with '#' are skipped.

    Returns:
        List of (username, realm, ha1) tuples in file order

    Raises:
        ValueError: If a line is not a valid user:realm:HA1 entry
    """
    entries = []
    for line_number, raw_line in enumerate(content.splitlines(), start=1):
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue

        # Usernames may not contain ':', realms may; HA1 is always last
        parts = line.split(":")
        if len(parts) < 3:
            raise ValueError(f"Invalid htdigest entry on line {line_number}: expected user:realm:HA1")

        username = parts[0]
        realm = ":".join(parts[1:-1])
        ha1 = parts[-1].lower()

        if not username or not realm:
            raise ValueError(f"Invalid htdigest entry on line {line_number}: empty user or realm")
        if not _HA1_PATTERN.fullmatch(ha1):
            raise ValueError(f"Invalid htdigest entry on line {line_number}: HA1 must be 32 hex characters")

        entries.append((username, realm, ha1))
    return entries


class HtdigestCredentialProvider(CredentialProvider):
    """
    Credentials read from an Apache htdigest file.

    Only entries of one realm are served. If no realm is given, the realm
    of the first entry in the file is used.
    """

    def __init__(self, path: str = ".htdigest", realm: Optional[str] = None):
        """
        Initialize provider and load the file.

        Args:
            path: Path to the htdigest file
            realm: Realm to serve (default: realm of the first entry)

        Raises:
            FileNotFoundError: If the file does not exist
            ValueError: If the file is malformed or has no entry for the realm
        """
        self.path = path
        self.realm = realm
        self._ha1_by_user: Dict[str, str] = {}
        self.load()

    def load(self) -> None:
        """(Re)load the htdigest file."""
        file_path = Path(self.path)
        if not file_path.exists():
            raise FileNotFoundError(f"htdigest file not found: {self.path}")

        entries = parse_htdigest(file_path.read_text(encoding="utf-8"))
        if not entries:
            raise ValueError(f"htdigest file has no entries: {self.path}")

        if self.realm is None:
            self.realm = entries[0][1]

        ha1_by_user = {}
        for username, realm, ha1 in entries:
            if realm == self.realm and username not in ha1_by_user:
                ha1_by_user[username] = ha1

        if not ha1_by_user:
            raise ValueError(f"htdigest file has no entries for realm '{self.realm}'")

        self._ha1_by_user = ha1_by_user
        logger.info(f"Loaded {len(ha1_by_user)} user(s) for realm '{self.realm}' from htdigest file")

    async def lookup(self, username: str) -> Optional[str]:
        return self._ha1_by_user.get(username)
