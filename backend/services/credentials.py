# backend/services/credentials.py
"""
Credential table loading and per-device candidate lookup.

The credentials file is YAML, keyed by the device name advertised in the
onvif://www.onvif.org/name/ scope:

    Cam1:
      admin: "s3cret"
      operator: "1234"
    NVR-Lobby:
      root: "pass"

Pairs are tried in file order. The loaded table is read-only and shared by
every device task.
"""

import logging
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

import yaml
from pydantic import ConfigDict, TypeAdapter, ValidationError

from errors import ConfigurationError
from models.inventory import ANONYMOUS, CredentialCandidate

logger = logging.getLogger(__name__)

CredentialTable = Mapping[str, Tuple[CredentialCandidate, ...]]

_TABLE_SCHEMA = TypeAdapter(
    Dict[str, Dict[str, str]],
    config=ConfigDict(coerce_numbers_to_str=True),
)


def build_credential_table(raw: Any, source: str = "<memory>") -> CredentialTable:
    """
    Validate a parsed two-level mapping and freeze it

    Args:
        raw: Parsed YAML (device name -> {username: password}); None is empty
        source: Where the data came from, for error messages

    Raises:
        ConfigurationError: If the structure is not a mapping of mappings
            of strings
    """
    if raw is None:
        raw = {}

    try:
        data = _TABLE_SCHEMA.validate_python(raw)
    except ValidationError as e:
        problems = [
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
            for err in e.errors()
        ]
        raise ConfigurationError(
            f"Invalid credential table in {source}",
            setting="credentials_file",
            details={"problems": problems},
        ) from e

    table = {
        name: tuple(CredentialCandidate(username, password) for username, password in users.items())
        for name, users in data.items()
    }
    return MappingProxyType(table)


def load_credential_table(path: Union[str, Path]) -> CredentialTable:
    """
    Load the credential table from a YAML file

    Raises:
        ConfigurationError: File missing/unreadable, bad YAML or bad structure
    """
    path = Path(path)
    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f)
    except OSError as e:
        raise ConfigurationError(
            f"Cannot read credentials file {path}: {e.strerror or e}",
            setting="credentials_file",
        ) from e
    except yaml.YAMLError as e:
        raise ConfigurationError(
            f"Credentials file {path} is not valid YAML: {e}",
            setting="credentials_file",
        ) from e

    table = build_credential_table(raw, source=str(path))
    logger.info(f"Loaded credentials for {len(table)} device names from {path}")
    return table


def parse_credential_pairs(text: str, setting: str = "fallback_credentials") -> Tuple[CredentialCandidate, ...]:
    """
    Parse "user:password,user2:password2" into candidates

    The password is everything after the first colon.
    """
    candidates = []
    for item in text.split(","):
        item = item.strip()
        if not item:
            continue
        username, sep, password = item.partition(":")
        if not sep or not username:
            raise ConfigurationError(
                f"Expected user:password, got '{username}{sep}...'",
                setting=setting,
            )
        candidates.append(CredentialCandidate(username, password))
    return tuple(candidates)


class CredentialCatalog:
    """
    Picks the ordered candidate list for a discovered device.

    Matched names get their table entry; everything else gets the fallback
    list, which may be empty (the device is then reported as exhausted
    without any attempt).
    """

    def __init__(
        self,
        table: CredentialTable,
        fallback: Sequence[CredentialCandidate] = (),
        try_anonymous: bool = False,
    ):
        self.table = table
        self.fallback = tuple(fallback)
        self.try_anonymous = try_anonymous

    def candidates_for(self, name: Optional[str]) -> Tuple[List[CredentialCandidate], bool]:
        """
        Args:
            name: Advertised device name (exact match, None never matches)

        Returns:
            (candidates in trial order, whether the name was in the table)
        """
        matched = name is not None and name in self.table
        candidates = list(self.table[name]) if matched else list(self.fallback)
        if self.try_anonymous and ANONYMOUS not in candidates:
            candidates.append(ANONYMOUS)
        return candidates, matched
