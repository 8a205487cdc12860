"""Account settings with property-change notification.

An account is made of two independent halves: the credentials and the
optional settings. Each half may be read from and persisted to a different
place, so ``AccountInfo`` only passes reads, writes and persistence through
to them and tells listeners when a value actually changes.
"""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import yaml  # type: ignore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PropertyChangeEvent:
    source: Any
    property_name: str
    old_value: Any
    new_value: Any


PropertyChangeListener = Callable[[PropertyChangeEvent], None]


class PropertyChangeSupport:
    """Keeps listeners for all properties or for one named property."""

    def __init__(self, source: Any):
        self._source = source
        self._listeners: List[PropertyChangeListener] = []
        self._named_listeners: Dict[str, List[PropertyChangeListener]] = {}

    def add_listener(self, listener: PropertyChangeListener, property_name: Optional[str] = None) -> None:
        if property_name is None:
            self._listeners.append(listener)
        else:
            self._named_listeners.setdefault(property_name, []).append(listener)

    def remove_listener(self, listener: PropertyChangeListener, property_name: Optional[str] = None) -> None:
        listeners = self._listeners if property_name is None else self._named_listeners.get(property_name, [])
        if listener in listeners:
            listeners.remove(listener)

    def has_listeners(self, property_name: Optional[str] = None) -> bool:
        if self._listeners:
            return True
        return property_name is not None and bool(self._named_listeners.get(property_name))

    def fire(self, property_name: str, old_value: Any, new_value: Any) -> None:
        if old_value == new_value:
            return
        event = PropertyChangeEvent(
            source=self._source,
            property_name=property_name,
            old_value=old_value,
            new_value=new_value,
        )
        for listener in list(self._listeners) + list(self._named_listeners.get(property_name, [])):
            listener(event)


class _Configuration(ABC):
    """Value holder with dirty tracking and pluggable persistence."""

    FIELDS: tuple = ()

    def __init__(self, values: Optional[Dict[str, str]] = None):
        self._values: Dict[str, str] = {name: "" for name in self.FIELDS}
        if values:
            for name, value in values.items():
                self._check_field(name)
                self._values[name] = "" if value is None else str(value)
        self._dirty = False

    @property
    def is_dirty(self) -> bool:
        return self._dirty

    def get(self, name: str) -> str:
        self._check_field(name)
        return self._values[name]

    def set(self, name: str, value: Optional[str]) -> None:
        self._check_field(name)
        new_value = "" if value is None else value
        if self._values[name] != new_value:
            self._values[name] = new_value
            self._dirty = True

    def values(self) -> Dict[str, str]:
        return dict(self._values)

    def save(self) -> None:
        self._persist(self.values())
        self._dirty = False

    def delete(self) -> None:
        self._remove()
        self._dirty = False

    @abstractmethod
    def _persist(self, values: Dict[str, str]) -> None:
        ...

    @abstractmethod
    def _remove(self) -> None:
        ...

    def _check_field(self, name: str) -> None:
        if name not in self.FIELDS:
            raise KeyError(f"{type(self).__name__} has no field {name!r}")


class AccountCredentialsConfiguration(_Configuration):
    """Account name plus the access key pair."""

    FIELDS = ("account_name", "access_key", "secret_key")

    def is_credentials_valid(self) -> bool:
        return bool(self.get("access_key").strip()) and bool(self.get("secret_key").strip())


class AccountOptionalConfiguration(_Configuration):
    """User id and the EC2 key material locations."""

    FIELDS = ("user_id", "ec2_private_key_file", "ec2_certificate_file")

    def is_certificate_valid(self) -> bool:
        private_key = self.get("ec2_private_key_file")
        certificate = self.get("ec2_certificate_file")
        if not private_key or not certificate:
            return False
        return Path(private_key).expanduser().is_file() and Path(certificate).expanduser().is_file()


class MemoryCredentialsConfiguration(AccountCredentialsConfiguration):
    """Credentials kept in memory only; ``saved`` holds the last saved values."""

    def __init__(self, values: Optional[Dict[str, str]] = None):
        super().__init__(values)
        self.saved: Optional[Dict[str, str]] = None

    def _persist(self, values: Dict[str, str]) -> None:
        self.saved = values

    def _remove(self) -> None:
        self.saved = None
        self._values = {name: "" for name in self.FIELDS}


class YamlOptionalConfiguration(AccountOptionalConfiguration):
    """Optional settings stored under ``accounts.<account_id>`` in a YAML file."""

    def __init__(self, path: Path, account_id: str):
        self._path = Path(path)
        self._account_id = account_id
        super().__init__(self._read_section())

    @property
    def path(self) -> Path:
        return self._path

    def _persist(self, values: Dict[str, str]) -> None:
        document = self._read_document()
        document["accounts"][self._account_id] = values
        self._write_document(document)
        logger.debug("Saved optional settings for account %s to %s", self._account_id, self._path)

    def _remove(self) -> None:
        document = self._read_document()
        accounts = document["accounts"]
        if self._account_id in accounts:
            del accounts[self._account_id]
            self._write_document(document)
            logger.debug("Removed account %s from %s", self._account_id, self._path)
        self._values = {name: "" for name in self.FIELDS}

    def _read_section(self) -> Dict[str, str]:
        section = self._read_document()["accounts"].get(self._account_id) or {}
        if not isinstance(section, dict):
            raise ValueError(f"accounts.{self._account_id} in {self._path} must be a mapping")
        return {name: section[name] for name in self.FIELDS if section.get(name) is not None}

    def _read_document(self) -> Dict[str, Any]:
        if not self._path.exists():
            return {"accounts": {}}
        data = yaml.safe_load(self._path.read_text()) or {}
        if not isinstance(data, dict):
            raise ValueError(f"{self._path} must contain a mapping")
        accounts = data.get("accounts")
        if accounts is not None and not isinstance(accounts, dict):
            raise ValueError(f"'accounts' in {self._path} must be a mapping")
        # An empty "accounts:" key loads as None.
        data["accounts"] = accounts or {}
        return data

    def _write_document(self, document: Dict[str, Any]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(yaml.safe_dump(document, default_flow_style=False, sort_keys=True))


def _pass_through(config_attr: str, field_name: str, doc: str) -> property:
    def getter(self: "AccountInfo") -> str:
        return getattr(self, config_attr).get(field_name)

    def setter(self: "AccountInfo", value: Optional[str]) -> None:
        config = getattr(self, config_attr)
        old_value = config.get(field_name)
        new_value = "" if value is None else value
        if old_value != new_value:
            config.set(field_name, new_value)
            self._changes.fire(field_name, old_value, new_value)

    return property(getter, setter, doc=doc)


class AccountInfo:
    """One configured account."""

    def __init__(
        self,
        account_id: str,
        credentials_config: AccountCredentialsConfiguration,
        optional_config: AccountOptionalConfiguration,
    ):
        if account_id is None:
            raise ValueError("account_id must not be None")
        if credentials_config is None:
            raise ValueError("credentials_config must not be None")
        if optional_config is None:
            raise ValueError("optional_config must not be None")

        self._account_id = account_id
        self._credentials_config = credentials_config
        self._optional_config = optional_config
        self._changes = PropertyChangeSupport(self)

    @property
    def internal_account_id(self) -> str:
        return self._account_id

    account_name = _pass_through("_credentials_config", "account_name", "Display name of the account.")
    access_key = _pass_through("_credentials_config", "access_key", "Access key id.")
    secret_key = _pass_through("_credentials_config", "secret_key", "Secret access key.")
    user_id = _pass_through("_optional_config", "user_id", "Account user id.")
    ec2_private_key_file = _pass_through("_optional_config", "ec2_private_key_file", "Path to the EC2 private key.")
    ec2_certificate_file = _pass_through("_optional_config", "ec2_certificate_file", "Path to the EC2 certificate.")

    @property
    def is_dirty(self) -> bool:
        return self._credentials_config.is_dirty or self._optional_config.is_dirty

    @property
    def is_valid(self) -> bool:
        return self._credentials_config.is_credentials_valid()

    @property
    def is_certificate_valid(self) -> bool:
        return self._optional_config.is_certificate_valid()

    def save(self) -> None:
        self._credentials_config.save()
        self._optional_config.save()

    def delete(self) -> None:
        self._credentials_config.delete()
        self._optional_config.delete()

    def add_property_change_listener(
        self, listener: PropertyChangeListener, property_name: Optional[str] = None
    ) -> None:
        self._changes.add_listener(listener, property_name)

    def remove_property_change_listener(
        self, listener: PropertyChangeListener, property_name: Optional[str] = None
    ) -> None:
        self._changes.remove_listener(listener, property_name)

    def __repr__(self) -> str:
        secret = "****" if self.secret_key else ""
        return (
            f"[{self.account_name}]: accessKey={self.access_key}, secretKey={secret}, "
            f"userId={self.user_id}, certFile={self.ec2_certificate_file}, "
            f"privateKey={self.ec2_private_key_file}"
        )
