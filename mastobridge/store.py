"""
Credential store: config scalars, per-instance app credentials, saved lists.

CredentialStore is the capability the rest of the gateway depends on; SqlCredentialStore
implements it on SQLAlchemy. get_* returns None when a record is absent; storage
failures surface as StoreError so callers can tell "missing" from "broken".
"""
import logging
from dataclasses import dataclass, field
from typing import Protocol

from fastapi import Depends
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from mastobridge.database import get_db
from mastobridge.errors import ConfigurationError, StoreError
from mastobridge.models import AppCredentialsRow, ConfigItem, ListMemberRow, SavedListRow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AppCredentials:
    instance: str
    app_id: str
    name: str
    website: str
    redirect_uri: str
    client_id: str
    client_secret: str
    auth_uri: str


@dataclass(frozen=True)
class SavedList:
    instance: str
    list_id: str
    title: str
    owner_user_id: str
    psk: str
    public: bool = False


@dataclass(frozen=True)
class ListMembership:
    instance: str
    list_id: str
    account_ids: tuple[str, ...] = field(default_factory=tuple)


class CredentialStore(Protocol):
    def get_config(self, key: str) -> str | None: ...

    def put_config(self, key: str, value: str) -> None: ...

    def delete_config(self, key: str) -> None: ...

    def get_app_credentials(self, instance: str) -> AppCredentials | None: ...

    def put_app_credentials(self, creds: AppCredentials) -> None: ...

    def delete_app_credentials(self, instance: str) -> None: ...

    def get_list(self, instance: str, list_id: str) -> SavedList | None: ...

    def put_list(self, saved: SavedList) -> None: ...

    def delete_list(self, instance: str, list_id: str) -> None: ...

    def get_list_members(self, instance: str, list_id: str) -> ListMembership | None: ...

    def put_list_members(self, membership: ListMembership) -> None: ...

    def put_list_snapshot(self, saved: SavedList, membership: ListMembership) -> None: ...


def _to_app_credentials(row: AppCredentialsRow) -> AppCredentials:
    return AppCredentials(
        instance=row.instance,
        app_id=row.app_id,
        name=row.name,
        website=row.website,
        redirect_uri=row.redirect_uri,
        client_id=row.client_id,
        client_secret=row.client_secret,
        auth_uri=row.auth_uri,
    )


class SqlCredentialStore:
    """CredentialStore on a SQLAlchemy session. Each write commits immediately."""

    def __init__(self, db: Session):
        self.db = db

    def _fail(self, op: str, exc: SQLAlchemyError) -> StoreError:
        self.db.rollback()
        return StoreError(f"{op} failed: {exc}", operation=op)

    # --- config scalars ---

    def get_config(self, key: str) -> str | None:
        try:
            item = self.db.get(ConfigItem, key)
        except SQLAlchemyError as e:
            raise self._fail(f"get_config({key})", e) from e
        return item.config_value if item is not None else None

    def put_config(self, key: str, value: str) -> None:
        try:
            self.db.merge(ConfigItem(config_key=key, config_value=value))
            self.db.commit()
        except SQLAlchemyError as e:
            raise self._fail(f"put_config({key})", e) from e

    def delete_config(self, key: str) -> None:
        try:
            self.db.query(ConfigItem).filter(ConfigItem.config_key == key).delete()
            self.db.commit()
        except SQLAlchemyError as e:
            raise self._fail(f"delete_config({key})", e) from e

    # --- app credentials ---

    def get_app_credentials(self, instance: str) -> AppCredentials | None:
        try:
            row = self.db.get(AppCredentialsRow, instance)
        except SQLAlchemyError as e:
            raise self._fail("get_app_credentials", e) from e
        return _to_app_credentials(row) if row is not None else None

    def put_app_credentials(self, creds: AppCredentials) -> None:
        # Recreate overwrites the whole record
        try:
            self.db.query(AppCredentialsRow).filter(AppCredentialsRow.instance == creds.instance).delete()
            self.db.add(
                AppCredentialsRow(
                    instance=creds.instance,
                    app_id=creds.app_id,
                    name=creds.name,
                    website=creds.website,
                    redirect_uri=creds.redirect_uri,
                    client_id=creds.client_id,
                    client_secret=creds.client_secret,
                    auth_uri=creds.auth_uri,
                )
            )
            self.db.commit()
        except SQLAlchemyError as e:
            raise self._fail("put_app_credentials", e) from e

    def delete_app_credentials(self, instance: str) -> None:
        try:
            self.db.query(AppCredentialsRow).filter(AppCredentialsRow.instance == instance).delete()
            self.db.commit()
        except SQLAlchemyError as e:
            raise self._fail("delete_app_credentials", e) from e

    # --- saved lists ---

    def get_list(self, instance: str, list_id: str) -> SavedList | None:
        try:
            row = self.db.get(SavedListRow, {"list_id": list_id, "instance": instance})
        except SQLAlchemyError as e:
            raise self._fail("get_list", e) from e
        if row is None:
            return None
        return SavedList(
            instance=row.instance,
            list_id=row.list_id,
            title=row.title,
            owner_user_id=row.owner_user_id,
            psk=row.psk,
            public=row.public,
        )

    def _merge_list(self, saved: SavedList) -> None:
        self.db.merge(
            SavedListRow(
                list_id=saved.list_id,
                instance=saved.instance,
                title=saved.title,
                owner_user_id=saved.owner_user_id,
                psk=saved.psk,
                public=saved.public,
            )
        )

    def _replace_members(self, membership: ListMembership) -> None:
        self.db.query(ListMemberRow).filter(
            ListMemberRow.instance == membership.instance, ListMemberRow.list_id == membership.list_id
        ).delete()
        for account_id in dict.fromkeys(membership.account_ids):
            self.db.add(
                ListMemberRow(list_id=membership.list_id, instance=membership.instance, account_id=account_id)
            )

    def put_list(self, saved: SavedList) -> None:
        try:
            self._merge_list(saved)
            self.db.commit()
        except SQLAlchemyError as e:
            raise self._fail("put_list", e) from e

    def put_list_snapshot(self, saved: SavedList, membership: ListMembership) -> None:
        """List row and member set in one transaction; neither is written if either fails."""
        try:
            self._merge_list(saved)
            self._replace_members(membership)
            self.db.commit()
        except SQLAlchemyError as e:
            raise self._fail("put_list_snapshot", e) from e

    def delete_list(self, instance: str, list_id: str) -> None:
        try:
            self.db.query(SavedListRow).filter(
                SavedListRow.instance == instance, SavedListRow.list_id == list_id
            ).delete()
            self.db.query(ListMemberRow).filter(
                ListMemberRow.instance == instance, ListMemberRow.list_id == list_id
            ).delete()
            self.db.commit()
        except SQLAlchemyError as e:
            raise self._fail("delete_list", e) from e

    def get_list_members(self, instance: str, list_id: str) -> ListMembership | None:
        try:
            rows = (
                self.db.query(ListMemberRow)
                .filter(ListMemberRow.instance == instance, ListMemberRow.list_id == list_id)
                .order_by(ListMemberRow.account_id)
                .all()
            )
        except SQLAlchemyError as e:
            raise self._fail("get_list_members", e) from e
        if not rows:
            return None
        return ListMembership(instance=instance, list_id=list_id, account_ids=tuple(r.account_id for r in rows))

    def put_list_members(self, membership: ListMembership) -> None:
        """Replace the member snapshot for the list."""
        try:
            self._replace_members(membership)
            self.db.commit()
        except SQLAlchemyError as e:
            raise self._fail("put_list_members", e) from e


class GlobalConfig:
    """Read-through view over config scalars, cached for the lifetime of one request."""

    def __init__(self, store: CredentialStore):
        self.store = store
        self._cache: dict[str, str | None] = {}

    def get(self, key: str) -> str | None:
        if key not in self._cache:
            self._cache[key] = self.store.get_config(key)
        return self._cache[key]

    def require(self, key: str) -> str:
        """Return a required scalar; missing or blank is an operator error naming the key."""
        value = self.get(key)
        if value is None or not value.strip():
            raise ConfigurationError(key)
        return value


def get_store(db: Session = Depends(get_db)) -> CredentialStore:
    """Dependency: the credential store for this request."""
    return SqlCredentialStore(db)
