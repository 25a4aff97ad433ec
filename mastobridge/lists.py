"""
List endpoints: the caller's lists, and one list with its member accounts.

accountsInList can save a snapshot (list + member ids) when ?save=true, guarded by a
pre-shared key so non-owners can later be given access to it.
"""
import logging
import secrets
from base64 import urlsafe_b64encode

from fastapi import APIRouter, Depends

from mastobridge.errors import ListNotFoundError
from mastobridge.preflight import Flight, get_flight
from mastobridge.store import CredentialStore, ListMembership, SavedList, get_store

logger = logging.getLogger(__name__)
router = APIRouter()

PSK_LENGTH = 32
_PSK_RANDOM_BYTES = 48


def generate_psk() -> str:
    """32 url-safe characters from 48 random bytes."""
    return urlsafe_b64encode(secrets.token_bytes(_PSK_RANDOM_BYTES)).decode("ascii")[:PSK_LENGTH]


def _flag(value: str | None) -> bool:
    return (value or "false").strip().lower() == "true"


def _account_ids(accounts: list[dict]) -> tuple[str, ...]:
    ids = []
    for account in accounts:
        account_id = account.get("id")
        if account_id is None:
            logger.warning("skipping list account without id: %s", account.get("acct"))
            continue
        ids.append(str(account_id))
    return tuple(ids)


@router.get("/api/myLists")
def my_lists(flight: Flight = Depends(get_flight)):
    return flight.client.lists()


@router.get("/api/accountsInList/{list_id}")
def accounts_in_list(
    list_id: str,
    save: str | None = None,
    public: str | None = None,
    psk: str | None = None,
    flight: Flight = Depends(get_flight),
    store: CredentialStore = Depends(get_store),
):
    list_id = list_id.strip()
    found = flight.client.lists(list_id)
    if not found:
        raise ListNotFoundError(list_id)
    the_list = found[0]
    accounts = flight.client.accounts_in_list(list_id)

    saved = _flag(save)
    is_public = False
    key = ""
    if saved:
        is_public = _flag(public)
        key = psk.strip() if psk and psk.strip() else generate_psk()
        member_ids = _account_ids(accounts)
        store.put_list_snapshot(
            SavedList(
                instance=flight.host,
                list_id=list_id,
                title=the_list.get("title", ""),
                owner_user_id=flight.user_id,
                psk=key,
                public=is_public,
            ),
            ListMembership(instance=flight.host, list_id=list_id, account_ids=member_ids),
        )
        logger.info("saved list %s on %s (%d accounts)", list_id, flight.host, len(member_ids))

    return {
        "saved": saved,
        "public": is_public,
        "listID": list_id,
        "listName": the_list.get("title", ""),
        "ownerID": flight.user_id,
        "psk": key,
        "accounts": accounts,
    }
