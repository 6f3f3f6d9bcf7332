"""Unit tests for the refresh-token half of auth/store.py.

Covers:
- a recorded token can be deleted exactly once
- a user_id mismatch deletes nothing
- purge removes only expired rows
- an in-memory store is shared with worker threads
"""

from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone

from auth.store import UserStore, to_iso
from auth.tokens import token_digest


def _later(hours: int = 1) -> str:
    return to_iso(datetime.now(timezone.utc) + timedelta(hours=hours))


class TestRefreshTokens:
    def test_delete_succeeds_once(self, store: UserStore) -> None:
        store.create_refresh_token(1, token_digest("a"), _later())
        assert store.delete_refresh_token(token_digest("a"), user_id=1) is True
        assert store.delete_refresh_token(token_digest("a"), user_id=1) is False

    def test_wrong_user_deletes_nothing(self, store: UserStore) -> None:
        store.create_refresh_token(1, token_digest("a"), _later())
        assert store.delete_refresh_token(token_digest("a"), user_id=2) is False
        assert store.count_refresh_tokens(1) == 1

    def test_delete_all_for_user(self, store: UserStore) -> None:
        store.create_refresh_token(1, token_digest("a"), _later())
        store.create_refresh_token(1, token_digest("b"), _later())
        store.create_refresh_token(2, token_digest("c"), _later())
        assert store.delete_refresh_tokens_for_user(1) == 2
        assert store.count_refresh_tokens(2) == 1

    def test_purge_removes_only_expired(self, store: UserStore) -> None:
        store.create_refresh_token(1, token_digest("old"), _later(-1))
        store.create_refresh_token(1, token_digest("new"), _later(1))
        assert store.purge_expired_refresh_tokens(datetime.now(timezone.utc)) == 1
        assert store.delete_refresh_token(token_digest("new")) is True

    def test_memory_store_visible_from_other_thread(self, store: UserStore) -> None:
        store.create_refresh_token(7, token_digest("t"), _later())
        seen: list[int] = []
        worker = threading.Thread(target=lambda: seen.append(store.count_refresh_tokens(7)))
        worker.start()
        worker.join()
        assert seen == [1]
