"""End-to-end tests: SyncSession against the fake REST API."""

from __future__ import annotations

import pytest
from httpx import AsyncClient

from fake_api import TOKEN, FakeBackend
from taskboard_sync.config import ClientSettings
from taskboard_sync.engine import SyncSession
from taskboard_sync.errors import FailureKind
from taskboard_sync.model import Task, TaskStatus, UserRef
from taskboard_sync.session import SessionState


def test_failing_identity_listener_is_contained() -> None:
    state = SessionState()
    seen: list = []

    def boom(_: object) -> None:
        raise RuntimeError("listener failed")

    state.subscribe(boom)
    state.subscribe(seen.append)
    state.restore("token-u1", UserRef(id="u1"))
    assert state.is_authenticated
    assert seen == [UserRef(id="u1")]
    state.logout()
    assert seen == [UserRef(id="u1"), None]


@pytest.mark.anyio
class TestSyncSession:
    async def test_list_then_board(self, authed: SyncSession, backend: FakeBackend) -> None:
        backend.seed(_id="1", title="A", status="To-Do")
        assert await authed.coordinator.fetch_tasks()
        board = authed.board()
        assert len(authed.cache) == 1
        assert len(board[TaskStatus.TO_DO]) == 1
        assert all(len(board[s]) == 0 for s in TaskStatus if s != TaskStatus.TO_DO)

    async def test_list_without_login_makes_no_request(self, sync: SyncSession, backend: FakeBackend) -> None:
        backend.seed(_id="1")
        result = await sync.coordinator.fetch_tasks()
        assert result
        assert len(sync.cache) == 0
        assert backend.requests == []

    async def test_login_fetch_logout(self, sync: SyncSession, backend: FakeBackend) -> None:
        backend.seed(_id="1")
        login = await sync.session.login("ada@example.com", "secret")
        assert login.value == UserRef(id="u1", username="ada", email="ada@example.com")
        await sync.coordinator.fetch_tasks()
        assert len(sync.cache) == 1

        sync.session.logout()
        assert len(sync.cache) == 0
        assert not sync.session.is_authenticated

    async def test_failed_login(self, sync: SyncSession) -> None:
        result = await sync.session.login("ada@example.com", "wrong")
        assert not result
        assert result.failure.kind == FailureKind.UNAUTHENTICATED
        assert result.failure.message == "Invalid email or password"
        assert sync.session.user is None

    async def test_register_starts_session(self, sync: SyncSession, backend: FakeBackend) -> None:
        result = await sync.session.register("cy", "cy@example.com", "pw")
        assert result
        assert sync.session.token in backend.tokens

    async def test_register_duplicate(self, sync: SyncSession) -> None:
        result = await sync.session.register("ada", "ada@example.com", "pw")
        assert result.failure.message == "User already exists"

    async def test_create_appends_server_task(self, authed: SyncSession) -> None:
        await authed.coordinator.fetch_tasks()
        result = await authed.coordinator.create_task({"title": "New"})
        assert len(authed.cache) == 1
        assert authed.cache.list()[0].id == result.value.id
        assert result.value.owner.id == "u1"

    async def test_update_failure_resynchronizes(self, authed: SyncSession, backend: FakeBackend) -> None:
        backend.seed(_id="1", title="A")
        await authed.coordinator.fetch_tasks()
        backend.fail_next("PUT", "/tasks/{id}", 500, {"message": "Write conflict"})
        result = await authed.coordinator.update_task("1", {"status": "Completed"})
        assert not result
        assert result.failure.message == "Write conflict"
        assert authed.error == "Write conflict"
        assert authed.cache.list() == [Task.from_dict(backend.tasks["1"])]
        assert authed.cache.get("1").status == TaskStatus.TO_DO

    async def test_move_updates_status_only(self, authed: SyncSession, backend: FakeBackend) -> None:
        backend.seed(_id="1", title="A", priority="Urgent")
        await authed.coordinator.fetch_tasks()
        result = await authed.move("1", TaskStatus.IN_PROGRESS)
        assert result
        assert backend.tasks["1"]["status"] == "In Progress"
        assert backend.tasks["1"]["priority"] == "Urgent"
        assert [t.id for t in authed.board()[TaskStatus.IN_PROGRESS]] == ["1"]

    async def test_move_to_same_column(self, authed: SyncSession, backend: FakeBackend) -> None:
        backend.seed(_id="1")
        await authed.coordinator.fetch_tasks()
        before = len(backend.requests)
        assert await authed.move("1", "To-Do") is None
        assert len(backend.requests) == before

    async def test_comment_is_appended(self, authed: SyncSession, backend: FakeBackend) -> None:
        backend.seed(_id="7", comments=[{"_id": "c0", "content": "earlier"}])
        await authed.coordinator.fetch_tasks()
        result = await authed.coordinator.add_comment("7", "hi")
        comments = authed.cache.get("7").comments
        assert [c.id for c in comments] == ["c0", "c2"]
        assert comments[-1] == result.value

    async def test_delete_failure_keeps_task(self, authed: SyncSession, backend: FakeBackend) -> None:
        backend.seed(_id="1")
        await authed.coordinator.fetch_tasks()
        before = authed.cache.get("1")
        backend.fail_next("DELETE", "/tasks/{id}", 500)
        result = await authed.coordinator.delete_task("1")
        assert not result
        assert authed.error == "Failed to delete task."
        assert authed.cache.get("1") == before

    async def test_list_users_falls_back_to_self(self, authed: SyncSession, backend: FakeBackend) -> None:
        backend.fail_next("GET", "/users", 500)
        assert await authed.list_users() == [UserRef(id="u1", username="ada")]
        assert [u.id for u in await authed.list_users()] == ["u1", "u2"]

    async def test_rollback_policy_from_settings(self, http: AsyncClient, backend: FakeBackend) -> None:
        backend.seed(_id="1", title="A")
        async with SyncSession(ClientSettings(update_failure_policy="rollback"), http=http) as sync:
            sync.session.restore(TOKEN, UserRef(id="u1"))
            await sync.coordinator.fetch_tasks()
            lists_before = sum(1 for r in backend.requests if r[:2] == ("GET", "/api/tasks"))
            backend.fail_next("PUT", "/tasks/{id}", 500)
            await sync.coordinator.update_task("1", {"title": "B"})
            assert sync.cache.get("1").title == "A"
            assert sum(1 for r in backend.requests if r[:2] == ("GET", "/api/tasks")) == lists_before

    async def test_close_tears_down(self, http: AsyncClient, backend: FakeBackend) -> None:
        backend.seed(_id="1")
        sync = SyncSession(http=http)
        sync.session.restore(TOKEN, UserRef(id="u1"))
        await sync.coordinator.fetch_tasks()
        await sync.aclose()
        assert len(sync.cache) == 0
        assert sync.session.user is None
        # caller-owned client stays usable
        assert (await http.post("/auth/login", json={"email": "ada@example.com", "password": "secret"})).status_code == 200

    async def test_login_survives_failing_listener(self, sync: SyncSession, backend: FakeBackend) -> None:
        def boom(_: object) -> None:
            raise RuntimeError("listener failed")

        sync.session.subscribe(boom)
        backend.seed(_id="1")
        assert await sync.session.login("ada@example.com", "secret")
        assert await sync.coordinator.fetch_tasks()
        assert len(sync.cache) == 1
