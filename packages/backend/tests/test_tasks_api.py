"""Task API tests — the mutation transaction protocol end to end.

These tests verify the rules every task write follows:
1. Create: 'todo' status, labels linked, one 'created' history entry
2. Update: only present fields change and only they are recorded
3. Labels: a supplied label set fully replaces the old one
4. Move: both boards must belong to the caller, or nothing changes
5. Atomicity: any failing step leaves no task row and no history
6. History: most recent first, with the acting user

Pattern: build data through the API (register → project → board →
label → task), then check the store directly where the contract is
about what was (not) persisted.
"""

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from fourme.db.models import Task, TaskHistory, task_labels
from fourme.history.store import HistoryStore


# ═══════════════════════════════════════════════════════════
# Shared fixtures
# ═══════════════════════════════════════════════════════════


@pytest.fixture
async def project(client, alice):
    r = await client.post("/api/projects", json={"name": "P"}, headers=alice)
    assert r.status_code == 201
    return r.json()


@pytest.fixture
async def board(client, alice, project):
    r = await client.post(
        f"/api/projects/{project['id']}/boards",
        json={"name": "B", "position": 0},
        headers=alice,
    )
    assert r.status_code == 201
    return r.json()


@pytest.fixture
async def other_board(client, alice, project):
    r = await client.post(
        f"/api/projects/{project['id']}/boards",
        json={"name": "Done", "position": 1},
        headers=alice,
    )
    return r.json()


@pytest.fixture
async def labels(client, alice, project):
    """Two labels in alice's project: (Bug, Feature)."""
    made = []
    for name, color in (("Bug", "#EF4444"), ("Feature", "#10B981")):
        r = await client.post(
            f"/api/projects/{project['id']}/labels",
            json={"name": name, "color": color},
            headers=alice,
        )
        assert r.status_code == 201
        made.append(r.json())
    return made


async def _create(client, headers, board_id, **body):
    body.setdefault("title", "Fix bug")
    return await client.post(f"/api/boards/{board_id}/tasks", json=body, headers=headers)


async def _history(client, headers, task_id):
    r = await client.get(f"/api/tasks/{task_id}/history", headers=headers)
    assert r.status_code == 200
    return r.json()


async def _count(session_factory, stmt):
    async with session_factory() as s:
        return await s.scalar(stmt)


# ═══════════════════════════════════════════════════════════
# End-to-end scenario
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_alice_project_board_label_task_scenario(client):
    """register → project P → board B → label Bug → task 'Fix bug' → read back."""
    r = await client.post(
        "/api/auth/register",
        json={"username": "alice", "email": "alice@example.com", "password": "secret123"},
    )
    assert r.status_code == 201
    headers = {"Authorization": f"Bearer {r.json()['token']}"}

    r = await client.post("/api/projects", json={"name": "P"}, headers=headers)
    project_id = r.json()["id"]

    r = await client.post(
        f"/api/projects/{project_id}/boards", json={"name": "B", "position": 0}, headers=headers
    )
    assert r.json()["position"] == 0
    board_id = r.json()["id"]

    r = await client.post(
        f"/api/projects/{project_id}/labels",
        json={"name": "Bug", "color": "#EF4444"},
        headers=headers,
    )
    bug_id = r.json()["id"]

    r = await client.post(
        f"/api/boards/{board_id}/tasks",
        json={"title": "Fix bug", "priority": "high", "label_ids": [bug_id]},
        headers=headers,
    )
    assert r.status_code == 201
    task_id = r.json()["id"]

    r = await client.get(f"/api/tasks/{task_id}", headers=headers)
    assert r.status_code == 200
    task = r.json()
    assert task["priority"] == "high"
    assert [(lb["name"], lb["color"]) for lb in task["labels"]] == [("Bug", "#EF4444")]

    history = await _history(client, headers, task_id)
    assert len(history) == 1
    assert history[0]["action"] == "created"
    assert history[0]["changes"] == {"title": "Fix bug"}
    assert history[0]["user"]["username"] == "alice"


# ═══════════════════════════════════════════════════════════
# Create
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_create_defaults(client, alice, board):
    r = await _create(client, alice, board["id"], title="Write docs")
    assert r.status_code == 201
    task = r.json()
    assert task["status"] == "todo"
    assert task["priority"] == "medium"
    assert task["board_id"] == board["id"]
    assert task["labels"] == []
    assert task["description"] is None


@pytest.mark.asyncio
async def test_create_appends_to_end_of_board(client, alice, board):
    first = (await _create(client, alice, board["id"], title="one")).json()
    second = (await _create(client, alice, board["id"], title="two")).json()
    pinned = (await _create(client, alice, board["id"], title="pinned", position=10)).json()
    after = (await _create(client, alice, board["id"], title="after")).json()
    assert first["position"] == 0
    assert second["position"] == 1
    assert pinned["position"] == 10
    assert after["position"] == 11


@pytest.mark.asyncio
async def test_create_dedupes_label_ids(client, alice, board, labels):
    bug = labels[0]["id"]
    r = await _create(client, alice, board["id"], label_ids=[bug, bug])
    assert r.status_code == 201
    assert [lb["id"] for lb in r.json()["labels"]] == [bug]


@pytest.mark.asyncio
async def test_create_invalid_priority_is_400(client, alice, board):
    r = await _create(client, alice, board["id"], priority="urgent")
    assert r.status_code == 400


@pytest.mark.asyncio
async def test_create_with_unknown_label_is_atomic(client, alice, board, labels, session_factory):
    """A bad label id fails the whole call: no task row, no history entry."""
    r = await _create(client, alice, board["id"], label_ids=[labels[0]["id"], 999_999])
    assert r.status_code == 400
    assert "999999" in r.json()["detail"]

    assert await _count(session_factory, select(func.count()).select_from(Task)) == 0
    assert await _count(session_factory, select(func.count()).select_from(TaskHistory)) == 0
    assert await _count(session_factory, select(func.count()).select_from(task_labels)) == 0


@pytest.mark.asyncio
async def test_create_with_label_from_another_project_is_400(
    client, alice, board, session_factory
):
    r = await client.post("/api/projects", json={"name": "Q"}, headers=alice)
    r = await client.post(
        f"/api/projects/{r.json()['id']}/labels", json={"name": "Elsewhere"}, headers=alice
    )
    foreign_label = r.json()["id"]

    r = await _create(client, alice, board["id"], label_ids=[foreign_label])
    assert r.status_code == 400
    assert await _count(session_factory, select(func.count()).select_from(Task)) == 0


@pytest.mark.asyncio
async def test_failed_history_write_rolls_back_create(
    client, alice, board, session_factory, monkeypatch
):
    """A storage error in the last step undoes the insert and returns a generic 500."""

    async def broken_append(self, **kwargs):
        raise OperationalError("INSERT INTO task_history", {}, Exception("disk I/O error"))

    monkeypatch.setattr(HistoryStore, "append", broken_append)

    r = await _create(client, alice, board["id"], title="doomed")
    assert r.status_code == 500
    assert r.json()["detail"] == "Failed to create task"
    assert "disk" not in r.text

    assert await _count(session_factory, select(func.count()).select_from(Task)) == 0


@pytest.mark.asyncio
async def test_create_on_missing_board_is_404(client, alice):
    r = await _create(client, alice, 424242)
    assert r.status_code == 404


# ═══════════════════════════════════════════════════════════
# Update
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_title_only_update_records_exactly_title(client, alice, board):
    task = (await _create(client, alice, board["id"], description="keep me")).json()

    r = await client.put(f"/api/tasks/{task['id']}", json={"title": "Renamed"}, headers=alice)
    assert r.status_code == 200
    updated = r.json()
    assert updated["title"] == "Renamed"
    assert updated["description"] == "keep me"
    assert updated["priority"] == task["priority"]

    history = await _history(client, alice, task["id"])
    assert history[0]["action"] == "updated"
    assert history[0]["changes"] == {"title": "Renamed"}


@pytest.mark.asyncio
async def test_explicit_null_clears_nullable_field(client, alice, board):
    task = (await _create(client, alice, board["id"], description="old")).json()

    r = await client.put(f"/api/tasks/{task['id']}", json={"description": None}, headers=alice)
    assert r.status_code == 200
    assert r.json()["description"] is None

    history = await _history(client, alice, task["id"])
    assert history[0]["changes"] == {"description": None}


@pytest.mark.asyncio
async def test_null_title_is_400(client, alice, board):
    task = (await _create(client, alice, board["id"])).json()
    r = await client.put(f"/api/tasks/{task['id']}", json={"title": None}, headers=alice)
    assert r.status_code == 400


@pytest.mark.asyncio
async def test_empty_update_writes_no_history(client, alice, board):
    task = (await _create(client, alice, board["id"])).json()

    r = await client.put(f"/api/tasks/{task['id']}", json={}, headers=alice)
    assert r.status_code == 200
    assert r.json()["title"] == task["title"]

    history = await _history(client, alice, task["id"])
    assert [h["action"] for h in history] == ["created"]


@pytest.mark.asyncio
async def test_update_several_fields(client, alice, board):
    task = (await _create(client, alice, board["id"])).json()
    body = {
        "status": "in_progress",
        "priority": "low",
        "due_date": "2030-01-15T09:00:00Z",
        "position": 4,
    }
    r = await client.put(f"/api/tasks/{task['id']}", json=body, headers=alice)
    assert r.status_code == 200
    updated = r.json()
    assert updated["status"] == "in_progress"
    assert updated["priority"] == "low"
    assert updated["position"] == 4
    assert updated["due_date"].startswith("2030-01-15T09:00:00")

    changes = (await _history(client, alice, task["id"]))[0]["changes"]
    assert set(changes) == {"status", "priority", "due_date", "position"}


@pytest.mark.asyncio
async def test_label_ids_replace_the_whole_set(client, alice, board, labels):
    bug, feature = labels[0]["id"], labels[1]["id"]
    task = (await _create(client, alice, board["id"], label_ids=[bug])).json()

    r = await client.put(
        f"/api/tasks/{task['id']}", json={"label_ids": [feature]}, headers=alice
    )
    assert r.status_code == 200
    assert [lb["id"] for lb in r.json()["labels"]] == [feature]

    changes = (await _history(client, alice, task["id"]))[0]["changes"]
    assert changes == {"label_ids": [feature]}

    r = await client.put(f"/api/tasks/{task['id']}", json={"label_ids": []}, headers=alice)
    assert r.json()["labels"] == []


@pytest.mark.asyncio
async def test_update_with_unknown_label_changes_nothing(
    client, alice, board, labels, session_factory
):
    bug = labels[0]["id"]
    task = (await _create(client, alice, board["id"], label_ids=[bug])).json()

    r = await client.put(
        f"/api/tasks/{task['id']}",
        json={"title": "Should not stick", "label_ids": [999_999]},
        headers=alice,
    )
    assert r.status_code == 400

    r = await client.get(f"/api/tasks/{task['id']}", headers=alice)
    assert r.json()["title"] == "Fix bug"
    assert [lb["id"] for lb in r.json()["labels"]] == [bug]
    history = await _history(client, alice, task["id"])
    assert [h["action"] for h in history] == ["created"]


# ═══════════════════════════════════════════════════════════
# Move
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_move_between_own_boards(client, alice, board, other_board):
    task = (await _create(client, alice, board["id"])).json()

    r = await client.patch(
        f"/api/tasks/{task['id']}/move",
        json={"board_id": other_board["id"], "position": 2},
        headers=alice,
    )
    assert r.status_code == 200
    assert r.json()["board_id"] == other_board["id"]
    assert r.json()["position"] == 2

    history = await _history(client, alice, task["id"])
    assert history[0]["action"] == "moved"
    assert history[0]["changes"] == {"board_id": other_board["id"], "position": 2}


@pytest.mark.asyncio
async def test_move_to_foreign_board_is_404_and_changes_nothing(client, alice, bob, board):
    task = (await _create(client, alice, board["id"])).json()

    r = await client.post("/api/projects", json={"name": "Bob's"}, headers=bob)
    r = await client.post(
        f"/api/projects/{r.json()['id']}/boards", json={"name": "Bob board"}, headers=bob
    )
    bobs_board = r.json()["id"]

    r = await client.patch(
        f"/api/tasks/{task['id']}/move",
        json={"board_id": bobs_board, "position": 0},
        headers=alice,
    )
    assert r.status_code == 404

    r = await client.get(f"/api/tasks/{task['id']}", headers=alice)
    assert r.json()["board_id"] == board["id"]
    assert r.json()["position"] == task["position"]
    history = await _history(client, alice, task["id"])
    assert [h["action"] for h in history] == ["created"]


@pytest.mark.asyncio
async def test_move_someone_elses_task_is_404(client, alice, bob, board, other_board):
    task = (await _create(client, alice, board["id"])).json()
    r = await client.patch(
        f"/api/tasks/{task['id']}/move",
        json={"board_id": other_board["id"], "position": 0},
        headers=bob,
    )
    assert r.status_code == 404


# ═══════════════════════════════════════════════════════════
# Delete, list, history
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_delete_cascades_to_history_and_labels(
    client, alice, board, labels, session_factory
):
    task = (await _create(client, alice, board["id"], label_ids=[labels[0]["id"]])).json()
    await client.put(f"/api/tasks/{task['id']}", json={"title": "x"}, headers=alice)

    r = await client.delete(f"/api/tasks/{task['id']}", headers=alice)
    assert r.status_code == 200

    r = await client.get(f"/api/tasks/{task['id']}", headers=alice)
    assert r.status_code == 404
    assert await _count(session_factory, select(func.count()).select_from(TaskHistory)) == 0
    assert await _count(session_factory, select(func.count()).select_from(task_labels)) == 0

    r = await client.delete(f"/api/tasks/{task['id']}", headers=alice)
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_list_tasks_by_position(client, alice, board):
    await _create(client, alice, board["id"], title="c", position=3)
    await _create(client, alice, board["id"], title="a", position=1)
    await _create(client, alice, board["id"], title="b", position=2)

    r = await client.get(f"/api/boards/{board['id']}/tasks", headers=alice)
    assert r.status_code == 200
    assert [t["title"] for t in r.json()] == ["a", "b", "c"]


@pytest.mark.asyncio
async def test_history_is_most_recent_first(client, alice, board, other_board):
    task = (await _create(client, alice, board["id"])).json()
    await client.put(f"/api/tasks/{task['id']}", json={"priority": "high"}, headers=alice)
    await client.patch(
        f"/api/tasks/{task['id']}/move",
        json={"board_id": other_board["id"], "position": 0},
        headers=alice,
    )

    history = await _history(client, alice, task["id"])
    assert [h["action"] for h in history] == ["moved", "updated", "created"]
    assert all(h["user"]["username"] == "alice" for h in history)
    assert all(h["task_id"] == task["id"] for h in history)


@pytest.mark.asyncio
async def test_repeated_gets_are_byte_identical(client, alice, board, labels):
    task = (await _create(client, alice, board["id"], label_ids=[labels[0]["id"]])).json()

    for path in (
        f"/api/tasks/{task['id']}",
        f"/api/boards/{board['id']}/tasks",
        f"/api/tasks/{task['id']}/history",
    ):
        first = await client.get(path, headers=alice)
        second = await client.get(path, headers=alice)
        assert first.status_code == 200
        assert first.content == second.content


@pytest.mark.asyncio
async def test_non_numeric_task_id_is_400(client, alice):
    r = await client.get("/api/tasks/not-a-number", headers=alice)
    assert r.status_code == 400
    assert r.json()["detail"][0]["loc"] == ["path", "task_id"]


@pytest.mark.asyncio
async def test_history_returns_the_whole_trail(client, alice, board, session_factory):
    task = (await _create(client, alice, board["id"])).json()
    user_id = (await client.get("/api/auth/me", headers=alice)).json()["id"]

    async with session_factory() as s:
        store = HistoryStore(s)
        for n in range(250):
            await store.append(task["id"], user_id, "updated", {"title": f"t{n}"})
        await s.commit()

    history = await _history(client, alice, task["id"])
    assert len(history) == 251
    assert history[0]["changes"] == {"title": "t249"}
    assert history[-1]["action"] == "created"


@pytest.mark.asyncio
async def test_history_entries_are_write_once(client, alice, board, session_factory):
    task = (await _create(client, alice, board["id"])).json()

    async with session_factory() as s:
        entry = await s.scalar(select(TaskHistory).where(TaskHistory.task_id == task["id"]))
        entry.changes = {"title": "forged"}
        with pytest.raises(ValueError, match="immutable"):
            await s.flush()
        await s.rollback()

    async with session_factory() as s:
        entry = await s.scalar(select(TaskHistory).where(TaskHistory.task_id == task["id"]))
        assert entry.changes == {"title": "Fix bug"}


# ═══════════════════════════════════════════════════════════
# Labels across projects
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_move_within_project_keeps_labels(client, alice, board, other_board, labels):
    task = (await _create(client, alice, board["id"], label_ids=[labels[0]["id"]])).json()
    r = await client.patch(
        f"/api/tasks/{task['id']}/move",
        json={"board_id": other_board["id"], "position": 0},
        headers=alice,
    )
    assert [lb["name"] for lb in r.json()["labels"]] == ["Bug"]


@pytest.mark.asyncio
async def test_move_to_another_project_unlinks_old_labels(
    client, alice, board, labels, session_factory
):
    task = (
        await _create(client, alice, board["id"], label_ids=[lb["id"] for lb in labels])
    ).json()
    p2 = (await client.post("/api/projects", json={"name": "P2"}, headers=alice)).json()
    b2 = (
        await client.post(f"/api/projects/{p2['id']}/boards", json={"name": "B2"}, headers=alice)
    ).json()

    r = await client.patch(
        f"/api/tasks/{task['id']}/move",
        json={"board_id": b2["id"], "position": 0},
        headers=alice,
    )
    assert r.status_code == 200
    assert r.json()["labels"] == []
    assert await _count(session_factory, select(func.count()).select_from(task_labels)) == 0

    # The labels themselves stay in their project.
    r = await client.get(f"/api/projects/{labels[0]['project_id']}/labels", headers=alice)
    assert len(r.json()) == 2


# ═══════════════════════════════════════════════════════════
# Id bounds
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "method, path",
    [
        ("GET", "/api/tasks/99999999999999999999"),
        ("GET", "/api/tasks/2147483648"),
        ("GET", "/api/tasks/0"),
        ("GET", "/api/tasks/-1/history"),
        ("DELETE", "/api/projects/2147483648"),
        ("GET", "/api/boards/2147483648/tasks"),
        ("PUT", "/api/labels/99999999999999999999"),
        ("DELETE", "/api/comments/2147483648"),
        ("DELETE", "/api/attachments/2147483648"),
    ],
)
async def test_out_of_range_path_id_is_400(client, alice, method, path):
    body = {"name": "x"} if method == "PUT" else None
    r = await client.request(method, path, json=body, headers=alice)
    assert r.status_code == 400


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "body",
    [
        {"assignee_id": 2**31},
        {"label_ids": [99999999999999999999]},
        {"label_ids": [0]},
        {"position": 2**31},
    ],
)
async def test_out_of_range_body_id_is_400(client, alice, board, body):
    r = await _create(client, alice, board["id"], **body)
    assert r.status_code == 400


@pytest.mark.asyncio
async def test_out_of_range_move_target_is_400(client, alice, board):
    task = (await _create(client, alice, board["id"])).json()
    r = await client.patch(
        f"/api/tasks/{task['id']}/move",
        json={"board_id": 2**31, "position": 0},
        headers=alice,
    )
    assert r.status_code == 400
    r = await client.get(f"/api/tasks/{task['id']}", headers=alice)
    assert r.json()["board_id"] == board["id"]
