import json

import pytest

from conftest import SOURCE, TARGET, FakeAdapter
from errors import RequestValidationError, SnapshotFormatError, SnapshotNotFound
from jobs import JobRequest, RestoreRequest, clone_job, restore_job
from progress import DONE, ERROR
from snapshot_store import SnapshotStore


@pytest.mark.parametrize("payload", [
    {"targetId": "2"},
    {"sourceId": "1"},
    {"sourceId": "", "targetId": "2"},
])
def test_missing_ids_never_create_a_job(payload):
    with pytest.raises(RequestValidationError):
        JobRequest.from_dict(payload)


def test_request_shape_with_selections_and_cleanup():
    request = JobRequest.from_dict({
        "sourceId": "1",
        "targetId": "2",
        "selections": {"channels": True, "roles": False, "emoji": True, "bots": True},
        "cleanup": {"enabled": True, "scope": {"channels": True, "roles": False, "emoji": False}},
        "selectedBotIds": ["7"],
    })
    sel, cleanup = request.options.selections, request.options.cleanup
    assert (sel.channels, sel.roles, sel.emoji, sel.bots) == (True, False, True, True)
    assert cleanup.enabled and cleanup.channels and not cleanup.roles and not cleanup.emoji
    assert request.options.bot_ids == ("7",)


def test_older_options_shape():
    request = JobRequest.from_dict({
        "sourceId": "1",
        "targetId": "2",
        "options": {"roles": True, "channels": True, "emojis": True, "deleteExisting": True},
        "selectedBots": ["5", "6"],
    })
    assert request.options.selections.emoji
    # no deleteSpecifics → everything
    cleanup = request.options.cleanup
    assert cleanup.enabled and cleanup.channels and cleanup.roles and cleanup.emoji
    assert request.options.bot_ids == ("5", "6")


def test_restore_request_options():
    request = RestoreRequest.from_dict(
        {"filename": "b.json", "targetGuildId": "2", "options": ["clean", "roles", "settings"]}
    )
    sel = request.options.selections
    assert sel.roles and sel.settings and not sel.channels and not sel.emoji
    assert request.options.cleanup.enabled and not request.options.cleanup.emoji
    with pytest.raises(RequestValidationError):
        RestoreRequest.from_dict({"filename": "b.json"})


def _source_adapter():
    adapter = FakeAdapter(
        guild_id=SOURCE,
        roles=[
            {"id": SOURCE, "name": "@everyone", "position": 0},
            {"id": "r1", "name": "Mod", "position": 1},
        ],
        channels=[{"id": "c1", "name": "general", "type": 0, "position": 0}],
    )
    adapter.guild["name"] = "Source"
    return adapter


def test_clone_job_runs_on_its_own_thread_and_streams_to_done():
    adapter = _source_adapter()
    job = clone_job(adapter, {
        "sourceId": SOURCE, "targetId": TARGET,
        "selections": {"roles": True, "channels": True},
    })
    job.start()
    events = list(job.events())
    job.join()

    assert events[-1].kind == DONE
    assert [p["name"] for _, p in adapter.called("create_role")] == ["Mod"]
    assert job.report.ok


def test_clone_job_reports_unreadable_source_as_terminal_error():
    adapter = _source_adapter()
    adapter.fail("get_guild", 1, status=404, message="Unknown Guild")
    job = clone_job(adapter, {"sourceId": SOURCE, "targetId": TARGET})
    report = job.run()

    assert not report.ok
    assert job.emitter.events[-1].kind == ERROR
    assert "Unknown Guild" in job.emitter.events[-1].message
    assert adapter.called("create_role") == []


def test_restore_job_from_store(tmp_path):
    store = SnapshotStore(str(tmp_path))
    (tmp_path / "b.json").write_text(json.dumps({
        "meta": {"name": "Stored", "id": SOURCE},
        "data": {"roles": [{"id": "r1", "name": "Mod", "position": 1}], "channels": []},
    }))
    adapter = FakeAdapter()
    job = restore_job(adapter, store, {
        "filename": "b.json", "targetGuildId": TARGET, "options": ["roles", "settings"],
    })
    report = job.run()

    assert report.ok
    assert adapter.called("update_guild") == [(TARGET, {"name": "Stored"})]
    assert [p["name"] for _, p in adapter.called("create_role")] == ["Mod"]
    assert job.emitter.events[-1].kind == DONE


def test_restore_preconditions_are_synchronous(tmp_path):
    store = SnapshotStore(str(tmp_path))
    (tmp_path / "bad.json").write_text(json.dumps({"meta": {}, "data": {"nothing": 1}}))
    with pytest.raises(SnapshotNotFound):
        restore_job(FakeAdapter(), store, {"filename": "missing.json", "targetGuildId": "2"})
    with pytest.raises(SnapshotFormatError):
        restore_job(FakeAdapter(), store, {"filename": "bad.json", "targetGuildId": "2"})
