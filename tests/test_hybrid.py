"""Tests for the local-first sync coordinator.

The remote side is a ``CosmosProjectClient`` over in-memory containers, so
failures are injected at the container (network down, slow responses,
records rejected by remote validation).
"""

from __future__ import annotations

import asyncio
import logging

import pytest

from projectforge_sync.exceptions import RemoteErrorKind, RemoteSyncError
from projectforge_sync.models.types import Project, ProjectStatus, ProjectUpdate
from projectforge_sync.storage.hybrid import (
    SYNC_FAILED_PREFIX,
    ProjectSyncCoordinator,
    SyncState,
)
from projectforge_sync.storage.local import LocalProjectStore


@pytest.fixture
def local_only(local_store):
    return ProjectSyncCoordinator(local_store)


class TestCreate:
    @pytest.mark.asyncio
    async def test_replay_success_project(self, coordinator, projects_container, project_fields):
        """A healthy remote gets the project and reports its id."""
        result = await coordinator.create(
            project_fields(title="Replay Success Project", fundingGoal=1000, status="active")
        )

        assert result.success
        assert result.error is None
        assert not result.degraded
        assert result.remote_id == result.project.id
        assert result.project.status is ProjectStatus.ACTIVE
        assert coordinator.get_sync_state(result.project.id) is SyncState.SYNCED
        assert projects_container.items[result.remote_id]["title"] == "Replay Success Project"

    @pytest.mark.asyncio
    async def test_rejected_creator_is_degraded_success(self, coordinator, project_fields):
        """The remote rejects the creator, the project is still saved locally."""
        result = await coordinator.create(project_fields(creatorId="bad-uuid"))

        assert result.success
        assert result.error.startswith(f"{SYNC_FAILED_PREFIX}:")
        assert "Database sync failed" in result.error
        assert result.error_kind is RemoteErrorKind.SCHEMA_REJECTED
        assert result.remote_id is None
        assert coordinator.get_sync_state(result.project.id) is SyncState.SYNC_FAILED

        fetched = await coordinator.get_by_id(result.project.id)
        assert fetched.creator_id == "bad-uuid"

    @pytest.mark.asyncio
    async def test_local_durability_with_remote_down(
        self, coordinator, projects_container, project_fields
    ):
        projects_container.unavailable = True
        fields = project_fields(
            longDescription="Longer text",
            technologies=["LoRa"],
            milestones=[{"id": "m1", "title": "Pilot", "targetDate": "2026-05-01"}],
            imageHashes=["QmImage"],
        )

        result = await coordinator.create(fields)

        assert result.success
        assert result.error_kind is RemoteErrorKind.NETWORK
        fetched = await coordinator.get_by_id(result.project.id)
        assert fetched.id == result.project.id
        assert fetched.title == fields["title"]
        assert fetched.long_description == "Longer text"
        assert fetched.technologies == ["LoRa"]
        assert fetched.milestones[0].target_date == "2026-05-01"
        assert fetched.image_hashes == ["QmImage"]

    @pytest.mark.asyncio
    async def test_slow_remote_does_not_block_local(self, coordinator, projects_container, project_fields):
        projects_container.delay = 5

        result = await asyncio.wait_for(coordinator.create(project_fields()), timeout=3)

        assert result.success
        assert "timed out" in result.error
        assert coordinator.local.get(result.project.id) is not None

    @pytest.mark.asyncio
    async def test_invalid_fields_touch_nothing(self, coordinator, local_store, projects_container, project_fields):
        result = await coordinator.create(project_fields(title=""))

        assert not result.success
        assert "title" in result.error
        assert len(local_store) == 0
        assert projects_container.calls == []

    @pytest.mark.asyncio
    async def test_counters_and_funding_start_at_zero(self, coordinator, project_fields):
        result = await coordinator.create(
            project_fields(views=40, likes=3, comments=9, currentFunding=250)
        )

        project = result.project
        assert (project.views, project.likes, project.comments) == (0, 0, 0)
        assert project.current_funding == 0

    @pytest.mark.asyncio
    async def test_supplied_id_never_overwrites_existing(
        self, coordinator, local_store, projects_container, project_fields
    ):
        first = await coordinator.create(project_fields(title="Original"))

        second = await coordinator.create(project_fields(title="Intruder", id=first.project.id))

        assert second.success
        assert not second.degraded
        assert second.project.id != first.project.id
        assert len(local_store) == 2
        assert local_store.get(first.project.id).title == "Original"
        assert projects_container.items[first.project.id]["title"] == "Original"

    @pytest.mark.asyncio
    async def test_creation_fields_are_assigned(self, coordinator, project_fields):
        result = await coordinator.create(
            project_fields(
                createdAt="1999-01-01T00:00:00",
                updatedAt="1999-01-02T00:00:00",
                supporters=["x"],
            )
        )

        project = result.project
        assert project.created_at != "1999-01-01T00:00:00"
        assert project.updated_at != "1999-01-02T00:00:00"
        assert project.created_at == project.updated_at
        assert project.supporters == []

    @pytest.mark.asyncio
    async def test_status_defaults_to_draft(self, coordinator, project_fields):
        result = await coordinator.create(project_fields())
        assert result.project.status is ProjectStatus.DRAFT

    @pytest.mark.asyncio
    async def test_local_failure_is_fatal(self, coordinator, local_store, project_fields, monkeypatch):
        from projectforge_sync.exceptions import StorageIOError

        def broken_put(project):
            raise StorageIOError("write_json", "/readonly/projects.json")

        monkeypatch.setattr(local_store, "put", broken_put)

        result = await coordinator.create(project_fields())

        assert not result.success
        assert "write_json" in result.error

    @pytest.mark.asyncio
    async def test_content_hash_reference_is_sub_operation(
        self, coordinator, hashes_container, project_fields
    ):
        hashes_container.unavailable = True

        result = await coordinator.create(project_fields(ipfsHash="QmDoc"))

        assert result.success and result.error is None
        assert [(op.name, op.ok) for op in result.sub_operations] == [("record_content_hash", False)]

    @pytest.mark.asyncio
    async def test_local_only_mode(self, local_only, project_fields):
        result = await local_only.create(project_fields())

        assert result.success
        assert result.error is None
        assert result.remote_id is None
        assert local_only.get_sync_state(result.project.id) is SyncState.LOCAL_ONLY

    @pytest.mark.asyncio
    async def test_concurrent_creates(self, coordinator, local_store, project_fields):
        results = await asyncio.gather(
            *(coordinator.create(project_fields(title=f"Project {i}")) for i in range(10))
        )

        assert all(r.success and r.error is None for r in results)
        assert len({r.project.id for r in results}) == 10
        assert len(local_store) == 10

    @pytest.mark.asyncio
    async def test_on_sync_error_callback(self, local_store, remote, projects_container, project_fields):
        seen: list[RemoteSyncError] = []
        coordinator = ProjectSyncCoordinator(local_store, remote, on_sync_error=seen.append)
        projects_container.unavailable = True

        result = await coordinator.create(project_fields())

        assert len(seen) == 1
        assert seen[0].operation == "insert"
        assert seen[0].project_id == result.project.id
        assert coordinator.get_failed_projects() == {result.project.id}

    @pytest.mark.asyncio
    async def test_on_sync_error_callback_failure_is_logged(
        self, local_store, remote, projects_container, project_fields, caplog
    ):
        def explode(error):
            raise RuntimeError("queue full")

        coordinator = ProjectSyncCoordinator(local_store, remote, on_sync_error=explode)
        projects_container.unavailable = True

        with caplog.at_level(logging.ERROR):
            result = await coordinator.create(project_fields())

        assert result.success
        assert "queue full" in caplog.text


class TestGetById:
    @pytest.mark.asyncio
    async def test_missing_everywhere(self, coordinator):
        assert await coordinator.get_by_id("missing") is None

    @pytest.mark.asyncio
    async def test_write_through_fill(self, coordinator, remote, projects_container, local_store, project_fields):
        remote_only = Project.from_dict(
            project_fields(id="remote-1", createdAt="2026-01-01T00:00:00+00:00", updatedAt="2026-01-02T00:00:00+00:00")
        )
        await remote.insert(remote_only)

        fetched = await coordinator.get_by_id("remote-1")

        assert fetched == remote_only
        assert local_store.get("remote-1") == remote_only
        assert coordinator.get_sync_state("remote-1") is SyncState.SYNCED

        reads_before = len(projects_container.calls_of("read_item"))
        await coordinator.get_by_id("remote-1")
        assert len(projects_container.calls_of("read_item")) == reads_before

    @pytest.mark.asyncio
    async def test_remote_failure_returns_none(self, coordinator, projects_container):
        projects_container.unavailable = True
        assert await coordinator.get_by_id("remote-1") is None


class TestUpdate:
    @pytest.mark.asyncio
    async def test_update_both_stores(self, coordinator, projects_container, project_fields):
        created = await coordinator.create(project_fields())
        project_id = created.project.id

        result = await coordinator.update(project_id, {"title": "Renamed", "fundingGoal": 2000})

        assert result.success and result.error is None
        assert result.project.title == "Renamed"
        assert projects_container.items[project_id]["title"] == "Renamed"
        assert projects_container.items[project_id]["funding_goal"] == 2000

    @pytest.mark.asyncio
    async def test_not_found(self, coordinator):
        result = await coordinator.update("missing", ProjectUpdate(title="x"))

        assert not result.success
        assert result.error == "Project not found: missing"

    @pytest.mark.asyncio
    async def test_invalid_update(self, coordinator, project_fields):
        created = await coordinator.create(project_fields())

        result = await coordinator.update(created.project.id, {"views": 100})

        assert not result.success
        assert (await coordinator.get_by_id(created.project.id)).views == 0

    @pytest.mark.asyncio
    async def test_non_positive_team_size_rejected(self, coordinator, projects_container, project_fields):
        created = await coordinator.create(project_fields(teamSize=3))
        calls_before = len(projects_container.calls)

        result = await coordinator.update(created.project.id, {"teamSize": -4})

        assert not result.success
        assert "teamSize" in result.error
        assert (await coordinator.get_by_id(created.project.id)).team_size == 3
        assert len(projects_container.calls) == calls_before

    @pytest.mark.asyncio
    async def test_remote_failure_keeps_local_change(self, coordinator, projects_container, project_fields):
        created = await coordinator.create(project_fields())
        project_id = created.project.id
        projects_container.unavailable = True

        result = await coordinator.update(project_id, ProjectUpdate(description="Changed offline"))

        assert result.success
        assert result.degraded
        assert result.error.startswith(SYNC_FAILED_PREFIX)
        assert (await coordinator.get_by_id(project_id)).description == "Changed offline"
        assert coordinator.get_sync_state(project_id) is SyncState.SYNC_FAILED

    @pytest.mark.asyncio
    async def test_update_of_unsynced_project_is_degraded(self, coordinator, project_fields):
        created = await coordinator.create(project_fields(creatorId="bad-uuid"))

        result = await coordinator.update(created.project.id, ProjectUpdate(title="Still local"))

        assert result.success
        assert result.error_kind is RemoteErrorKind.SCHEMA_REJECTED

    @pytest.mark.asyncio
    async def test_counters_survive_update(self, coordinator, local_store, project_fields):
        created = await coordinator.create(project_fields())
        project_id = created.project.id
        stored = local_store.get(project_id)
        stored.views = 12
        local_store.replace_all([stored])

        result = await coordinator.update(project_id, ProjectUpdate(title="Renamed"))

        assert result.project.views == 12

    @pytest.mark.asyncio
    async def test_remote_only_project_is_pulled_first(self, coordinator, remote, local_store, project_fields):
        await remote.insert(Project.from_dict(project_fields(id="remote-2", createdAt="2026-01-01T00:00:00+00:00")))

        result = await coordinator.update("remote-2", ProjectUpdate(title="Edited"))

        assert result.success and result.error is None
        assert local_store.get("remote-2").title == "Edited"


class TestGetAll:
    @pytest.mark.asyncio
    async def test_local_wins_on_collision(self, coordinator, projects_container, project_fields):
        created = await coordinator.create(project_fields(title="Local title"))
        project_id = created.project.id
        projects_container.items[project_id]["title"] = "Remote title"

        projects = await coordinator.get_all()

        matching = [p for p in projects if p.id == project_id]
        assert len(matching) == 1
        assert matching[0].title == "Local title"

    @pytest.mark.asyncio
    async def test_remote_down_returns_local(self, coordinator, projects_container, project_fields):
        await coordinator.create(project_fields())
        projects_container.unavailable = True

        projects = await coordinator.get_all()

        assert len(projects) == 1

    @pytest.mark.asyncio
    async def test_recovery_merges_without_duplicates(
        self, coordinator, remote, projects_container, project_fields
    ):
        """Two projects saved while the remote was down, a third already remote."""
        projects_container.unavailable = True
        first = await coordinator.create(project_fields(title="Offline one"))
        second = await coordinator.create(project_fields(title="Offline two"))
        assert first.degraded and second.degraded

        projects_container.unavailable = False
        await remote.insert(
            Project.from_dict(project_fields(id="remote-3", title="Unrelated", createdAt="2026-01-01T00:00:00+00:00"))
        )

        projects = await coordinator.get_all()

        assert sorted(p.title for p in projects) == ["Offline one", "Offline two", "Unrelated"]
        assert len({p.id for p in projects}) == 3

    @pytest.mark.asyncio
    async def test_owner_filter(self, coordinator, remote, project_fields):
        await coordinator.create(project_fields(creatorId="owner-a"))
        await coordinator.create(project_fields(creatorId="owner-b"))
        await remote.insert(Project.from_dict(project_fields(id="remote-a", creatorId="owner-a")))

        projects = await coordinator.get_all("owner-a")

        assert len(projects) == 2
        assert {p.creator_id for p in projects} == {"owner-a"}

    @pytest.mark.asyncio
    async def test_local_only_mode(self, local_only, project_fields):
        await local_only.create(project_fields())
        assert len(await local_only.get_all()) == 1


class TestPropagateHash:
    @pytest.mark.asyncio
    async def test_propagate_twice(self, coordinator, projects_container, hashes_container, project_fields):
        created = await coordinator.create(project_fields())
        project_id = created.project.id

        assert await coordinator.propagate_hash(project_id, "Qm123") is True
        remote_after_first = dict(projects_container.items[project_id])
        references_after_first = dict(hashes_container.items)

        assert await coordinator.propagate_hash(project_id, "Qm123") is True

        assert projects_container.items[project_id] == remote_after_first
        assert hashes_container.items == references_after_first
        assert (await coordinator.get_by_id(project_id)).ipfs_hash == "Qm123"

    @pytest.mark.asyncio
    async def test_unknown_project(self, coordinator):
        assert await coordinator.propagate_hash("missing", "Qm123") is False

    @pytest.mark.asyncio
    async def test_remote_missing_record(self, coordinator, project_fields):
        created = await coordinator.create(project_fields(creatorId="bad-uuid"))

        assert await coordinator.propagate_hash(created.project.id, "Qm123") is False
        assert (await coordinator.get_by_id(created.project.id)).ipfs_hash == "Qm123"

    @pytest.mark.asyncio
    async def test_local_only_mode(self, local_only, project_fields):
        created = await local_only.create(project_fields())
        assert await local_only.propagate_hash(created.project.id, "Qm123") is True


class TestResync:
    @pytest.mark.asyncio
    async def test_resync_after_failure(self, coordinator, projects_container, project_fields):
        projects_container.unavailable = True
        created = await coordinator.create(project_fields())
        project_id = created.project.id
        projects_container.unavailable = False

        result = await coordinator.resync(project_id)

        assert result.success and result.error is None
        assert project_id in projects_container.items
        assert coordinator.get_sync_state(project_id) is SyncState.SYNCED
        assert coordinator.get_failed_projects() == set()

    @pytest.mark.asyncio
    async def test_resync_still_failing(self, coordinator, projects_container, project_fields):
        projects_container.unavailable = True
        created = await coordinator.create(project_fields())

        result = await coordinator.resync(created.project.id)

        assert result.degraded
        assert coordinator.get_sync_state(created.project.id) is SyncState.SYNC_FAILED

    @pytest.mark.asyncio
    async def test_resync_unknown(self, coordinator):
        result = await coordinator.resync("missing")
        assert not result.success

    @pytest.mark.asyncio
    async def test_resync_local_only(self, local_only, project_fields):
        created = await local_only.create(project_fields())
        result = await local_only.resync(created.project.id)
        assert not result.success
        assert result.project.id == created.project.id


class TestDeleteAndReports:
    @pytest.mark.asyncio
    async def test_delete_is_local_only(self, coordinator, projects_container, local_store, project_fields):
        created = await coordinator.create(project_fields())
        project_id = created.project.id

        assert await coordinator.delete(project_id) is True

        assert local_store.get(project_id) is None
        assert project_id in projects_container.items
        assert coordinator.get_sync_state(project_id) is SyncState.UNCOMMITTED
        assert await coordinator.delete(project_id) is False

    @pytest.mark.asyncio
    async def test_verify_content_hashes(self, coordinator, project_fields):
        with_hash = await coordinator.create(project_fields(ipfsHash="QmA"))
        without = await coordinator.create(project_fields())

        report = await coordinator.verify_content_hashes()

        assert report.total == 2
        assert report.with_hash == 1
        assert report.missing == [without.project.id]
        assert with_hash.project.id not in report.missing

    def test_unknown_state(self, coordinator):
        assert coordinator.get_sync_state("never-seen") is SyncState.UNCOMMITTED


class TestFromConfig:
    def test_local_only_without_endpoint(self, temp_dir):
        from projectforge_sync.storage.base import SyncConfig

        coordinator = ProjectSyncCoordinator.from_config(
            SyncConfig(local_path=str(temp_dir / "projects.json"))
        )

        assert coordinator.remote is None
        assert isinstance(coordinator.local, LocalProjectStore)
        assert coordinator.local.path == temp_dir / "projects.json"

    def test_remote_when_configured(self, sync_config):
        coordinator = ProjectSyncCoordinator.from_config(sync_config)
        assert coordinator.remote is not None
        assert coordinator.remote.config is sync_config

    def test_sync_disabled(self, sync_config):
        sync_config.enable_sync = False
        assert ProjectSyncCoordinator.from_config(sync_config).remote is None
