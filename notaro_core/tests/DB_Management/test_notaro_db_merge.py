"""
Unit tests for NotaroDB delta extraction and last-write-wins merge.
"""

from datetime import timedelta

import pytest

from notaro_core.DB_Management.Notaro_DB import MergeResult, NotaroDB
from notaro_core.exceptions import NotFound, SerializationFault, StorageFault

# ========================================================================
# changes_since / current_version
# ========================================================================

class TestDeltas:

    @pytest.mark.unit
    def test_current_version_of_empty_store_is_zero(self, mem_db):
        assert mem_db.current_version() == 0

    @pytest.mark.unit
    def test_current_version_tracks_highest_version(self, mem_db):
        a = mem_db.create("a", "")
        mem_db.create("b", "")
        mem_db.update(a.id, "a", "1", None, False)
        mem_db.update(a.id, "a", "2", None, False)
        assert mem_db.current_version() == 3

    @pytest.mark.unit
    def test_changes_since_zero_returns_everything(self, mem_db):
        created = {mem_db.create(f"n{i}", "").id for i in range(3)}
        assert {n.id for n in mem_db.changes_since(0)} == created

    @pytest.mark.unit
    def test_changes_since_filters_strictly_greater(self, mem_db):
        a = mem_db.create("a", "")
        b = mem_db.create("b", "")
        mem_db.update(b.id, "b", "edit", None, False)
        mem_db.update(b.id, "b", "edit again", None, False)

        assert [n.id for n in mem_db.changes_since(1)] == [b.id]
        assert mem_db.changes_since(3) == []
        assert {n.id for n in mem_db.changes_since(0)} == {a.id, b.id}

    @pytest.mark.unit
    def test_changes_since_includes_tombstones(self, mem_db):
        note = mem_db.create("t", "c")
        mem_db.delete(note.id)
        changes = mem_db.changes_since(1)
        assert len(changes) == 1
        assert changes[0].is_deleted is True

    @pytest.mark.unit
    def test_changes_are_ordered_by_version_then_id(self, mem_db, make_note):
        notes = [
            make_note(id="c", version=2),
            make_note(id="a", version=3),
            make_note(id="b", version=2),
            make_note(id="d", version=1),
        ]
        mem_db.merge(notes)
        assert [(n.version, n.id) for n in mem_db.changes_since(0)] == [(1, "d"), (2, "b"), (2, "c"), (3, "a")]

# ========================================================================
# merge
# ========================================================================

class TestMerge:

    @pytest.mark.unit
    def test_unknown_record_is_inserted_verbatim(self, mem_db, make_note):
        remote = make_note(version=7, folder="Ideas", is_pinned=True)
        result = mem_db.merge([remote])

        assert result == MergeResult(inserted=1, updated=0, skipped=0)
        assert mem_db.get(remote.id) == remote

    @pytest.mark.unit
    def test_remote_tombstone_is_inserted(self, mem_db, make_note):
        remote = make_note(version=2, is_deleted=True)
        mem_db.merge([remote])
        assert mem_db.get(remote.id).is_deleted is True

    @pytest.mark.unit
    def test_higher_version_overwrites_every_field(self, mem_db, make_note):
        local = mem_db.create("local", "local body")
        remote = make_note(
            id=local.id,
            title="remote",
            content="remote body",
            folder="Elsewhere",
            is_pinned=True,
            created_at=local.created_at - timedelta(days=30),
            updated_at=local.updated_at + timedelta(hours=1),
            version=5,
            is_deleted=True,
        )
        result = mem_db.merge([remote])

        assert result.updated == 1
        assert mem_db.get(local.id) == remote

    @pytest.mark.unit
    @pytest.mark.parametrize("incoming_version", [1, 2])
    def test_equal_or_lower_version_is_discarded(self, mem_db, make_note, incoming_version):
        local = mem_db.create("local", "body")
        local = mem_db.update(local.id, "local", "edited", None, False)
        assert local.version == 2

        result = mem_db.merge([make_note(id=local.id, title="remote", version=incoming_version)])

        assert result == MergeResult(inserted=0, updated=0, skipped=1)
        assert mem_db.get(local.id) == local

    @pytest.mark.unit
    def test_merge_is_idempotent(self, mem_db, make_note):
        batch = [make_note(version=v) for v in (1, 2, 3)]
        mem_db.merge(batch)
        snapshot = mem_db.list()

        result = mem_db.merge(batch)

        assert result == MergeResult(inserted=0, updated=0, skipped=3)
        assert mem_db.list() == snapshot

    @pytest.mark.unit
    def test_batch_is_applied_in_order(self, mem_db, make_note):
        v2 = make_note(id="same", title="second", version=2)
        v3 = make_note(id="same", title="third", version=3)
        stale = make_note(id="same", title="stale", version=2)

        result = mem_db.merge([v2, v3, stale])

        assert result == MergeResult(inserted=1, updated=1, skipped=1)
        assert mem_db.get("same").title == "third"

    @pytest.mark.unit
    def test_empty_batch_is_a_no_op(self, mem_db):
        result = mem_db.merge([])
        assert result.total == 0
        assert mem_db.list() == []

    @pytest.mark.unit
    def test_mapping_items_are_accepted(self, mem_db, make_note):
        python_form = make_note()
        json_form = make_note()
        mem_db.merge([python_form.model_dump(), json_form.model_dump(mode="json")])

        assert mem_db.get(python_form.id) == python_form
        assert mem_db.get(json_form.id) == json_form

    @pytest.mark.unit
    def test_malformed_item_rejects_whole_batch(self, mem_db, make_note):
        good = make_note()
        with pytest.raises(SerializationFault):
            mem_db.merge([good, {"id": "broken", "title": "no timestamps"}])

        with pytest.raises(NotFound):
            mem_db.get(good.id)

    @pytest.mark.unit
    def test_unsupported_item_type_is_rejected(self, mem_db):
        with pytest.raises(SerializationFault):
            mem_db.merge([42])

    @pytest.mark.unit
    def test_storage_failure_mid_batch_rolls_back_everything(self, mem_db, make_note):
        existing = mem_db.create("existing", "untouched")
        mem_db._conn.execute(
            "CREATE TEMP TRIGGER reject_boom BEFORE INSERT ON notes "
            "WHEN NEW.title = 'boom' BEGIN SELECT RAISE(ABORT, 'boom rejected'); END"
        )
        fresh = make_note(title="fresh")
        overwrite = make_note(id=existing.id, title="overwritten", version=9)
        boom = make_note(title="boom")

        with pytest.raises(StorageFault):
            mem_db.merge([fresh, overwrite, boom])

        with pytest.raises(NotFound):
            mem_db.get(fresh.id)
        assert mem_db.get(existing.id) == existing
        assert len(mem_db.list()) == 1
        # The engine stays usable after a storage fault.
        assert mem_db.current_version() == 1

# ========================================================================
# Version range
# ========================================================================

class TestVersionRange:

    @pytest.mark.unit
    def test_oversized_version_on_note_instance_is_rejected(self, mem_db, make_note):
        kept = mem_db.create("kept", "")
        oversized = make_note().model_copy(update={"version": 2**70})

        with pytest.raises(SerializationFault):
            mem_db.merge([oversized])

        assert mem_db.is_usable
        assert mem_db.get(kept.id) == kept
        assert mem_db.current_version() == 1

    @pytest.mark.unit
    def test_oversized_version_in_mapping_is_rejected(self, mem_db, make_note):
        good = make_note()
        oversized = make_note().model_dump(mode="json")
        oversized["version"] = 2**64

        with pytest.raises(SerializationFault):
            mem_db.merge([good, oversized])

        with pytest.raises(NotFound):
            mem_db.get(good.id)
        assert mem_db.is_usable

    @pytest.mark.unit
    def test_largest_storable_version_is_accepted(self, mem_db, make_note):
        top = make_note(version=2**63 - 1)
        mem_db.merge([top])
        assert mem_db.current_version() == 2**63 - 1
        assert mem_db.changes_since(2**63 - 2) == [top]

    @pytest.mark.unit
    @pytest.mark.parametrize("since", [2**63, 2**70, -(2**70), "0", 1.5, True])
    def test_changes_since_rejects_unstorable_versions(self, mem_db, since):
        mem_db.create("n", "")
        with pytest.raises(SerializationFault):
            mem_db.changes_since(since)
        assert mem_db.is_usable
        assert len(mem_db.changes_since(0)) == 1

    @pytest.mark.unit
    def test_integer_overflow_in_driver_is_a_storage_fault(self, mem_db, monkeypatch):
        monkeypatch.setattr(NotaroDB, "_checked_version", staticmethod(lambda version: version))
        with pytest.raises(StorageFault):
            mem_db.changes_since(2**70)
        assert mem_db.is_usable
        assert mem_db.list() == []
