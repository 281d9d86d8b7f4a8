"""
Integration tests for ProfileStore: profiles, library merge and the
session bound to the active profile.
"""

import pytest

from src.requizle.errors import ImportValidationError
from src.requizle.importer import validate_subjects
from src.requizle.models import DEFAULT_PROFILE_ID, PersistedState, Profile, StudyMode
from src.requizle.profile_store import ProfileStore, merge_progress


@pytest.fixture
def store(topic_order_profile, rng):
    profile = topic_order_profile
    state = PersistedState(profiles={profile.id: profile}, active_profile_id=profile.id)
    return ProfileStore(state, rng=rng)


class TestProfiles:
    """Tests for profile lifecycle."""

    def test_default_store_has_one_profile(self):
        store = ProfileStore()

        assert list(store.profiles) == [DEFAULT_PROFILE_ID]
        assert store.active_profile.subjects == []

    def test_create_profile_activates_it(self, store):
        created = store.create_profile("Second")

        assert store.active_profile_id == created.id
        assert created.subjects == []
        assert created.session.subject_id is None
        assert len(store.profiles) == 2

    def test_created_ids_unique(self, store):
        ids = {store.create_profile(f"P{i}").id for i in range(5)}

        assert len(ids) == 5

    def test_switch_unknown_is_noop(self, store):
        store.switch_profile("ghost")

        assert store.active_profile_id == "p1"

    def test_switch(self, store):
        created = store.create_profile("Second")
        store.switch_profile("p1")

        assert store.active_profile_id == "p1"
        assert store.profiles[created.id].name == "Second"

    def test_delete_only_profile_resets_default(self, store):
        store.delete_profile("p1")

        assert list(store.profiles) == [DEFAULT_PROFILE_ID]
        assert store.active_profile_id == DEFAULT_PROFILE_ID
        assert store.active_profile.subjects == []
        assert store.active_profile.progress == {}

    def test_delete_only_default_profile_resets_it(self):
        store = ProfileStore()
        store.active_profile.name = "Renamed"

        store.delete_profile(DEFAULT_PROFILE_ID)

        assert len(store.profiles) == 1
        assert store.active_profile.name == "Default"

    def test_delete_active_activates_newest(self, store):
        older = Profile(id="older", name="Older", created_at=1)
        newer = Profile(id="newer", name="Newer", created_at=2)
        store.profiles["older"] = older
        store.profiles["newer"] = newer
        store.profiles["p1"].created_at = 0

        store.delete_profile("p1")

        assert store.active_profile_id == "newer"
        assert "p1" not in store.profiles

    def test_delete_active_with_same_timestamp_activates_latest(self, monkeypatch):
        monkeypatch.setattr("src.requizle.models.now_ms", lambda: 1000)
        store = ProfileStore()
        first = store.create_profile("P1")
        second = store.create_profile("P2")

        assert [p.id for p in store.list_profiles()] == [second.id, first.id, DEFAULT_PROFILE_ID]

        store.delete_profile(second.id)

        assert store.active_profile_id == first.id

    def test_delete_inactive_keeps_active(self, store):
        created = store.create_profile("Temp")
        store.switch_profile("p1")

        store.delete_profile(created.id)

        assert store.active_profile_id == "p1"

    def test_delete_unknown_is_noop(self, store):
        store.delete_profile("ghost")

        assert list(store.profiles) == ["p1"]

    def test_rename(self, store):
        store.rename_profile("p1", "  New Name ")

        assert store.active_profile.name == "New Name"

    def test_rename_blank_is_noop(self, store):
        store.rename_profile("p1", "   ")

        assert store.active_profile.name == "Tester"

    def test_list_newest_first(self, store):
        store.profiles["p1"].created_at = 5
        store.profiles["a"] = Profile(id="a", name="A", created_at=10)
        store.profiles["b"] = Profile(id="b", name="B", created_at=1)

        assert [p.id for p in store.list_profiles()] == ["a", "p1", "b"]

    def test_reset_all_data(self, store):
        store.create_profile("Other")
        store.set_theme("dark")

        store.reset_all_data()

        assert list(store.profiles) == [DEFAULT_PROFILE_ID]
        assert store.settings.theme == "light"


class TestLibrary:
    """Tests for subject import and merge."""

    def test_import_appends_unknown_subjects(self, store, make_subject):
        store.import_subjects([make_subject("new")])

        assert [s.id for s in store.active_profile.subjects] == ["geo", "s", "new"]

    def test_import_merges_by_id(self, store, raw_geography):
        raw_geography["name"] = "World Geography"
        raw_geography["topics"][0]["questions"][0]["prompt"] = "Capital of Italy (updated)?"
        raw_geography["topics"][0]["questions"].append(
            {"id": "q-new", "type": "true_false", "prompt": "Paris is in France.", "answer": True}
        )
        raw_geography["topics"].append({"id": "lakes", "name": "Lakes", "questions": []})

        store.import_subjects(validate_subjects(raw_geography))

        subjects = store.active_profile.subjects
        assert len(subjects) == 2
        geo = subjects[0]
        assert geo.name == "World Geography"
        assert [t.id for t in geo.topics] == ["capitals", "rivers", "lakes"]
        capitals = geo.topics[0]
        assert capitals.questions[0].prompt == "Capital of Italy (updated)?"
        assert [q.id for q in capitals.questions] == ["q-mc", "q-kw", "q-tf", "q-new"]

    def test_set_subjects_replaces(self, store, make_subject):
        store.set_subjects([make_subject("only")])

        assert [s.id for s in store.active_profile.subjects] == ["only"]

    def test_delete_subject_clears_progress_and_session(self, store):
        session = store.session
        session.start_session("geo")
        session.submit_answer(1)

        store.delete_subject("geo")

        profile = store.active_profile
        assert [s.id for s in profile.subjects] == ["s"]
        assert "geo" not in profile.progress
        assert profile.session.subject_id is None
        assert profile.session.queue == []

    def test_delete_other_subject_keeps_session(self, store):
        store.session.start_session("geo")

        store.delete_subject("s")

        assert store.active_profile.session.subject_id == "geo"

    def test_seed_only_when_empty(self, store, make_subject):
        assert store.seed_if_empty([make_subject("seed")]) is False

        fresh = ProfileStore()
        assert fresh.seed_if_empty([make_subject("seed")]) is True
        assert fresh.active_profile.subjects[0].id == "seed"


class TestProfileImportExport:
    """Tests for profile export/import."""

    def test_export_unknown(self, store):
        assert store.export_profile("ghost") is None

    def test_export_then_import_as_new(self, store, rng):
        store.session.start_session("geo")
        store.session.submit_answer(1)
        exported = store.export_profile("p1")

        other = ProfileStore(rng=rng)
        imported = other.import_profile(exported)

        assert imported.id == "p1"
        assert imported.name == "Tester"
        assert [s.id for s in imported.subjects] == ["geo", "s"]
        assert imported.progress["geo"]["capitals"]["q-mc"].mastered is True
        assert imported.session.subject_id is None
        # Import does not switch the active profile
        assert other.active_profile_id == DEFAULT_PROFILE_ID

    def test_import_into_existing_merges(self, store):
        store.session.start_session("geo")
        store.session.submit_answer(1)  # q-mc mastered locally
        exported = store.export_profile("p1")
        exported["subjects"] = exported["subjects"][:1]
        exported["progress"] = {
            "geo": {"rivers": {"q-ma": {"id": "q-ma", "attempts": 2, "correctStreak": 0, "mastered": False}}}
        }

        store.import_profile(exported)

        progress = store.active_profile.progress["geo"]
        assert progress["capitals"]["q-mc"].mastered is True
        assert progress["rivers"]["q-ma"].attempts == 2
        assert [s.id for s in store.active_profile.subjects] == ["geo", "s"]

    @pytest.mark.parametrize("data", [
        [],
        {"name": "x", "subjects": []},
        {"id": "x", "subjects": []},
        {"id": "x", "name": "x"},
    ])
    def test_import_rejects_invalid_profiles(self, store, data):
        with pytest.raises(ImportValidationError, match="Invalid profile format"):
            store.import_profile(data)

    def test_import_rejects_invalid_progress(self, store):
        data = {"id": "x", "name": "x", "subjects": [], "progress": {"s": "oops"}}

        with pytest.raises(ImportValidationError, match="progress"):
            store.import_profile(data)

        assert "x" not in store.profiles

    def test_merge_progress_overwrites_question_entries(self):
        from src.requizle.models import QuestionProgress

        existing = {"s": {"t": {"a": QuestionProgress(id="a", attempts=1), "b": QuestionProgress(id="b")}}}
        incoming = {"s": {"t": {"a": QuestionProgress(id="a", attempts=9)}}}

        merged = merge_progress(existing, incoming)

        assert merged["s"]["t"]["a"].attempts == 9
        assert "b" in merged["s"]["t"]
        assert existing["s"]["t"]["a"].attempts == 1


class TestActiveSession:
    """Tests for the session bound to the active profile."""

    def test_profiles_are_isolated(self, store):
        store.session.start_session("geo")
        store.session.submit_answer(1)

        store.create_profile("Fresh")

        assert store.session.state.subject_id is None
        assert store.active_profile.progress == {}

        store.switch_profile("p1")
        assert store.session.state.subject_id == "geo"

    def test_session_follows_switch(self, store):
        first = store.session
        store.create_profile("Other")

        assert store.session is not first
        assert store.session.profile is store.active_profile

    def test_on_change_fires_for_store_and_session(self, store):
        calls = []
        store.on_change = lambda: calls.append(1)

        store.session.set_mode(StudyMode.TOPIC_ORDER)
        store.create_profile("X")

        assert len(calls) == 2

    def test_to_document_round_trip(self, store, rng):
        store.session.start_session("geo")
        store.set_theme("dark")

        document = store.to_document()
        restored = ProfileStore.from_state(document["state"], rng=rng)

        assert document["version"] == 2
        assert restored.active_profile_id == "p1"
        assert restored.settings.theme == "dark"
        assert restored.active_profile.session == store.active_profile.session
        assert restored.active_profile.subjects == store.active_profile.subjects
