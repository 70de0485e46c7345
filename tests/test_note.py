"""Tests for Note: children, sorting, paths, and metadata-derived titles."""

from __future__ import annotations

import locale

import pytest

from structuredtree.config import Settings
from structuredtree.engine.note import (
    Note,
    NoteHasParentError,
    collation_key,
    generate_note_title,
    is_use_title_case,
)


@pytest.fixture()
def settings() -> Settings:
    return Settings()


# ---------------------------------------------------------------------------
# Titles
# ---------------------------------------------------------------------------


class TestNoteTitle:
    def test_titlecase(self) -> None:
        assert generate_note_title("aku-cinta", True) == "Aku Cinta"

    def test_titlecase_lowers_the_rest(self) -> None:
        assert generate_note_title("hello-WORLD", True) == "Hello World"

    def test_verbatim_without_titlecase(self) -> None:
        assert generate_note_title("aKu-ciNta", False) == "aKu-ciNta"

    def test_empty_words_dropped(self) -> None:
        assert generate_note_title("a--b", True) == "A B"

    def test_titlecase_flag_from_basename(self) -> None:
        assert is_use_title_case("project.backend")
        assert not is_use_title_case("Project.backend")


# ---------------------------------------------------------------------------
# Children
# ---------------------------------------------------------------------------


class TestNoteChildren:
    def test_append_and_remove(self, settings: Settings) -> None:
        child = Note("lala", True, settings)
        parent = Note("apa", True, settings)
        assert child.parent is None
        assert parent.children == []

        parent.append_child(child)
        assert child.parent is parent
        assert parent.children == [child]

        parent.remove_child(child)
        assert child.parent is None
        assert parent.children == []

    def test_append_child_with_parent_raises(self, settings: Settings) -> None:
        orig_parent = Note("root", True, settings)
        parent = Note("root2", True, settings)
        child = Note("child", True, settings)
        orig_parent.append_child(child)

        with pytest.raises(NoteHasParentError, match="has parent"):
            parent.append_child(child)
        assert child.parent is orig_parent

    def test_remove_missing_child_is_noop(self, settings: Settings) -> None:
        parent = Note("parent", True, settings)
        other = Note("other", True, settings)
        stranger = Note("stranger", True, settings)
        other.append_child(stranger)

        parent.remove_child(stranger)
        assert stranger.parent is other

    def test_find_child(self, settings: Settings) -> None:
        parent = Note("parent", True, settings)
        children = [Note(f"child{i}", True, settings) for i in range(1, 4)]
        for child in children:
            parent.append_child(child)

        assert parent.find_child("child1") is children[0]
        assert parent.find_child("CHILD2") is children[1]
        assert parent.find_child("child3") is children[2]
        assert parent.find_child("child4") is None

    def test_sort_non_recursive(self, settings: Settings) -> None:
        parent = Note("parent", True, settings)
        gajak, lumba, biawak = (Note(n, True, settings) for n in ("gajak", "lumba", "biawak"))
        for child in (gajak, lumba, biawak):
            parent.append_child(child)

        parent.sort_children(False)
        assert parent.children == [biawak, gajak, lumba]

    def test_sort_recursive(self, settings: Settings) -> None:
        parent = Note("parent", True, settings)
        lumba = Note("lumba", True, settings)
        galak = Note("galak", True, settings)
        lupa, apa = Note("lupa", True, settings), Note("apa", True, settings)
        abu, lagi = Note("abu", True, settings), Note("lagi", True, settings)

        parent.append_child(lumba)
        lumba.append_child(lupa)
        lumba.append_child(apa)
        parent.append_child(galak)
        galak.append_child(abu)
        galak.append_child(lagi)

        parent.sort_children(True)
        assert parent.children == [galak, lumba]
        assert lumba.children == [apa, lupa]
        assert galak.children == [abu, lagi]

    def test_sort_mixed_case_titles(self, settings: Settings) -> None:
        parent = Note("parent", True, settings)
        notes = [Note(n, False, settings) for n in ("B", "a", "C")]
        for note in notes:
            parent.append_child(note)

        parent.sort_children(True)
        assert [n.title for n in parent.children] == ["a", "B", "C"]

    def test_sort_case_and_accent_insensitive(self, settings: Settings) -> None:
        parent = Note("parent", True, settings)
        for name in ("zebra", "\u00c9clair", "Banana", "apple"):
            parent.append_child(Note(name, False, settings))

        parent.sort_children(False)
        assert [n.title for n in parent.children] == ["apple", "Banana", "\u00c9clair", "zebra"]


class TestCollationKey:
    def test_c_locale_folds_case_and_accents(self) -> None:
        assert collation_key("\u00c9clair") == "eclair"
        assert sorted(["Banana", "apple"], key=collation_key) == ["apple", "Banana"]

    def test_uses_active_locale(self) -> None:
        try:
            locale.setlocale(locale.LC_COLLATE, "en_US.UTF-8")
        except locale.Error:
            pytest.skip("en_US.UTF-8 locale not installed")
        words = ["zebra", "\u00e9clair", "apple"]
        assert sorted(words, key=collation_key) == ["apple", "\u00e9clair", "zebra"]


# ---------------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------------


class TestNotePath:
    def test_path_on_non_root(self, settings: Settings) -> None:
        root = Note("root", True, settings)
        ch1 = Note("parent", True, settings)
        ch2 = Note("parent2", True, settings)
        ch3 = Note("child", True, settings)
        root.append_child(ch1)
        ch1.append_child(ch2)
        ch2.append_child(ch3)

        assert ch3.get_path() == "parent.parent2.child"
        assert ch3.get_path_notes() == [root, ch1, ch2, ch3]

    def test_path_on_root(self, settings: Settings) -> None:
        root = Note("root", True, settings)
        assert root.get_path() == "root"
        assert root.get_path_notes() == [root]

    def test_original_casing(self, settings: Settings) -> None:
        root = Note("root", True, settings)
        child = Note("MyNote", False, settings)
        root.append_child(child)
        assert child.get_path() == "mynote"
        assert child.get_path(original=True) == "MyNote"


# ---------------------------------------------------------------------------
# Metadata
# ---------------------------------------------------------------------------


class TestNoteMetadata:
    def test_generated_title_when_titlecase(self, settings: Settings) -> None:
        assert Note("aku-cinta", True, settings).title == "Aku Cinta"

    def test_filename_title_without_titlecase(self, settings: Settings) -> None:
        assert Note("aKu-ciNta", False, settings).title == "aKu-ciNta"

    def test_metadata_title(self, settings: Settings) -> None:
        note = Note("aKu-ciNta", False, settings)
        note.sync_metadata({"title": "Butuh Kamu"})
        assert note.title == "Butuh Kamu"
        assert note.sort_key == "butuh kamu"

    def test_absent_metadata_resets(self, settings: Settings) -> None:
        note = Note("aku", True, settings)
        note.sync_metadata({"title": "Custom", "desc": "About"})
        note.sync_metadata(None)
        assert note.title == "Aku"
        assert note.desc == ""

    def test_desc_defaults_to_empty(self, settings: Settings) -> None:
        note = Note("aku", True, settings)
        note.sync_metadata({"title": "T"})
        assert note.desc == ""
        assert note.metadata["desc"] == ""

    def test_non_string_values_coerced(self, settings: Settings) -> None:
        note = Note("aku", True, settings)
        note.sync_metadata({"title": 2024, "desc": 3.5})
        assert note.title == "2024"
        assert note.desc == "3.5"

    def test_configured_key_names_read_at_access_time(self) -> None:
        settings = Settings(properties={"title_key": "name", "desc_key": "summary"})
        note = Note("aku", True, settings)
        note.sync_metadata({"name": "Named", "summary": "Short", "title": "Ignored"})
        assert note.title == "Named"
        assert note.desc == "Short"
