"""Tests for the Note model: loading, accessors, and saving."""

from __future__ import annotations

from pathlib import Path

import pytest
from conftest import write_note

from notevault.errors import ParseError
from notevault.note import Note


class TestFromLines:
    def test_frontmatter_fields(self):
        lines = [
            "---",
            "id: foo",
            "aliases:",
            "  - Foo",
            "tags: [a, b]",
            "status: draft",
            "---",
            "",
            "# Foo Title",
            "body",
        ]

        note = Note.from_lines(lines, "/v/foo.md")

        assert note.id == "foo"
        assert note.aliases == ["Foo"]
        assert note.tags == ["a", "b"]
        assert note.metadata == {"status": "draft"}
        assert note.title == "Foo Title"
        assert note.has_frontmatter
        assert note.frontmatter_end_line == 7
        assert note.path == Path("/v/foo.md")

    def test_no_frontmatter_uses_stem(self):
        note = Note.from_lines(["# Heading", "text"], "/v/some-note.md")

        assert note.id == "some-note"
        assert note.title == "Heading"
        assert not note.has_frontmatter
        assert note.frontmatter_end_line is None

    def test_string_tags_and_aliases(self):
        note = Note.from_lines(["---", "aliases: Solo", "tags: one", "---"], "/v/x.md")

        assert note.aliases == ["Solo"]
        assert note.tags == ["one"]

    def test_numeric_id_kept(self):
        note = Note.from_lines(["---", "id: 20240115", "---"], "/v/x.md")

        assert note.id == 20240115

    def test_malformed_frontmatter(self):
        with pytest.raises(ParseError) as exc_info:
            Note.from_lines(["---", "id: [bad", "---"], "/v/bad.md")

        assert exc_info.value.path == Path("/v/bad.md")


class TestFromFile:
    def test_relative_to_root(self, vault: Path):
        write_note(vault, "notes/a.md", "---\nid: a\n---\n# A\n")

        note = Note.from_file("notes/a.md", vault)

        assert note.id == "a"
        assert note.path == vault / "notes" / "a.md"

    def test_missing_file(self, vault: Path):
        with pytest.raises(ParseError, match="Failed to read note"):
            Note.from_file(vault / "missing.md")

    @pytest.mark.asyncio
    async def test_async(self, vault: Path):
        write_note(vault, "a.md", "# A\n")

        note = await Note.from_file_async(vault / "a.md")

        assert note.title == "A"


class TestAccessors:
    def test_display_name_priority(self):
        note = Note.new("id-1", ["Alias"])
        assert note.display_name() == "Alias"

        note.title = "Title"
        assert note.display_name() == "Title"

        assert Note.new("id-2").display_name() == "id-2"

    def test_add_alias_and_tag_dedupe(self):
        note = Note.new("n")
        note.add_alias("A")
        note.add_alias("A")
        note.add_tag("t")
        note.add_tag("t")

        assert note.aliases == ["A"]
        assert note.tags == ["t"]

    def test_add_field(self):
        note = Note.new("n")
        note.add_field("status", "done")

        assert note.get_field("status") == "done"
        assert note.frontmatter() == {"id": "n", "aliases": [], "tags": [], "status": "done"}

    def test_add_field_reserved(self):
        with pytest.raises(ValueError):
            Note.new("n").add_field("aliases", ["x"])

    def test_should_save_frontmatter(self):
        note = Note.new("n")
        assert note.should_save_frontmatter()

        note.add_field("notevault_managed", False)
        assert not note.should_save_frontmatter()

    def test_fname_and_exists(self, vault: Path):
        path = write_note(vault, "a.md", "# A\n")

        assert Note.new("a", path=path).fname() == "a.md"
        assert Note.new("a", path=path).exists()
        assert not Note.new("b", path=vault / "b.md").exists()
        assert Note.new("c").fname() is None


class TestSave:
    def test_new_file(self, vault: Path):
        path = vault / "new" / "foo.md"
        note = Note.new("foo", ["Foo"], ["t"], path)

        note.save()

        assert path.read_text() == "---\nid: foo\naliases:\n  - Foo\ntags:\n  - t\n---\n\n# Foo\n"
        assert note.has_frontmatter
        assert note.frontmatter_end_line == 7

    def test_existing_body_untouched(self, vault: Path):
        path = write_note(vault, "foo.md", "---\nid: foo\n---\n# Body\ntext\n")
        note = Note.from_file(path)
        note.add_alias("Bar")

        note.save()

        assert path.read_text() == "---\nid: foo\naliases:\n  - Bar\ntags: []\n---\n# Body\ntext\n"

    def test_adds_frontmatter_to_plain_file(self, vault: Path):
        path = write_note(vault, "plain.md", "# Plain\n")
        note = Note.from_file(path)

        note.save()

        text = path.read_text()
        assert text.startswith("---\nid: plain\n")
        assert text.endswith("---\n# Plain\n")

    def test_without_frontmatter(self, vault: Path):
        path = write_note(vault, "plain.md", "# Plain\nbody\n")
        note = Note.from_file(path)

        note.save(insert_frontmatter=False)

        assert path.read_text() == "# Plain\nbody\n"
        assert not note.has_frontmatter

    def test_custom_frontmatter(self, vault: Path):
        path = vault / "c.md"
        note = Note.new("c", path=path)

        note.save(frontmatter={"id": "c", "kind": "custom"})

        assert path.read_text().startswith("---\nid: c\nkind: custom\n---\n")

    def test_save_requires_path(self):
        with pytest.raises(ValueError):
            Note.new("n").save()
