"""Tests for explicit note references: parsing, limits, resolution."""

import pytest

from groundwork.retriever.references import (
    MAX_REFERENCES,
    ReferenceLimitError,
    ReferenceResolver,
    ReferenceType,
    parse_references,
    summarize_unresolved,
    validate_references,
)

NOTE_ID = "3f2b8c1e-9a4d-4e6f-8b7a-1c2d3e4f5a6b"
FOREIGN_ID = "9e8d7c6b-5a4f-4e3d-8c2b-1a0f9e8d7c6b"


class TestParseReferences:
    def test_all_syntaxes_in_order(self):
        prompt = f'compare @notes:"English Exam" with @notes:{NOTE_ID} and @notes:vocab and [[Class Fund]]'

        result = parse_references(prompt)

        assert [(r.type, r.value) for r in result.references] == [
            (ReferenceType.TITLE, "English Exam"),
            (ReferenceType.ID, NOTE_ID),
            (ReferenceType.PARTIAL, "vocab"),
            (ReferenceType.TITLE, "Class Fund"),
        ]
        assert result.clean_prompt == "compare with and and"

    def test_quoted_not_double_counted(self):
        result = parse_references('@notes:"Two Words" please')
        assert len(result.references) == 1
        assert result.clean_prompt == "please"

    def test_no_references(self):
        result = parse_references("what is in my exam note?")
        assert not result.has_references
        assert result.clean_prompt == "what is in my exam note?"


class TestValidate:
    def test_limit(self):
        refs = parse_references(" ".join(f"[[Note {i}]]" for i in range(MAX_REFERENCES + 1))).references

        with pytest.raises(ReferenceLimitError) as exc_info:
            validate_references(refs)
        assert exc_info.value.count == MAX_REFERENCES + 1

    def test_at_limit_ok(self):
        refs = parse_references(" ".join(f"[[Note {i}]]" for i in range(MAX_REFERENCES))).references
        validate_references(refs)


class TestResolver:
    @pytest.fixture
    def notes(self, store):
        return {
            "exam": store.add_document("u1", "English Exam", "grammar", document_id=NOTE_ID),
            "vocab": store.add_document("u1", "English Vocabulary", "words"),
            "foreign": store.add_document("u2", "Secret", "not yours", document_id=FOREIGN_ID),
        }

    def test_resolves_each_syntax(self, store, notes):
        refs = parse_references(f"@notes:{NOTE_ID} [[english vocabulary]]").references

        resolved = ReferenceResolver(store).resolve("u1", refs)

        assert [r.document.id for r in resolved] == [NOTE_ID, notes["vocab"].id]
        assert all(r.document.hydrated for r in resolved)

    def test_partial_title(self, store, notes):
        resolved = ReferenceResolver(store).resolve("u1", parse_references("@notes:Vocab").references)
        assert resolved[0].document.title == "English Vocabulary"

    def test_id_of_other_user_not_found(self, store, notes):
        refs = parse_references(f"[[Secret]] @notes:{FOREIGN_ID}").references

        resolved = ReferenceResolver(store).resolve("u1", refs)

        assert not any(r.found for r in resolved)
        assert summarize_unresolved(resolved) == f"Could not find: {FOREIGN_ID}, Secret"

    def test_duplicates_collapsed(self, store, notes):
        refs = parse_references(f'@notes:"English Exam" @notes:{NOTE_ID}').references

        resolved = ReferenceResolver(store).resolve("u1", refs)

        assert [r.document.id for r in resolved if r.found] == [NOTE_ID]

    def test_store_error_reported_not_raised(self):
        class BrokenStore:
            def find_by_title(self, user_id, title):
                raise ConnectionError("down")

        resolved = ReferenceResolver(BrokenStore()).resolve("u1", parse_references("[[English Exam]]").references)

        assert not resolved[0].found
        assert "down" in resolved[0].error

    def test_nothing_unresolved(self):
        assert summarize_unresolved([]) == ""
