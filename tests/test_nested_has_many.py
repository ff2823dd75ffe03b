import pytest
from sqlmodel import Session, select
from sqlmodel_changesets import MissingParametersError, NestedRecordNotFoundError, TooManyRecordsError

from tests.models import Book, Library


def titles(session: Session, library: Library) -> list[str]:
    books = session.exec(select(Book).where(Book.library_id == library.id).order_by(Book.title)).all()
    return [book.title for book in books]


def only_library(session: Session) -> Library:
    libraries = session.exec(select(Library)).all()
    assert len(libraries) == 1
    return libraries[0]


@pytest.fixture
def library(session: Session) -> Library:
    library = Library(name="City Library", books=[Book(title="Book A"), Book(title="Book B")])
    session.add(library)
    session.commit()
    session.refresh(library)
    return library


def book_id(library: Library, title: str) -> int:
    return next(book.id for book in library.books if book.title == title)


def test_has_many_required(session):
    changeset = Library.new_changeset(
        "required_has_many",
        {"name": "City Library", "books_attributes": [{"title": "Book A"}, {"title": "Book B"}]},
    )
    changeset.save_or_raise(session)

    library = only_library(session)
    assert library.name == "City Library"
    assert titles(session, library) == ["Book A", "Book B"]


def test_has_many_required_allows_empty_list(session):
    Library.new_changeset("required_has_many", {"name": "City Library", "books_attributes": []}).save_or_raise(session)

    assert titles(session, only_library(session)) == []


def test_has_many_required_raises_on_missing():
    with pytest.raises(MissingParametersError) as exc_info:
        Library.new_changeset("required_has_many", {"name": "City Library"})

    assert (
        str(exc_info.value) == "Library.Changesets.RequiredHasMany: Expected parameters were missing: books_attributes"
    )


def test_has_many_optional_allows_missing_nested(session):
    Library.new_changeset("optional_has_many", {"name": "City Library"}).save_or_raise(session)

    assert titles(session, only_library(session)) == []


def test_has_many_optional_raises_on_empty_nested_parameters():
    with pytest.raises(MissingParametersError) as exc_info:
        Library.new_changeset("optional_has_many", {"name": "City Library", "books_attributes": [{}]})

    assert str(exc_info.value) == "Book.Changesets.CreateBook: Expected parameters were missing: title"


def test_has_many_accepts_index_keyed_mapping(session):
    changeset = Library.new_changeset(
        "optional_has_many",
        {"name": "City Library", "books_attributes": {"0": {"title": "Book A"}, "1": {"title": "Book B"}}},
    )
    changeset.save_or_raise(session)

    assert titles(session, only_library(session)) == ["Book A", "Book B"]


def test_has_many_rejects_scalar_payload():
    with pytest.raises(TypeError):
        Library.new_changeset("optional_has_many", {"name": "City Library", "books_attributes": "Book A"})


def test_nested_payloads_are_not_applied_until_saved(session):
    changeset = Library.new_changeset(
        "optional_has_many", {"name": "City Library", "books_attributes": [{"title": "Book A"}]}
    )

    assert changeset.record.books == []
    assert [operation.action for operation in changeset.nested["books"]] == ["build"]
    assert changeset.nested["books"][0].changeset.title == "Book A"


def test_nested_validation_errors_are_prefixed_with_association(session):
    changeset = Library.new_changeset(
        "optional_has_many", {"name": "City Library", "books_attributes": [{"title": "Book A"}, {"title": ""}]}
    )

    assert changeset.save(session) is False
    assert changeset.errors.messages == {"books.title": ["can't be blank"]}
    assert session.exec(select(Library)).all() == []


def test_has_many_edit_existing(session, library):
    changeset = library.to_changeset(
        "optional_has_many",
        {
            "name": "City Library Updated",
            "books_attributes": [{"id": book_id(library, "Book A"), "title": "Book A2"}, {"title": "Book C"}],
        },
    )
    changeset.save_or_raise(session)

    session.refresh(library)
    assert library.name == "City Library Updated"
    assert titles(session, library) == ["Book A2", "Book B", "Book C"]


def test_has_many_destroy_existing(session, library):
    doomed = book_id(library, "Book B")

    changeset = library.to_changeset(
        "optional_has_many",
        {
            "name": "City Library Updated",
            "books_attributes": [
                {"id": book_id(library, "Book A"), "title": "Book A2"},
                {"id": doomed, "title": "Book B", "_destroy": True},
            ],
        },
    )
    changeset.save_or_raise(session)

    assert titles(session, library) == ["Book A2"]
    assert session.get(Book, doomed) is None


@pytest.mark.parametrize("flag", ["1", "true", 1])
def test_destroy_flag_accepts_form_values(session, library, flag):
    doomed = book_id(library, "Book B")

    library.to_changeset(
        "optional_has_many",
        {"name": "City Library", "books_attributes": [{"id": doomed, "title": "Book B", "_destroy": flag}]},
    ).save_or_raise(session)

    assert session.get(Book, doomed) is None


@pytest.mark.parametrize("flag", ["0", "false", False, None])
def test_false_destroy_flag_updates(session, library, flag):
    kept = book_id(library, "Book B")

    library.to_changeset(
        "optional_has_many",
        {"name": "City Library", "books_attributes": [{"id": kept, "title": "Book B2", "_destroy": flag}]},
    ).save_or_raise(session)

    assert session.get(Book, kept).title == "Book B2"


def test_destroy_is_ignored_without_allow_destroy(session, library):
    kept = book_id(library, "Book B")

    library.to_changeset(
        "required_has_many",
        {"name": "City Library", "books_attributes": [{"id": kept, "title": "Book B2", "_destroy": True}]},
    ).save_or_raise(session)

    assert titles(session, library) == ["Book A", "Book B2"]


def test_new_payload_marked_for_destroy_is_skipped(session):
    Library.new_changeset(
        "optional_has_many",
        {"name": "City Library", "books_attributes": [{"title": "Book A", "_destroy": "1"}, {"title": "Book B"}]},
    ).save_or_raise(session)

    assert titles(session, only_library(session)) == ["Book B"]


def test_unknown_child_id_raises(session, library):
    with pytest.raises(NestedRecordNotFoundError) as exc_info:
        library.to_changeset(
            "optional_has_many", {"name": "City Library", "books_attributes": [{"id": 999, "title": "Lost"}]}
        )

    assert exc_info.value.association == "books"
    assert str(exc_info.value) == f"Couldn't find Book with ID=999 for Library with ID={library.id}"


def test_limit_caps_number_of_payloads():
    with pytest.raises(TooManyRecordsError) as exc_info:
        Library.new_changeset(
            "limited_has_many",
            {"name": "City Library", "books_attributes": [{"title": "A"}, {"title": "B"}, {"title": "C"}]},
        )

    assert str(exc_info.value) == "Maximum 2 records are allowed. Got 3 records instead."


def test_reject_if_all_blank_skips_empty_payloads(session):
    Library.new_changeset(
        "limited_has_many", {"name": "City Library", "books_attributes": [{"title": ""}, {"title": "Book A"}]}
    ).save_or_raise(session)

    assert titles(session, only_library(session)) == ["Book A"]
