import pytest
from sqlmodel import Session, select
from sqlmodel_changesets.validation import Errors, run_validators

from tests.models import Account


def accounts(session: Session) -> list[Account]:
    return list(session.exec(select(Account)).all())


def test_validates_presence_inside_changeset(session):
    # The key is expected, so pass None to reach the validator instead of raising.
    changeset = Account.new_changeset("required_name", {"name": None})

    assert changeset.save(session) is False
    assert not changeset.is_valid()
    assert accounts(session) == []
    assert changeset.errors.messages == {"name": ["can't be blank"]}

    Account.new_changeset("required_name", {"name": "Bob"}).save_or_raise(session)

    assert [account.name for account in accounts(session)] == ["Bob"]



def test_name_column_is_readable_alongside_changeset_metadata(session):
    changeset = Account.new_changeset("required_name", {"name": "Bob"})

    assert changeset.name == "Bob"
    assert changeset["name"] == "Bob"
    assert changeset.changeset_name == "required_name"
    assert changeset.changeset_profile is Account.changeset_profile("required_name")

    changeset.save_or_raise(session)

    assert changeset.name == "Bob"
    assert changeset.changeset_name == "required_name"

def test_validate_names_a_method_on_the_model(session):
    changeset = Account.new_changeset("uppercase_name", {"name": "bob"})

    assert changeset.save(session) is False
    assert changeset.errors.messages == {"name": ["must contain an uppercase letter"]}

    Account.new_changeset("uppercase_name", {"name": "Bob"}).save_or_raise(session)

    assert [account.name for account in accounts(session)] == ["Bob"]


def test_shared_validator_helper(session):
    changeset = Account.new_changeset("email_via_helper", {"email": "not-an-email"})

    assert changeset.save(session) is False
    assert changeset.errors.messages == {"email": ["is invalid"]}

    Account.new_changeset("email_via_helper", {"email": "bob@example.com"}).save_or_raise(session)

    assert [account.email for account in accounts(session)] == ["bob@example.com"]


def test_validations_are_isolated_per_changeset(session):
    account = Account(email="invalid email")

    account.to_changeset("uppercase_name", {"name": "Bob"}).save_or_raise(session)

    [saved] = accounts(session)
    assert saved.name == "Bob"
    assert saved.email == "invalid email"


def test_errors_are_cleared_on_revalidation():
    changeset = Account.new_changeset("required_name", {"name": ""})
    assert not changeset.is_valid()

    changeset.assign({"name": "Bob"})

    assert not changeset.errors
    assert changeset.is_valid()


def test_missing_validation_method_raises():
    changeset = Account.new_changeset("required_name", {"name": "Bob"})

    with pytest.raises(AttributeError):
        run_validators(changeset, ["no_such_method"])


def test_errors_collection():
    errors = Errors()
    errors.add("name")
    errors.add("name", "is too short")
    errors.add("email", "can't be blank")

    assert errors["name"] == ["is invalid", "is too short"]
    assert errors["other"] == []
    assert "email" in errors
    assert list(errors) == ["name", "email"]
    assert len(errors) == 3
    assert errors.full_messages() == ["name is invalid", "name is too short", "email can't be blank"]

    errors.clear()
    assert not errors
    assert errors.messages == {}


def test_errors_merge_prefixes_fields():
    child = Errors()
    child.add("title", "can't be blank")
    parent = Errors()

    parent.merge(child, prefix="books")

    assert parent.messages == {"books.title": ["can't be blank"]}
