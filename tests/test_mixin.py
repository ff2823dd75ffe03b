from sqlmodel_changesets import Changeset, ChangesetRegistry, ChangesetState, registry_for

from tests.models import User


def test_changeset_registry_is_shared_per_model():
    assert isinstance(User.changeset_registry(), ChangesetRegistry)
    assert User.changeset_registry() is registry_for(User)


def test_register_changeset_without_decorator():
    User.register_changeset("mixin_rename", lambda cs: cs.expect("first_name"), strict=True)

    profile = User.changeset_profile("mixin_rename")

    assert profile.qualified_name == "User.Changesets.MixinRename"
    assert profile.strict is True
    assert User.changeset_registry().Changesets.MixinRename is profile


def test_decorator_registers_on_model():
    @User.changeset("mixin_decorated", ignore=["token"])
    def mixin_decorated(cs):
        cs.permit("email")

    assert "mixin_decorated" in User.changeset_registry()
    assert User.changeset_profile("mixin_decorated").options.ignore == ("token",)


def test_new_changeset_wraps_fresh_instance():
    changeset = User.new_changeset("edit_email")

    assert isinstance(changeset, Changeset)
    assert isinstance(changeset.record, User)
    assert changeset.new_record is True
    assert changeset.state is ChangesetState.DERIVED


def test_to_changeset_wraps_existing_instance():
    user = User(email="bob@example.com")

    changeset = user.to_changeset("edit_email", {"email": "rob@example.com"})

    assert changeset.record is user
    assert changeset.email == "rob@example.com"
    assert user.email == "bob@example.com"
    assert repr(changeset).startswith("<Changeset User.Changesets.EditEmail state=filtered")
