from datetime import datetime, timedelta, timezone

import pytest

from invtrack.core.config import settings
from invtrack.core.errors import AccessDenied, AccountLocked, AuthenticationFailed, InvalidInput
from invtrack.core.security import decode_token, is_password_hash, issue_token_pair, verify_password
from invtrack.crud import users as users_crud
from invtrack.models import User
from invtrack.services import accounts
from invtrack.services.access import scoped_department_id


def test_login_returns_user_and_resets_counter(db_session, factory):
    user = factory.user("lead")
    user.failed_attempts = 2
    db_session.commit()

    assert accounts.authenticate(db_session, " lead ", "secret123").id == user.id
    assert user.failed_attempts == 0


def test_unknown_user_and_bad_password_share_a_message(db_session, factory):
    factory.user("lead")

    with pytest.raises(AuthenticationFailed) as unknown:
        accounts.authenticate(db_session, "ghost", "secret123")
    with pytest.raises(AuthenticationFailed) as wrong:
        accounts.authenticate(db_session, "lead", "nope")

    assert unknown.value.message == wrong.value.message


def test_plaintext_password_is_rehashed_on_login(db_session):
    user = User(username="legacy", password="plain-pass", role="standard", failed_attempts=0)
    db_session.add(user)
    db_session.commit()

    accounts.authenticate(db_session, "legacy", "plain-pass")

    assert is_password_hash(user.password)
    assert verify_password("plain-pass", user.password)


def test_account_locks_after_repeated_failures(db_session, factory, monkeypatch):
    monkeypatch.setattr(settings, "LOGIN_MAX_FAILED_ATTEMPTS", 3)
    user = factory.user("lead")

    for _ in range(2):
        with pytest.raises(AuthenticationFailed) as excinfo:
            accounts.authenticate(db_session, "lead", "wrong")
        assert not isinstance(excinfo.value, AccountLocked)
    with pytest.raises(AccountLocked):
        accounts.authenticate(db_session, "lead", "wrong")

    # Even the right password is refused while locked.
    with pytest.raises(AccountLocked) as locked:
        accounts.authenticate(db_session, "lead", "secret123")
    assert locked.value.details["retry_after"] > 0

    user.locked_until = (datetime.now(tz=timezone.utc) - timedelta(minutes=1)).isoformat()
    db_session.commit()
    assert accounts.authenticate(db_session, "lead", "secret123").id == user.id


def test_change_password_checks_current_and_confirmation(db_session, factory):
    user = factory.user("lead")

    with pytest.raises(InvalidInput, match="incorrect"):
        accounts.change_password(db_session, user, "bad", "newsecret", "newsecret")
    with pytest.raises(InvalidInput, match="do not match"):
        accounts.change_password(db_session, user, "secret123", "newsecret", "other")
    with pytest.raises(InvalidInput, match="at least"):
        accounts.change_password(db_session, user, "secret123", "abc", "abc")

    accounts.change_password(db_session, user, "secret123", "newsecret", "newsecret")
    assert verify_password("newsecret", user.password)


def test_bootstrap_admin_only_for_empty_table(db_session, factory):
    created = accounts.ensure_bootstrap_admin(db_session)

    assert created is not None and created.is_super_admin
    assert verify_password(settings.UI_PASSWORD, created.password)
    assert accounts.ensure_bootstrap_admin(db_session) is None


def test_token_pair_round_trip():
    pair = issue_token_pair("lead", role="admin", department_id=3)

    access = decode_token(pair.access_token, verify_type="access")
    assert (access.sub, access.role, access.dept) == ("lead", "admin", 3)
    with pytest.raises(ValueError):
        decode_token(pair.access_token, verify_type="refresh")


def test_department_scoping(factory):
    dept = factory.department()
    other = factory.department("Kitchen")
    admin = factory.user("boss", role="admin", department=dept)
    root = factory.user("root", role="super_admin")

    assert scoped_department_id(admin, None) == dept.id
    assert scoped_department_id(admin, dept.id) == dept.id
    with pytest.raises(AccessDenied):
        scoped_department_id(admin, other.id)
    assert scoped_department_id(root, other.id) == other.id
    with pytest.raises(InvalidInput):
        scoped_department_id(root, None)


def test_admin_cannot_create_super_admin_or_other_department(db_session, factory):
    dept = factory.department()
    other = factory.department("Kitchen")
    admin = factory.user("boss", role="admin", department=dept)

    created = users_crud.create_user(
        db_session,
        admin,
        {"username": "new", "password": "secret123", "role": "super_admin", "department_id": other.id},
    )

    assert created.role == "standard"
    assert created.department_id == dept.id
    assert is_password_hash(created.password)


def test_super_admin_has_no_department(db_session, factory):
    root = factory.user("root", role="super_admin")
    dept = factory.department()

    created = users_crud.create_user(
        db_session, root, {"username": "root2", "password": "secret123", "role": "super_admin", "department_id": dept.id}
    )

    assert created.department_id is None
    with pytest.raises(InvalidInput):
        users_crud.create_user(db_session, root, {"username": "x", "password": "secret123", "role": "admin"})


def test_usernames_are_unique(db_session, factory):
    root = factory.user("root", role="super_admin")

    with pytest.raises(InvalidInput, match="taken"):
        users_crud.create_user(db_session, root, {"username": "root", "password": "secret123", "role": "super_admin"})


def test_admin_limits_on_existing_users(db_session, factory):
    dept = factory.department()
    admin = factory.user("boss", role="admin", department=dept)
    root = factory.user("root", role="super_admin")
    outsider = factory.user("cook", department=factory.department("Kitchen"))
    colleague = factory.user("lead", department=dept)

    with pytest.raises(AccessDenied):
        users_crud.update_user(db_session, admin, root, {"username": "r00t"})
    with pytest.raises(AccessDenied):
        users_crud.delete_user(db_session, admin, outsider)
    with pytest.raises(InvalidInput):
        users_crud.delete_user(db_session, admin, admin)

    old_hash = colleague.password
    users_crud.update_user(db_session, admin, colleague, {"username": "lead2", "password": ""})
    assert colleague.username == "lead2"
    assert colleague.password == old_hash

    users_crud.delete_user(db_session, admin, colleague)
    assert [u.username for u in users_crud.list_users(db_session, admin)] == ["boss"]


def test_standard_users_cannot_manage_accounts(db_session, factory):
    dept = factory.department()
    lead = factory.user("lead", department=dept)

    with pytest.raises(AccessDenied):
        users_crud.create_user(db_session, lead, {"username": "x", "password": "secret123"})
