from datetime import datetime, timedelta, timezone

import pytest

from identity_api.domain import (
    Description,
    Email,
    Password,
    PermissionName,
    RoleName,
    StreamerId,
    UserId,
    Username,
)
from identity_api.errors import DaoInvalidArgumentError, ValueValidationError
from identity_api.refs import (
    PermissionById,
    PermissionByName,
    RoleById,
    RoleByName,
    permission_ref,
    role_ref,
)
from identity_api.tokens import RefreshTokenHasher, as_utc, generate_raw_token


def test_role_ref_dispatches_on_type():
    assert role_ref(3) == RoleById(3)
    assert role_ref(" moderator ") == RoleByName("MODERATOR")
    assert role_ref(RoleById(7)) == RoleById(7)


def test_permission_ref_dispatches_on_type():
    assert permission_ref(5) == PermissionById(5)
    assert permission_ref("watch_stream").name == "WATCH_STREAM"
    assert permission_ref(PermissionByName("x")) == PermissionByName("X")


@pytest.mark.parametrize("bad", [True, False, 2.0, None, b"ADMIN", ("ADMIN",)])
def test_refs_reject_other_types(bad):
    with pytest.raises(DaoInvalidArgumentError):
        role_ref(bad)
    with pytest.raises(DaoInvalidArgumentError):
        permission_ref(bad)


@pytest.mark.parametrize("bad", [0, -1, True, "1"])
def test_ids_must_be_positive_ints(bad):
    with pytest.raises(ValueValidationError) as excinfo:
        UserId(bad)
    assert excinfo.value.field == "user_id"
    with pytest.raises(ValueValidationError):
        StreamerId(bad)


def test_username_rules():
    assert Username("  Chat_Mod7 ").value == "Chat_Mod7"
    assert Username("Chat_Mod7").normalized == "chat_mod7"
    for bad in ("ab", "x" * 26, "has space", "dash-name"):
        with pytest.raises(ValueValidationError):
            Username(bad)


def test_email_is_normalised():
    assert Email("  Viewer@Mail.com ").value == "viewer@mail.com"
    with pytest.raises(ValueValidationError) as excinfo:
        Email("not-an-email")
    assert excinfo.value.field == "email"


def test_description_bounds():
    assert Description("  hi  ").value == "hi"
    with pytest.raises(ValueValidationError):
        Description("   ")
    with pytest.raises(ValueValidationError):
        Description("x" * 161)


def test_password_hash_and_verify():
    password = Password.create("correct horse")

    assert password.value.startswith("$2")
    assert password.verify("correct horse") is True
    assert password.verify("wrong horse") is False
    assert Password.from_hash(password.value).verify("correct horse") is True
    assert Password.from_hash("not-a-bcrypt-hash").verify("anything") is False


@pytest.mark.parametrize("raw", ["short", "é" * 37])
def test_password_length_limits(raw):
    with pytest.raises(ValueValidationError):
        Password.create(raw)


def test_catalog_names_are_uppercased():
    assert RoleName(" moderator ").value == "MODERATOR"
    assert PermissionName("ban_user").value == "BAN_USER"
    with pytest.raises(ValueValidationError):
        RoleName("")
    with pytest.raises(ValueValidationError):
        PermissionName("ban-user")


def test_refresh_token_hasher():
    hasher = RefreshTokenHasher("secret-a")
    raw = generate_raw_token()

    digest = hasher.hash(raw)
    assert len(digest) == 64
    assert digest == hasher.hash(raw)
    assert hasher.matches(raw, digest)
    assert RefreshTokenHasher("secret-b").hash(raw) != digest
    assert raw not in digest


def test_as_utc_treats_naive_as_utc():
    naive = datetime(2026, 1, 1, 12, 0)
    aware = datetime(2026, 1, 1, 14, 0, tzinfo=timezone(timedelta(hours=2)))

    assert as_utc(naive) == datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)
    assert as_utc(aware) == as_utc(naive)
