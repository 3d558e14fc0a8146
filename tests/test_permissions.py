import pytest

from packages.erd_access.errors import Forbidden, Invalid, NotFound, Unauthorized
from packages.erd_access.permissions import (
    FULL_ACCESS,
    PermissionFlags,
    PermissionLevel,
    collapse_flags,
    expand_level,
)


@pytest.mark.parametrize(
    "level, expected",
    [
        ("view", (True, False, False)),
        ("edit", (True, True, False)),
        ("invite", (True, True, True)),
    ],
)
def test_expand_level_flags(level, expected):
    flags = expand_level(level)

    assert (flags.can_view, flags.can_edit, flags.can_invite) == expected
    assert flags.is_owner is None


def test_levels_round_trip_through_collapse():
    for level in PermissionLevel:
        assert collapse_flags(expand_level(level)) is level


def test_expand_level_rejects_unknown_value():
    with pytest.raises(Invalid) as excinfo:
        expand_level("admin")

    assert excinfo.value.status_code == 400
    assert "admin" in excinfo.value.reason


def test_owner_always_collapses_to_invite():
    flags = PermissionFlags(is_owner=True, can_view=True, can_edit=False, can_invite=False)

    assert collapse_flags(flags) is PermissionLevel.INVITE
    assert collapse_flags(FULL_ACCESS) is PermissionLevel.INVITE


@pytest.mark.parametrize(
    "error_cls, status, label",
    [
        (Unauthorized, 401, "Unauthorized"),
        (Forbidden, 403, "Forbidden"),
        (NotFound, 404, "Not found"),
        (Invalid, 400, "Invalid"),
    ],
)
def test_error_reason_format(error_cls, status, label):
    err = error_cls("update project")

    assert err.status_code == status
    assert err.reason == f"Can not update project. reason: {label}"
    assert str(err) == err.reason


def test_error_reason_carries_detail():
    err = Forbidden("update permission", "id: grant-1")

    assert err.reason == "Can not update permission. reason: Forbidden id: grant-1"
