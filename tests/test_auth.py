"""
Test access tokens and role/family authorization.
"""

import time

import pytest

from chorequest.auth.permissions import AuthenticatedUser, authorize, require_guild_master
from chorequest.auth.tokens import TokenAuth
from chorequest.core.exceptions import (
    AuthenticationError, CrossFamilyError, GuildMasterRequiredError
)
from chorequest.models import UserRole

GM = AuthenticatedUser(id="gm-1", role=UserRole.GUILD_MASTER.value, family_id="fam-1")
HERO = AuthenticatedUser(id="hero-1", role=UserRole.HERO.value, family_id="fam-1")
ORPHAN = AuthenticatedUser(id="hero-2", role=UserRole.HERO.value, family_id=None)


def test_token_round_trip():
    auth = TokenAuth("secret")
    token = auth.verify_token(auth.create_token("user-42"))
    assert token.user_id == "user-42"


def test_token_with_wrong_secret_is_rejected():
    token = TokenAuth("secret").create_token("user-42")
    with pytest.raises(AuthenticationError):
        TokenAuth("other-secret").verify_token(token)


@pytest.mark.parametrize("raw", ["", "abc", "a.b", "user..sig", "user.notanumber.sig"])
def test_malformed_tokens_are_rejected(raw):
    with pytest.raises(AuthenticationError):
        TokenAuth("secret").verify_token(raw)


def test_expired_token_is_rejected():
    auth = TokenAuth("secret", max_age_hours=1)
    token = auth.create_token("user-42", issued_at=int(time.time()) - 2 * 3600)
    with pytest.raises(AuthenticationError) as exc_info:
        auth.verify_token(token)
    assert "expired" in exc_info.value.message


def test_authorize_same_family():
    authorize(HERO, "fam-1")
    require_guild_master(GM, "fam-1", "approve quests")


def test_role_check_runs_before_family_check():
    with pytest.raises(GuildMasterRequiredError) as exc_info:
        require_guild_master(HERO, "fam-2", "approve quests")
    assert exc_info.value.message == "Only Guild Masters can approve quests"
    assert exc_info.value.status_code == 403


def test_cross_family_is_rejected_for_every_role():
    with pytest.raises(CrossFamilyError):
        authorize(GM, "fam-2", UserRole.GUILD_MASTER, "approve quests")
    with pytest.raises(CrossFamilyError) as exc_info:
        authorize(HERO, "fam-2", action="claim quests")
    assert exc_info.value.message == "Cannot claim quests outside your family"


def test_user_without_family_is_rejected():
    with pytest.raises(CrossFamilyError):
        authorize(ORPHAN, None)
