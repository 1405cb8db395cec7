import pytest

from utils.exceptions import VerificationError
from utils.security import (
    PasswordService,
    generate_one_time_token,
    hash_one_time_token,
    one_time_token_matches,
)


@pytest.fixture
def passwords():
    return PasswordService(time_cost=1, memory_cost=1024, parallelism=1)


def test_hash_is_not_the_password_and_verifies(passwords):
    hashed = passwords.hash("Abcd1234")
    assert hashed != "Abcd1234"
    assert "Abcd1234" not in hashed
    assert hashed.startswith("$argon2id$")
    assert passwords.verify(hashed, "Abcd1234") is True
    assert passwords.verify(hashed, "Abcd12345") is False


def test_same_password_hashes_differently(passwords):
    assert passwords.hash("Abcd1234") != passwords.hash("Abcd1234")


def test_malformed_hash_raises_verification_error(passwords):
    with pytest.raises(VerificationError):
        passwords.verify("not-an-argon2-hash", "Abcd1234")


def test_needs_rehash_upgrades_outdated_parameters(passwords):
    stronger = PasswordService(time_cost=2, memory_cost=2048, parallelism=1)
    old_hash = passwords.hash("Abcd1234")

    new_hash = stronger.needs_rehash(old_hash, "Abcd1234")

    assert new_hash is not None
    assert new_hash != old_hash
    assert stronger.verify(new_hash, "Abcd1234")
    assert stronger.needs_rehash(new_hash, "Abcd1234") is None


def test_needs_rehash_ignores_wrong_password_and_bad_hashes(passwords):
    stronger = PasswordService(time_cost=2, memory_cost=2048, parallelism=1)
    old_hash = passwords.hash("Abcd1234")
    assert stronger.needs_rehash(old_hash, "wrong") is None
    # never raises
    assert stronger.needs_rehash("garbage", "Abcd1234") is None


def test_one_time_token_only_matches_its_hash():
    token = generate_one_time_token()
    other = generate_one_time_token()
    digest = hash_one_time_token(token)

    assert token != other
    assert len(digest) == 64
    assert token not in digest
    assert one_time_token_matches(token, digest)
    assert not one_time_token_matches(other, digest)
