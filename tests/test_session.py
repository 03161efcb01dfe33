# tests/test_session.py
import json
import pytest
from pathlib import Path

from snartnet.config import Config
from snartnet.core.errors import SerializationError, StateError, StorageError
from snartnet.core.signed import SignedEntity, verify_profile
from snartnet.core.types import GroupKind, DirectKind, Profile
from snartnet.crypto.hashing import derive_magnet_uri
from snartnet.crypto.keys import KeyPair, fingerprint
from snartnet.session.identity import HasKeyOnly, HasProfile, IdentitySession, NoIdentity
from snartnet.storage import MemoryStorage

KEYPAIR_KEY = Config().KEYPAIR_STORAGE_KEY
PROFILE_KEY = Config().PROFILE_STORAGE_KEY


class FlakyStorage(MemoryStorage):
    """Memory storage whose writes to `fail_key` raise StorageError while `failing` is set."""

    def __init__(self, fail_key: str):
        super().__init__()
        self.fail_key = fail_key
        self.failing = False

    def set_item(self, key: str, value: str) -> None:
        if self.failing and key == self.fail_key:
            raise StorageError("disk full")
        super().set_item(key, value)


@pytest.fixture
def storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def session(storage) -> IdentitySession:
    s = IdentitySession(storage=storage)
    s.init()
    return s


@pytest.fixture
def carol(session) -> IdentitySession:
    session.create_profile("carol", None, None)
    return session


def test_scenario_fresh_session_then_create_profile(session):
    assert session.has_profile() is False
    assert isinstance(session.state, NoIdentity)

    session.create_profile("carol", None, None)

    assert session.has_profile() is True
    assert session.get_fingerprint() == fingerprint(session.keypair.public_key)
    assert session.get_public_key() == session.keypair.public_key


def test_init_on_empty_storage_is_clean(storage):
    s = IdentitySession(storage=storage)
    report = s.init()
    assert report.clean
    assert not report.restored_keypair
    assert not report.restored_profile
    assert isinstance(s.state, NoIdentity)


def test_no_identity_queries(session):
    assert session.get_current_profile() is None
    assert session.magnet_uri is None
    with pytest.raises(StateError):
        session.get_fingerprint()
    with pytest.raises(StateError):
        session.get_public_key()
    with pytest.raises(StateError):
        session.current_signed_profile()


def test_create_profile_applies_fields_via_update(session):
    magnet = session.create_profile("dave", "Dave", "likes kites")
    profile = session.get_current_profile()
    assert profile.username == "dave"
    assert profile.display_name == "Dave"
    assert profile.bio == "likes kites"
    assert profile.version == 2
    assert profile.public_key == session.get_public_key()
    assert profile.fingerprint == session.get_fingerprint()
    assert magnet == session.magnet_uri == derive_magnet_uri(profile)
    assert verify_profile(session.current_signed_profile())


def test_create_profile_persists_both_keys(carol, storage):
    assert KeyPair.from_dict(storage.get_json(KEYPAIR_KEY)) == carol.keypair
    stored = SignedEntity.from_dict(storage.get_json(PROFILE_KEY), Profile)
    assert stored == carol.current_signed_profile()


def test_second_create_profile_reuses_keypair(carol):
    first_keys = carol.keypair
    first_id = carol.get_current_profile().id
    carol.create_profile("carol2")
    assert carol.keypair == first_keys
    assert carol.get_current_profile().id != first_id
    assert carol.get_current_profile().username == "carol2"


def test_update_profile_resigns_and_readdresses(carol):
    before = carol.current_signed_profile()
    old_magnet = carol.magnet_uri

    new_magnet = carol.update_profile(bio="new bio")

    after = carol.current_signed_profile()
    assert after.payload.version == before.payload.version + 1
    assert after.payload.updated_at > before.payload.updated_at
    assert after.payload.bio == "new bio"
    assert new_magnet != old_magnet
    assert new_magnet == carol.magnet_uri == derive_magnet_uri(after.payload)
    assert after.verify(carol.get_public_key())
    assert not SignedEntity(after.payload, before.signature).verify(carol.get_public_key())


def test_update_without_profile_fails(session):
    with pytest.raises(StateError, match="No current profile"):
        session.update_profile(bio="x")


def test_update_is_atomic_when_persist_fails():
    storage = FlakyStorage(fail_key=PROFILE_KEY)
    s = IdentitySession(storage=storage)
    s.init()
    s.create_profile("erin", "Erin", None)
    before = s.current_signed_profile()
    stored_before = storage.get_item(PROFILE_KEY)

    storage.failing = True
    with pytest.raises(StorageError, match="disk full"):
        s.update_profile(bio="never saved")

    assert s.current_signed_profile() == before
    assert s.magnet_uri == derive_magnet_uri(before.payload)
    assert storage.get_item(PROFILE_KEY) == stored_before


def test_create_profile_keeps_key_when_profile_write_fails():
    storage = FlakyStorage(fail_key=PROFILE_KEY)
    storage.failing = True
    s = IdentitySession(storage=storage)
    s.init()

    with pytest.raises(StorageError):
        s.create_profile("frank")

    # memory mirrors storage: the key made it, the profile did not
    assert isinstance(s.state, HasKeyOnly)
    assert storage.get_item(KEYPAIR_KEY) is not None
    assert storage.get_item(PROFILE_KEY) is None
    assert s.has_profile() is False


def test_create_profile_fails_cleanly_when_key_write_fails():
    storage = FlakyStorage(fail_key=KEYPAIR_KEY)
    storage.failing = True
    s = IdentitySession(storage=storage)
    s.init()
    with pytest.raises(StorageError):
        s.create_profile("gina")
    assert isinstance(s.state, NoIdentity)


def test_restore_after_restart(carol, storage):
    carol.update_profile(display_name="Carol C.")
    expected = carol.current_signed_profile()

    restarted = IdentitySession(storage=storage)
    report = restarted.init()

    assert report.clean
    assert report.restored_keypair and report.restored_profile
    assert isinstance(restarted.state, HasProfile)
    assert restarted.current_signed_profile() == expected
    assert restarted.magnet_uri == carol.magnet_uri
    assert restarted.get_fingerprint() == carol.get_fingerprint()


def test_restore_key_only(storage):
    keys = KeyPair.generate()
    storage.set_json(KEYPAIR_KEY, keys.to_dict())
    s = IdentitySession(storage=storage)
    assert s.init().clean
    assert isinstance(s.state, HasKeyOnly)
    assert s.get_fingerprint() == keys.fingerprint
    assert s.has_profile() is False


def test_corrupt_keypair_is_reported_not_raised(storage):
    storage.set_item(KEYPAIR_KEY, "{garbage")
    s = IdentitySession(storage=storage)
    report = s.init()
    assert report.corrupt_keys == [KEYPAIR_KEY]
    assert isinstance(s.state, NoIdentity)


def test_profile_without_keypair_is_reported(carol, storage):
    storage.remove_item(KEYPAIR_KEY)
    s = IdentitySession(storage=storage)
    report = s.init()
    assert PROFILE_KEY in report.corrupt_keys
    assert isinstance(s.state, NoIdentity)


def test_tampered_stored_profile_is_reported(carol, storage):
    data = storage.get_json(PROFILE_KEY)
    data["profile"]["bio"] = "injected"
    storage.set_json(PROFILE_KEY, data)

    s = IdentitySession(storage=storage)
    report = s.init()
    assert report.corrupt_keys == [PROFILE_KEY]
    assert "does not verify" in report.problems[PROFILE_KEY]
    assert isinstance(s.state, HasKeyOnly)


@pytest.mark.parametrize("created_at", [
    "0001-01-01T00:00:00+01:00",
    "9999-12-31T23:59:59.999999-01:00",
    "2024-01-01T00:00:00.123456789Z",
])
def test_unreadable_stored_timestamp_is_reported(carol, storage, created_at):
    data = storage.get_json(PROFILE_KEY)
    data["profile"]["createdAt"] = created_at
    storage.set_json(PROFILE_KEY, data)

    s = IdentitySession(storage=storage)
    report = s.init()
    assert report.corrupt_keys == [PROFILE_KEY]
    assert "timestamp" in report.problems[PROFILE_KEY]
    assert isinstance(s.state, HasKeyOnly)


def test_profile_of_other_keypair_is_reported(carol, storage):
    storage.set_json(KEYPAIR_KEY, KeyPair.generate().to_dict())
    s = IdentitySession(storage=storage)
    report = s.init()
    assert "different keypair" in report.problems[PROFILE_KEY]
    assert isinstance(s.state, HasKeyOnly)


def test_storage_failure_during_init_propagates(storage):
    storage.close()
    with pytest.raises(StorageError):
        IdentitySession(storage=storage).init()


def test_reset(carol, storage):
    carol.reset()
    assert isinstance(carol.state, NoIdentity)
    assert storage.get_item(KEYPAIR_KEY) is None
    assert storage.get_item(PROFILE_KEY) is None


# ── posts and messages ───────────────────────────────────────────────


def test_post_requires_profile(session):
    with pytest.raises(StateError) as exc:
        session.create_post("hello")
    assert exc.value.required == "profile"


def test_post_requires_profile_even_with_key(storage):
    storage.set_json(KEYPAIR_KEY, KeyPair.generate().to_dict())
    s = IdentitySession(storage=storage)
    s.init()
    with pytest.raises(StateError):
        s.create_post("hello")
    with pytest.raises(StateError):
        s.create_message("cmVjaXBpZW50", "hello")


def test_create_post(carol):
    signed = carol.create_post("first post", tags=["a", "a"], reply_to="parent", attachment_hashes=["h1", "h2"])
    post = signed.payload
    assert post.author_fingerprint == carol.get_fingerprint()
    assert post.tags == ("a", "a")
    assert post.reply_to == "parent"
    assert post.attachment_hashes == ("h1", "h2")
    assert signed.verify(carol.get_public_key())


def test_create_direct_and_group_messages(carol):
    recipient = KeyPair.generate().fingerprint
    direct = carol.create_message(recipient, "psst")
    group = carol.create_message(recipient, "hi all", group_id="g-1")

    assert direct.payload.kind == DirectKind()
    assert group.payload.kind == GroupKind("g-1")
    for signed in (direct, group):
        assert signed.payload.sender_fingerprint == carol.get_fingerprint()
        assert signed.payload.recipient_fingerprint == recipient
        assert signed.payload.encrypted is False
        assert signed.verify(carol.get_public_key())


# ── backup ───────────────────────────────────────────────────────────


def test_backup_roundtrip(carol):
    backup = carol.export_backup()
    assert set(backup) == {"backupVersion", "createdAt", "keypair", "signedProfile"}

    other = IdentitySession()
    other.init()
    magnet = other.restore_backup(json.dumps(backup))
    assert other.keypair == carol.keypair
    assert other.current_signed_profile() == carol.current_signed_profile()
    assert magnet == carol.magnet_uri


def test_backup_restore_accepts_dict(carol):
    other = IdentitySession()
    other.restore_backup(carol.export_backup())
    assert other.has_profile()


def test_backup_restore_rejects_tampering(carol):
    backup = carol.export_backup()
    backup["signedProfile"]["profile"]["username"] = "mallory"
    other = IdentitySession()
    with pytest.raises(SerializationError):
        other.restore_backup(backup)
    assert isinstance(other.state, NoIdentity)


def test_backup_restore_rejects_unknown_version(carol):
    backup = carol.export_backup()
    backup["backupVersion"] = "9.9.9"
    with pytest.raises(SerializationError, match="version"):
        IdentitySession().restore_backup(backup)


def test_backup_restore_puts_old_key_back_when_profile_write_fails(carol):
    backup = carol.export_backup()

    storage = FlakyStorage(fail_key=PROFILE_KEY)
    other = IdentitySession(storage=storage)
    other.init()
    other.create_profile("hank")
    key_before = storage.get_item(KEYPAIR_KEY)
    profile_before = storage.get_item(PROFILE_KEY)
    state_before = other.state

    storage.failing = True
    with pytest.raises(StorageError):
        other.restore_backup(backup)

    assert storage.get_item(KEYPAIR_KEY) == key_before
    assert storage.get_item(PROFILE_KEY) == profile_before
    assert other.state == state_before
    storage.failing = False
    assert IdentitySession(storage=storage).init().clean


def test_backup_restore_on_empty_storage_leaves_nothing_when_profile_write_fails(carol):
    storage = FlakyStorage(fail_key=PROFILE_KEY)
    storage.failing = True
    other = IdentitySession(storage=storage)
    other.init()

    with pytest.raises(StorageError):
        other.restore_backup(carol.export_backup())
    assert storage.get_item(KEYPAIR_KEY) is None
    assert isinstance(other.state, NoIdentity)


def test_export_backup_requires_profile(session):
    with pytest.raises(StateError):
        session.export_backup()


# ── versioned JSON entry points ──────────────────────────────────────


def test_capabilities(session):
    caps = json.loads(session.capabilities().to_json())
    assert caps["profileJsonApi"] is True
    assert caps["postJsonApi"] is True
    assert caps["messageJsonApi"] is True
    assert isinstance(caps["version"], str)


def test_create_profile_json(session):
    envelope = json.loads(session.create_profile_json(
        json.dumps({"username": "hana", "displayName": "Hana", "bio": None})
    ))
    assert envelope["api"] == "profile-json-v1"
    assert envelope["version"] == envelope["profile"]["version"] == 2
    assert envelope["profile"]["displayName"] == "Hana"
    assert envelope["profile"]["bio"] is None
    assert envelope["magnetUri"] == session.magnet_uri

    signed = SignedEntity.from_dict({"profile": envelope["profile"], "signature": envelope["signature"]}, Profile)
    assert verify_profile(signed)


def test_update_profile_json(session):
    session.create_profile_json('{"username": "ivan"}')
    envelope = json.loads(session.update_profile_json('{"bio": "", "avatarHash": "abc123"}'))
    assert envelope["version"] == 3
    assert envelope["profile"]["bio"] == ""
    assert envelope["profile"]["avatarHash"] == "abc123"


def test_post_and_message_json(carol):
    post_env = json.loads(carol.create_post_json('{"content": "hi", "tags": ["x"], "attachmentHashes": ["h"]}'))
    assert post_env["api"] == "post-json-v1"
    assert post_env["post"]["attachmentHashes"] == ["h"]

    msg_env = json.loads(carol.create_message_json(
        json.dumps({"recipientFingerprint": "cmVjaXBpZW50", "content": "yo", "groupId": "g"})
    ))
    assert msg_env["api"] == "message-json-v1"
    assert msg_env["message"]["kind"] == {"type": "group", "groupId": "g"}


@pytest.mark.parametrize("payload", [
    "{not json",
    "{}",
    '{"username": ""}',
    '{"username": "x", "extra": 1}',
    '{"username": 5}',
])
def test_create_profile_json_rejects_malformed(session, payload):
    with pytest.raises(SerializationError):
        session.create_profile_json(payload)
    assert isinstance(session.state, NoIdentity)


def test_empty_username_rejected_on_both_paths(session):
    with pytest.raises(SerializationError, match="[Uu]sername"):
        session.create_profile("")
    with pytest.raises(SerializationError):
        session.create_profile_json('{"username": ""}')
    assert isinstance(session.state, NoIdentity)
    assert session.storage.get_item(KEYPAIR_KEY) is None


def test_envelope_api_names_come_from_config(storage):
    config = Config()
    config.POST_JSON_API = "post-json-v2"
    config.MESSAGE_JSON_API = "message-json-v2"
    s = IdentitySession(storage=storage, config=config)
    s.init()
    s.create_profile("ivy")

    post_env = json.loads(s.create_post_json('{"content": "x"}'))
    msg_env = json.loads(s.create_message_json('{"recipientFingerprint": "cmVj", "content": "y"}'))
    assert post_env["api"] == "post-json-v2"
    assert msg_env["api"] == "message-json-v2"


def test_json_entry_points_need_profile(session):
    with pytest.raises(StateError):
        session.update_profile_json("{}")
    with pytest.raises(StateError):
        session.create_post_json('{"content": "x"}')


def test_sqlite_backed_session(tmp_path: Path):
    db = tmp_path / "id.db"
    s = IdentitySession(storage=str(db))
    s.init()
    s.create_profile("jo")
    fp = s.get_fingerprint()
    s.close()

    again = IdentitySession(storage=f"sqlite://{db}")
    assert again.init().restored_profile
    assert again.get_fingerprint() == fp
    again.close()
