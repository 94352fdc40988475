"""Unit tests for the store manager and secret store lifecycle."""

import pytest

MASTER_KEY = "hunter2"


class TestInit:
    """Tests for creating stores."""

    def test_init_then_commit_creates_file(self, manager, workspace):
        """init alone writes nothing; commit persists an empty store."""
        from ghostpass.store import StoreState

        store = manager.init("work", MASTER_KEY)

        assert store.state == StoreState.OPEN
        assert not (workspace / "work.gp").exists()

        store.commit()
        store.close()

        assert (workspace / "work.gp").exists()
        with manager.open("work", MASTER_KEY) as reopened:
            assert reopened.get_fields() == []

    def test_init_requires_name(self, manager):
        """An empty name raises NameRequiredError."""
        from ghostpass.store import NameRequiredError

        with pytest.raises(NameRequiredError):
            manager.init("", MASTER_KEY)

    @pytest.mark.parametrize("name", ["../escape", "a/b", ".hidden", " padded "])
    def test_init_rejects_unsafe_names(self, manager, name):
        """Names that are not plain file names are rejected."""
        from ghostpass.store import InvalidNameError

        with pytest.raises(InvalidNameError):
            manager.init(name, MASTER_KEY)

    def test_init_empty_master_key(self, manager, workspace):
        """An empty master key is rejected and leaves nothing locked."""
        from ghostpass.store import WeakInputError

        with pytest.raises(WeakInputError):
            manager.init("work", "")

        assert not manager.is_open("work")
        assert not (workspace / "work.gp.lock").exists()
        with manager.init("work", MASTER_KEY):
            pass

    def test_init_existing_store(self, manager, committed_store):
        """init refuses to clobber an existing store."""
        from ghostpass.store import StoreExistsError

        with pytest.raises(StoreExistsError):
            manager.init(committed_store, MASTER_KEY)

    def test_master_key_buffer_is_wiped(self, manager):
        """A SecretBuffer master key is wiped once the key is derived."""
        from ghostpass.store import SecretBuffer

        key = SecretBuffer(MASTER_KEY)
        with manager.init("work", key):
            assert key.wiped


class TestOpen:
    """Tests for opening stores."""

    def test_commit_then_open_roundtrip(self, manager):
        """Fields committed are the fields reopened."""
        with manager.init("work", MASTER_KEY) as store:
            store.add_field("github", "alice", "pw1")
            store.commit()

        with manager.open("work", MASTER_KEY) as store:
            assert store.get_field("github") == ("github", "alice", "pw1")
            assert store.get_fields() == ["github"]

    def test_open_wrong_key(self, manager, committed_store):
        """A wrong key raises AuthenticationFailure and changes nothing."""
        from ghostpass.store import AuthenticationFailure

        path = manager.store_path(committed_store)
        before = path.read_bytes()

        with pytest.raises(AuthenticationFailure):
            manager.open(committed_store, "wrongkey")

        assert path.read_bytes() == before
        assert not manager.is_open(committed_store)
        with manager.open(committed_store, MASTER_KEY) as store:
            assert store.field_exists("github")

    def test_open_missing(self, manager):
        """Opening a store that does not exist raises StoreNotFoundError."""
        from ghostpass.store import StoreNotFoundError

        with pytest.raises(StoreNotFoundError):
            manager.open("missing", MASTER_KEY)

    def test_open_requires_name(self, manager):
        """An empty name raises NameRequiredError."""
        from ghostpass.store import NameRequiredError

        with pytest.raises(NameRequiredError):
            manager.open("", MASTER_KEY)

    def test_open_twice(self, manager, committed_store):
        """A store can only be open once per manager."""
        from ghostpass.store import AlreadyOpenError

        store = manager.open(committed_store, MASTER_KEY)

        with pytest.raises(AlreadyOpenError):
            manager.open(committed_store, MASTER_KEY)

        store.close()
        manager.open(committed_store, MASTER_KEY).close()

    def test_open_locked_by_other_manager(self, manager, workspace, committed_store):
        """The file lock keeps a second manager out."""
        from ghostpass.store import AlreadyOpenError, StoreManager

        other = StoreManager(workspace)

        with manager.open(committed_store, MASTER_KEY):
            with pytest.raises(AlreadyOpenError):
                other.open(committed_store, MASTER_KEY)

        other.open(committed_store, MASTER_KEY).close()

    def test_open_without_lock_files(self, manager, workspace, committed_store, fast_store_config):
        """With file locks disabled only the in-process registry applies."""
        from dataclasses import replace

        from ghostpass.store import StoreManager

        other = StoreManager(workspace, replace(fast_store_config, lock_files=False))

        with manager.open(committed_store, MASTER_KEY):
            with other.open(committed_store, MASTER_KEY) as store:
                assert store.field_exists("github")

    def test_tampered_ciphertext(self, manager, committed_store):
        """A flipped ciphertext byte fails authentication."""
        from ghostpass.store import AuthenticationFailure

        path = manager.store_path(committed_store)
        data = bytearray(path.read_bytes())
        data[-20] ^= 0x01
        path.write_bytes(bytes(data))

        with pytest.raises(AuthenticationFailure):
            manager.open(committed_store, MASTER_KEY)

    def test_tampered_header(self, manager, committed_store):
        """The header is authenticated along with the ciphertext."""
        from ghostpass.store import AuthenticationFailure
        from ghostpass.store.persistence import HEADER_SIZE

        path = manager.store_path(committed_store)
        data = bytearray(path.read_bytes())
        data[HEADER_SIZE - 1] ^= 0x01  # last nonce byte
        path.write_bytes(bytes(data))

        with pytest.raises(AuthenticationFailure):
            manager.open(committed_store, MASTER_KEY)

    def test_corrupt_magic(self, manager, committed_store):
        """A bad magic number is reported as a corrupt header."""
        from ghostpass.store import CorruptHeaderError

        path = manager.store_path(committed_store)
        path.write_bytes(b"JUNK" + path.read_bytes()[4:])

        with pytest.raises(CorruptHeaderError):
            manager.open(committed_store, MASTER_KEY)


class TestFieldOperations:
    """Tests for field mutation and state transitions."""

    def test_add_remove_exists(self, manager):
        """add makes a field visible; remove hides it."""
        with manager.init("work", MASTER_KEY) as store:
            store.add_field("github", "alice", "pw1")
            assert store.field_exists("github")

            store.remove_field("github")
            assert not store.field_exists("github")

    def test_remove_nonexistent(self, manager):
        """Removing an absent field raises and leaves the store unchanged."""
        from ghostpass.store import FieldNotFoundError, StoreState

        with manager.init("work", MASTER_KEY) as store:
            with pytest.raises(FieldNotFoundError):
                store.remove_field("nonexistent")
            assert store.state == StoreState.OPEN

    def test_get_missing_field(self, manager):
        """Getting an absent field raises FieldNotFoundError."""
        from ghostpass.store import FieldNotFoundError

        with manager.init("work", MASTER_KEY) as store:
            with pytest.raises(FieldNotFoundError):
                store.get_field("nonexistent")

    def test_add_overwrites(self, manager):
        """Adding an existing service replaces it."""
        with manager.init("work", MASTER_KEY) as store:
            store.add_field("github", "alice", "pw1")
            store.add_field("github", "alice", "pw2")

            assert store.get_field("github") == ("github", "alice", "pw2")
            assert store.field_count == 1

    def test_state_transitions(self, manager):
        """Mutations mark the store dirty; commit cleans it."""
        from ghostpass.store import StoreState

        with manager.init("work", MASTER_KEY) as store:
            assert not store.is_dirty

            store.add_field("github", "alice", "pw1")
            assert store.state == StoreState.MODIFIED
            assert store.is_dirty

            store.add_field("aws", "root", "pw2")
            assert store.state == StoreState.MODIFIED

            store.commit()
            assert store.state == StoreState.OPEN
            assert not store.is_dirty

    def test_commit_uses_fresh_nonce(self, manager):
        """Each commit re-encrypts under a new nonce, even without changes."""
        with manager.init("work", MASTER_KEY) as store:
            store.commit()
            first_nonce, first_bytes = store.nonce, store.path.read_bytes()

            store.commit()

            assert store.nonce != first_nonce
            assert store.path.read_bytes() != first_bytes

    def test_uncommitted_changes_are_lost(self, manager, committed_store):
        """Closing without commit discards mutations."""
        with manager.open(committed_store, MASTER_KEY) as store:
            store.add_field("aws", "root", "pw2")

        with manager.open(committed_store, MASTER_KEY) as store:
            assert store.get_fields() == ["github"]

    def test_secret_buffer_password_is_wiped(self, manager):
        """A SecretBuffer password is wiped once stored."""
        from ghostpass.store import SecretBuffer

        password = SecretBuffer("pw1")
        with manager.init("work", MASTER_KEY) as store:
            store.add_field("github", "alice", password)

            assert password.wiped
            assert store.get_field("github")[2] == "pw1"


class TestCloseAndDestroy:
    """Tests for closing and destroying stores."""

    def test_close_wipes_and_blocks_use(self, manager):
        """A closed store has no key material and rejects operations."""
        from ghostpass.store import InvalidStateError, StoreState

        store = manager.init("work", MASTER_KEY)
        store.add_field("github", "alice", "pw1")
        key = store._key

        store.close()

        assert store.state == StoreState.CLOSED
        assert key.wiped
        assert not manager.is_open("work")
        with pytest.raises(InvalidStateError):
            store.get_fields()
        with pytest.raises(InvalidStateError):
            store.add_field("aws", "root", "pw2")
        with pytest.raises(InvalidStateError):
            store.commit()

    def test_close_all(self, manager):
        """close_all closes every open store."""
        manager.init("work", MASTER_KEY)
        manager.init("home", MASTER_KEY)

        assert manager.close_all() == 2
        assert not manager.is_open("work")
        assert not manager.is_open("home")

    def test_close_uncommitted_leaves_no_files(self, manager, workspace):
        """Closing a store that was never committed removes its lock file."""
        store = manager.init("work", MASTER_KEY)
        lock_path = workspace / "work.gp.lock"
        assert lock_path.exists()

        store.close()

        assert not lock_path.exists()
        assert not manager.store_exists("work")
        assert manager.list_stores() == []

    def test_close_committed_keeps_lock_file(self, manager, committed_store, workspace):
        """A persisted store keeps its lock file after close."""
        manager.open(committed_store, MASTER_KEY).close()

        assert (workspace / f"{committed_store}.gp").exists()
        assert (workspace / f"{committed_store}.gp.lock").exists()

    def test_destroy(self, manager, committed_store):
        """destroy deletes the file and any later use fails."""
        from ghostpass.store import StoreDestroyedError, StoreNotFoundError, StoreState

        store = manager.open(committed_store, MASTER_KEY)
        path = store.path

        store.destroy()

        assert store.state == StoreState.DESTROYED
        assert not path.exists()
        assert not path.with_name(path.name + ".lock").exists()
        with pytest.raises(StoreDestroyedError):
            store.get_field("github")
        with pytest.raises(StoreDestroyedError):
            store.commit()
        with pytest.raises(StoreDestroyedError):
            store.destroy()
        with pytest.raises(StoreNotFoundError):
            manager.open(committed_store, MASTER_KEY)

    def test_destroy_uncommitted(self, manager):
        """A never-committed store can be destroyed."""
        from ghostpass.store import StoreState

        store = manager.init("work", MASTER_KEY)
        store.destroy()

        assert store.state == StoreState.DESTROYED
        assert not manager.is_open("work")

    def test_key_guard_purge_wipes_open_stores(self, manager, key_guard):
        """Purging the key guard wipes open stores."""
        from ghostpass.store import StoreState

        store = manager.init("work", MASTER_KEY)
        store.add_field("github", "alice", "pw1")

        key_guard.purge()

        assert store.state == StoreState.CLOSED
        assert store._key.wiped


class TestDiscovery:
    """Tests for listing stores."""

    def test_list_stores(self, manager, workspace):
        """Only store files are listed, sorted."""
        for name in ("zeta", "alpha"):
            with manager.init(name, MASTER_KEY) as store:
                store.commit()
        (workspace / "notes.txt").write_text("ignored")
        (workspace / ".alpha.gp.tmp").write_bytes(b"")

        assert manager.list_stores() == ["alpha", "zeta"]

    def test_list_stores_missing_workspace(self, tmp_path):
        """A missing workspace has no stores."""
        from ghostpass.store import StoreManager

        assert StoreManager(tmp_path / "nope").list_stores() == []

    def test_store_path(self, manager, workspace):
        """Stores live at <workspace>/<name>.gp."""
        assert manager.store_path("work") == workspace / "work.gp"


class TestPlainsightExport:
    """Tests for export and import through plainsight text."""

    def test_export_import_roundtrip(self, manager, committed_store, corpus):
        """An exported store imports to the same fields."""
        from ghostpass.store import StoreState

        with manager.open(committed_store, MASTER_KEY) as store:
            store.add_field("aws", "root", "pw2")
            store.commit()
            encoded = store.export(corpus)

        with manager.import_store(MASTER_KEY, encoded, name="copy") as imported:
            assert imported.name == "copy"
            assert imported.state == StoreState.OPEN
            assert imported.get_fields() == ["aws", "github"]
            assert imported.get_field("github") == ("github", "alice", "pw1")
            assert not imported.path.exists()

            imported.commit()
            assert imported.path.exists()

    def test_import_keeps_exported_name(self, manager, committed_store, corpus):
        """Without an override the exported name is used."""
        from ghostpass.store import StoreExistsError

        with manager.open(committed_store, MASTER_KEY) as store:
            encoded = store.export(corpus)

        with pytest.raises(StoreExistsError):
            manager.import_store(MASTER_KEY, encoded)

        with manager.import_store(MASTER_KEY, encoded, overwrite=True) as imported:
            assert imported.name == committed_store

    def test_import_wrong_key(self, manager, committed_store, corpus, workspace):
        """A wrong key on import raises AuthenticationFailure."""
        from ghostpass.store import AuthenticationFailure

        with manager.open(committed_store, MASTER_KEY) as store:
            encoded = store.export(corpus)

        with pytest.raises(AuthenticationFailure):
            manager.import_store("wrongkey", encoded, name="copy")

        assert not manager.is_open("copy")
        assert not (workspace / "copy.gp.lock").exists()

    def test_export_keeps_carrier_text(self, manager, committed_store, corpus):
        """The exported text reads exactly like the corpus."""
        from ghostpass.store.plainsight import SYMBOLS

        with manager.open(committed_store, MASTER_KEY) as store:
            encoded = store.export(corpus)

        assert "".join(ch for ch in encoded if ch not in SYMBOLS) == corpus

    def test_export_small_corpus(self, manager, committed_store):
        """A corpus too small for the store raises CapacityExceededError."""
        from ghostpass.store import CapacityExceededError

        with manager.open(committed_store, MASTER_KEY) as store:
            with pytest.raises(CapacityExceededError):
                store.export("The quick brown fox jumps over the lazy dog")

    def test_import_plain_text(self, manager, corpus):
        """Text without a payload raises PlainsightDecodeError."""
        from ghostpass.store import PlainsightDecodeError

        with pytest.raises(PlainsightDecodeError):
            manager.import_store(MASTER_KEY, corpus)

    def test_import_renamed_payload_fails(self, manager, committed_store, corpus):
        """The exported name is authenticated with the ciphertext."""
        from ghostpass.store import AuthenticationFailure
        from ghostpass.store import persistence, plainsight

        with manager.open(committed_store, MASTER_KEY) as store:
            encoded = store.export(corpus)

        name, header, sealed = persistence.unpack_envelope(plainsight.decode(encoded))
        forged = plainsight.encode(corpus, persistence.pack_envelope("evil", header, sealed))

        with pytest.raises(AuthenticationFailure):
            manager.import_store(MASTER_KEY, forged)
