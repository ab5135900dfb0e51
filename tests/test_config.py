"""Tests for configuration storage."""

import logging
import os
import stat

import pytest
import yaml

from mrbm.config import ConfigStore, ConfigValidationError, ConfigValidator
from mrbm.config.legacy import parse_legacy_config
from mrbm.config.store import ConfigState
from mrbm.secrets import SecretManager
from mrbm.utils.errors import ConfigurationError, SecurityError


def file_mode(path):
    return stat.S_IMODE(os.stat(path).st_mode)


class TestConfigStore:
    """Test loading and saving the configuration file."""

    def test_load_missing_file_returns_empty_state(self, store):
        """Test that a missing file loads as an empty configuration."""
        servers, timestamps = store.load()

        assert servers == {}
        assert timestamps == {}
        assert not os.path.exists(store.path)

    def test_round_trip(self, store, sample_server, password_server):
        """Test that saved records and timestamps load back unchanged."""
        state = ConfigState(
            servers={"edge1": sample_server, "edge2": password_server},
            last_backup={"edge1": "20261018_101010"},
        )
        store.save(state)

        loaded = store.load()

        assert set(loaded.servers) == {"edge1", "edge2"}
        assert loaded.servers["edge1"] == sample_server
        assert loaded.servers["edge2"] == password_server
        assert loaded.last_backup == {"edge1": "20261018_101010"}

    def test_save_sets_owner_only_permissions(self, store, sample_server):
        """Test that the saved file is readable by the owner only."""
        store.save(ConfigState(servers={"edge1": sample_server}))

        assert file_mode(store.path) == 0o600

    def test_load_fixes_loose_permissions(self, store, sample_server, caplog):
        """Test that loading resets a world-readable file to 0600."""
        store.save(ConfigState(servers={"edge1": sample_server}))
        os.chmod(store.path, 0o644)

        with caplog.at_level(logging.WARNING):
            servers, _ = store.load()

        assert file_mode(store.path) == 0o600
        assert "edge1" in servers
        assert any("permissions" in record.message for record in caplog.records)

    def test_load_ignores_comments_and_unknown_keys(self, config_path):
        """Test that comments, blank lines and unknown top-level keys are ignored."""
        with open(config_path, "w") as f:
            f.write(
                "# hand written\n"
                "\n"
                "servers:\n"
                "  web:\n"
                "    host: 203.0.113.5\n"
                "    app_path: /opt/app\n"
                "    db_container: db\n"
                "\n"
                "# unrelated section\n"
                "notes: keep me out\n"
            )
        os.chmod(config_path, 0o600)

        servers, timestamps = ConfigStore(config_path).load()

        assert list(servers) == ["web"]
        assert servers["web"].port == 22
        assert servers["web"].user == "root"
        assert servers["web"].password is None
        assert servers["web"].key_path is None
        assert timestamps == {}

    def test_load_skips_invalid_entries(self, config_path, caplog):
        """Test that one invalid server entry does not hide the others."""
        document = {
            "servers": {
                "good": {"host": "a", "app_path": "/a", "db_container": "db"},
                "bad": {"host": "b", "port": "twenty-two", "app_path": "/b", "db_container": "db"},
                "both": {
                    "host": "c",
                    "app_path": "/c",
                    "db_container": "db",
                    "auth": {"password": "x", "key_path": "/k"},
                },
            }
        }
        with open(config_path, "w") as f:
            yaml.safe_dump(document, f)
        os.chmod(config_path, 0o600)

        with caplog.at_level(logging.WARNING):
            servers, _ = ConfigStore(config_path).load()

        assert list(servers) == ["good"]
        assert any("bad" in record.message for record in caplog.records)

    def test_invalid_entries_survive_rewrite(self, config_path):
        """Test that saving other changes writes skipped entries back unchanged."""
        with open(config_path, "w") as f:
            f.write(
                "servers:\n"
                "  web: {host: a, app_path: /a, db_container: db}\n"
                "  edge9: {host: b, port: '2222', app_path: /b, db_container: db}\n"
                "last_backup:\n"
                "  edge9: '20261001_020000'\n"
            )
        os.chmod(config_path, 0o600)
        store = ConfigStore(config_path)

        with store.transaction() as state:
            assert list(state.servers) == ["web"]
            state.last_backup["web"] = "20261018_101010"

        with open(config_path) as f:
            document = yaml.safe_load(f)
        assert document["servers"]["edge9"] == {
            "host": "b",
            "port": "2222",
            "app_path": "/b",
            "db_container": "db",
        }
        assert document["last_backup"] == {
            "edge9": "20261001_020000",
            "web": "20261018_101010",
        }

    def test_load_invalid_yaml(self, config_path):
        """Test that unparsable YAML raises instead of loading as empty."""
        with open(config_path, "w") as f:
            f.write("servers: [unclosed\n")
        os.chmod(config_path, 0o600)

        with pytest.raises(ConfigurationError):
            ConfigStore(config_path).load()

    def test_load_wrong_top_level_shape(self, config_path):
        """Test that a document with a list of servers is rejected."""
        with open(config_path, "w") as f:
            f.write("servers:\n  - web\n")
        os.chmod(config_path, 0o600)

        with pytest.raises(ConfigValidationError):
            ConfigStore(config_path).load()

    def test_unquoted_timestamp_is_restored(self, config_path):
        """Test that YAML integer parsing of a timestamp tag is undone."""
        with open(config_path, "w") as f:
            f.write(
                "servers:\n"
                "  web: {host: a, app_path: /a, db_container: db}\n"
                "last_backup:\n"
                "  web: 20261018_101010\n"
            )
        os.chmod(config_path, 0o600)

        _, timestamps = ConfigStore(config_path).load()

        assert timestamps == {"web": "20261018_101010"}

    def test_orphaned_timestamp_is_dropped(self, config_path):
        """Test that timestamps of unregistered servers are not loaded."""
        with open(config_path, "w") as f:
            f.write(
                "servers:\n"
                "  web: {host: a, app_path: /a, db_container: db}\n"
                "last_backup:\n"
                "  web: '20261018_101010'\n"
                "  gone: '20260101_000000'\n"
            )
        os.chmod(config_path, 0o600)

        _, timestamps = ConfigStore(config_path).load()

        assert timestamps == {"web": "20261018_101010"}

    def test_save_rejects_password_and_key(self, store, sample_server):
        """Test that a record with both credentials is refused."""
        sample_server.password = "also-a-password"

        with pytest.raises(ConfigValidationError):
            store.save(ConfigState(servers={"edge1": sample_server}))

        assert not os.path.exists(store.path)

    def test_save_rejects_invalid_name(self, store, sample_server):
        """Test that names usable as path traversal are refused."""
        sample_server.name = "../etc"

        with pytest.raises(ConfigValidationError):
            store.save(ConfigState(servers={"../etc": sample_server}))

    def test_save_warns_about_plaintext_secrets(self, store, sample_server, caplog):
        """Test that saving secrets without a key logs a warning."""
        with caplog.at_level(logging.WARNING):
            store.save(ConfigState(servers={"edge1": sample_server}))

        assert any("plaintext" in record.message for record in caplog.records)

    def test_transaction_saves_on_success(self, store, sample_server):
        """Test that changes made inside a transaction are persisted."""
        with store.transaction() as state:
            state.servers["edge1"] = sample_server

        assert "edge1" in store.load().servers

    def test_transaction_discards_on_error(self, store, sample_server):
        """Test that an exception inside a transaction leaves the file untouched."""
        with pytest.raises(RuntimeError):
            with store.transaction() as state:
                state.servers["edge1"] = sample_server
                raise RuntimeError("abort")

        assert store.load().servers == {}


class TestEncryptedSecrets:
    """Test at-rest encryption of secret fields."""

    def test_secrets_encrypted_with_key(self, config_path, temp_directory, password_server):
        """Test that secrets are not written in plaintext when a key exists."""
        secrets = SecretManager(key_path=os.path.join(temp_directory, "secret.key"))
        secrets.generate_key()
        store = ConfigStore(config_path, secret_manager=secrets)

        store.save(ConfigState(servers={"edge2": password_server}))

        with open(config_path) as f:
            content = f.read()
        assert "s3cret" not in content
        assert "rootpw" not in content
        assert "654321:XYZ-token" not in content
        assert "enc:" in content

        assert store.load().servers["edge2"] == password_server

    def test_encrypted_secrets_without_key(self, config_path, temp_directory, password_server):
        """Test that encrypted values cannot be loaded without the key."""
        key_path = os.path.join(temp_directory, "secret.key")
        secrets = SecretManager(key_path=key_path)
        secrets.generate_key()
        ConfigStore(config_path, secret_manager=secrets).save(ConfigState(servers={"edge2": password_server}))
        os.remove(key_path)

        with pytest.raises(SecurityError):
            ConfigStore(config_path, secret_manager=SecretManager(key_path=key_path)).load()


class TestConfigValidator:
    """Test server entry validation."""

    def setup_method(self):
        self.validator = ConfigValidator()

    def test_valid_server(self, sample_server):
        assert self.validator.validate_server("edge1", sample_server.to_dict()) == []

    def test_missing_required_field(self):
        errors = self.validator.validate_server("web", {"host": "a", "app_path": "/a"})

        assert len(errors) == 1
        assert "db_container" in errors[0]

    def test_port_out_of_range(self):
        errors = self.validator.validate_server(
            "web", {"host": "a", "port": 70000, "app_path": "/a", "db_container": "db"}
        )

        assert errors

    def test_empty_name(self):
        errors = self.validator.validate_server("", {"host": "a", "app_path": "/a", "db_container": "db"})

        assert errors == ["Server name must be a non-empty string"]


class TestLegacyConfig:
    """Test import of the flat pipe-delimited format."""

    LEGACY = (
        "# MRBM Configuration File\n"
        'SERVERS["edge1"]="198.51.100.7|22|root||/home/u/.ssh/id_ed25519|/opt/marzban|mysql|dbpw|123:abc|42"\n'
        "\n"
        'SERVERS["edge2"]="edge2.example.com|2222|admin|pa=ss||/srv/app|db|rootpw|456:def|-100"\n'
        'LAST_BACKUP_edge1="20261001_020000"\n'
        "SOMETHING_ELSE=ignored\n"
    )

    def test_parse_legacy_config(self):
        """Test parsing records and timestamps from the legacy format."""
        records, timestamps = parse_legacy_config(self.LEGACY)

        assert set(records) == {"edge1", "edge2"}
        edge1 = records["edge1"]
        assert edge1.host == "198.51.100.7"
        assert edge1.port == 22
        assert edge1.password is None
        assert edge1.key_path == "/home/u/.ssh/id_ed25519"
        assert edge1.chat_id == "42"

        edge2 = records["edge2"]
        assert edge2.port == 2222
        assert edge2.user == "admin"
        assert edge2.password == "pa=ss"
        assert edge2.key_path is None

        assert timestamps == {"edge1": "20261001_020000"}

    def test_import_legacy_skips_existing(self, store, temp_directory, sample_server):
        """Test that importing keeps already registered servers."""
        with store.transaction() as state:
            state.servers["edge1"] = sample_server

        legacy_path = os.path.join(temp_directory, "config.env")
        with open(legacy_path, "w") as f:
            f.write(self.LEGACY)

        imported = store.import_legacy(legacy_path)

        assert imported == ["edge2"]
        servers, timestamps = store.load()
        assert servers["edge1"] == sample_server
        assert servers["edge2"].password == "pa=ss"
        assert "edge1" not in timestamps
