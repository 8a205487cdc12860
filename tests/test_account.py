"""Tests for the account model."""

from unittest.mock import MagicMock

import pytest
import yaml

from credwatch.account import (
    AccountInfo,
    MemoryCredentialsConfiguration,
    PropertyChangeEvent,
    PropertyChangeSupport,
    YamlOptionalConfiguration,
)


@pytest.fixture
def credentials():
    return MemoryCredentialsConfiguration(
        {"account_name": "default", "access_key": "AKIAEXAMPLE", "secret_key": "s3cr3t"}
    )


@pytest.fixture
def optional(tmp_path):
    return YamlOptionalConfiguration(tmp_path / "accounts.yaml", "acct-1")


@pytest.fixture
def account(credentials, optional):
    return AccountInfo("acct-1", credentials, optional)


class TestPropertyChangeSupport:
    """Test cases for PropertyChangeSupport."""

    def test_fires_to_all_and_named_listeners(self):
        """Global listeners and listeners for the property both hear the change."""
        source = object()
        support = PropertyChangeSupport(source)
        everything = MagicMock()
        named = MagicMock()
        other = MagicMock()
        support.add_listener(everything)
        support.add_listener(named, "access_key")
        support.add_listener(other, "secret_key")

        support.fire("access_key", "old", "new")

        event = PropertyChangeEvent(source=source, property_name="access_key", old_value="old", new_value="new")
        everything.assert_called_once_with(event)
        named.assert_called_once_with(event)
        other.assert_not_called()

    def test_equal_values_do_not_fire(self):
        """Nothing is fired when old and new are equal."""
        support = PropertyChangeSupport(object())
        listener = MagicMock()
        support.add_listener(listener)

        support.fire("access_key", "same", "same")

        listener.assert_not_called()

    def test_remove_listener(self):
        """Removed listeners are no longer called."""
        support = PropertyChangeSupport(object())
        listener = MagicMock()
        support.add_listener(listener, "user_id")
        assert support.has_listeners("user_id") is True

        support.remove_listener(listener, "user_id")
        support.remove_listener(listener, "user_id")
        support.fire("user_id", "a", "b")

        listener.assert_not_called()
        assert support.has_listeners("user_id") is False


class TestAccountInfo:
    """Test cases for AccountInfo."""

    @pytest.mark.parametrize("missing", ["account_id", "credentials_config", "optional_config"])
    def test_none_arguments_rejected(self, credentials, optional, missing):
        """All three constructor arguments are required."""
        kwargs = {"account_id": "acct-1", "credentials_config": credentials, "optional_config": optional}
        kwargs[missing] = None

        with pytest.raises(ValueError, match=missing):
            AccountInfo(**kwargs)

    def test_reads_pass_through(self, account):
        """Getters read from the owning sub-configuration."""
        assert account.internal_account_id == "acct-1"
        assert account.account_name == "default"
        assert account.access_key == "AKIAEXAMPLE"
        assert account.user_id == ""

    def test_setter_writes_through_and_fires(self, account, credentials):
        """Setting a new value updates the sub-config and notifies."""
        listener = MagicMock()
        account.add_property_change_listener(listener, "access_key")

        account.access_key = "AKIANEW"

        assert credentials.get("access_key") == "AKIANEW"
        listener.assert_called_once()
        event = listener.call_args.args[0]
        assert event.source is account
        assert (event.old_value, event.new_value) == ("AKIAEXAMPLE", "AKIANEW")

    def test_setting_same_value_is_silent(self, account, credentials):
        """Assigning an unchanged value neither notifies nor dirties."""
        listener = MagicMock()
        account.add_property_change_listener(listener)

        account.account_name = "default"

        listener.assert_not_called()
        assert account.is_dirty is False
        assert credentials.is_dirty is False

    def test_optional_values_fire_their_own_names(self, account):
        """Optional properties report their own names."""
        listener = MagicMock()
        account.add_property_change_listener(listener)

        account.user_id = "123456789012"
        account.ec2_private_key_file = "/keys/pk.pem"
        account.ec2_certificate_file = "/keys/cert.pem"

        names = [c.args[0].property_name for c in listener.call_args_list]
        assert names == ["user_id", "ec2_private_key_file", "ec2_certificate_file"]

    def test_removed_listener_not_called(self, account):
        """Listeners can be removed again."""
        listener = MagicMock()
        account.add_property_change_listener(listener)
        account.remove_property_change_listener(listener)

        account.secret_key = "other"

        listener.assert_not_called()

    def test_dirty_and_save(self, account, credentials, optional):
        """Changes make the account dirty until it is saved to both halves."""
        account.secret_key = "rotated"
        account.user_id = "42"
        assert account.is_dirty is True

        account.save()

        assert account.is_dirty is False
        assert credentials.saved["secret_key"] == "rotated"
        document = yaml.safe_load(optional.path.read_text())
        assert document["accounts"]["acct-1"]["user_id"] == "42"

    def test_saved_optional_values_are_reloaded(self, account, optional):
        """A fresh YAML configuration reads back saved values."""
        account.user_id = "42"
        account.save()

        reloaded = YamlOptionalConfiguration(optional.path, "acct-1")

        assert reloaded.get("user_id") == "42"
        assert reloaded.is_dirty is False

    def test_delete(self, account, credentials, optional):
        """delete() removes both halves."""
        account.user_id = "42"
        account.save()

        account.delete()

        assert credentials.saved is None
        assert account.access_key == ""
        document = yaml.safe_load(optional.path.read_text())
        assert "acct-1" not in document["accounts"]

    def test_validity(self, account, tmp_path):
        """Credentials need both keys; certificates need both files to exist."""
        assert account.is_valid is True
        assert account.is_certificate_valid is False

        key = tmp_path / "pk.pem"
        cert = tmp_path / "cert.pem"
        key.write_text("key")
        cert.write_text("cert")
        account.ec2_private_key_file = str(key)
        account.ec2_certificate_file = str(cert)
        assert account.is_certificate_valid is True

        account.secret_key = ""
        assert account.is_valid is False

    def test_repr_masks_secret(self, account):
        """The secret key never shows up in repr()."""
        text = repr(account)

        assert "s3cr3t" not in text
        assert text.startswith("[default]: accessKey=AKIAEXAMPLE, secretKey=****")

    def test_unknown_field_rejected(self, credentials):
        """Sub-configurations only know their own fields."""
        with pytest.raises(KeyError):
            credentials.get("user_id")


class TestYamlOptionalConfiguration:
    """Test cases for YamlOptionalConfiguration file handling."""

    def test_empty_accounts_key(self, tmp_path):
        """A file with a bare 'accounts:' key behaves like an empty one."""
        path = tmp_path / "accounts.yaml"
        path.write_text("accounts:\n")

        config = YamlOptionalConfiguration(path, "acct-1")
        assert config.get("user_id") == ""

        config.set("user_id", "42")
        config.save()
        assert yaml.safe_load(path.read_text())["accounts"]["acct-1"]["user_id"] == "42"

        path.write_text("accounts:\n")
        config.delete()
        assert config.get("user_id") == ""

    def test_delete_without_file(self, tmp_path):
        """Deleting an account that was never saved leaves no file behind."""
        config = YamlOptionalConfiguration(tmp_path / "accounts.yaml", "acct-1")

        config.delete()

        assert not (tmp_path / "accounts.yaml").exists()

    def test_accounts_must_be_mapping(self, tmp_path):
        """A non-mapping 'accounts' value is rejected."""
        path = tmp_path / "accounts.yaml"
        path.write_text("accounts: [a, b]\n")

        with pytest.raises(ValueError, match="must be a mapping"):
            YamlOptionalConfiguration(path, "acct-1")
