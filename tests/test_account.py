"""
Tests for the Account model: validation, serialization and otpauth parsing.
"""

import pytest

from sentinel_vault.utils.Account import Account, Algorithm, normalize_secret, decode_secret
from sentinel_vault.utils.errors import InvalidSecret, InvalidUri

GITHUB_SECRET = "JBSWY3DPEHPK3PXP"


# ── Secret handling ──────────────────────────────────────────────────


class TestSecret:
    def test_normalize_strips_spaces_padding_and_case(self):
        assert normalize_secret(" jbsw y3dp\tehpk 3pxp==") == GITHUB_SECRET

    def test_decode_restores_padding(self):
        assert decode_secret("GEZDGNBV") == b"12345"
        assert decode_secret("MFRGG") == b"abc"

    def test_account_stores_normalized_secret(self):
        account = Account("GitHub", "me", "jbsw y3dp ehpk 3pxp")
        assert account.secret == GITHUB_SECRET
        assert account.secret_bytes() == decode_secret(GITHUB_SECRET)

    @pytest.mark.parametrize("secret", ["not base32!", "189", "", "   ", "A"])
    def test_invalid_secret_rejected(self, secret):
        with pytest.raises(InvalidSecret):
            Account("GitHub", "me", secret)

    def test_invalid_secret_is_value_error(self):
        with pytest.raises(ValueError):
            Account("GitHub", "me", "!!!!")

    def test_non_string_secret_rejected(self):
        with pytest.raises(InvalidSecret):
            Account("GitHub", "me", b"JBSWY3DPEHPK3PXP")


# ── Field validation ─────────────────────────────────────────────────


class TestValidation:
    def test_defaults(self, github_account):
        assert github_account.algorithm is Algorithm.SHA1
        assert github_account.digits == 6
        assert github_account.period == 30
        assert github_account.id

    def test_ids_are_unique(self):
        a = Account("GitHub", "me", GITHUB_SECRET)
        b = Account("GitHub", "me", GITHUB_SECRET)
        assert a.id != b.id

    def test_names_are_stripped(self):
        account = Account("  GitHub ", " me ", GITHUB_SECRET)
        assert account.issuer == "GitHub"
        assert account.account_label == "me"

    @pytest.mark.parametrize("issuer, label", [("", "me"), ("GitHub", "  ")])
    def test_empty_names_rejected(self, issuer, label):
        with pytest.raises(ValueError):
            Account(issuer, label, GITHUB_SECRET)

    @pytest.mark.parametrize("digits", [0, -1])
    def test_digits_must_be_positive(self, digits):
        with pytest.raises(ValueError):
            Account("GitHub", "me", GITHUB_SECRET, digits=digits)

    @pytest.mark.parametrize("period", [0, -30])
    def test_period_must_be_positive(self, period):
        with pytest.raises(ValueError):
            Account("GitHub", "me", GITHUB_SECRET, period=period)

    def test_bool_digits_rejected(self):
        with pytest.raises(TypeError):
            Account("GitHub", "me", GITHUB_SECRET, digits=True)

    def test_large_digit_count_allowed(self):
        assert Account("GitHub", "me", GITHUB_SECRET, digits=10).digits == 10

    def test_repr_hides_secret(self, github_account):
        assert GITHUB_SECRET not in repr(github_account)
        assert "<hidden>" in repr(github_account)

    def test_touch_updates_last_used(self, github_account):
        before = github_account.last_used_at
        github_account.touch()
        assert github_account.last_used_at >= before


# ── Algorithm ────────────────────────────────────────────────────────


class TestAlgorithm:
    @pytest.mark.parametrize("value, expected", [
        ("SHA1", Algorithm.SHA1),
        ("sha256", Algorithm.SHA256),
        ("Algorithm.sha512", Algorithm.SHA512),
        ("SHA-256", Algorithm.SHA256),
        (0, Algorithm.SHA1),
        (2, Algorithm.SHA512),
        (Algorithm.SHA256, Algorithm.SHA256),
    ])
    def test_from_value(self, value, expected):
        assert Algorithm.from_value(value) is expected

    @pytest.mark.parametrize("value", ["MD5", 3, -1, None, True])
    def test_unknown_algorithm(self, value):
        with pytest.raises(ValueError):
            Algorithm.from_value(value)

    def test_index_matches_archive_order(self):
        assert [a.index for a in Algorithm] == [0, 1, 2]

    def test_hash_name(self):
        assert Algorithm.SHA512.hash_name == "sha512"


# ── Serialization ────────────────────────────────────────────────────


class TestSerialization:
    def test_storage_round_trip(self):
        account = Account("GitHub", "me", GITHUB_SECRET, algorithm="SHA256", digits=8, period=60)
        restored = Account.from_dict(account.to_dict())

        assert restored.id == account.id
        assert restored.issuer == "GitHub"
        assert restored.account_label == "me"
        assert restored.secret == GITHUB_SECRET
        assert restored.algorithm is Algorithm.SHA256
        assert restored.digits == 8
        assert restored.period == 60
        assert restored.created_at == account.created_at

    def test_export_dict_keys(self, github_account):
        data = github_account.to_dict_export()
        assert set(data) == {
            "id", "issuer", "accountLabel", "secret", "algorithm",
            "digits", "period", "createdAt", "lastUsedAt",
        }

    def test_export_round_trip(self, github_account):
        restored = Account.from_dict_export(github_account.to_dict_export())
        assert restored.id == github_account.id
        assert restored.account_label == github_account.account_label
        assert restored.secret == github_account.secret

    def test_reads_mobile_app_entries(self):
        entry = {
            "id": "1700000000000",
            "issuer": "GitHub",
            "accountName": "me@example.com",
            "secretKey": GITHUB_SECRET,
            "algorithm": 1,
            "digits": 6,
            "period": 30,
            "colorCode": 4,
            "lastUsedAt": "2024-01-01T10:00:00.000",
            "createdAt": "2024-01-01T09:00:00.000",
        }
        account = Account.from_dict_export(entry)

        assert account.account_label == "me@example.com"
        assert account.algorithm is Algorithm.SHA256
        assert account.created_at.hour == 9

    @pytest.mark.parametrize("stamp", ["P1D", "2024-01-01/2024-02-01", "not a date"])
    def test_timestamp_must_be_date_and_time(self, github_account, stamp):
        data = github_account.to_dict_export()
        data["createdAt"] = stamp
        with pytest.raises(ValueError):
            Account.from_dict_export(data)

    def test_missing_field_raises(self, github_account):
        data = github_account.to_dict_export()
        del data["issuer"]
        with pytest.raises(KeyError):
            Account.from_dict_export(data)

    def test_non_dict_rejected(self):
        with pytest.raises(TypeError):
            Account.from_dict(["not", "a", "dict"])


# ── otpauth:// URIs ──────────────────────────────────────────────────


class TestFromUri:
    def test_full_uri(self):
        account = Account.from_uri(
            "otpauth://totp/GitHub:me%40example.com?secret=JBSWY3DPEHPK3PXP"
            "&issuer=GitHub&algorithm=SHA256&digits=8&period=60"
        )
        assert account.issuer == "GitHub"
        assert account.account_label == "me@example.com"
        assert account.secret == GITHUB_SECRET
        assert account.algorithm is Algorithm.SHA256
        assert account.digits == 8
        assert account.period == 60

    def test_defaults_when_parameters_missing(self):
        account = Account.from_uri("otpauth://totp/GitHub:me?secret=JBSWY3DPEHPK3PXP")
        assert account.algorithm is Algorithm.SHA1
        assert account.digits == 6
        assert account.period == 30

    def test_issuer_parameter_overrides_label(self):
        account = Account.from_uri("otpauth://totp/Old:me?secret=JBSWY3DPEHPK3PXP&issuer=New")
        assert account.issuer == "New"
        assert account.account_label == "me"

    def test_label_without_issuer_uses_label(self):
        account = Account.from_uri("otpauth://totp/alice?secret=JBSWY3DPEHPK3PXP")
        assert account.issuer == "alice"
        assert account.account_label == "alice"

    def test_percent_encoded_label(self):
        account = Account.from_uri("otpauth://totp/Big%20Corp:alice%20smith?secret=JBSWY3DPEHPK3PXP")
        assert account.issuer == "Big Corp"
        assert account.account_label == "alice smith"

    def test_lowercase_secret_accepted(self):
        account = Account.from_uri("otpauth://totp/GitHub:me?secret=jbswy3dpehpk3pxp")
        assert account.secret == GITHUB_SECRET

    @pytest.mark.parametrize("uri", [
        "https://totp/GitHub:me?secret=JBSWY3DPEHPK3PXP",
        "otpauth://hotp/GitHub:me?secret=JBSWY3DPEHPK3PXP&counter=1",
        "otpauth://totp/GitHub:me",
        "otpauth://totp/GitHub:me?secret=",
        "otpauth://totp/GitHub:me?secret=JBSWY3DPEHPK3PXP&digits=six",
        "otpauth://totp/GitHub:me?secret=JBSWY3DPEHPK3PXP&period=0",
        "otpauth://totp/GitHub:me?secret=JBSWY3DPEHPK3PXP&algorithm=MD5",
        "otpauth://totp/?secret=JBSWY3DPEHPK3PXP",
        "not a uri",
    ])
    def test_rejected_uris(self, uri):
        with pytest.raises(InvalidUri):
            Account.from_uri(uri)

    def test_bad_secret_raises_invalid_secret(self):
        with pytest.raises(InvalidSecret):
            Account.from_uri("otpauth://totp/GitHub:me?secret=!!!!")
