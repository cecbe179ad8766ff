"""Tests for secret extraction."""

import pytest

from meshctl.errors import SecretValueError
from meshctl.schema import decode_secret_data, extract_secrets, secret_name
from meshctl.schema.secrets import has_secret_refs, secret_refs


@pytest.fixture
def s3_schema(catalog):
    return catalog.schema("awss3source")


class TestExtractSecrets:
    def test_extracts_and_rewrites(self, s3_schema):
        """Plaintext moves to the payload, the leaf becomes a reference."""
        spec = {"auth": {"credentials": {"secretAccessKey": "foo", "accessKeyID": "bar"}}}

        payload = extract_secrets("foo-awss3source", s3_schema, spec)

        assert payload == {"secretAccessKey": "Zm9v", "accessKeyID": "YmFy"}
        assert spec["auth"]["credentials"]["secretAccessKey"] == {
            "valueFromSecret": {"name": "foo-awss3source-secret", "key": "secretAccessKey"}
        }

    def test_unknown_keys_ignored(self, s3_schema):
        """Keys absent from the schema do not change the payload."""
        spec = {"auth": {"credentials": {"secretAccessKey": "foo"}}, "bruh": "bleh"}

        payload = extract_secrets("comp", s3_schema, spec)

        assert payload == {"secretAccessKey": "Zm9v"}
        assert spec["bruh"] == "bleh"

    def test_wrong_parent_yields_nothing(self, s3_schema):
        """Secrets under an unknown parent are not found."""
        spec = {"auth": {"creds": {"secretAccessKey": "foo"}}}
        assert extract_secrets("comp", s3_schema, spec) == {}

    def test_non_string_leaf_fails(self, s3_schema):
        """A non-string value at a secret leaf is an error, not skipped."""
        spec = {"auth": {"credentials": {"secretAccessKey": 1234}}}

        with pytest.raises(SecretValueError) as exc_info:
            extract_secrets("comp", s3_schema, spec)

        assert exc_info.value.path == "auth.credentials.secretAccessKey"
        assert exc_info.value.value_type == "int"

    def test_repeat_is_noop(self, s3_schema):
        """Extracting again from an already-rewritten spec finds nothing new."""
        spec = {"auth": {"credentials": {"secretAccessKey": "foo"}}}
        extract_secrets("comp", s3_schema, spec)
        snapshot = {"auth": {"credentials": dict(spec["auth"]["credentials"])}}

        assert extract_secrets("comp", s3_schema, spec) == {}
        assert spec == snapshot

    def test_secret_name_is_lowercase(self):
        """Secret names derive from the lower-cased owner."""
        assert secret_name("My-Source") == "my-source-secret"

    def test_refs_listed(self, s3_schema):
        """References in a rewritten spec are discoverable."""
        spec = {"auth": {"credentials": {"accessKeyID": "bar"}}}
        assert not has_secret_refs(s3_schema, spec)

        extract_secrets("comp", s3_schema, spec)

        assert has_secret_refs(s3_schema, spec)
        assert secret_refs(s3_schema.root, spec) == [("comp-secret", "accessKeyID")]

    def test_decode(self):
        """Payload values decode back to plaintext."""
        assert decode_secret_data({"a": "Zm9v"}) == {"a": "foo"}
