"""Unit tests for vaultgate/auth/codec.py.

Covers:
  - generate(): sk_live_ prefix, 43-char URL-safe body, uniqueness
  - digest():   deterministic SHA-256 hex, distinct for distinct secrets
  - last4() / mask(): display form sk_live_...XXXX
  - is_well_formed(): shape check
  - digests_equal(): constant-time comparison semantics
"""

from __future__ import annotations

import hashlib
import re

import pytest

from vaultgate.auth import codec

_SECRET_FORMAT_RE = re.compile(r"^sk_live_[A-Za-z0-9_-]{43}$")


class TestGenerate:

    def test_prefix_and_body_shape(self) -> None:
        secret = codec.generate()
        assert _SECRET_FORMAT_RE.match(secret), f"Unexpected secret format: {secret}"

    def test_total_length(self) -> None:
        assert len(codec.generate()) == len("sk_live_") + 43

    def test_secrets_are_unique(self) -> None:
        secrets = {codec.generate() for _ in range(1000)}
        assert len(secrets) == 1000

    def test_generated_secret_is_well_formed(self) -> None:
        assert codec.is_well_formed(codec.generate())

    def test_random_source_failure_propagates(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """A broken CSPRNG must surface, never produce a weak key."""

        def broken(_nbytes: int) -> str:
            raise OSError("getrandom unavailable")

        monkeypatch.setattr("vaultgate.auth.codec.secrets.token_urlsafe", broken)
        with pytest.raises(OSError):
            codec.generate()


class TestDigest:

    def test_deterministic(self) -> None:
        secret = codec.generate()
        assert codec.digest(secret) == codec.digest(secret)

    def test_is_sha256_hex(self) -> None:
        secret = "sk_live_" + "a" * 43
        expected = hashlib.sha256(secret.encode("utf-8")).hexdigest()
        assert codec.digest(secret) == expected
        assert re.fullmatch(r"[0-9a-f]{64}", codec.digest(secret))

    def test_distinct_secrets_distinct_digests(self) -> None:
        digests = {codec.digest(codec.generate()) for _ in range(500)}
        assert len(digests) == 500

    def test_digest_does_not_contain_secret(self) -> None:
        secret = codec.generate()
        assert secret not in codec.digest(secret)


class TestDisplay:

    def test_last4(self) -> None:
        assert codec.last4("sk_live_abcdWXYZ") == "WXYZ"

    def test_mask(self) -> None:
        assert codec.mask("wxyz") == "sk_live_...wxyz"

    def test_mask_of_generated_secret_reveals_only_suffix(self) -> None:
        secret = codec.generate()
        masked = codec.mask(codec.last4(secret))
        assert masked.endswith(secret[-4:])
        assert masked != secret
        assert len(masked) == len("sk_live_...") + 4


class TestIsWellFormed:

    @pytest.mark.parametrize(
        "candidate",
        [
            "",
            "sk_live_",
            "sk_test_" + "a" * 43,
            "sk_live_" + "a" * 42,
            "sk_live_" + "a" * 44,
            "sk_live_" + "a" * 42 + "!",
            " sk_live_" + "a" * 43,
            "ong-01HZZZZZZZZZZZZZZZZZZZZZZZ",
        ],
    )
    def test_rejects_wrong_shapes(self, candidate: str) -> None:
        assert codec.is_well_formed(candidate) is False

    def test_accepts_url_safe_alphabet(self) -> None:
        assert codec.is_well_formed("sk_live_" + "Az09-_" * 7 + "x")


class TestDigestsEqual:

    def test_equal(self) -> None:
        d = codec.digest("sk_live_x")
        assert codec.digests_equal(d, d) is True

    def test_not_equal(self) -> None:
        assert codec.digests_equal(codec.digest("a"), codec.digest("b")) is False
