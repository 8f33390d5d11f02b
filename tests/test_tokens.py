"""Unit tests for auth/tokens.py -- opaque token generation."""

from __future__ import annotations

import base64

from auth.tokens import TokenGenerator


class TestTokenGenerator:
    def test_token_is_base64_sha256_digest(self) -> None:
        token = TokenGenerator().generate("alice:pw")
        assert len(base64.b64decode(token, validate=True)) == 32

    def test_same_seed_gives_different_tokens(self) -> None:
        gen = TokenGenerator()
        tokens = {gen.generate("alice:pw") for _ in range(50)}
        assert len(tokens) == 50

    def test_token_does_not_embed_seed(self) -> None:
        token = TokenGenerator().generate("alice:hunter2")
        decoded = base64.b64decode(token)
        assert b"alice" not in decoded
        assert "alice" not in token
        assert "hunter2" not in token

    def test_empty_seed_still_produces_token(self) -> None:
        assert TokenGenerator().generate("")
