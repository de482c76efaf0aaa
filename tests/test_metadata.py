"""Tests for the Token Metadata manager."""

from __future__ import annotations

import pytest

from aria_control.core.errors import AlreadyInitializedError, AuthorizationError, ValidationError
from aria_control.core.events import EventSink, MetadataUpdated
from aria_control.metadata.token_metadata import TokenMetadataManager

from support import memory_store, signer, unsigned

METADATA = "token-metadata"


class TestTokenMetadata:
    def setup_method(self):
        self.session, self.store = memory_store()
        self.events = EventSink()
        self.manager = TokenMetadataManager(self.store, self.events)

    def teardown_method(self):
        self.session.close()

    def initialize(self, caller=None):
        return self.manager.initialize(
            METADATA, "aria-mint", caller or signer("alice"),
            "Aria", "ARIA", "https://example.org/aria.json",
        )

    def test_initialize(self):
        metadata = self.initialize()
        assert metadata.update_authority == "alice"
        assert metadata.version == 1
        assert metadata.symbol == "ARIA"

    def test_initialize_requires_signature(self):
        with pytest.raises(AuthorizationError):
            self.initialize(caller=unsigned("alice"))

    def test_initialize_twice(self):
        self.initialize()
        with pytest.raises(AlreadyInitializedError):
            self.initialize(caller=signer("bob"))

    def test_rejects_long_symbol(self):
        with pytest.raises(ValidationError):
            self.manager.initialize(METADATA, "aria-mint", signer("alice"), "Aria", "ARIATOKENXX", "u")
        assert not self.store.exists(METADATA)

    def test_rejects_empty_name(self):
        with pytest.raises(ValidationError):
            self.manager.initialize(METADATA, "aria-mint", signer("alice"), " ", "ARIA", "u")

    def test_update_bumps_version(self):
        self.initialize()
        self.events.drain()

        updated = self.manager.update(METADATA, signer("alice"), uri="https://example.org/v2.json")
        assert updated.version == 2
        assert updated.uri == "https://example.org/v2.json"
        assert updated.name == "Aria"

        events = self.events.drain()
        assert isinstance(events[0], MetadataUpdated)
        assert events[0].version == 2

    def test_update_requires_update_authority(self):
        self.initialize()
        before = self.store.read_raw(METADATA)
        with pytest.raises(AuthorizationError):
            self.manager.update(METADATA, signer("bob"), name="Bob")
        assert self.store.read_raw(METADATA) == before

    def test_version_ceiling(self):
        metadata = self.initialize()
        self.store.save(METADATA, metadata.model_copy(update={"version": 255}))
        with pytest.raises(ValidationError):
            self.manager.update(METADATA, signer("alice"), name="Aria 2")
