"""Unit tests for LocalIdentityProvider."""

from __future__ import annotations

import pytest

from engageboard.tools.identity import IdentityProvider, LocalIdentityProvider, user_id_for_token


class _Recorder:
    def __init__(self) -> None:
        self.seen: list[str | None] = []

    async def __call__(self, user_id):
        self.seen.append(user_id)


@pytest.mark.asyncio
async def test_anonymous_id_is_persisted_and_reused(tmp_path):
    identity_file = tmp_path / "nested" / "identity"
    first = LocalIdentityProvider(identity_file)
    await first.sign_in_anonymously()
    assert first.current_user_id
    assert identity_file.read_text().strip() == first.current_user_id

    second = LocalIdentityProvider(identity_file)
    await second.sign_in_anonymously()
    assert second.current_user_id == first.current_user_id


@pytest.mark.asyncio
async def test_in_memory_identity_is_fresh_each_time():
    a, b = LocalIdentityProvider(), LocalIdentityProvider()
    await a.sign_in_anonymously()
    await b.sign_in_anonymously()
    assert a.current_user_id != b.current_user_id


@pytest.mark.asyncio
async def test_token_maps_to_stable_id():
    identity = LocalIdentityProvider()
    await identity.sign_in_with_token("shared-secret")
    assert identity.current_user_id == user_id_for_token("shared-secret")
    assert "shared-secret" not in identity.current_user_id

    with pytest.raises(ValueError):
        await identity.sign_in_with_token("")


@pytest.mark.asyncio
async def test_listeners_hear_only_real_changes(tmp_path):
    identity = LocalIdentityProvider(tmp_path / "identity")
    recorder = _Recorder()
    unsubscribe = identity.on_user_changed(recorder)

    await identity.sign_in_anonymously()
    await identity.sign_in_anonymously()
    await identity.sign_out()
    assert recorder.seen == [recorder.seen[0], None]

    unsubscribe()
    await identity.sign_in_with_token("t")
    assert len(recorder.seen) == 2


def test_local_provider_satisfies_protocol():
    assert isinstance(LocalIdentityProvider(), IdentityProvider)
