"""Tests for the album cache and attachment-set resolution."""

import pytest
from conftest import make_bot_message, make_message, make_photo

from relaybot.media import MediaGroupCache, collect_media_messages


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class TestMediaGroupCache:
    @pytest.mark.asyncio
    async def test_members_sorted_by_id(self):
        cache = MediaGroupCache()
        for message_id in (12, 10, 11):
            await cache.record(make_message(message_id, photo=make_photo(), media_group_id="g1"))
        messages = await cache.get_messages(make_message().chat.id, "g1")
        assert [m.message_id for m in messages] == [10, 11, 12]

    @pytest.mark.asyncio
    async def test_ignores_messages_without_group_or_media(self):
        cache = MediaGroupCache()
        await cache.record(make_message(1, photo=make_photo()))
        await cache.record(make_message(2, text="caption only", media_group_id="g1"))
        assert len(cache) == 0

    @pytest.mark.asyncio
    async def test_expired_group_swept_on_write(self):
        clock = FakeClock()
        cache = MediaGroupCache(ttl_seconds=3600, clock=clock)
        await cache.record(make_message(1, photo=make_photo(), media_group_id="old"))
        clock.now += 3601
        await cache.record(make_message(2, photo=make_photo(), media_group_id="new"))
        assert len(cache) == 1
        assert await cache.get_messages(make_message().chat.id, "old") == []

    @pytest.mark.asyncio
    async def test_read_refreshes_entry(self):
        clock = FakeClock()
        cache = MediaGroupCache(ttl_seconds=100, clock=clock)
        chat_id = make_message().chat.id
        await cache.record(make_message(1, photo=make_photo(), media_group_id="g"))
        clock.now += 90
        assert await cache.get_messages(chat_id, "g")
        clock.now += 90
        await cache.record(make_message(2, photo=make_photo(), media_group_id="other"))
        assert len(await cache.get_messages(chat_id, "g")) == 1


class TestCollectMediaMessages:
    @pytest.mark.asyncio
    async def test_own_photo(self):
        message = make_message(1, caption="look", photo=make_photo())
        assert await collect_media_messages(message, MediaGroupCache()) == [message]

    @pytest.mark.asyncio
    async def test_replied_photo(self):
        carrier = make_message(1, photo=make_photo())
        message = make_message(2, text="@relay_bot what is this?", reply_to_message=carrier)
        assert await collect_media_messages(message, MediaGroupCache()) == [carrier]

    @pytest.mark.asyncio
    async def test_album_resolved_from_reply(self):
        cache = MediaGroupCache()
        album = [make_message(i, photo=make_photo(), media_group_id="alb") for i in (20, 21, 22)]
        for member in album:
            await cache.record(member)
        message = make_message(30, text="@relay_bot compare", reply_to_message=album[1])
        collected = await collect_media_messages(message, cache)
        assert [m.message_id for m in collected] == [20, 21, 22]

    @pytest.mark.asyncio
    async def test_uncached_album_member_alone(self):
        member = make_message(20, photo=make_photo(), media_group_id="alb")
        assert await collect_media_messages(member, MediaGroupCache()) == [member]

    @pytest.mark.asyncio
    async def test_no_media(self):
        message = make_message(2, text="hi", reply_to_message=make_bot_message())
        assert await collect_media_messages(message, MediaGroupCache()) == []
