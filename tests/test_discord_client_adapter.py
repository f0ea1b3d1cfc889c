import asyncio
from types import SimpleNamespace

import discord

import dm_mirror.discord_client_adapter as adapter_mod
from dm_mirror.discord_client_adapter import DiscordClientAdapter
from dm_mirror.event_dispatcher import MessageCreated, MessageDeleted, MessageEdited, MirrorRemoved

MIRROR_CHANNEL = 999


class DummyLogger:
    def debug(self, *a, **k): pass
    def info(self, *a, **k): pass
    def warning(self, *a, **k): pass
    def error(self, *a, **k): pass


class RecordingDispatcher:
    def __init__(self):
        self.events = []
    def submit(self, event):
        self.events.append(event)


class FakeDM:
    is_dm = True
    def __init__(self, cid=10, recipient=None):
        self.id = cid
        self.recipient = recipient


class FakeGuildChannel:
    is_dm = False
    def __init__(self, cid=20):
        self.id = cid


HUMAN = SimpleNamespace(id=1, bot=False)
BOT = SimpleNamespace(id=2, bot=True)


def _message(mid=100, author=HUMAN, channel=None, content='hello', attachments=()):
    return SimpleNamespace(id=mid, author=author, channel=channel or FakeDM(), content=content,
                           attachments=list(attachments))


def _run(monkeypatch, handler, *args, channels=None, fetch_error=None):
    """Build an adapter, call one gateway handler and return what it submitted."""
    monkeypatch.setattr(adapter_mod, '_is_dm', lambda ch: getattr(ch, 'is_dm', False))
    channels = channels or {}

    async def _go():
        client = DiscordClientAdapter(RecordingDispatcher(), MIRROR_CHANNEL, {}, DummyLogger())
        client.get_channel = lambda cid: channels.get(cid)

        async def fetch_channel(cid):
            if fetch_error is not None:
                raise fetch_error
            return channels[cid]
        client.fetch_channel = fetch_channel
        await getattr(client, handler)(*args)
        return client.dispatcher.events

    return asyncio.run(_go())


def test_dm_from_human_is_forwarded(monkeypatch):
    events = _run(monkeypatch, 'on_message', _message(content='hi', attachments=['a']))
    assert len(events) == 1
    ev = events[0]
    assert isinstance(ev, MessageCreated)
    assert (ev.id, ev.channel_id, ev.content, list(ev.attachments)) == ('100', '10', 'hi', ['a'])
    assert ev.author is HUMAN


def test_bot_authors_and_guild_messages_are_ignored(monkeypatch):
    assert _run(monkeypatch, 'on_message', _message(author=BOT)) == []
    assert _run(monkeypatch, 'on_message', _message(channel=FakeGuildChannel())) == []


def test_edit_without_changes_is_dropped(monkeypatch):
    before = _message(content='hello')
    same = _message(content='hello')
    assert _run(monkeypatch, 'on_message_edit', before, same) == []

    changed = _message(content='hello world')
    events = _run(monkeypatch, 'on_message_edit', before, changed)
    assert len(events) == 1 and isinstance(events[0], MessageEdited)
    assert events[0].new_content == 'hello world'


def test_edit_removing_attachment_is_forwarded(monkeypatch):
    before = _message(attachments=['a', 'b'])
    after = _message(attachments=['a'])
    events = _run(monkeypatch, 'on_message_edit', before, after)
    assert len(events) == 1


def test_delete_in_mirror_channel_becomes_mirror_removed(monkeypatch):
    payload = SimpleNamespace(channel_id=MIRROR_CHANNEL, message_id=555, guild_id=77, cached_message=None)
    events = _run(monkeypatch, 'on_raw_message_delete', payload)
    assert len(events) == 1
    assert isinstance(events[0], MirrorRemoved) and events[0].mirror_id == '555'


def test_delete_in_other_guild_channel_is_ignored(monkeypatch):
    payload = SimpleNamespace(channel_id=20, message_id=555, guild_id=77, cached_message=None)
    assert _run(monkeypatch, 'on_raw_message_delete', payload) == []


def test_cached_dm_delete_uses_message_author(monkeypatch):
    payload = SimpleNamespace(channel_id=10, message_id=100, guild_id=None, cached_message=_message())
    events = _run(monkeypatch, 'on_raw_message_delete', payload)
    assert len(events) == 1 and isinstance(events[0], MessageDeleted)
    assert events[0].requester is HUMAN

    payload.cached_message = _message(author=BOT)
    assert _run(monkeypatch, 'on_raw_message_delete', payload) == []


def test_uncached_dm_delete_takes_requester_from_recipient(monkeypatch):
    payload = SimpleNamespace(channel_id=10, message_id=100, guild_id=None, cached_message=None)
    events = _run(monkeypatch, 'on_raw_message_delete', payload, channels={10: FakeDM(10, recipient=HUMAN)})
    assert len(events) == 1
    assert events[0].id == '100'
    assert events[0].requester is HUMAN


def test_uncached_dm_delete_with_failed_fetch_has_no_requester(monkeypatch):
    payload = SimpleNamespace(channel_id=10, message_id=100, guild_id=None, cached_message=None)
    err = discord.HTTPException(SimpleNamespace(status=500, reason='err'), 'boom')
    events = _run(monkeypatch, 'on_raw_message_delete', payload, fetch_error=err)
    assert len(events) == 1
    assert events[0].requester is None


def test_bulk_delete_in_mirror_channel_removes_each_mirror(monkeypatch):
    payload = SimpleNamespace(channel_id=MIRROR_CHANNEL, message_ids={503, 501, 502}, guild_id=77, cached_messages=[])
    events = _run(monkeypatch, 'on_raw_bulk_message_delete', payload)
    assert [e.mirror_id for e in events] == ['501', '502', '503']
    assert all(isinstance(e, MirrorRemoved) for e in events)

    payload.channel_id = 20
    assert _run(monkeypatch, 'on_raw_bulk_message_delete', payload) == []
