import io

import pytest

from client.config import ClientSettings
from client.dispatcher import DefType, TextureDispatcher
from helpers import FakeSender
from shared.messages import AcceptAuth, CltReady, ItemDef, ItemDefs, Kick, NodeDef, NodeDefs


def node_defs():
    return NodeDefs(defs={
        1: NodeDef(name="default:stone", tiles=("default_stone.png",)),
        2: NodeDef(
            name="default:water",
            tiles=("default_water.png",),
            special_tiles=("default_water_flowing.png", ""),
            overlay_tiles=("default_stone.png",),
        ),
    })


def item_defs():
    return ItemDefs(defs=(
        ItemDef(name="default:pick", inventory_image="pick.png", wield_image="pick.png"),
        ItemDef(name="default:torch", inventory_image="torch.png", wield_overlay="torch_glow.png"),
        ItemDef(name="air"),
    ))


@pytest.mark.asyncio
async def test_prints_each_texture_once():
    out = io.StringIO()
    dispatcher = TextureDispatcher(FakeSender(), out=out)

    await dispatcher.handle(node_defs())
    await dispatcher.handle(item_defs())
    await dispatcher.handle(node_defs())

    assert out.getvalue().splitlines() == [
        "default_stone.png",
        "default_water.png",
        "default_water_flowing.png",
        "pick.png",
        "torch.png",
        "torch_glow.png",
    ]


@pytest.mark.asyncio
async def test_closes_after_both_tables_when_requested():
    sender = FakeSender()
    dispatcher = TextureDispatcher(sender, quit_after_defs=True, out=io.StringIO())

    await dispatcher.handle(item_defs())
    assert not sender.closed
    assert dispatcher.pending == {DefType.NODE}

    await dispatcher.handle(node_defs())
    assert sender.closed


@pytest.mark.asyncio
async def test_keeps_running_without_quit_after_defs():
    sender = FakeSender()
    dispatcher = TextureDispatcher(sender, out=io.StringIO())

    await dispatcher.handle(node_defs())
    await dispatcher.handle(item_defs())

    assert not sender.closed


@pytest.mark.asyncio
async def test_announces_ready_once_after_acceptance():
    sender = FakeSender()
    settings = ClientSettings(client_version="bot-1.0", formspec_version=6)
    dispatcher = TextureDispatcher(sender, settings, out=io.StringIO())

    await dispatcher.handle(AcceptAuth())
    await dispatcher.handle(AcceptAuth())

    assert sender.sent == [CltReady(version="bot-1.0", formspec=6)]


@pytest.mark.asyncio
async def test_no_ready_announcement_on_closed_sender():
    sender = FakeSender()
    sender.close()
    dispatcher = TextureDispatcher(sender, out=io.StringIO())

    await dispatcher.handle(AcceptAuth())

    assert sender.sent == []


@pytest.mark.asyncio
async def test_kick_is_logged_once_at_info(caplog):
    dispatcher = TextureDispatcher(FakeSender(), out=io.StringIO())

    with caplog.at_level("INFO"):
        await dispatcher.handle(Kick(reason="server shutting down"))

    assert "server shutting down" in caplog.text
    assert all(r.levelname == "INFO" for r in caplog.records if "server shutting down" in r.getMessage())
