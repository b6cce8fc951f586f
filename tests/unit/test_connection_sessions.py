"""Unit tests for the data and media connection session transitions."""

import pytest

from webrtc_gateway_runtime.gateway.formats import SocketInfo
from webrtc_gateway_runtime.identifiers import DataConnectionId, MediaConnectionId
from webrtc_gateway_runtime.protocol.commands import Command
from webrtc_gateway_runtime.protocol.events import EntityKind, parse_event
from webrtc_gateway_runtime.sessions import data, media
from webrtc_gateway_runtime.sessions.actions import (
    DeleteDataConnection,
    DeleteMediaConnection,
    QueryDataConnectionStatus,
    QueryMediaConnectionStatus,
    SendPli,
)
from webrtc_gateway_runtime.sessions.data import ConnectionPhase

DC = DataConnectionId.try_create("dc-9749250e-d157-4f80-9ee2-359ce8524308")
MC = MediaConnectionId.try_create("mc-9749250e-d157-4f80-9ee2-359ce8524308")


def data_event(tag, **extra):
    return parse_event(EntityKind.DATA, {"event": tag, **extra})


def media_event(tag, **extra):
    return parse_event(EntityKind.MEDIA, {"event": tag, **extra})


@pytest.fixture
def media_state(runtime_config):
    return media.MediaConnectionState(MC, media=runtime_config.media[0])


# =============================================================================
# Data connection
# =============================================================================


class TestDataConnectionSession:
    """DataConnection lifecycle."""

    def test_starts_connecting(self):
        state = data.DataConnectionState(DC)
        assert state.phase == ConnectionPhase.CONNECTING
        assert not state.is_open

    def test_open(self):
        step = data.transition(data.DataConnectionState(DC), data_event("OPEN"))

        assert step.state.is_open
        assert not step.terminal

    def test_close_is_terminal(self):
        step = data.transition(data.DataConnectionState(DC), data_event("CLOSE"))

        assert step.terminal
        assert step.reason == "closed by remote"
        assert step.actions == ()

    def test_error_is_recorded_not_terminal(self):
        state = data.transition(data.DataConnectionState(DC), data_event("OPEN")).state
        step = data.transition(state, data_event("ERROR", error_message="sctp reset"))

        assert not step.terminal
        assert step.state.last_error == "sctp reset"
        assert step.state.is_open

    def test_status(self):
        step = data.transition(data.DataConnectionState(DC), Command.status())
        assert step.actions == (QueryDataConnectionStatus(DC),)

    @pytest.mark.parametrize("command", [Command.disconnect(), Command.disconnect(str(DC))])
    def test_disconnect_applies(self, command):
        step = data.transition(data.DataConnectionState(DC), command)

        assert step.actions == (DeleteDataConnection(DC),)
        assert step.terminal
        assert step.reason == "disconnect requested"

    def test_disconnect_for_other_connection_ignored(self):
        state = data.DataConnectionState(DC)
        step = data.transition(state, Command.disconnect("dc-other"))

        assert step.state == state
        assert step.actions == ()
        assert not step.terminal

    @pytest.mark.parametrize("command", [Command.pli(), Command.exit()])
    def test_irrelevant_commands_ignored(self, command):
        step = data.transition(data.DataConnectionState(DC), command)
        assert step.actions == ()

    def test_unknown_event_ignored(self):
        state = data.DataConnectionState(DC)
        assert data.transition(state, data_event("READY")).state == state


# =============================================================================
# Media connection
# =============================================================================


class TestMediaConnectionSession:
    """MediaConnection lifecycle and PLI."""

    def test_ready_opens(self, media_state):
        step = media.transition(media_state, media_event("READY"))
        assert step.state.is_open

    def test_stream_is_informational(self, media_state):
        step = media.transition(media_state, media_event("STREAM"))

        assert step.state.streaming
        assert step.actions == ()
        assert not step.terminal

    def test_close_is_terminal(self, media_state):
        state = media.transition(media_state, media_event("STREAM")).state
        step = media.transition(state, media_event("CLOSE"))

        assert step.terminal
        assert not step.state.streaming
        assert step.state.phase == ConnectionPhase.CLOSED

    def test_error_is_recorded(self, media_state):
        step = media.transition(media_state, media_event("ERROR", error_message="no rtp"))

        assert step.state.last_error == "no rtp"
        assert not step.terminal

    def test_status(self, media_state):
        step = media.transition(media_state, Command.status())
        assert step.actions == (QueryMediaConnectionStatus(MC),)

    def test_disconnect(self, media_state):
        step = media.transition(media_state, Command.disconnect(str(MC)))

        assert step.actions == (DeleteMediaConnection(MC),)
        assert step.terminal

    def test_disconnect_for_other_connection_ignored(self, media_state):
        step = media.transition(media_state, Command.disconnect("mc-other"))
        assert not step.terminal

    def test_pli_targets_video_rtcp_redirect(self, media_state):
        step = media.transition(media_state, Command.pli())

        (action,) = step.actions
        assert isinstance(action, SendPli)
        assert action.connection_id == MC
        assert action.target == SocketInfo(ip_v4="127.0.0.1", port=20001)

    def test_pli_for_other_connection_ignored(self, media_state):
        step = media.transition(media_state, Command.pli("mc-other"))
        assert step.actions == ()

    def test_pli_without_video_redirect_does_nothing(self):
        state = media.MediaConnectionState(MC)

        assert state.pli_target is None
        assert media.transition(state, Command.pli()).actions == ()
