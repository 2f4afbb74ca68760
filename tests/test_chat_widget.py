"""
Tests for the visitor chat widget session
"""

from unittest.mock import patch

import pytest

from config.app_config import AppConfig
from infrastructure.store import StoreError
from services.chat_service.conversation_coordinator import HandoffState
from services.chat_service.models import StaffMember
from services.chat_service.staff_assignment import StaffAssignmentController
from services.chatbot_service.chatbot import ChatbotService
from services.chatbot_service.dataset_store import DatasetStore
from services.chatbot_service.models import DatasetEntry
from services.ui_service.chat_widget import ChatWidgetSession, close_idle_widgets


STAFF = StaffMember(uid="staff-a", display_name="Ana")


@pytest.fixture
def app_config(handoff_config):
    return AppConfig(handoff=handoff_config)


@pytest.fixture
def widget(store, app_config):
    chatbot = ChatbotService(dataset_store=DatasetStore.from_entries([
        DatasetEntry("Where is the barangay hall?", "location", "Beside the plaza."),
    ]))
    widget = ChatWidgetSession(store=store, chatbot=chatbot, config=app_config, visitor_name="Juan")
    yield widget
    widget.close()


@pytest.fixture
def controller(store, handoff_config):
    return StaffAssignmentController(store, handoff_config)


def contents(widget):
    return [(entry.role, entry.content) for entry in widget.transcript]


class TestBotMode:
    """Test the widget before any hand-off"""

    def test_starts_with_welcome(self, widget, app_config):
        assert contents(widget) == [("bot", app_config.ui.welcome_message)]
        assert not widget.in_staff_chat

    def test_send_appends_question_and_answer(self, widget):
        assert widget.send("  Where is the barangay hall?  ") is True

        assert contents(widget)[1:] == [
            ("user", "Where is the barangay hall?"),
            ("bot", "Beside the plaza."),
        ]

    @pytest.mark.parametrize("text", ["", "   ", None])
    def test_blank_input_ignored(self, widget, text):
        assert widget.send(text) is False
        assert len(widget.transcript) == 1

    def test_failed_send_keeps_input(self, widget, app_config):
        with patch.object(widget.coordinator, "handle_input", side_effect=StoreError("offline")):
            assert widget.send("hello there") is False

        assert contents(widget)[-1] == ("bot", app_config.ui.send_failed_message)
        assert widget.is_loading is False


class TestStaffChat:
    """Test hand-off to staff from the widget"""

    def test_connect_to_staff(self, widget, app_config):
        assert widget.connect_to_staff() is True

        assert widget.in_staff_chat
        assert widget.state is HandoffState.AWAITING_STAFF
        assert ("bot", app_config.ui.agent_connected_message) in contents(widget)
        assert contents(widget)[-1] == ("user", app_config.handoff.agent_request_message)

    def test_connect_twice_is_noop(self, widget):
        widget.connect_to_staff()
        conversation_id = widget.coordinator.conversation_id

        assert widget.connect_to_staff() is False
        assert widget.coordinator.conversation_id == conversation_id

    def test_connect_failure_message(self, widget, app_config):
        with patch.object(widget.coordinator, "request_agent", side_effect=StoreError("offline")):
            assert widget.connect_to_staff() is False

        assert not widget.in_staff_chat
        assert contents(widget)[-1] == ("bot", app_config.ui.agent_connect_failed_message)

    def test_messages_go_to_staff_not_bot(self, widget, store):
        widget.connect_to_staff()
        conversation_id = widget.coordinator.conversation_id

        assert widget.send("Where is the barangay hall?") is True

        assert contents(widget)[-1] == ("user", "Where is the barangay hall?")
        assert ("bot", "Beside the plaza.") not in contents(widget)
        assert store.get("conversations", conversation_id)["lastMessage"] == "Where is the barangay hall?"

    def test_staff_reply_shows_with_name(self, widget, controller):
        widget.connect_to_staff()
        conversation_id = widget.coordinator.conversation_id

        controller.claim(conversation_id, STAFF)
        controller.send_staff_message(conversation_id, "Hi Juan, how can I help?", STAFF)

        last = widget.transcript[-1]
        assert (last.role, last.content, last.sender_name) == ("staff", "Hi Juan, how can I help?", "Ana")
        assert widget.state is HandoffState.LIVE_WITH_STAFF

    def test_end_session_returns_to_bot_and_keeps_transcript(self, widget, controller):
        widget.connect_to_staff()
        conversation_id = widget.coordinator.conversation_id
        controller.claim(conversation_id, STAFF)
        controller.send_staff_message(conversation_id, "All sorted.", STAFF)

        controller.end_session(conversation_id, STAFF)

        assert not widget.in_staff_chat
        assert widget.live_entries == []
        assert ("staff", "All sorted.") in contents(widget)

        assert widget.send("Where is the barangay hall?") is True
        assert contents(widget)[-1] == ("bot", "Beside the plaza.")

    def test_leave_staff_chat(self, widget, app_config):
        widget.connect_to_staff()

        widget.leave_staff_chat()

        assert not widget.in_staff_chat
        assert contents(widget)[-1] == ("bot", app_config.ui.returned_to_bot_message)


class TestIdleWidgets:
    """Test closing hand-offs whose browser session went away"""

    def test_idle_staff_chat_is_closed(self, widget, app_config):
        widget.connect_to_staff()
        poller = widget.coordinator._poller

        closed = close_idle_widgets(60.0, now=widget.last_active + 61.0)

        assert closed >= 1
        assert not widget.in_staff_chat
        assert widget.coordinator._poller is None
        assert not poller.running

    def test_recently_active_staff_chat_is_kept(self, widget):
        widget.connect_to_staff()
        widget.touch()

        close_idle_widgets(60.0, now=widget.last_active + 30.0)

        assert widget.in_staff_chat

    def test_bot_mode_widget_is_left_alone(self, widget, app_config):
        close_idle_widgets(60.0, now=widget.last_active + 3600.0)

        assert not widget.in_staff_chat
        assert len(widget.transcript) == 1
