import streamlit as st

from config.app_config import get_config
from services.auth_service import AuthenticationError, get_auth_service
from services.chatbot_service import get_chatbot_service
from services.ui_service import clear_staff_console, get_chat_widget, get_staff_console
from utils.logging_config import get_logger, initialize_logging

# Initialize logging and error tracking
error_tracker = initialize_logging()
logger = get_logger(__name__)

# Get configuration
config = get_config()

st.set_page_config(page_title=config.ui.app_title, page_icon="🏛️")

AVATARS = {"user": "🙂", "bot": "🤖", "staff": "🧑‍💼", "system": "ℹ️"}


@st.cache_resource
def warm_up_chatbot():
    """Load the dataset once per server process"""
    chatbot = get_chatbot_service()
    chatbot.warm_up()
    return chatbot


def render_transcript(entries):
    for entry in entries:
        with st.chat_message("user" if entry.role == "user" else "assistant", avatar=AVATARS.get(entry.role)):
            if entry.sender_name and entry.role == "staff":
                st.caption(entry.sender_name)
            st.markdown(entry.content)


def visitor_page():
    """Public chat page: bot answers, with hand-off to staff"""
    warm_up_chatbot()
    widget = get_chat_widget()

    st.title(config.ui.app_title)
    st.caption(f"Chatting with {'our staff team' if widget.in_staff_chat else config.ui.bot_name}")

    with st.sidebar:
        widget.visitor_name = st.text_input("Your name", value=widget.visitor_name) or "Anonymous"
        if widget.in_staff_chat:
            if st.button("Return to assistant", use_container_width=True):
                widget.leave_staff_chat()
                st.rerun()
        elif st.button("Chat with Agent", type="primary", use_container_width=True, disabled=widget.is_loading):
            widget.connect_to_staff()
            st.rerun()

    @st.fragment(run_every=config.handoff.poll_interval if widget.in_staff_chat else None)
    def live_transcript():
        widget.touch()
        render_transcript(widget.transcript)

    live_transcript()

    if "visitor_draft" not in st.session_state:
        st.session_state.visitor_draft = ""

    with st.form("visitor_input", clear_on_submit=False):
        text = st.text_input("Message", key="visitor_draft", label_visibility="collapsed",
                             placeholder="Type your question...")
        submitted = st.form_submit_button("Send")

    if submitted and widget.send(text):
        del st.session_state["visitor_draft"]
        st.rerun()


def staff_login():
    auth = get_auth_service()
    st.title("Staff Sign In")
    with st.form("staff_login"):
        email = st.text_input("Email")
        password = st.text_input("Password", type="password")
        if st.form_submit_button("Sign In", type="primary"):
            try:
                auth.sign_in(email, password)
                st.rerun()
            except AuthenticationError as e:
                st.error(str(e))


def staff_page():
    """Staff console: unassigned queue, own conversations, replies"""
    auth = get_auth_service()
    user = auth.current_user()
    if user is None:
        staff_login()
        return
    if not auth.can_access_staff_console(user):
        st.error("Your account does not have access to the staff console.")
        return

    console = get_staff_console(user)

    with st.sidebar:
        st.write(f"**{user.display_name}** ({user.role})")
        if st.button("Sign out", use_container_width=True):
            clear_staff_console(user)
            auth.sign_out()
            st.rerun()
        if config.debug:
            with st.expander("Diagnostics"):
                st.json(error_tracker.get_error_summary())

    @st.fragment(run_every=config.handoff.poll_interval)
    def queues():
        left, right = st.columns([1, 2])
        with left:
            st.subheader(f"Unassigned ({len(console.unassigned)})")
            for conversation in console.unassigned:
                st.write(f"**{conversation.visitor_display_name}**: {conversation.last_message or ''}")
                if st.button("Claim", key=f"claim_{conversation.id}"):
                    error = console.claim(conversation.id)
                    if error:
                        st.warning(error)
                    else:
                        st.rerun()

            st.subheader(f"My conversations ({len(console.assigned)})")
            for conversation in console.assigned:
                label = f"{conversation.visitor_display_name} · {conversation.status.value}"
                if st.button(label, key=f"open_{conversation.id}", use_container_width=True):
                    console.select(conversation.id)
                    st.rerun()

        with right:
            selected = console.selected
            if selected is None:
                st.info("Select a conversation to view its messages.")
                return
            st.subheader(selected.visitor_display_name)
            for message in console.messages:
                role = message.sender_role.value
                with st.chat_message("assistant" if role != "visitor" else "user"):
                    st.markdown(message.text)

            actions = st.columns(2)
            if not selected.is_done:
                if actions[0].button("Unassign", key="unassign"):
                    error = console.unclaim(selected.id)
                    if error:
                        st.warning(error)
                    st.rerun()
                if actions[1].button("End session", key="end_session"):
                    error = console.end_session(selected.id)
                    if error:
                        st.warning(error)
                    st.rerun()

    queues()

    selected = console.selected
    if selected is not None and not selected.is_done:
        with st.form("staff_reply", clear_on_submit=False):
            text = st.text_area("Reply", key="staff_draft")
            if st.form_submit_button("Send", type="primary"):
                error = console.reply(text)
                if error:
                    st.error(error)
                else:
                    del st.session_state["staff_draft"]
                    st.rerun()


navigation = st.navigation([
    st.Page(visitor_page, title="Chat", icon="💬", default=True),
    st.Page(staff_page, title="Staff Console", icon="🧑‍💼", url_path="staff"),
])
logger.info("Application started")
navigation.run()
