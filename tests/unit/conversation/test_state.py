"""
Unit tests for ConversationState and the conversation data model.

Tests cover:
- Message ordering and snapshot isolation
- clear_messages / reset semantics
- Image messages (structured content)
- System prompt handling
- update_config merging and immutable fields
- build_messages linearization and dispatch validation
"""

import pytest

from parley.conversation import BaseConfig, ConversationState, ImagePart, Message, TextPart
from parley.diagnostics import EventKind, MemorySink
from parley.errors import EmptyConversationError, NoUserTurnError, ValidationError


@pytest.fixture
def state():
    return ConversationState({"api_key": "test-key"})


class TestBaseConfig:
    """Tests for BaseConfig construction and defaults."""

    def test_defaults(self):
        config = BaseConfig(api_key="k")
        assert config.provider_id == "openai"
        assert config.model is None
        assert config.temperature == 0.7
        assert config.max_tokens == 1000
        assert config.system_prompt == ""
        assert config.debug_enabled is False
        assert config.timeout_ms == 30000
        assert config.retry_attempts == 3

    def test_missing_api_key_raises(self):
        with pytest.raises(ValidationError):
            ConversationState({"api_key": ""})

    def test_blank_api_key_raises(self):
        with pytest.raises(ValidationError, match="API key"):
            ConversationState({"api_key": "   "})

    def test_temperature_out_of_range_raises(self):
        with pytest.raises(ValidationError):
            ConversationState({"api_key": "k", "temperature": 2.5})

    def test_non_positive_retry_attempts_raises(self):
        with pytest.raises(ValidationError):
            ConversationState({"api_key": "k", "retry_attempts": 0})

    def test_unknown_field_raises(self):
        with pytest.raises(ValidationError):
            ConversationState({"api_key": "k", "temprature": 0.2})

    def test_api_key_not_in_repr(self):
        assert "secret-value" not in repr(BaseConfig(api_key="secret-value"))


class TestMessages:
    """Tests for adding and reading messages."""

    def test_messages_in_call_order(self, state):
        state.add_user_message("one").add_assistant_message("two").add_user_message("three")
        messages = state.get_messages()
        assert [m.role for m in messages] == ["user", "assistant", "user"]
        assert [m.content for m in messages] == ["one", "two", "three"]

    def test_add_message_defaults_to_user(self, state):
        state.add_message("hi")
        assert state.get_messages()[0].role == "user"

    def test_duplicates_allowed(self, state):
        state.add_user_message("same").add_user_message("same")
        assert len(state.get_messages()) == 2

    def test_mutators_are_chainable(self, state):
        assert state.add_user_message("a") is state
        assert state.clear_messages() is state
        assert state.set_system_prompt("p") is state
        assert state.reset() is state

    def test_snapshot_mutation_does_not_affect_state(self, state):
        state.add_user_message("hello")
        snapshot = state.get_messages()
        snapshot.append(Message(role="assistant", content="injected"))
        snapshot.clear()
        assert len(state.get_messages()) == 1

    def test_messages_are_frozen(self, state):
        state.add_user_message("hello")
        message = state.get_messages()[0]
        with pytest.raises(Exception):
            message.content = "changed"

    def test_system_role_rejected(self, state):
        with pytest.raises(ValidationError, match="set_system_prompt"):
            state.add_message("be nice", role="system")
        assert state.get_messages() == []

    def test_add_image_message(self, state):
        state.add_image_message("What is this?", "https://example.com/cat.png")
        message = state.get_messages()[0]
        assert message.role == "user"
        assert message.content == (
            TextPart(text="What is this?"),
            ImagePart(url="https://example.com/cat.png"),
        )
        assert message.text == "What is this?"
        assert message.is_structured

    def test_structured_content_from_dicts(self, state):
        state.add_user_message([
            {"type": "text", "text": "look"},
            {"type": "image_url", "url": "data:image/png;base64,AAAA"},
        ])
        parts = state.get_messages()[0].content
        assert isinstance(parts[1], ImagePart)

    def test_malformed_part_raises_validation_error(self, state):
        with pytest.raises(ValidationError):
            state.add_user_message([{"type": "audio", "data": "..."}])


class TestClearAndReset:
    """Tests for clear_messages() and reset()."""

    def test_clear_keeps_system_prompt(self, state):
        state.set_system_prompt("You are terse.").add_user_message("hi")
        state.clear_messages()
        assert state.get_messages() == []
        assert state.get_system_prompt() == "You are terse."

    def test_reset_clears_both(self, state):
        state.set_system_prompt("You are terse.").add_user_message("hi")
        state.reset()
        assert state.get_messages() == []
        assert state.get_system_prompt() == ""

    def test_reset_is_reflected_in_config(self, state):
        state.set_system_prompt("p").reset()
        assert state.config.system_prompt == ""


class TestConfig:
    """Tests for system prompt and update_config()."""

    def test_initial_system_prompt_from_config(self):
        state = ConversationState({"api_key": "k", "system_prompt": "Be brief."})
        assert state.get_system_prompt() == "Be brief."

    def test_set_system_prompt_reflected_in_config(self, state):
        state.set_system_prompt("new prompt")
        assert state.get_config().system_prompt == "new prompt"

    def test_update_config_merges(self, state):
        state.update_config(temperature=1.2, max_tokens=50)
        config = state.config
        assert config.temperature == 1.2
        assert config.max_tokens == 50
        assert config.api_key == "test-key"

    def test_update_config_ignores_api_key_and_provider(self, state):
        state.update_config(api_key="other", provider_id="anthropic", temperature=0.1)
        assert state.config.api_key == "test-key"
        assert state.config.provider_id == "openai"
        assert state.config.temperature == 0.1

    def test_update_config_system_prompt(self, state):
        state.update_config(system_prompt="from update")
        assert state.get_system_prompt() == "from update"

    def test_invalid_update_leaves_config_unchanged(self, state):
        with pytest.raises(ValidationError):
            state.update_config(temperature=5.0)
        assert state.config.temperature == 0.7

    def test_update_config_returns_new_instance(self, state):
        before = state.config
        state.update_config(max_tokens=10)
        assert before.max_tokens == 1000


class TestBuildMessages:
    """Tests for dispatch linearization."""

    def test_system_prompt_first(self, state):
        state.add_user_message("2+2?").set_system_prompt("You are terse.")
        messages = state.build_messages()
        assert messages[0] == Message(role="system", content="You are terse.")
        assert messages[1].content == "2+2?"

    def test_no_system_message_when_prompt_empty(self, state):
        state.add_user_message("hi")
        assert [m.role for m in state.build_messages()] == ["user"]

    def test_system_prompt_not_stored_in_history(self, state):
        state.set_system_prompt("p").add_user_message("hi")
        state.build_messages()
        assert [m.role for m in state.get_messages()] == ["user"]

    def test_empty_conversation_raises(self, state):
        with pytest.raises(EmptyConversationError):
            state.build_messages()

    def test_system_prompt_only_raises_no_user_turn(self, state):
        state.set_system_prompt("You are terse.")
        with pytest.raises(NoUserTurnError):
            state.build_messages()

    def test_assistant_only_raises_no_user_turn(self, state):
        state.add_assistant_message("Hello there")
        with pytest.raises(NoUserTurnError):
            state.build_messages()


class TestStateDiagnostics:
    """Tests for events recorded by the state."""

    def test_message_added_event(self):
        sink = MemorySink()
        state = ConversationState({"api_key": "k"}, diagnostics=sink)
        state.add_user_message("hello")

        assert sink.kinds() == [EventKind.MESSAGE_ADDED]
        assert sink.events[0].data["role"] == "user"
        assert sink.events[0].data["total_messages"] == 1

    def test_config_change_events(self):
        sink = MemorySink()
        state = ConversationState({"api_key": "k"}, diagnostics=sink)
        state.set_system_prompt("p").update_config(temperature=0.2).clear_messages().reset()

        assert sink.kinds() == [EventKind.CONFIG_CHANGE] * 4

    def test_config_change_never_exposes_api_key(self):
        sink = MemorySink()
        state = ConversationState({"api_key": "secret-value"}, diagnostics=sink)
        state.update_config(temperature=0.2)
        assert "secret-value" not in str(sink.events[0].data)

    def test_disabled_sink_records_nothing(self):
        sink = MemorySink(enabled=False)
        state = ConversationState({"api_key": "k"}, diagnostics=sink)
        state.add_user_message("hello")
        assert sink.events == []
