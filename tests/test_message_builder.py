"""Tests for transcript assembly, mentions and image helpers."""

import base64

import pytest

from chorus.models.chat import ImagePart, TextPart
from chorus.models.domain import Conversation, ConversationType, Identity, Message, Participant
from chorus.services.images import extract_markdown_images
from chorus.services.message_builder import (
    build_chat_messages,
    build_group_roster,
    participant_label,
    resolve_target_models,
)
from chorus.utils.images import to_data_uri
from chorus.utils.mentions import extract_mentioned_model_ids, parse_mentions, strip_mentions


class TestResolveTargets:
    """Tests for choosing the responding models."""

    def test_single_conversation(self, conversation, model):
        assert resolve_target_models(conversation, ["other"]) == [model.id]

    def test_group_all_participants(self, group_conversation, group_models):
        assert resolve_target_models(group_conversation) == [m.id for m in group_models]

    def test_group_mentions_in_participant_order(self, group_conversation, group_models):
        """Test mentions filter the participants but keep their order."""
        alpha, beta = group_models
        assert resolve_target_models(group_conversation, [beta.id, alpha.id]) == [alpha.id, beta.id]
        assert resolve_target_models(group_conversation, [beta.id]) == [beta.id]


class TestParticipantLabels:
    """Tests for participant naming."""

    def test_identity_name_preferred(self, catalog, model):
        identity = Identity(name="Sage")
        catalog.add_identity(identity)
        assert participant_label(Participant(model_id=model.id, identity_id=identity.id), catalog) == "Sage"

    def test_model_display_name(self, catalog, model):
        assert participant_label(Participant(model_id=model.id), catalog) == "GPT 4o"

    def test_unknown_model_falls_back_to_id(self, catalog):
        assert participant_label(Participant(model_id="ghost"), catalog) == "ghost"

    def test_roster_marks_target(self, group_conversation, group_models, catalog):
        roster = build_group_roster(group_conversation, Participant(model_id=group_models[1].id), catalog)
        assert "- Alpha\n- Beta  <- you" in roster

    def test_roster_marks_persona_not_shared_model(self, catalog, model):
        """Test two personas on one model: only the target persona is marked."""
        optimist, skeptic = Identity(name="Optimist"), Identity(name="Skeptic")
        catalog.add_identity(optimist)
        catalog.add_identity(skeptic)
        conversation = Conversation(
            type=ConversationType.GROUP,
            participants=[
                Participant(model_id=model.id, identity_id=optimist.id),
                Participant(model_id=model.id, identity_id=skeptic.id),
            ],
        )

        roster = build_group_roster(conversation, Participant(model_id=model.id, identity_id=skeptic.id), catalog)

        assert "- Optimist\n- Skeptic  <- you" in roster
        assert roster.count("<- you") == 1


class TestBuildChatMessages:
    """Tests for the provider-facing transcript."""

    @pytest.mark.asyncio
    async def test_single_conversation(self, conversation, model):
        """Test the persona prompt leads and stored system messages are skipped."""
        history = [
            Message(conversation_id=conversation.id, role="system", content="internal note"),
            Message(conversation_id=conversation.id, role="user", content="Hi"),
            Message(conversation_id=conversation.id, role="assistant", content="Hello", sender_model_id=model.id),
        ]
        identity = Identity(name="Sage", system_prompt="You are wise.")

        messages = await build_chat_messages(history, model.id, identity, conversation)

        assert [(m.role, m.content) for m in messages] == [
            ("system", "You are wise."),
            ("user", "Hi"),
            ("assistant", "Hello"),
        ]

    @pytest.mark.asyncio
    async def test_group_relabels_other_speakers(self, group_conversation, group_models, catalog):
        """Test other models' turns become user turns with a speaker prefix."""
        alpha, beta = group_models
        history = [
            Message(conversation_id=group_conversation.id, role="user", content="Thoughts?"),
            Message(
                conversation_id=group_conversation.id,
                role="assistant",
                content="I think yes",
                sender_model_id=alpha.id,
                sender_name="Alpha",
            ),
            Message(
                conversation_id=group_conversation.id,
                role="assistant",
                content="I think no",
                sender_model_id=beta.id,
                sender_name="Beta",
            ),
        ]

        messages = await build_chat_messages(history, beta.id, None, group_conversation, catalog)

        assert messages[0].role == "system"
        assert "Beta  <- you" in messages[0].content
        assert [(m.role, m.content) for m in messages[1:]] == [
            ("user", "[User said]: Thoughts?"),
            ("user", "[Alpha said]: I think yes"),
            ("assistant", "I think no"),
        ]

    @pytest.mark.asyncio
    async def test_group_persona_prompt_precedes_roster(self, group_conversation, group_models, catalog):
        identity = Identity(name="Critic", system_prompt="Be critical.")
        messages = await build_chat_messages([], group_models[0].id, identity, group_conversation, catalog)
        assert messages[0].content.startswith("Be critical.\n\nYou are in a group chat")

    @pytest.mark.asyncio
    async def test_group_roster_follows_persona(self, catalog, model):
        """Test the roster marks the participant matching the target's persona."""
        host, guest = Identity(name="Host", system_prompt="Moderate."), Identity(name="Guest")
        catalog.add_identity(host)
        catalog.add_identity(guest)
        conversation = Conversation(
            type=ConversationType.GROUP,
            participants=[
                Participant(model_id=model.id, identity_id=guest.id),
                Participant(model_id=model.id, identity_id=host.id),
            ],
        )

        messages = await build_chat_messages([], model.id, host, conversation, catalog)

        assert "- Guest\n- Host  <- you" in messages[0].content

    @pytest.mark.asyncio
    async def test_images_inlined(self, conversation, model, tmp_path):
        """Test local images become data URIs and unreadable ones are skipped."""
        image = tmp_path / "pixel.png"
        image.write_bytes(b"\x89PNG")
        history = [
            Message(
                conversation_id=conversation.id,
                role="user",
                content="Look",
                images=[str(image), str(tmp_path / "missing.png"), "https://example.com/cat.jpg"],
            )
        ]

        [message] = await build_chat_messages(history, model.id)

        assert isinstance(message.content[0], TextPart)
        encoded = base64.b64encode(image.read_bytes()).decode()
        urls = [part.image_url.url for part in message.content if isinstance(part, ImagePart)]
        assert urls == [f"data:image/png;base64,{encoded}", "https://example.com/cat.jpg"]

    @pytest.mark.asyncio
    async def test_group_prefix_on_multimodal_content(self, group_conversation, group_models, catalog):
        history = [
            Message(
                conversation_id=group_conversation.id,
                role="user",
                content="See",
                images=["data:image/png;base64,AAA"],
            )
        ]
        messages = await build_chat_messages(history, group_models[0].id, None, group_conversation, catalog)
        assert messages[1].content[0].text == "[User said]: See"


class TestMentions:
    """Tests for @mention parsing."""

    @pytest.fixture
    def names(self):
        return {"m1": "GPT 4o", "m2": "Claude"}

    def test_whitespace_insensitive(self, names):
        matches = parse_mentions("hey @gpt4o what do you think", names)
        assert [(m.model_id, m.display_name) for m in matches] == [("m1", "GPT 4o")]
        assert matches[0].start == 4

    def test_multiple_and_unknown(self, names):
        assert extract_mentioned_model_ids("@Claude and @GPT4o, not @nobody", names) == ["m2"]
        assert extract_mentioned_model_ids("@Claude @GPT4o", names) == ["m2", "m1"]

    def test_trailing_punctuation_is_part_of_token(self, names):
        """Test a mention token runs to the next whitespace."""
        assert extract_mentioned_model_ids("@GPT4o, hi", names) == []

    def test_strip(self):
        assert strip_mentions("@Claude summarize") == "summarize"


class TestImageHelpers:
    """Tests for image helpers."""

    def test_passthrough(self):
        assert to_data_uri("data:image/png;base64,AAA") == "data:image/png;base64,AAA"
        assert to_data_uri("https://example.com/a.png") == "https://example.com/a.png"

    def test_file_url(self, tmp_path):
        image = tmp_path / "photo.jpg"
        image.write_bytes(b"abc")
        assert to_data_uri(f"file://{image}") == "data:image/jpeg;base64,YWJj"

    def test_missing_file(self, tmp_path):
        with pytest.raises(OSError):
            to_data_uri(str(tmp_path / "nope.png"))

    def test_extract_markdown_images(self):
        """Test data-URI image markdown is removed from content and collected."""
        content, images = extract_markdown_images("Here you go ![chart](data:image/png;base64,QUJD)\n")
        assert content == "Here you go"
        assert images == ["data:image/png;base64,QUJD"]

    def test_no_images_unchanged(self):
        assert extract_markdown_images("  plain ![x](https://remote/x.png)  ") == (
            "  plain ![x](https://remote/x.png)  ",
            [],
        )
