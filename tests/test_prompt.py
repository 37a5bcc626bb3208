"""Unit tests for prompt assembly and document folding."""
from hypothesis import given
from hypothesis import strategies as st

from llamachat.conversation import DocumentAttachment, ImageAttachment, Message, Role
from llamachat.llm import assemble, fold_document
from llamachat.llm.prompt import document_prompt

messages_strategy = st.lists(
    st.builds(
        Message,
        role=st.sampled_from([Role.USER, Role.ASSISTANT]),
        content=st.text(max_size=40),
    ),
    max_size=8,
)


def _document(content: str | None = "col1,col2\n1,2") -> DocumentAttachment:
    return DocumentAttachment(url="/uploads/1-abc.csv", original_name="data.csv", content=content)


class TestAssemble:
    """Tests for the flattened text prompt."""

    def test_two_turn_transcript(self):
        """Test the exact text produced for one question and one answer."""
        history = [
            Message(role=Role.USER, content="a"),
            Message(role=Role.ASSISTANT, content="b"),
        ]
        assert assemble(history) == "User: a\n\nAssistant: b\n\n"

    def test_empty_history(self):
        """Test that an empty transcript assembles to an empty prompt."""
        assert assemble([]) == ""

    def test_empty_content_keeps_label(self):
        """Test that a message without text still contributes its label."""
        assert assemble([Message(role=Role.USER, content="")]) == "User: \n\n"

    @given(messages_strategy)
    def test_blocks_follow_transcript_order(self, history):
        """Property: the prompt is the concatenation of one block per message."""
        expected = "".join(
            f"{'User' if m.role == Role.USER else 'Assistant'}: {m.content}\n\n"
            for m in history
        )
        assert assemble(history) == expected


class TestFoldDocument:
    """Tests for folding document text into the last question."""

    def test_folds_into_last_user_message(self):
        """Test that the last user message is rewritten around the document."""
        history = [Message(role=Role.USER, content="Summarize", attachment=_document())]

        folded = fold_document(history)

        assert folded[-1].content == (
            "[Document: data.csv]\n\ncol1,col2\n1,2\n\n---\n\nUser Question: Summarize"
        )

    def test_default_question_when_empty(self):
        """Test that a document sent without text gets a default question."""
        content = document_prompt(_document("text"), "")
        assert content.endswith("User Question: Please analyze this document.")

    def test_input_is_not_mutated(self):
        """Test that folding leaves the stored transcript untouched."""
        original = Message(role=Role.USER, content="Summarize", attachment=_document())
        history = [original]

        fold_document(history)

        assert history[0] is original
        assert history[0].content == "Summarize"

    def test_only_last_message_is_folded(self):
        """Test that documents on earlier turns are not re-sent."""
        history = [
            Message(role=Role.USER, content="First", attachment=_document()),
            Message(role=Role.ASSISTANT, content="Done"),
            Message(role=Role.USER, content="Thanks"),
        ]

        folded = fold_document(history)

        assert [m.content for m in folded] == ["First", "Done", "Thanks"]

    def test_unparsed_document_is_left_alone(self):
        """Test that a document without extracted text is not folded."""
        history = [Message(role=Role.USER, content="Summarize", attachment=_document(None))]
        assert fold_document(history)[0].content == "Summarize"

    def test_images_are_not_folded(self):
        """Test that image attachments never change the text."""
        image = ImageAttachment(url="/uploads/1-abc.png", data="aGVsbG8=")
        history = [Message(role=Role.USER, content="What is this?", attachment=image)]
        assert fold_document(history)[0].content == "What is this?"

    @given(messages_strategy)
    def test_length_is_preserved(self, history):
        """Property: folding never adds or drops messages."""
        assert len(fold_document(history)) == len(history)
