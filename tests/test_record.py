# Tests for the entry record format
#
# Coverage:
#   - Key parsing (well-known vs Other), structural equality
#   - Field parsing: first "=" wins, "!" sensitivity marker
#   - Record encode/decode: order, duplicates, line endings, bad lines
#   - Construction guards for unserializable keys/values
#   - Rendering: selection policy, redaction cap, purity

import io

import pytest

from lockbox.errors import FormatViolation
from lockbox.record import (
    DEFAULT_DISPLAY_KEYS,
    MAX_REDACTED_LENGTH,
    DisplayOptions,
    Field,
    Insensitive,
    Key,
    KeyKind,
    Record,
    Sensitive,
)


def _sample_record():
    return Record([
        Field(Key.NAME, Insensitive("github")),
        Field(Key.parse("secret"), Sensitive("hunter2")),
        Field(Key.USERNAME, Insensitive("octocat")),
        Field(Key.URL, Insensitive("https://github.com/login?next=/settings&x=1")),
        Field(Key.other("tag"), Insensitive("work")),
        Field(Key.other("tag"), Insensitive("code")),
        Field(Key.other("pin"), Sensitive("1234")),
    ])


# ── Keys ────────────────────────────────────────────────────────────


class TestKey:
    def test_well_known_parse(self):
        key = Key.parse("password")
        assert key == Key.PASSWORD
        assert key.kind is KeyKind.PASSWORD
        assert key.is_well_known
        assert str(key) == "password"

    def test_unknown_parse_is_other(self):
        key = Key.parse("favorite-color")
        assert key == Key.other("favorite-color")
        assert key.kind is KeyKind.OTHER
        assert not key.is_well_known
        assert str(key) == "favorite-color"

    @pytest.mark.parametrize("text", ["name", "username", "email", "password", "url", "notes"])
    def test_every_well_known_key_round_trips(self, text):
        key = Key.parse(text)
        assert key.is_well_known
        assert str(key) == text

    def test_other_equality_is_structural(self):
        assert Key.other("x") == Key.other("x")
        assert hash(Key.other("x")) == hash(Key.other("x"))
        assert len({Key.other("x"), Key.parse("x")}) == 1

    def test_other_with_well_known_text_is_distinct(self):
        assert Key.other("password") != Key.PASSWORD

    def test_literal_other_text_is_other(self):
        assert Key.parse("other") == Key.other("other")

    def test_inconsistent_well_known_rejected(self):
        with pytest.raises(ValueError):
            Key(KeyKind.NAME, "nope")


# ── Fields ──────────────────────────────────────────────────────────


class TestField:
    def test_parse_splits_on_first_delimiter(self):
        field = Field.parse("url=https://example.com/?a=b&c=d")
        assert field.key == Key.URL
        assert field.value == Insensitive("https://example.com/?a=b&c=d")

    def test_parse_sensitive_marker(self):
        field = Field.parse("password!=hunter2")
        assert field.key == Key.PASSWORD
        assert field.value == Sensitive("hunter2")
        assert field.value.sensitive

    def test_parse_empty_value(self):
        assert Field.parse("notes=").value == Insensitive("")

    def test_parse_without_delimiter(self):
        with pytest.raises(FormatViolation):
            Field.parse("no delimiter here")

    def test_sensitive_and_insensitive_values_differ(self):
        assert Sensitive("x") != Insensitive("x")

    def test_encode(self):
        assert Field(Key.PASSWORD, Sensitive("a=b")).encode() == "password!=a=b"
        assert Field(Key.NAME, Insensitive("n")).encode() == "name=n"

    def test_new_accepts_text(self):
        field = Field.new("email", "me@example.com")
        assert field == Field(Key.EMAIL, Insensitive("me@example.com"))

    def test_key_with_delimiter_rejected(self):
        with pytest.raises(ValueError):
            Field(Key.other("a=b"), Insensitive("v"))

    def test_insensitive_key_ending_with_marker_rejected(self):
        with pytest.raises(ValueError):
            Field(Key.other("loud!"), Insensitive("v"))

    def test_sensitive_key_ending_with_marker_round_trips(self):
        field = Field.parse("a!!=v")
        assert field == Field(Key.other("a!"), Sensitive("v"))
        assert field.encode() == "a!!=v"
        assert Record.from_text("a!!=v\n").to_text() == "a!!=v\n"

    def test_value_with_newline_rejected(self):
        with pytest.raises(ValueError):
            Field(Key.NOTES, Insensitive("line one\nline two"))


# ── Encoding ────────────────────────────────────────────────────────


class TestRecordEncoding:
    def test_round_trip_keeps_order_and_duplicates(self):
        record = _sample_record()
        decoded = Record.from_text(record.to_text())
        assert decoded == record
        assert [str(f.key) for f in decoded] == [
            "name", "secret", "username", "url", "tag", "tag", "pin",
        ]

    def test_text_layout(self):
        record = Record([
            Field(Key.NAME, Insensitive("github")),
            Field(Key.parse("secret"), Sensitive("hunter2")),
        ])
        assert record.to_text() == "name=github\nsecret!=hunter2\n"

    def test_serialize_writes_utf8_lines(self):
        record = Record([Field(Key.NOTES, Insensitive("café"))])
        sink = io.BytesIO()
        record.serialize(sink)
        assert sink.getvalue() == "notes=café\n".encode("utf-8")

    def test_deserialize_from_stream(self):
        record = _sample_record()
        source = io.BytesIO(record.to_text().encode("utf-8"))
        assert Record.deserialize(source) == record

    def test_last_line_without_newline(self):
        record = Record.from_text("name=a\nemail=b@c")
        assert record.get("email") == [Insensitive("b@c")]

    def test_crlf_line_endings(self):
        record = Record.from_text("name=a\r\npassword!=b\r\n")
        assert record.fields == [
            Field(Key.NAME, Insensitive("a")),
            Field(Key.PASSWORD, Sensitive("b")),
        ]

    def test_empty_text_is_empty_record(self):
        assert len(Record.from_text("")) == 0

    def test_unknown_keys_are_not_errors(self):
        record = Record.from_text("favorite-color=blue\n")
        assert record.fields[0].key == Key.other("favorite-color")

    def test_bad_line_aborts_whole_decode(self):
        with pytest.raises(FormatViolation) as exc_info:
            Record.from_text("name=a\nthis line is broken\nemail=b\n")
        assert exc_info.value.line_number == 2
        assert exc_info.value.line == "this line is broken"

    def test_blank_line_is_a_violation(self):
        with pytest.raises(FormatViolation):
            Record.from_text("name=a\n\nemail=b\n")

    def test_invalid_utf8_is_a_violation(self):
        with pytest.raises(FormatViolation):
            Record.deserialize(io.BytesIO(b"name=\xff\xfe\n"))

    def test_get_returns_all_values_in_order(self):
        assert _sample_record().get("tag") == [Insensitive("work"), Insensitive("code")]


# ── Rendering ───────────────────────────────────────────────────────


class TestRender:
    def test_default_keys(self):
        assert DEFAULT_DISPLAY_KEYS == {Key.NAME, Key.USERNAME, Key.EMAIL, Key.URL}

    def test_defaults_hide_unselected_fields(self):
        lines = _sample_record().render(DisplayOptions.defaults())
        assert lines == [
            "name: github",
            "username: octocat",
            "url: https://github.com/login?next=/settings&x=1",
        ]

    def test_show_all_redacts_secrets(self):
        lines = _sample_record().render(DisplayOptions.everything(), show_secrets=False)
        assert "secret: *******" in lines
        assert "pin: ****" in lines
        assert not any("hunter2" in line for line in lines)

    def test_show_secrets_reveals(self):
        lines = _sample_record().render(DisplayOptions.everything(), show_secrets=True)
        assert "secret: hunter2" in lines
        assert "pin: 1234" in lines

    def test_redaction_caps_length(self):
        long_secret = "x" * 40
        record = Record([Field(Key.PASSWORD, Sensitive(long_secret))])
        (line,) = record.render(DisplayOptions.everything())
        assert line == "password: " + "*" * MAX_REDACTED_LENGTH

    @pytest.mark.parametrize("secret", ["", "a", "abc", "p" * 16, "q" * 17, "é" * 5])
    def test_redaction_is_min_of_length_and_cap(self, secret):
        shown = Field(Key.PASSWORD, Sensitive(secret)).render(show_secrets=False)
        masked = shown[len("password: "):]
        assert masked == "*" * min(len(secret), 16)
        assert set(masked) <= {"*"}

    def test_insensitive_values_are_never_masked(self):
        record = Record([Field(Key.NOTES, Insensitive("plain"))])
        assert record.render(DisplayOptions.everything()) == ["notes: plain"]

    def test_empty_options_select_nothing(self):
        assert _sample_record().render(DisplayOptions()) == []

    def test_with_keys_extends_selection(self):
        options = DisplayOptions().with_keys(["tag", Key.NAME])
        assert _sample_record().render(options) == [
            "name: github", "tag: work", "tag: code",
        ]

    def test_render_does_not_mutate(self):
        record = _sample_record()
        before = record.to_text()
        record.render(DisplayOptions.everything(), show_secrets=True)
        record.render(DisplayOptions.everything(), show_secrets=False)
        assert record.to_text() == before

    def test_display_writes_lines(self):
        out = io.StringIO()
        _sample_record().display(out, DisplayOptions().with_keys(["name"]))
        assert out.getvalue() == "name: github\n"
