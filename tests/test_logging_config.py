import json
import logging

from bridge.logging_config import ConversationLogger, JSONFormatter, get_logger


def make_record(**extra):
    record = logging.LogRecord("bridge.test", logging.INFO, __file__, 1, "Message sent", None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJSONFormatter:
    def test_formats_basic_record(self):
        data = json.loads(JSONFormatter().format(make_record()))

        assert data["level"] == "INFO"
        assert data["logger"] == "bridge.test"
        assert data["message"] == "Message sent"
        assert "context" not in data

    def test_includes_context(self):
        data = json.loads(JSONFormatter().format(make_record(context={"conversation": "91987@s.whatsapp.net"})))
        assert data["context"] == {"conversation": "91987@s.whatsapp.net"}

    def test_keeps_non_ascii(self):
        record = logging.LogRecord("bridge.test", logging.INFO, __file__, 1, "बैलेंस", None, None)
        assert "बैलेंस" in JSONFormatter().format(record)


class TestConversationLogger:
    def test_merges_adapter_and_call_context(self):
        adapter = ConversationLogger(get_logger("test"), {"conversation": "91987@s.whatsapp.net"})

        msg, kwargs = adapter.process("hello", {"context": {"message_id": "ABC"}})

        assert msg == "hello"
        assert kwargs["extra"] == {"context": {"conversation": "91987@s.whatsapp.net", "message_id": "ABC"}}

    def test_logger_namespace(self):
        assert get_logger("dispatch_service").name == "bridge.dispatch_service"
