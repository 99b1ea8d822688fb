import asyncio
import json
import logging

from healthsync.core.logging import (
    DevelopmentFormatter,
    LogContext,
    SecretRedactionFilter,
    StructuredFormatter,
    get_logger,
)


def make_record(message, *args):
    return logging.getLogger("healthsync.test").makeRecord(
        "healthsync.test", logging.INFO, __file__, 10, message, args, None
    )


def test_get_logger_namespaces_names():
    assert get_logger("flow").name == "healthsync.flow"
    assert get_logger("healthsync.flow.controller").name == "healthsync.flow.controller"


def test_log_context_attaches_and_restores_fields():
    with LogContext(client_id="tab-1", state="LOGIN_FORM"):
        with LogContext(user_id="u1"):
            inner = make_record("inner")
        outer = make_record("outer")
    after = make_record("after")

    assert (inner.client_id, inner.state, inner.user_id) == ("tab-1", "LOGIN_FORM", "u1")
    assert outer.client_id == "tab-1"
    assert not hasattr(outer, "user_id")
    assert not hasattr(after, "client_id")


async def test_log_context_is_isolated_between_tasks():
    seen = {}

    async def flow(client_id):
        with LogContext(client_id=client_id):
            await asyncio.sleep(0)
            seen[client_id] = make_record("step").client_id

    await asyncio.gather(flow("tab-a"), flow("tab-b"))
    assert seen == {"tab-a": "tab-a", "tab-b": "tab-b"}


def test_structured_formatter_emits_json_with_context():
    with LogContext(client_id="tab-1", purpose="registration"):
        record = make_record("Code sent to %s", "a@b.com")

    entry = json.loads(StructuredFormatter().format(record))

    assert entry["message"] == "Code sent to a@b.com"
    assert entry["level"] == "INFO"
    assert entry["client_id"] == "tab-1"
    assert entry["purpose"] == "registration"


def test_development_formatter_appends_context():
    with LogContext(client_id="tab-1"):
        record = make_record("Login succeeded")

    line = DevelopmentFormatter().format(record)

    assert "Login succeeded" in line
    assert "[client_id=tab-1]" in line


def test_redaction_masks_bearer_and_jwt():
    token = "eyJhbGciOi.eyJzdWIiOiJ1MSJ9.c2lnbmF0dXJl"
    record = make_record("Authorization: Bearer %s", token)

    assert SecretRedactionFilter().filter(record) is True
    assert record.getMessage() == "Authorization: Bearer ***"

    bare = make_record(f"token={token}")
    SecretRedactionFilter().filter(bare)
    assert bare.getMessage() == "token=***"


def test_redaction_leaves_plain_messages():
    record = make_record("Location saved for %s", "u1")
    SecretRedactionFilter().filter(record)
    assert record.msg == "Location saved for %s"
