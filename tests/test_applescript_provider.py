import re

import pytest

from imessage_mcp.providers.applescript import AppleScriptProvider, build_send_script, escape_applescript_string
from imessage_mcp.providers.base import SendRequest
from imessage_mcp.providers.retry import RetryPolicy
from imessage_mcp.services.applescript import AppleScriptError

from conftest import FakeRunner

SEND_LITERAL = re.compile(r'send "((?:[^"\\]|\\.)*)" to targetBuddy')
PARTICIPANT_LITERAL = re.compile(r'participant "((?:[^"\\]|\\.)*)" of targetService')


def _unescape(literal: str) -> str:
    # AppleScript string literal rules for the escapes we emit
    return re.sub(r'\\(.)', lambda m: {"n": "\n", '"': '"', "\\": "\\"}[m.group(1)], literal)


def _provider(runner, sleeper, **kw):
    return AppleScriptProvider(runner=runner, sleep=sleeper, **kw)


def test_escaping_round_trip():
    original = 'path C:\\temp says "hi"\nsecond line \\n literal'
    script = build_send_script("+15551234567", original)
    literals = SEND_LITERAL.findall(script)
    assert len(literals) == 2  # structured lookup and buddy fallback
    for lit in literals:
        assert _unescape(lit) == original


def test_escape_applescript_string():
    assert escape_applescript_string('a\\b"c\nd') == 'a\\\\b\\"c\\nd'


def test_recipient_only_escapes_quotes():
    script = build_send_script('odd"name', "x")
    assert PARTICIPANT_LITERAL.search(script).group(1) == 'odd\\"name'


def test_script_falls_back_to_buddy_lookup_in_same_invocation():
    script = build_send_script("+15551234567", "hi")
    assert script.index("1st account whose service type = iMessage") < script.index('buddy "+15551234567"')
    assert '"error:" & errNum2 & ":" & errMsg2' in script


@pytest.mark.asyncio
async def test_send_normalizes_recipient(sleeper):
    runner = FakeRunner("success")
    result = await _provider(runner, sleeper).send_message(SendRequest("+1 (555) 123-4567", "hey"))
    assert result.success is True
    assert result.error is None
    assert 'participant "+15551234567"' in runner.scripts[-1]


@pytest.mark.asyncio
async def test_structured_error_is_classified(sleeper):
    runner = FakeRunner("error:-1728:Can't get participant: id 42")
    result = await _provider(runner, sleeper, retry_policy=RetryPolicy(max_retries=0)).send_message(
        SendRequest("nobody@example.com", "hi")
    )
    assert result.success is False
    assert result.error_code == "-1728"
    assert result.error == "AppleScript error -1728: Can't get participant: id 42"
    assert "recipient" in result.recommendation.lower()


@pytest.mark.asyncio
async def test_permission_error_short_circuits(sleeper):
    runner = FakeRunner("error:-1743:Not authorized to send Apple events to Messages.")
    result = await _provider(runner, sleeper).send_message(SendRequest("+15551234567", "hi"))
    assert runner.send_calls == 1
    assert sleeper.delays == []
    assert result.success is False
    assert result.error_code == "-1743"
    assert "Automation" in result.recommendation


@pytest.mark.asyncio
async def test_raised_permission_error_short_circuits(sleeper):
    runner = FakeRunner(AppleScriptError("execution error: Not authorized to send Apple events to Messages. (-1743)"))
    result = await _provider(runner, sleeper).send_message(SendRequest("+15551234567", "hi"))
    assert runner.send_calls == 1
    assert result.error_code == "-1743"


@pytest.mark.asyncio
async def test_exhaustion_returns_last_failure_after_three_attempts(sleeper):
    replies = {1: "error:-600:first", 2: "error:-1708:second", 3: "error:-600:third"}
    runner = FakeRunner(lambda n: replies[n])
    result = await _provider(runner, sleeper).send_message(SendRequest("+15551234567", "hi"))
    assert runner.send_calls == 3
    assert sleeper.delays == [2.0, 4.0]
    assert result.error == "AppleScript error -600: third"
    assert result.error_code == "-600"


@pytest.mark.asyncio
async def test_transport_failure_is_retried_then_succeeds(sleeper):
    def reply(n):
        return AppleScriptError("osascript: connection invalid") if n == 1 else "success"

    runner = FakeRunner(reply)
    result = await _provider(runner, sleeper).send_message(SendRequest("a@b.c", "hi"))
    assert result.success is True
    assert runner.send_calls == 2
    assert sleeper.delays == [2.0]


@pytest.mark.asyncio
async def test_retry_launches_messages_when_not_running(sleeper):
    runner = FakeRunner(lambda n: "error:-600:not running" if n == 1 else "success", running=False)
    result = await _provider(runner, sleeper).send_message(SendRequest("a@b.c", "hi"))
    assert result.success is True
    assert runner.launch_calls == 1


@pytest.mark.asyncio
async def test_failed_launch_does_not_stop_retries(sleeper):
    class LaunchFails(FakeRunner):
        async def __call__(self, script):
            if "activate" in script:
                self.scripts.append(script)
                raise AppleScriptError("cannot launch")
            return await super().__call__(script)

    runner = LaunchFails(lambda n: "error:-600:not running" if n < 3 else "success", running=False)
    result = await _provider(runner, sleeper).send_message(SendRequest("a@b.c", "hi"))
    assert result.success is True
    assert runner.send_calls == 3


@pytest.mark.asyncio
async def test_unrecognised_output_is_success_when_lenient(sleeper):
    runner = FakeRunner("missing value")
    result = await _provider(runner, sleeper).send_message(SendRequest("a@b.c", "hi"))
    assert result.success is True
    assert result.message_id is None


@pytest.mark.asyncio
async def test_unrecognised_output_fails_when_strict(sleeper):
    runner = FakeRunner("missing value")
    provider = _provider(runner, sleeper, lenient_success=False, retry_policy=RetryPolicy(max_retries=0))
    result = await provider.send_message(SendRequest("a@b.c", "hi"))
    assert result.success is False
    assert result.error_code == "unknown"


@pytest.mark.asyncio
async def test_is_available_probe():
    assert await AppleScriptProvider(runner=FakeRunner(running=True)).is_available() is True
    assert await AppleScriptProvider(runner=FakeRunner(running=False)).is_available() is False

    async def broken(script):
        raise OSError("osascript not found")

    assert await AppleScriptProvider(runner=broken).is_available() is False


@pytest.mark.asyncio
async def test_unexpected_exception_type_is_captured(sleeper):
    runner = FakeRunner(RuntimeError(""))
    result = await _provider(runner, sleeper, retry_policy=RetryPolicy(max_retries=0)).send_message(
        SendRequest("a@b.c", "hi")
    )
    assert result.success is False
    assert result.error == "RuntimeError"
    assert result.error_code == "unknown"


@pytest.mark.asyncio
async def test_non_string_runner_output_does_not_raise(sleeper):
    async def run(script):
        return None

    provider = _provider(run, sleeper, lenient_success=False, retry_policy=RetryPolicy(max_retries=0))
    result = await provider.send_message(SendRequest("a@b.c", "hi"))
    assert result.success is False
    assert result.error_code == "unknown"
    assert (await _provider(run, sleeper).send_message(SendRequest("a@b.c", "hi"))).success is True
