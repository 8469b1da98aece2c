"""Integration tests for the capture flow.

These tests drive the real event source, correlator, idle monitor, runner,
artifact writer and narrative builder with a scripted stand-in for the
Playwright browser; no browser is launched.
"""

import asyncio
import json
from pathlib import Path
from typing import List, Optional, Tuple
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from typer.testing import CliRunner

from challenge_inspector.core.browser.event_correlator import EventCorrelator
from challenge_inspector.core.browser.event_source import PlaywrightEventSource
from challenge_inspector.core.capture.runner import CaptureRunner
from challenge_inspector.core.capture.session import Session
from challenge_inspector.core.config.settings import InspectorConfig
from challenge_inspector.core.models.types import Category, FinishPolicy
from challenge_inspector.main import app
from challenge_inspector.utils.exceptions import BrowserLaunchError

from tests.conftest import TARGET_URL, FakePage, fake_request, fake_response

DEVICE_CHECK_URL = "https://geo.captcha-delivery.com/interstitial/?initialCid=abc"
DATADOME_COOKIE = {"name": "datadome", "value": "final", "domain": ".example.com", "path": "/"}


class TestEventSource:
    """Playwright objects flowing through the event source into the session."""

    @pytest.mark.asyncio
    async def test_requests_and_responses_are_correlated(self, fake_page: FakePage, session: Session):
        source = PlaywrightEventSource(fake_page, EventCorrelator(session))
        source.attach()

        document = fake_request(
            fake_page, TARGET_URL,
            headers={"user-agent": "Mozilla/5.0 Test"},
            full_headers={"user-agent": "Mozilla/5.0 Test", "cookie": "datadome=sent-cookie"},
        )
        challenge = fake_request(fake_page, DEVICE_CHECK_URL)
        image = fake_request(fake_page, "https://www.example.com/logo.png", resource_type="image")

        fake_page.emit("request", document)
        fake_page.emit("request", challenge)
        fake_page.emit("request", image)
        # Responses arrive in reverse order
        fake_page.emit("response", fake_response(challenge, 200))
        fake_page.emit("response", fake_response(document, 403, headers=[
            ("set-cookie", "datadome=issued; Expires=Wed, 21 Oct 2026 07:28:00 GMT; Path=/"),
            ("x-datadome-cid", "abc"),
        ]))
        fake_page.emit("response", fake_response(image, 200))
        await fake_page.drain()

        first, second = session.exchanges
        assert (first.url, first.status) == (TARGET_URL, 403)
        assert first.client_cookie == "sent-cookie"
        assert [str(cookie) for cookie in first.server_cookies] == ["datadome=issued"]
        assert (second.category, second.status) == (Category.CHALLENGE_DEVICE_CHECK, 200)
        assert session.user_agent == "Mozilla/5.0 Test"

    @pytest.mark.asyncio
    async def test_sequence_follows_request_order(self, fake_page: FakePage, session: Session):
        source = PlaywrightEventSource(fake_page, EventCorrelator(session))
        source.attach()

        requests = [
            fake_request(fake_page, f"https://www.example.com/api/{index}", resource_type="xhr")
            for index in range(5)
        ]
        for request in requests:
            fake_page.emit("request", request)
        for request in reversed(requests):
            fake_page.emit("response", fake_response(request, 200))
        await fake_page.drain()

        assert [exchange.url for exchange in session.exchanges] == [request.url for request in requests]
        assert all(exchange.status == 200 for exchange in session.exchanges)

    @pytest.mark.asyncio
    async def test_header_failures_do_not_drop_the_exchange(self, fake_page: FakePage, session: Session):
        source = PlaywrightEventSource(fake_page, EventCorrelator(session))
        source.attach()

        request = fake_request(fake_page, TARGET_URL, headers={"x-datadome-clientid": "cid"})
        request.headers_array.side_effect = Exception("Target closed")
        response = fake_response(request, 200)
        response.headers_array.side_effect = Exception("Target closed")

        fake_page.emit("request", request)
        fake_page.emit("response", response)
        await fake_page.drain()

        (exchange,) = session.exchanges
        assert exchange.client_id == "cid"
        assert exchange.status == 200

    @pytest.mark.asyncio
    async def test_same_url_request_during_header_read_keeps_its_own_response(
            self, fake_page: FakePage, session: Session):
        source = PlaywrightEventSource(fake_page, EventCorrelator(session))
        source.attach()

        first = fake_request(fake_page, TARGET_URL)
        second = fake_request(fake_page, TARGET_URL)
        redirect = fake_response(first, 302)

        async def headers_after_round_trip():
            await asyncio.sleep(0)
            return [{"name": "location", "value": TARGET_URL}]

        redirect.headers_array = headers_after_round_trip

        fake_page.emit("request", first)
        fake_page.emit("response", redirect)
        fake_page.emit("request", second)
        await fake_page.drain()

        original, repeated = session.exchanges
        assert original.status == 302
        assert original.response_headers.get("location") == TARGET_URL
        assert repeated.is_open

    def test_detach_removes_listeners(self, fake_page: FakePage, session: Session):
        source = PlaywrightEventSource(fake_page, EventCorrelator(session))
        source.attach()
        source.attach()
        assert fake_page.listener_count("request") == 1

        source.detach()
        assert fake_page.listener_count("request") == 0
        assert fake_page.listener_count("response") == 0


Script = List[Tuple[MagicMock, Optional[MagicMock]]]


class ScriptedBrowserManager:
    """Browser manager double that replays a scripted page load on navigation."""

    def __init__(self, config: InspectorConfig, har_path: Optional[Path] = None,
                 script_builder=None, record_har: bool = True):
        self.config = config
        self.har_path = har_path
        self.page = FakePage()
        self.remote_address: Optional[str] = None
        self.script_builder = script_builder
        self.record_har = record_har
        self.cleaned_up = False
        self.payloads: List[Tuple[str, str, str]] = []

    async def initialize(self) -> None:
        pass

    async def attach_remote_ip_probe(self, target_host: str) -> None:
        self.remote_address = "93.184.216.34:443"

    async def _replay(self, script: Script) -> None:
        for request, response in script:
            self.page.emit("request", request)
            if response is not None:
                self.page.emit("response", response)
                self.page.emit("requestfinished", request)
        await self.page.drain()

    async def navigate_to(self, url: str, wait_until: str = "domcontentloaded"):
        if self.script_builder is not None:
            await self._replay(self.script_builder(self.page))
        return MagicMock(status=200)

    async def send_payload(self, url: str, payload: str, content_type: str) -> Optional[int]:
        self.payloads.append((url, payload, content_type))
        request = fake_request(self.page, url, method="POST", resource_type="fetch",
                               headers={"content-type": content_type}, post_data=payload)
        await self._replay([(request, fake_response(request, 201))])
        return 201

    async def snapshot_cookies(self):
        return {"cookies": [DATADOME_COOKIE], "origins": []}, [DATADOME_COOKIE]

    async def cleanup(self) -> None:
        self.cleaned_up = True
        if self.record_har and self.har_path is not None:
            self.har_path.write_text(json.dumps({"log": {"version": "1.2", "entries": [{}]}}))


def blocked_page_load(page: FakePage) -> Script:
    document = fake_request(page, TARGET_URL)
    challenge = fake_request(page, DEVICE_CHECK_URL)
    pixel = fake_request(page, "https://cdn.thirdparty.net/pixel", resource_type="xhr")
    return [
        (document, fake_response(document, 403, headers=[("set-cookie", "datadome=first; Path=/")])),
        (challenge, fake_response(challenge, 200, headers=[("set-cookie", "datadome=second; Path=/")])),
        (pixel, fake_response(pixel, 204)),
    ]


class CrashingNavigation(ScriptedBrowserManager):
    """Page that starts loading the document and then crashes."""

    async def navigate_to(self, url: str, wait_until: str = "domcontentloaded"):
        self.page.emit("request", fake_request(self.page, url))
        await self.page.drain()
        raise RuntimeError("page crashed")


def make_factory(managers: list, manager_class=ScriptedBrowserManager, **kwargs):
    def factory(config, har_path=None):
        manager = manager_class(config, har_path=har_path, **kwargs)
        managers.append(manager)
        return manager
    return factory


class TestCaptureRunner:

    @pytest.mark.asyncio
    async def test_blocked_flow_end_to_end(self, test_config: InspectorConfig):
        managers = []
        runner = CaptureRunner(test_config, browser_manager_factory=make_factory(
            managers, script_builder=blocked_page_load,
        ))

        result = await runner.run()

        session = result.session
        assert session.is_frozen
        assert session.finish_reason == "idle"
        assert session.remote_address == "93.184.216.34:443"
        assert len(session.exchanges) == 3
        assert managers[0].cleaned_up

        narrative = result.narrative
        assert narrative.initial_status == 403
        assert narrative.initial_chain[0].inline.category is Category.CHALLENGE_DEVICE_CHECK
        assert narrative.rows == []

        cookies = json.loads(result.paths.cookies.read_text())
        assert cookies["url"] == TARGET_URL
        assert cookies["cookies"] == [DATADOME_COOKIE]

        assert result.paths.har.exists()
        assert not result.paths.har_temp.exists()
        assert not result.har_rebuilt
        assert result.statistics["responses_matched"] == 3

    @pytest.mark.asyncio
    async def test_har_is_rebuilt_when_not_recorded(self, test_config: InspectorConfig):
        runner = CaptureRunner(test_config, browser_manager_factory=make_factory(
            [], script_builder=blocked_page_load, record_har=False,
        ))

        result = await runner.run()

        har = json.loads(result.paths.har.read_text())
        assert result.har_rebuilt
        assert [entry["request"]["url"] for entry in har["log"]["entries"]] == [
            TARGET_URL, DEVICE_CHECK_URL, "https://cdn.thirdparty.net/pixel",
        ]

    @pytest.mark.asyncio
    async def test_api_test_mode_posts_payload(self, test_config: InspectorConfig):
        test_config.target.payload = '{"ping": true}'
        managers = []
        runner = CaptureRunner(test_config, browser_manager_factory=make_factory(managers))

        result = await runner.run()

        assert managers[0].payloads == [(TARGET_URL, '{"ping": true}', "application/json")]
        (step,) = result.narrative.rows
        assert step.exchange.method == "POST"
        assert step.exchange.request_body == '{"ping": true}'
        assert step.exchange.status == 201
        assert not result.narrative.has_initial_response

    @pytest.mark.asyncio
    async def test_timeout_finish(self, test_config: InspectorConfig):
        test_config.capture.finish_mode = FinishPolicy.TIMEOUT
        test_config.capture.max_capture_time = 0.05
        runner = CaptureRunner(test_config, browser_manager_factory=make_factory([]))

        result = await runner.run()

        assert result.session.finish_reason == "timeout"
        assert result.narrative.is_empty

    @pytest.mark.asyncio
    async def test_manual_finish(self, test_config: InspectorConfig):
        test_config.capture.finish_mode = FinishPolicy.MANUAL
        manual_signal = AsyncMock(return_value=None)
        runner = CaptureRunner(test_config, manual_signal=manual_signal,
                               browser_manager_factory=make_factory([]))

        result = await runner.run()

        manual_signal.assert_awaited_once()
        assert result.session.finish_reason == "manual"

    @pytest.mark.asyncio
    async def test_hard_cap_applies_to_manual_mode(self, test_config: InspectorConfig):
        test_config.capture.finish_mode = FinishPolicy.MANUAL
        test_config.capture.max_capture_time = 0.05

        async def never():
            await asyncio.Event().wait()

        runner = CaptureRunner(test_config, manual_signal=never, browser_manager_factory=make_factory([]))

        result = await runner.run()

        assert result.session.finish_reason == "timeout"

    @pytest.mark.asyncio
    async def test_artifacts_saved_when_capture_fails(self, test_config: InspectorConfig):
        managers = []
        factory = make_factory(managers, manager_class=CrashingNavigation, record_har=False)

        result = await CaptureRunner(test_config, browser_manager_factory=factory).run()

        assert result.interrupted
        assert result.error == "page crashed"
        assert result.session.is_frozen
        (link,) = result.narrative.initial_chain
        assert link.exchange.url == TARGET_URL
        assert link.exchange.status is None

        session_dirs = list(Path(test_config.output.directory).iterdir())
        assert len(session_dirs) == 1
        names = sorted(path.name for path in session_dirs[0].iterdir())
        assert names == sorted([
            f"{session_dirs[0].name}.cookies.json",
            f"{session_dirs[0].name}.har",
        ])
        assert managers[0].cleaned_up

    @pytest.mark.asyncio
    async def test_cancelled_capture_is_still_reported(self, test_config: InspectorConfig):
        test_config.capture.finish_mode = FinishPolicy.MANUAL

        async def never():
            await asyncio.Event().wait()

        managers = []
        runner = CaptureRunner(test_config, manual_signal=never, browser_manager_factory=make_factory(
            managers, script_builder=blocked_page_load,
        ))

        task = asyncio.ensure_future(runner.run())
        await asyncio.sleep(0.1)
        task.cancel()
        result = await task

        assert result.interrupted
        assert result.error is None
        assert result.session.finish_reason == "interrupted"
        assert len(result.session.exchanges) == 3
        assert result.narrative.initial_status == 403
        assert result.narrative.initial_chain[0].inline is not None
        assert result.paths.cookies.exists()
        assert result.paths.har.exists()
        assert managers[0].cleaned_up

    @pytest.mark.asyncio
    async def test_launch_failure(self, test_config: InspectorConfig, mock_browser_manager: AsyncMock):
        mock_browser_manager.initialize.side_effect = BrowserLaunchError("no webkit")
        runner = CaptureRunner(test_config, browser_manager_factory=lambda config, har_path=None: mock_browser_manager)

        with pytest.raises(BrowserLaunchError):
            await runner.run()

        assert list(Path(test_config.output.directory).iterdir()) == []
        mock_browser_manager.navigate_to.assert_not_called()


class TestCli:

    def setup_method(self):
        self.cli = CliRunner()

    def test_version(self):
        result = self.cli.invoke(app, ["version"])
        assert result.exit_code == 0
        assert "Challenge Inspector v" in result.output

    def test_invalid_url_argument_is_usage_error(self, tmp_path: Path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        result = self.cli.invoke(app, ["inspect", "ftp://example.com", "--no-prompt"])
        assert result.exit_code == 2

    def test_missing_url_without_prompt(self, tmp_path: Path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        result = self.cli.invoke(app, ["inspect", "--no-prompt"])
        assert result.exit_code == 2

    def test_launch_failure_exits_with_one(self, tmp_path: Path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        runner_cls = MagicMock()
        runner_cls.return_value.run = AsyncMock(side_effect=BrowserLaunchError("Could not launch WebKit"))

        with patch("challenge_inspector.main.CaptureRunner", runner_cls):
            result = self.cli.invoke(app, [
                "inspect", "example.com", "--no-prompt", "--browser", "webkit", "--headless",
            ])

        assert result.exit_code == 1
        assert "Could not launch WebKit" in result.output
        config = runner_cls.call_args.args[0]
        assert config.target.url == "https://example.com/"
        assert config.browser.headless is True
        assert config.browser.engine.value == "webkit"

    def test_successful_run_prints_report(self, tmp_path: Path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        factory = make_factory([], script_builder=blocked_page_load)

        real_runner = CaptureRunner

        def build_runner(config, manual_signal=None):
            config.capture.quiet_window = 0.05
            return real_runner(config, manual_signal=manual_signal, browser_manager_factory=factory)

        with patch("challenge_inspector.main.CaptureRunner", side_effect=build_runner):
            result = self.cli.invoke(app, [
                "inspect", TARGET_URL, "--no-prompt", "--output", str(tmp_path / "out"),
            ])

        assert result.exit_code == 0, result.output
        assert "Run Recap" in result.output
        assert "Requested: https://www.example.com/" in result.output
        assert "Device Check" in result.output
        assert (tmp_path / "out").is_dir()

    def test_failed_capture_is_reported_and_exits_with_one(self, tmp_path: Path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        factory = make_factory([], manager_class=CrashingNavigation, record_har=False)

        real_runner = CaptureRunner

        def build_runner(config, manual_signal=None):
            return real_runner(config, manual_signal=manual_signal, browser_manager_factory=factory)

        with patch("challenge_inspector.main.CaptureRunner", side_effect=build_runner):
            result = self.cli.invoke(app, [
                "inspect", TARGET_URL, "--no-prompt", "--output", str(tmp_path / "out"),
            ])

        assert result.exit_code == 1
        assert "Run Recap" in result.output
        assert "Requested: https://www.example.com/" in result.output
        assert "Capture failed: page crashed" in result.output
        assert "Partial capture" in result.output

    def test_config_init_and_validate(self, tmp_path: Path, monkeypatch):
        monkeypatch.chdir(tmp_path)

        result = self.cli.invoke(app, ["config", "--init"])
        assert result.exit_code == 0
        assert (tmp_path / "config" / "inspector.yaml").exists()

        result = self.cli.invoke(app, ["config", "--validate", "config/inspector.yaml"])
        assert result.exit_code == 0
        assert "valid" in result.output

        (tmp_path / "bad.yaml").write_text("browser:\n  engine: netscape\n")
        result = self.cli.invoke(app, ["config", "--validate", "bad.yaml"])
        assert result.exit_code == 1
