"""Tests for the CLI commands."""

import functools
import json

import httpx
import pytest
from click.testing import CliRunner

from backoffice.cli import cli
from backoffice.config import BASE_URL_ENV_VAR
from backoffice.pages import registry

pytestmark = pytest.mark.unit


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture(autouse=True)
def offline_api(api, monkeypatch):
    """Route every controller the CLI builds through the fake API."""
    monkeypatch.delenv(BASE_URL_ENV_VAR, raising=False)
    monkeypatch.setattr(
        "backoffice.cli.build_controller",
        functools.partial(registry.build_controller, http_client=api.http_client()),
    )
    return api


def _beds(count: int) -> list[dict]:
    return [{"id": i, "name": f"Bed {i}"} for i in range(1, count + 1)]


class TestVersion:
    def test_version_flag(self, runner):
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert "0.1.0" in result.output


class TestPagesCommand:
    def test_lists_every_page(self, runner):
        result = runner.invoke(cli, ["pages"])
        assert result.exit_code == 0
        for name in registry.page_names():
            assert name in result.output
        assert "/api/room-setting/bed-list" in result.output


class TestListCommand:
    def test_json_output_pages_and_sorts(self, runner, api):
        api.queue("GET", httpx.Response(200, json=_beds(12)))
        result = runner.invoke(
            cli, ["list", "beds", "--json", "--page-size", "5", "--page", "3", "--sort", "sl:desc"]
        )
        assert result.exit_code == 0, result.output
        payload = json.loads(result.stdout)
        assert payload["page"] == "beds"
        assert [item["id"] for item in payload["items"]] == [2, 1]
        assert payload["summary"]["total_pages"] == 3
        assert payload["summary"]["first_index"] == 11
        assert payload["warning"] is None
        assert api.requests[0].url.host == "localhost"

    def test_base_url_option(self, runner, api):
        api.queue("GET", httpx.Response(200, json=[]))
        result = runner.invoke(cli, ["list", "beds", "--base-url", "https://api.hotel.test/"])
        assert result.exit_code == 0, result.output
        assert str(api.requests[0].url) == "https://api.hotel.test/api/room-setting/bed-list"
        assert "(no matching entries)" in result.stdout

    def test_fallback_prints_warning_and_table(self, runner, api):
        api.queue("GET", httpx.ConnectError("refused"))
        result = runner.invoke(cli, ["list", "waiters"])
        assert result.exit_code == 0
        assert "Warning: Failed to load waiter list" in result.stderr
        assert "Alice Johnson" in result.stdout
        assert "Showing 1 to 5 of 5 entries" in result.stdout

    def test_facet_filter(self, runner, api):
        api.queue("GET", httpx.ConnectError("refused"))
        result = runner.invoke(cli, ["list", "waiters", "--facet", "status=ACTIVE", "--json"])
        assert result.exit_code == 0
        payload = json.loads(result.stdout)
        assert [item["id"] for item in payload["items"]] == [1, 2, 4]
        assert payload["warning"] == "Failed to load waiter list"

    def test_server_side_search_refetches(self, runner, api):
        api.queue("GET", httpx.Response(200, json={"assets": []}))
        result = runner.invoke(cli, ["list", "assets", "--search", "chair"])
        assert result.exit_code == 0, result.output
        assert api.requests[-1].url.params["search"] == "chair"

    def test_unknown_sort_key_warns(self, runner, api):
        api.queue("GET", httpx.Response(200, json=_beds(2)))
        result = runner.invoke(cli, ["list", "beds", "--sort", "colour"])
        assert result.exit_code == 0
        assert "Unknown sort key 'colour' ignored" in result.stderr

    def test_unknown_page(self, runner):
        result = runner.invoke(cli, ["list", "spa-bookings"])
        assert result.exit_code == 2
        assert "Unknown page 'spa-bookings'" in result.output

    @pytest.mark.parametrize(
        "args",
        [
            ["--facet", "status"],
            ["--sort", "sl:sideways"],
            ["--page-size", "0"],
        ],
    )
    def test_bad_options(self, runner, api, args):
        result = runner.invoke(cli, ["list", "beds", *args])
        assert result.exit_code == 2
        assert api.requests == []

    def test_config_error(self, runner, tmp_path):
        (tmp_path / "backoffice.toml").write_text("[backoffice]\n")
        result = runner.invoke(cli, ["list", "beds", "--config", str(tmp_path)])
        assert result.exit_code == 1
        assert "Configuration error" in result.stderr

    def test_config_page_size(self, runner, api, tmp_path):
        (tmp_path / "backoffice.toml").write_text(
            '[backoffice]\nbase_url = "http://config.test"\n\n[backoffice.lists]\npage_size = 25\n'
        )
        api.queue("GET", httpx.Response(200, json=_beds(30)))
        result = runner.invoke(cli, ["list", "beds", "--config", str(tmp_path), "--json"])
        assert result.exit_code == 0, result.output
        payload = json.loads(result.stdout)
        assert len(payload["items"]) == 25
        assert api.requests[0].url.host == "config.test"

    def test_config_debounce(self, runner, api, tmp_path, monkeypatch):
        built = []

        def build(*args, **kwargs):
            built.append(kwargs)
            return registry.build_controller(*args, http_client=api.http_client(), **kwargs)

        monkeypatch.setattr("backoffice.cli.build_controller", build)
        (tmp_path / "backoffice.toml").write_text(
            '[backoffice]\nbase_url = "http://config.test"\n\n[backoffice.lists]\ndebounce_ms = 5\n'
        )
        api.queue("GET", httpx.Response(200, json={"assets": []}))
        result = runner.invoke(
            cli, ["list", "assets", "--config", str(tmp_path), "--search", "lamp"]
        )
        assert result.exit_code == 0, result.output
        assert built[0]["debounce_s"] == pytest.approx(0.005)
        assert api.requests[-1].url.params["search"] == "lamp"
