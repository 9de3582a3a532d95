from datetime import datetime, timedelta, timezone

import httpx
import pytest
from typer.testing import CliRunner

from ezenv.auth import TokenRecord
from ezenv.cli import commands
from ezenv.cli.commands import app
from ezenv.config import Config

runner = CliRunner()


def _never_called(request: httpx.Request) -> httpx.Response:
    raise AssertionError(f"unexpected request to {request.url}")


@pytest.fixture
def cli_env(monkeypatch, tmp_path, vault, make_manager, make_secrets_client):
    """Route ``_build_context`` to in-memory fakes; returns a mutable setup dict."""
    setup = {
        "auth_handler": _never_called,
        "secrets_handler": _never_called,
        "config": Config(selected_project="proj-1", selected_environment="env-1"),
    }

    def build(environment=None):
        config = setup["config"]
        manager = make_manager(
            lambda request: setup["auth_handler"](request),
            environment=environment or config.active_environment,
            poll_interval=0.01,
        )
        secrets = make_secrets_client(lambda request: setup["secrets_handler"](request), manager=manager)
        return commands._Context(config=config, vault=vault, manager=manager, secrets=secrets)

    monkeypatch.setattr(commands, "_build_context", build)
    monkeypatch.chdir(tmp_path)
    return setup


def _login(vault, environment="production", expires_in=timedelta(hours=1), refresh_token=None) -> None:
    record = TokenRecord(
        access_token="tok",
        expires_at=datetime.now(timezone.utc) + expires_in,
        environment=environment,
        refresh_token=refresh_token,
        user_id="user-1",
        user_email="me@example.com",
    )
    vault.store(f"ezenv-cli-{environment}", "token_data", record.to_json())


def test_version_flag() -> None:
    result = runner.invoke(app, ["--version"])

    assert result.exit_code == 0
    assert "ezenv v" in result.stdout


# ---------------------------------------------------------------------------
# auth
# ---------------------------------------------------------------------------


def test_auth_status_not_authenticated(cli_env) -> None:
    result = runner.invoke(app, ["auth", "status"])

    assert result.exit_code == 0
    assert "Not authenticated in production environment" in result.stdout


def test_auth_status_authenticated(cli_env, vault) -> None:
    _login(vault, "staging")

    result = runner.invoke(app, ["auth", "status", "--env", "staging"])

    assert result.exit_code == 0
    assert "Authenticated in staging environment" in result.stdout
    assert "me@example.com" in result.stdout


def test_auth_status_refreshes_expired_token(cli_env, vault) -> None:
    _login(vault, expires_in=timedelta(minutes=-5), refresh_token="ref")
    cli_env["auth_handler"] = lambda request: httpx.Response(
        200, json={"access_token": "fresh", "expires_in": 3600}
    )

    result = runner.invoke(app, ["auth", "status"])

    assert result.exit_code == 0
    assert "Token refreshed successfully" in result.stdout


def test_auth_status_invalid_environment(cli_env) -> None:
    result = runner.invoke(app, ["auth", "status", "--env", "qa"])

    assert result.exit_code == 1
    assert "Invalid environment: qa" in result.stdout


def test_auth_status_all_lists_every_environment(cli_env, vault) -> None:
    _login(vault, "development")

    result = runner.invoke(app, ["auth", "status", "--all"])

    assert result.exit_code == 0
    for name in ("development", "staging", "production"):
        assert name in result.stdout


def test_auth_logout(cli_env, vault) -> None:
    _login(vault)

    first = runner.invoke(app, ["auth", "logout"])
    second = runner.invoke(app, ["auth", "logout"])

    assert "Logged out from production" in first.stdout
    assert "Not logged in to production environment" in second.stdout
    assert vault.retrieve("ezenv-cli-production", "token_data") is None


def test_auth_logout_all(cli_env, vault) -> None:
    _login(vault, "development")
    _login(vault, "staging")

    result = runner.invoke(app, ["auth", "logout", "--all"])

    assert result.exit_code == 0
    assert "Successfully logged out from 2 environment(s)" in result.stdout


def test_auth_login_with_password(cli_env, vault) -> None:
    cli_env["auth_handler"] = lambda request: httpx.Response(
        200,
        json={"access_token": "pw", "expires_in": 3600, "user": {"id": "u", "email": "a@b.c"}},
    )

    result = runner.invoke(app, ["auth", "login", "--password", "--email", "a@b.c"], input="secret\n")

    assert result.exit_code == 0, result.stdout
    assert "Logged in successfully to production environment" in result.stdout
    assert "pw" in vault.retrieve("ezenv-cli-production", "token_data")


def test_auth_login_with_password_invalid_credentials(cli_env) -> None:
    cli_env["auth_handler"] = lambda request: httpx.Response(
        400, json={"error_description": "Invalid login credentials"}
    )

    result = runner.invoke(app, ["auth", "login", "--password", "--email", "a@b.c"], input="bad\n")

    assert result.exit_code == 1
    assert "Authentication failed" in result.stdout
    assert "Invalid login credentials" in result.stdout


def test_auth_login_device_flow(cli_env, vault) -> None:
    polls = []

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/device"):
            return httpx.Response(
                200,
                json={
                    "device_code": "dev",
                    "user_code": "WXYZ-1234",
                    "verification_uri": "https://auth.test/device",
                    "expires_in": 900,
                    "interval": 5,
                },
            )
        polls.append(request)
        if len(polls) == 1:
            return httpx.Response(400, json={"error": "authorization_pending"})
        return httpx.Response(200, json={"access_token": "device-token", "expires_in": 3600})

    cli_env["auth_handler"] = handler

    result = runner.invoke(app, ["auth", "login", "--env", "development", "--no-browser"])

    assert result.exit_code == 0, result.stdout
    assert "WXYZ-1234" in result.stdout
    assert "Logged in successfully to development environment" in result.stdout
    assert len(polls) == 2
    assert "device-token" in vault.retrieve("ezenv-cli-development", "token_data")


def test_auth_login_device_flow_denied(cli_env) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/device"):
            return httpx.Response(
                200,
                json={"device_code": "dev", "user_code": "X", "verification_uri": "https://auth.test/device"},
            )
        return httpx.Response(400, json={"error": "access_denied"})

    cli_env["auth_handler"] = handler

    result = runner.invoke(app, ["auth", "login", "--no-browser"])

    assert result.exit_code == 1
    assert "Access was denied" in result.stdout


# ---------------------------------------------------------------------------
# diff / sync
# ---------------------------------------------------------------------------


def test_diff_requires_authentication(cli_env) -> None:
    result = runner.invoke(app, ["diff"])

    assert result.exit_code == 1
    assert "Authentication required" in result.stdout


def test_diff_requires_project(cli_env, vault) -> None:
    _login(vault)
    cli_env["config"] = Config()

    result = runner.invoke(app, ["diff"])

    assert result.exit_code == 1
    assert "No project selected" in result.stdout


def test_diff_inline_output(cli_env, vault, tmp_path) -> None:
    _login(vault)
    (tmp_path / ".env").write_text("A=1\nLOCAL_X=mine\n", encoding="utf-8")
    cli_env["secrets_handler"] = lambda request: httpx.Response(200, json={"secrets": {"A": "2", "B": "3"}})

    result = runner.invoke(app, ["diff", "--no-color"])

    assert result.exit_code == 0, result.stdout
    assert "+ B=3" in result.stdout
    assert "~ A" in result.stdout
    assert "! LOCAL_X=mine" in result.stdout


def test_diff_summary_format(cli_env, vault, tmp_path) -> None:
    _login(vault)
    cli_env["secrets_handler"] = lambda request: httpx.Response(200, json={"secrets": {"A": "1"}})

    result = runner.invoke(app, ["diff", "--format", "summary", "--file", str(tmp_path / "missing.env")])

    assert result.exit_code == 0
    assert "Added: 1" in result.stdout


def test_diff_no_differences(cli_env, vault, tmp_path) -> None:
    _login(vault)
    (tmp_path / ".env").write_text("A=1\n", encoding="utf-8")
    cli_env["secrets_handler"] = lambda request: httpx.Response(200, json={"secrets": {"A": "1"}})

    result = runner.invoke(app, ["diff"])

    assert result.exit_code == 0
    assert "No differences found" in result.stdout


def test_sync_writes_file_and_backup(cli_env, vault, tmp_path) -> None:
    _login(vault)
    env = tmp_path / ".env"
    env.write_text("A=1\nGONE=x\nLOCAL_X=mine\n", encoding="utf-8")
    cli_env["secrets_handler"] = lambda request: httpx.Response(200, json={"secrets": {"A": "2", "B": "3"}})

    result = runner.invoke(app, ["sync", "--auto-approve"])

    assert result.exit_code == 0, result.stdout
    assert "Environment synchronized" in result.stdout
    content = env.read_text(encoding="utf-8")
    assert "A=2" in content
    assert "B=3" in content
    assert "GONE" not in content
    assert "# Local-only variable\nLOCAL_X=mine" in content
    assert len(list(tmp_path.glob(".env.backup.*"))) == 1


def test_sync_declined_leaves_file_untouched(cli_env, vault, tmp_path) -> None:
    _login(vault)
    env = tmp_path / ".env"
    env.write_text("A=1\n", encoding="utf-8")
    cli_env["secrets_handler"] = lambda request: httpx.Response(200, json={"secrets": {"A": "2"}})

    result = runner.invoke(app, ["sync", "--no-backup"], input="n\n")

    assert result.exit_code == 0
    assert "Sync cancelled" in result.stdout
    assert env.read_text(encoding="utf-8") == "A=1\n"


def test_sync_already_up_to_date(cli_env, vault, tmp_path) -> None:
    _login(vault)
    (tmp_path / ".env").write_text("A=1\n", encoding="utf-8")
    cli_env["secrets_handler"] = lambda request: httpx.Response(200, json={"secrets": {"A": "1"}})

    result = runner.invoke(app, ["sync"])

    assert result.exit_code == 0
    assert "already up to date" in result.stdout


def test_status_command(cli_env, vault, monkeypatch) -> None:
    monkeypatch.delenv("SUPABASE_URL", raising=False)
    monkeypatch.delenv("NEXT_PUBLIC_SUPABASE_URL", raising=False)
    _login(vault)

    result = runner.invoke(app, ["status"])

    assert result.exit_code == 0
    assert "proj-1" in result.stdout
    assert "hosted" in result.stdout


def test_pull_writes_fresh_file(cli_env, vault, tmp_path) -> None:
    _login(vault)
    cli_env["secrets_handler"] = lambda request: httpx.Response(
        200, json={"secrets": {"A": "1", "GREETING": "hello world"}}
    )

    result = runner.invoke(app, ["pull"])

    assert result.exit_code == 0, result.stdout
    assert "Downloaded 2 environment variables" in result.stdout
    content = (tmp_path / ".env").read_text(encoding="utf-8")
    assert content.startswith("# Synced from EzEnv on ")
    assert "A=1" in content
    assert 'GREETING="hello world"' in content


def test_pull_declined_overwrite_keeps_file(cli_env, vault, tmp_path) -> None:
    _login(vault)
    out = tmp_path / "custom.env"
    out.write_text("OLD=1\n", encoding="utf-8")
    cli_env["secrets_handler"] = lambda request: httpx.Response(200, json={"secrets": {"A": "1"}})

    result = runner.invoke(app, ["pull", "-o", str(out)], input="n\n")

    assert result.exit_code == 0
    assert "Pull cancelled" in result.stdout
    assert out.read_text(encoding="utf-8") == "OLD=1\n"
    assert list(tmp_path.glob("custom.env.backup.*")) == []


def test_pull_confirmed_overwrite_makes_backup(cli_env, vault, tmp_path) -> None:
    _login(vault)
    out = tmp_path / ".env"
    out.write_text("OLD=1\n", encoding="utf-8")
    cli_env["secrets_handler"] = lambda request: httpx.Response(200, json={"secrets": {"A": "1"}})

    result = runner.invoke(app, ["pull"], input="y\n")

    assert result.exit_code == 0, result.stdout
    assert "Downloaded 1 environment variable" in result.stdout
    assert "OLD" not in out.read_text(encoding="utf-8")
    assert len(list(tmp_path.glob(".env.backup.*"))) == 1


def test_pull_force_overwrites_without_prompt(cli_env, vault, tmp_path) -> None:
    _login(vault)
    out = tmp_path / ".env"
    out.write_text("OLD=1\n", encoding="utf-8")
    cli_env["secrets_handler"] = lambda request: httpx.Response(200, json={"secrets": {"A": "2"}})

    result = runner.invoke(app, ["pull", "--force"])

    assert result.exit_code == 0, result.stdout
    assert "Overwrite?" not in result.stdout
    content = out.read_text(encoding="utf-8")
    assert "A=2" in content
    assert "OLD" not in content


def test_pull_requires_authentication(cli_env) -> None:
    result = runner.invoke(app, ["pull"])

    assert result.exit_code == 1
    assert "Authentication required" in result.stdout


def test_vault_is_released_when_command_finishes(cli_env, vault, monkeypatch) -> None:
    closed = []
    monkeypatch.setattr(vault, "close", lambda: closed.append(True))

    ok = runner.invoke(app, ["auth", "status"])
    failed = runner.invoke(app, ["auth", "status", "--env", "qa"])
    runner.invoke(app, ["diff"])

    assert ok.exit_code == 0
    assert failed.exit_code == 1
    # The invalid environment exits before any context is built.
    assert closed == [True, True]
    assert commands._open_vaults == []
