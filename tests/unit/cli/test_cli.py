from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import typer

from reprise.cli import app, get_runtime
from tests.helpers.fake_runtime import EPOCH

# --- list ---


def test_list_without_containers(cli_runner):
    result = cli_runner.invoke(app, ["list"])

    assert result.exit_code == 0
    assert "No reusable containers are running." in result.stdout


def test_list_shows_reusable_containers_oldest_first(cli_runner, runtime):
    """
    Tests `reprise list` against a daemon holding two labelled containers.

    What's checked:
    - Both containers appear with their short id and name.
    - The older container is printed first.
    - Unlabelled containers are not reported.
    """
    newer = runtime.seed("b" * 64, created_at=EPOCH + timedelta(hours=1), name="reprise-newer")
    older = runtime.seed("a" * 64, created_at=EPOCH, name="reprise-older")

    result = cli_runner.invoke(app, ["list"])

    assert result.exit_code == 0
    assert "Reusable Containers" in result.stdout
    assert older[:12] in result.stdout
    assert newer[:12] in result.stdout
    assert result.stdout.index("reprise-older") < result.stdout.index("reprise-newer")


def test_list_filters_by_fingerprint_prefix(cli_runner, runtime):
    runtime.seed("a" * 64, name="reprise-a")
    runtime.seed("b" * 64, name="reprise-b")

    result = cli_runner.invoke(app, ["list", "--fingerprint", "aaaa"])

    assert result.exit_code == 0
    assert "reprise-a" in result.stdout
    assert "reprise-b" not in result.stdout


# --- prune ---


def test_prune_with_yes_removes_everything(cli_runner, runtime):
    first = runtime.seed("a" * 64)
    second = runtime.seed("b" * 64)

    result = cli_runner.invoke(app, ["prune", "--yes"])

    assert result.exit_code == 0
    assert "Removed 2 container(s)." in result.stdout
    assert first not in runtime.containers
    assert second not in runtime.containers


def test_prune_only_matching_fingerprint(cli_runner, runtime):
    keep = runtime.seed("a" * 64)
    drop = runtime.seed("b" * 64)

    result = cli_runner.invoke(app, ["prune", "-f", "bbb", "-y"])

    assert result.exit_code == 0
    assert keep in runtime.containers
    assert drop not in runtime.containers


def test_prune_declined_confirmation_aborts(cli_runner, runtime):
    kept = runtime.seed("a" * 64)

    result = cli_runner.invoke(app, ["prune"], input="n\n")

    assert result.exit_code != 0
    assert kept in runtime.containers
    assert runtime.remove_calls == []


def test_prune_confirmed_interactively(cli_runner, runtime):
    gone = runtime.seed("a" * 64)

    result = cli_runner.invoke(app, ["prune"], input="y\n")

    assert result.exit_code == 0
    assert gone not in runtime.containers


def test_prune_tolerates_containers_that_vanish(cli_runner, runtime):
    runtime.seed("a" * 64)
    original_remove = runtime.remove_container

    def _vanish(runtime_id):
        runtime.kill(runtime_id)
        original_remove(runtime_id)

    with patch.object(runtime, "remove_container", side_effect=_vanish):
        result = cli_runner.invoke(app, ["prune", "--yes"])

    assert result.exit_code == 0
    assert "was already gone" in result.stdout
    assert "Removed 0 container(s)." in result.stdout


def test_prune_with_nothing_running(cli_runner):
    result = cli_runner.invoke(app, ["prune", "--yes"])

    assert result.exit_code == 0
    assert "Nothing to prune." in result.stdout


# --- get_runtime ---


def test_get_runtime_reports_unreachable_daemon():
    from docker.errors import DockerException

    with patch("reprise.cli.DockerRuntime", side_effect=DockerException("no socket")):
        try:
            get_runtime()
        except typer.Exit as exc:
            assert exc.exit_code == 1
        else:
            raise AssertionError("get_runtime should exit when Docker is unreachable")


def test_age_formatting():
    from reprise.cli import _age

    now = datetime.now(timezone.utc)
    assert _age(now - timedelta(seconds=30)).endswith("s")
    assert _age(now - timedelta(minutes=30)).endswith("m")
    assert _age(now - timedelta(hours=5)).endswith("h")
    assert _age(now - timedelta(days=3)) == "3d"
