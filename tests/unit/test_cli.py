"""End-to-end tests for the ``forgesync`` command line."""

from __future__ import annotations

import asyncio
import typing as typ

import pytest

from forgesync import cli
from forgesync.backends import ForgeAPIError, LocalBackend
from forgesync.model import ForgeTag, Repo, RepoIdentity, Visibility
from tests.helpers.fakes import FakeRemoteBackend, names

if typ.TYPE_CHECKING:
    from pathlib import Path

    from forgesync.secrets import SecretResolutionClient


@pytest.fixture
def home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point FORGESYNC_HOME at a temporary state tree with logging stubbed."""
    state = tmp_path / "home"
    monkeypatch.setenv("FORGESYNC_HOME", str(state))
    monkeypatch.delenv("FORGESYNC_SECRET_TTL_S", raising=False)
    monkeypatch.setattr(cli, "configure_logging", lambda level: (level, False))
    return state


@pytest.fixture
def github(monkeypatch: pytest.MonkeyPatch) -> FakeRemoteBackend:
    """Route every remote backend the CLI builds to one simulated GitHub."""
    fake = FakeRemoteBackend(ForgeTag.GITHUB)

    def _build_backend(
        tag: ForgeTag,
        *,
        local: LocalBackend,
        secrets: SecretResolutionClient,
        base_urls: object = None,
    ) -> object:
        del secrets, base_urls
        return local if tag is ForgeTag.LOCAL else fake

    def _build_remote_backend(
        tag: ForgeTag, secrets: SecretResolutionClient, *, base_url: str | None = None
    ) -> FakeRemoteBackend:
        del secrets, base_url
        assert tag is ForgeTag.GITHUB
        return fake

    monkeypatch.setattr(cli, "build_backend", _build_backend)
    monkeypatch.setattr(cli, "build_remote_backend", _build_remote_backend)
    return fake


def _stored(home: Path, org: str = "acme") -> LocalBackend:
    local = LocalBackend(state_dir=home)
    asyncio.run(local.load(local.path_for(org)))
    return local


def _declare(home: Path, *repos: Repo) -> None:
    async def _write() -> None:
        local = LocalBackend(state_dir=home, auto_save=True)
        for repo in repos:
            await local.create_repo(repo)

    asyncio.run(_write())


def test_sync_imports_from_a_remote(
    home: Path,
    github: FakeRemoteBackend,
    tmp_path: Path,
    capsys: pytest.CaptureFixture[str],
) -> None:
    """Pulling from GitHub persists the repos in the local state file."""
    asyncio.run(github.seed(Repo.named("acme", "core"), Repo.named("acme", "docs")))

    code = cli.main(
        ["sync", "github", "local", "--org", "acme", "--config-dir", str(tmp_path)]
    )

    assert code == cli.EXIT_OK
    assert names(asyncio.run(_stored(home).list_repos("acme"))) == ["core", "docs"]
    out = capsys.readouterr().out.splitlines()
    assert out[0] == "sync github -> local for acme"
    assert "  create core: applied" in out
    assert out[-1] == "applied=2"


def test_sync_dry_run_and_repo_filter(
    home: Path,
    github: FakeRemoteBackend,
    tmp_path: Path,
    capsys: pytest.CaptureFixture[str],
) -> None:
    """Dry runs print skipped actions and leave the remote untouched."""
    _declare(home, Repo.named("acme", "core"), Repo.named("acme", "docs"))

    code = cli.main(
        [
            "sync",
            "local",
            "github",
            "--org",
            "acme",
            "--repo",
            "acme/docs",
            "--dry-run",
            "--config-dir",
            str(tmp_path),
        ]
    )

    assert code == cli.EXIT_OK
    assert github.mutations() == []
    out = capsys.readouterr().out.splitlines()
    assert out == [
        "sync local -> github for acme (dry run)",
        "  create docs: skipped",
        "skipped=1",
    ]


def test_sync_reports_failures_with_exit_one(
    home: Path,
    github: FakeRemoteBackend,
    tmp_path: Path,
    capsys: pytest.CaptureFixture[str],
) -> None:
    """Per-repo failures print the error and exit 1."""
    _declare(home, Repo.named("acme", "core"))
    github.fail_names = {"core"}

    code = cli.main(
        ["sync", "local", "github", "--org", "acme", "--config-dir", str(tmp_path)]
    )

    assert code == cli.EXIT_INCOMPLETE
    out = capsys.readouterr().out
    assert "  create core: failed (github API HTTP 500: create failed)" in out


def test_listing_failure_exits_two(
    home: Path,
    github: FakeRemoteBackend,
    tmp_path: Path,
    capsys: pytest.CaptureFixture[str],
) -> None:
    """An unlistable backend aborts the run."""
    del home
    github.fail_listing = ForgeAPIError.network_error(ForgeTag.GITHUB, "reset")

    code = cli.main(
        ["sync", "github", "local", "--org", "acme", "--config-dir", str(tmp_path)]
    )

    assert code == cli.EXIT_ERROR
    assert "Listing source github repos for acme failed" in capsys.readouterr().err


def test_converge_reads_org_from_config_file(
    home: Path,
    github: FakeRemoteBackend,
    tmp_path: Path,
    capsys: pytest.CaptureFixture[str],
) -> None:
    """Converge takes its org and forges from ``.forgesync.yaml``."""
    (tmp_path / ".forgesync.yaml").write_text(
        "org: acme\nforges: [github]\n", encoding="utf-8"
    )
    _declare(home, Repo.named("acme", "core", visibility=Visibility.PRIVATE))

    code = cli.main(["converge", "--config-dir", str(tmp_path)])

    assert code == cli.EXIT_OK
    assert asyncio.run(github.get_repo(RepoIdentity("acme", "core"))).visibility is (
        Visibility.PRIVATE
    )
    entry = _stored(home).entry(RepoIdentity("acme", "core"))
    assert entry.synced[ForgeTag.GITHUB].url == "https://github.example/acme/core"
    out = capsys.readouterr().out.splitlines()
    assert out[0] == "converge acme"
    assert out[1].startswith("  github: converged=true drift_detected=false created=1")


def test_converge_drift_exits_one(
    home: Path,
    github: FakeRemoteBackend,
    tmp_path: Path,
    capsys: pytest.CaptureFixture[str],
) -> None:
    """Drift after apply is printed and reported through the exit code."""
    _declare(home, Repo.named("acme", "core", visibility=Visibility.PRIVATE))
    asyncio.run(github.seed(Repo.named("acme", "core")))
    github.ignore_updates = {"core"}

    code = cli.main(
        [
            "converge",
            "--org",
            "acme",
            "--forge",
            "github",
            "--config-dir",
            str(tmp_path),
        ]
    )

    assert code == cli.EXIT_INCOMPLETE
    assert "    drift: acme/core" in capsys.readouterr().out


def test_org_can_be_inferred_from_remote_url(
    home: Path,
    github: FakeRemoteBackend,
    tmp_path: Path,
    capsys: pytest.CaptureFixture[str],
) -> None:
    """--remote-url supplies the org when nothing else does."""
    del home
    code = cli.main(
        [
            "converge",
            "--remote-url",
            "git@github.com:acme/core.git",
            "--config-dir",
            str(tmp_path),
        ]
    )

    assert code == cli.EXIT_OK
    assert github.calls[0] == ("list", "acme")
    assert capsys.readouterr().out.startswith("converge acme\n")


def test_missing_org_exits_two(
    home: Path, tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    """Without any org source the CLI reports a configuration error."""
    del home
    code = cli.main(["sync", "local", "local", "--config-dir", str(tmp_path)])

    assert code == cli.EXIT_ERROR
    assert "no organisation configured" in capsys.readouterr().err


def test_invalid_environment_exits_two(
    home: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    """Bad numeric settings are rejected before any work."""
    del home
    monkeypatch.setenv("FORGESYNC_SECRET_TTL_S", "never")

    assert cli.main(["sync", "local", "local", "--org", "acme"]) == cli.EXIT_ERROR
    assert "FORGESYNC_SECRET_TTL_S" in capsys.readouterr().err


def test_unknown_forge_is_a_usage_error(capsys: pytest.CaptureFixture[str]) -> None:
    """argparse rejects forge names outside the closed set."""
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["sync", "sourcehut", "local"])

    assert excinfo.value.code == 2
    assert "unknown forge 'sourcehut'" in capsys.readouterr().err


@pytest.mark.parametrize("repo", ["../etc", "acme/core/extra", "bad name"])
def test_invalid_repo_filter_is_a_usage_error(repo: str) -> None:
    """--repo accepts only a valid name or org/name slug."""
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["sync", "local", "github", "--org", "acme", "--repo", repo])

    assert excinfo.value.code == 2


def test_repo_filter_from_another_org_exits_two(
    home: Path,
    github: FakeRemoteBackend,
    tmp_path: Path,
    capsys: pytest.CaptureFixture[str],
) -> None:
    """An org/name filter must name the organisation being synced."""
    _declare(home, Repo.named("acme", "core"))

    code = cli.main(
        [
            "sync",
            "local",
            "github",
            "--org",
            "acme",
            "--repo",
            "other/core",
            "--repo",
            "acme/core",
            "--config-dir",
            str(tmp_path),
        ]
    )

    assert code == cli.EXIT_ERROR
    assert github.calls == []
    assert (
        "--repo other/core is outside organisation 'acme'" in capsys.readouterr().err
    )
