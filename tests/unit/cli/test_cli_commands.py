"""Unit tests for CLI command groups."""

from collections.abc import Callable, Iterator
from pathlib import Path
import re
from unittest.mock import patch

from conftest import FakeProvider, SequencedProvider, with_rounds
import pytest
from typer.testing import CliRunner
import yaml

from gotme.cli.main import app
from gotme.core.session import Partner, Session, SessionStatus
from gotme.evolution.engine import OrchestrationEngine
from gotme.observability.logging import reset_logging
from gotme.orchestrator.dispatcher import RunDispatcher
from gotme.orchestrator.synthesizer import Synthesizer
from gotme.persistence.session_store import SessionStore

runner = CliRunner()


def clean(output: str) -> str:
    return re.sub(r"\x1b\[[0-9;]*m", "", output)


def sized(size: int) -> str:
    return f"### Synthesis\n{'s' * (size - 10)}\n### Evolved Contract\n{'e' * 10}"


def fake_engine(texts: list[str], remote: FakeProvider | None = None) -> OrchestrationEngine:
    return OrchestrationEngine(
        RunDispatcher(remote or FakeProvider()),
        Synthesizer(SequencedProvider(texts), model="synth/model"),
    )


@pytest.fixture(autouse=True)
def gotme_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[Path]:
    home = tmp_path / "home"
    monkeypatch.setenv("GOTME_HOME", str(home))
    monkeypatch.delenv("GOTME_LOG_MODE", raising=False)
    yield home
    reset_logging()


@pytest.fixture
def store(gotme_home: Path) -> SessionStore:
    return SessionStore(gotme_home / "sessions")


@pytest.fixture
def saved(store: SessionStore, session: Session) -> Session:
    store.save(session)
    return session


class TestContractNew:
    def test_creates_idle_session(self, store: SessionStore) -> None:
        result = runner.invoke(
            app, ["contract", "new", "Sodium batteries", "-c", "Assess cost per kWh"]
        )

        assert result.exit_code == 0, result.output
        session = store.load_latest().value
        assert session.status == SessionStatus.IDLE
        assert session.contract.topic == "Sodium batteries"
        assert [p.name for p in session.active_partners] == [
            "claude-sonnet",
            "gpt-4o",
            "gemini-pro",
        ]
        assert f"Session {session.id} created" in clean(result.output)

    def test_options_shape_session(self, store: SessionStore) -> None:
        result = runner.invoke(
            app,
            [
                "contract",
                "new",
                "Topic",
                "-c",
                "Body",
                "--schema",
                "sequential",
                "--threshold",
                "80",
                "-p",
                "gpt-4o-mini",
                "-p",
                "llama-local",
                "--tool",
                "search",
            ],
        )

        assert result.exit_code == 0, result.output
        session = store.load_latest().value
        assert session.contract.execution_schema == "sequential"
        assert session.convergence_threshold == 80
        assert [p.name for p in session.active_partners] == ["gpt-4o-mini", "llama-local"]
        assert session.active_partners[1].local is True
        assert session.active_tools == ("search",)

    def test_context_from_file(self, store: SessionStore, tmp_path: Path) -> None:
        thesis = tmp_path / "thesis.md"
        thesis.write_text("Thesis from a file.\n", encoding="utf-8")

        result = runner.invoke(app, ["contract", "new", "Topic", "-f", str(thesis)])

        assert result.exit_code == 0, result.output
        assert store.load_latest().value.contract.context == "Thesis from a file."

    def test_empty_context_rejected(self, store: SessionStore) -> None:
        result = runner.invoke(app, ["contract", "new", "Topic"])

        assert result.exit_code == 1
        assert "Contract context cannot be empty" in clean(result.output)
        assert store.list_ids() == []

    def test_unknown_partner_rejected(self) -> None:
        result = runner.invoke(app, ["contract", "new", "Topic", "-c", "Body", "-p", "nobody"])

        assert result.exit_code == 1
        assert "Unknown partners: nobody" in clean(result.output)

    def test_threshold_out_of_range(self) -> None:
        result = runner.invoke(app, ["contract", "new", "Topic", "-c", "Body", "-t", "99"])

        assert result.exit_code == 1

    def test_refine_rewrites_context(self, store: SessionStore) -> None:
        class FixedRefiner:
            async def refine(self, topic: str, context: str) -> str:
                return "Sharper thesis."

        with patch("gotme.cli.runtime.build_refiner", return_value=FixedRefiner()):
            result = runner.invoke(app, ["contract", "new", "Topic", "-c", "rough", "--refine"])

        assert result.exit_code == 0, result.output
        contract = store.load_latest().value.contract
        assert contract.context == "Sharper thesis."
        assert contract.improved_by is not None


class TestRunStep:
    def test_commits_round(self, saved: Session, store: SessionStore) -> None:
        with patch("gotme.cli.runtime.build_engine", return_value=fake_engine([sized(1000)])):
            result = runner.invoke(app, ["run", "step"])

        assert result.exit_code == 0, result.output
        updated = store.load(saved.id).value
        assert len(updated.rounds) == 1
        output = clean(result.output)
        assert "Round 1" in output
        assert "Convergence" in output

    def test_failed_round_leaves_session(self, saved: Session, store: SessionStore) -> None:
        remote = FakeProvider(
            replies={p.model: RuntimeError("down") for p in saved.active_partners}
        )
        engine = fake_engine([sized(1000)], remote)

        with patch("gotme.cli.runtime.build_engine", return_value=engine):
            result = runner.invoke(app, ["run", "step", "--session", saved.id])

        assert result.exit_code == 1
        assert "Every partner failed" in clean(result.output)
        assert store.load(saved.id).value.rounds == ()

    def test_converged_session_not_dispatched(self, saved: Session, store: SessionStore) -> None:
        store.save(saved.model_copy(update={"status": SessionStatus.CONVERGED}))

        with patch("gotme.cli.runtime.build_engine") as build:
            result = runner.invoke(app, ["run", "step"])

        assert result.exit_code == 0
        assert "converged" in clean(result.output)
        build.assert_not_called()

    def test_missing_session(self) -> None:
        result = runner.invoke(app, ["run", "step"])

        assert result.exit_code == 1
        assert "No saved sessions" in clean(result.output)


class TestRunAuto:
    def test_runs_to_convergence(self, saved: Session, store: SessionStore) -> None:
        engine = fake_engine([sized(1000), sized(1000), sized(300)])

        with patch("gotme.cli.runtime.build_engine", return_value=engine):
            result = runner.invoke(app, ["run", "auto", "--delay", "0"])

        assert result.exit_code == 0, result.output
        updated = store.load(saved.id).value
        assert updated.status == SessionStatus.CONVERGED
        assert len(updated.rounds) == 3
        assert "3 round(s) completed. Session converged." in clean(result.output)

    def test_round_limit(self, saved: Session, store: SessionStore) -> None:
        with patch("gotme.cli.runtime.build_engine", return_value=fake_engine([sized(1000)])):
            result = runner.invoke(app, ["run", "auto", "-n", "2", "--delay", "0"])

        assert result.exit_code == 0, result.output
        assert len(store.load(saved.id).value.rounds) == 2
        assert "Round limit reached" in clean(result.output)


class TestSessionCommands:
    def test_list(self, saved: Session) -> None:
        result = runner.invoke(app, ["session", "list"])

        assert result.exit_code == 0
        assert saved.id in clean(result.output)

    def test_list_empty(self) -> None:
        result = runner.invoke(app, ["session", "list"])

        assert result.exit_code == 0
        assert "No saved sessions" in clean(result.output)

    def test_show_with_rounds(self, store: SessionStore, session: Session) -> None:
        store.save(with_rounds(session, 2))

        result = runner.invoke(app, ["session", "show", "--rounds"])

        output = clean(result.output)
        assert result.exit_code == 0
        assert "Partner metrics" in output
        assert "Round 2" in output
        assert "Active contract" in output

    def test_override(self, store: SessionStore, session: Session) -> None:
        store.save(with_rounds(session, 1))

        result = runner.invoke(app, ["session", "override", "Director thesis"])

        assert result.exit_code == 0, result.output
        assert "Override applied to the round." in clean(result.output)
        assert store.load(session.id).value.active_contract == "Director thesis"

    def test_override_before_first_round(self, saved: Session, store: SessionStore) -> None:
        result = runner.invoke(app, ["session", "override", "New context"])

        assert "Override applied to the contract." in clean(result.output)
        assert store.load(saved.id).value.contract.context == "New context"

    def test_rate(self, store: SessionStore, session: Session) -> None:
        store.save(with_rounds(session, 1))

        result = runner.invoke(app, ["session", "rate", "1", "0", "4"])

        assert result.exit_code == 0, result.output
        updated = store.load(session.id).value
        assert updated.rounds[0].runs[0].rating == 4
        assert updated.model_metrics["alpha"].avg_rating == 4.0

    def test_rate_unknown_round(self, saved: Session) -> None:
        result = runner.invoke(app, ["session", "rate", "3", "0", "4"])

        assert result.exit_code == 1
        assert "No such round" in clean(result.output)

    def test_threshold(self, saved: Session, store: SessionStore) -> None:
        result = runner.invoke(app, ["session", "threshold", "90"])

        assert result.exit_code == 0
        assert store.load(saved.id).value.convergence_threshold == 90

    def test_threshold_out_of_range(self, saved: Session) -> None:
        assert runner.invoke(app, ["session", "threshold", "20"]).exit_code == 1

    def test_tool_toggle(self, saved: Session, store: SessionStore) -> None:
        enabled = runner.invoke(app, ["session", "tool", "code"])
        assert "code enabled." in clean(enabled.output)
        assert store.load(saved.id).value.active_tools == ("code",)

        disabled = runner.invoke(app, ["session", "tool", "code"])
        assert "code disabled." in clean(disabled.output)
        assert store.load(saved.id).value.active_tools == ()

    def test_unknown_tool(self, saved: Session) -> None:
        result = runner.invoke(app, ["session", "tool", "teleport"])

        assert result.exit_code == 1
        assert "Unknown capability: teleport" in clean(result.output)


class TestPartnersCommands:
    def test_list_pool_without_sessions(self) -> None:
        result = runner.invoke(app, ["partners", "list"])

        output = clean(result.output)
        assert result.exit_code == 0
        assert "Partner pool" in output
        assert "llama-local" in output

    def test_add_and_remove(self, saved: Session, store: SessionStore) -> None:
        added = runner.invoke(app, ["partners", "add", "gpt-4o-mini"])
        assert "gpt-4o-mini joins the next round." in clean(added.output)
        names = [p.name for p in store.load(saved.id).value.active_partners]
        assert names == ["alpha", "beta", "gamma", "gpt-4o-mini"]

        removed = runner.invoke(app, ["partners", "remove", "alpha"])
        assert "alpha removed from the active set." in clean(removed.output)
        assert "alpha" not in [p.name for p in store.load(saved.id).value.active_partners]

    def test_add_unknown(self, saved: Session) -> None:
        result = runner.invoke(app, ["partners", "add", "nobody"])

        assert result.exit_code == 1
        assert "Unknown partner: nobody" in clean(result.output)

    def test_remove_inactive(self, saved: Session) -> None:
        result = runner.invoke(app, ["partners", "remove", "gpt-4o"])

        assert result.exit_code == 0
        assert "gpt-4o is not active." in clean(result.output)

    def test_last_partner_stays(
        self,
        store: SessionStore,
        session_factory: Callable[..., Session],
        partners: tuple[Partner, ...],
    ) -> None:
        solo = session_factory(active=partners[:1])
        store.save(solo)

        result = runner.invoke(app, ["partners", "remove", "alpha"])

        assert result.exit_code == 1
        assert "At least one partner must stay active" in clean(result.output)


class TestLedgerExport:
    def test_writes_ledger(self, store: SessionStore, session: Session, tmp_path: Path) -> None:
        store.save(with_rounds(session, 2))
        target = tmp_path / "ledger.md"

        result = runner.invoke(app, ["ledger", "export", "-o", str(target)])

        assert result.exit_code == 0, result.output
        assert "Ledger with 2 round(s) written" in clean(result.output)
        assert "## [GEN 2] EVOLUTIONARY TRACE" in target.read_text(encoding="utf-8")

    def test_unknown_session(self) -> None:
        result = runner.invoke(app, ["ledger", "export", "--session", "ses_missing"])

        assert result.exit_code == 1
        assert "Session file not found" in clean(result.output)


class TestConfigCommands:
    def test_init_then_validate(self, gotme_home: Path) -> None:
        init = runner.invoke(app, ["config", "init"])
        assert init.exit_code == 0, init.output
        assert (gotme_home / "config.yaml").exists()
        assert "Configuration written" in clean(init.output)

        again = runner.invoke(app, ["config", "init"])
        assert again.exit_code == 0
        assert "--force" in clean(again.output)

        validate = runner.invoke(app, ["config", "validate"])
        assert validate.exit_code == 0
        assert "Configuration is valid." in clean(validate.output)

    def test_validate_without_file(self) -> None:
        result = runner.invoke(app, ["config", "validate"])

        assert result.exit_code == 1
        assert "Configuration file not found" in clean(result.output)

    def test_invalid_file_blocks_commands(self, gotme_home: Path) -> None:
        gotme_home.mkdir(parents=True)
        (gotme_home / "config.yaml").write_text(
            yaml.dump({"convergence": {"threshold": 10}}), encoding="utf-8"
        )

        result = runner.invoke(app, ["session", "list"])

        assert result.exit_code == 1
        assert "Configuration validation failed" in clean(result.output)

    def test_show_section(self) -> None:
        result = runner.invoke(app, ["config", "show", "convergence"])

        output = clean(result.output)
        assert result.exit_code == 0
        assert "threshold" in output
        assert "Orchestration" not in output

    def test_show_partners_flattened(self) -> None:
        result = runner.invoke(app, ["config", "show", "partners"])

        assert "claude-sonnet" in clean(result.output)

    def test_show_unknown_section(self) -> None:
        result = runner.invoke(app, ["config", "show", "nope"])

        assert result.exit_code == 1
        assert "Unknown section: nope" in clean(result.output)
