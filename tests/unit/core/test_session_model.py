"""Unit tests for the session aggregate."""

from collections.abc import Callable
from datetime import UTC, datetime

from conftest import make_partner
from pydantic import ValidationError as PydanticValidationError
import pytest

from gotme.core.contract import Contract, ExecutionSchema
from gotme.core.errors import ValidationError
from gotme.core.session import (
    ModelClass,
    Partner,
    Round,
    Run,
    Session,
    SessionStatus,
    new_session,
)


def make_run(partner: str, text: str = "finding", *, failed: bool = False) -> Run:
    return Run(
        partner_name=partner,
        display_name=f"{partner} (Skeptic)",
        model_class=ModelClass.LLM,
        response=text,
        char_count=len(text),
        failed=failed,
    )


def make_round(number: int, chars: int = 100, *, runs: tuple[Run, ...] | None = None) -> Round:
    synthesis = "s" * (chars // 2)
    evolved = "e" * (chars - chars // 2)
    return Round(
        round_number=number,
        topic=f"topic {number}",
        runs=runs if runs is not None else (make_run("alpha"), make_run("beta", "longer text")),
        synthesis=synthesis,
        evolved_contract=evolved,
        synthesis_char_count=chars,
        timestamp=datetime(2025, 1, number, tzinfo=UTC),
        iat_signature=f"IAT-0000000{number}-abcdef",
    )


def commit(session: Session, round_: Round) -> Session:
    peak = max([r.synthesis_char_count for r in session.rounds] + [round_.synthesis_char_count])
    return session.with_committed_round(
        round_, status=SessionStatus.ORCHESTRATING, convergence_peak=peak
    )


class TestNewSession:
    def test_starts_idle(self, session: Session) -> None:
        assert session.status == SessionStatus.IDLE
        assert session.rounds == ()
        assert session.convergence_peak == 0
        assert session.id.startswith("ses_")

    def test_reads_from_contract_before_first_round(
        self, session: Session, contract: Contract
    ) -> None:
        assert session.active_contract == contract.context
        assert session.base_topic == contract.topic
        assert session.next_round_number == 1
        assert session.latest_round is None

    def test_requires_a_partner(self, contract: Contract) -> None:
        with pytest.raises(PydanticValidationError):
            new_session(contract, [])

    def test_rejects_duplicate_partner_names(self, contract: Contract) -> None:
        with pytest.raises(PydanticValidationError, match="unique"):
            new_session(contract, [make_partner("alpha"), make_partner("alpha")])

    def test_rejects_unknown_tools(self, contract: Contract, partners: tuple[Partner, ...]) -> None:
        with pytest.raises(PydanticValidationError, match="Unknown capabilities"):
            new_session(contract, partners, tools=("teleport",))

    @pytest.mark.parametrize("threshold", [49, 96])
    def test_rejects_threshold_out_of_range(
        self, contract: Contract, partners: tuple[Partner, ...], threshold: int
    ) -> None:
        with pytest.raises(PydanticValidationError):
            new_session(contract, partners, threshold=threshold)


class TestCommittedRound:
    def test_appends_round_and_accumulates_metrics(self, session: Session) -> None:
        updated = commit(session, make_round(1, 200))

        assert len(updated.rounds) == 1
        assert updated.convergence_peak == 200
        assert updated.model_metrics["alpha"].runs == 1
        assert updated.model_metrics["beta"].total_chars == len("longer text")
        assert session.rounds == ()

    def test_later_rounds_read_from_latest_round(self, session: Session) -> None:
        updated = commit(session, make_round(1, 200))

        assert updated.active_contract == updated.rounds[0].evolved_contract
        assert updated.base_topic == updated.rounds[0].synthesis
        assert updated.next_round_number == 2

    def test_rejects_round_number_gap(self, session: Session) -> None:
        with pytest.raises(ValidationError, match="Expected round 1"):
            commit(session, make_round(2))

    def test_model_rejects_gapped_rounds(self, session: Session) -> None:
        with pytest.raises(PydanticValidationError, match="without gaps"):
            Session.model_validate(
                {**session.model_dump(by_alias=True), "rounds": [make_round(2).model_dump()]}
            )

    def test_total_chars_and_signal(self, session: Session) -> None:
        updated = commit(commit(session, make_round(1, 800)), make_round(2, 400))

        assert updated.total_chars_preserved == 1200
        assert updated.convergence_signal_pct == pytest.approx(50.0)


class TestOverride:
    def test_before_first_round_replaces_contract_context(self, session: Session) -> None:
        updated = session.with_override("New thesis body")

        assert updated.contract.context == "New thesis body"
        assert updated.contract.topic == session.contract.topic
        assert updated.status == session.status

    def test_after_rounds_replaces_only_latest_evolved_contract(self, session: Session) -> None:
        two_rounds = commit(commit(session, make_round(1)), make_round(2))

        updated = two_rounds.with_override("Director thesis")

        assert updated.rounds[-1].evolved_contract == "Director thesis"
        assert updated.rounds[-1].synthesis == two_rounds.rounds[-1].synthesis
        assert updated.rounds[-1].iat_signature == two_rounds.rounds[-1].iat_signature
        assert updated.rounds[0] == two_rounds.rounds[0]
        assert updated.contract == two_rounds.contract
        assert updated.active_contract == "Director thesis"

    def test_empty_override_rejected(self, session: Session) -> None:
        with pytest.raises(ValidationError, match="empty"):
            session.with_override("   ")


class TestPartners:
    def test_add_partner(self, session: Session) -> None:
        updated = session.with_partner_added(make_partner("delta", model_class=ModelClass.SLM))

        assert [p.name for p in updated.active_partners][-1] == "delta"

    def test_add_existing_partner_is_noop(self, session: Session) -> None:
        assert session.with_partner_added(make_partner("alpha")) is session

    def test_remove_partner(self, session: Session) -> None:
        updated = session.with_partner_removed("beta")

        assert [p.name for p in updated.active_partners] == ["alpha", "gamma"]

    def test_cannot_remove_last_partner(self, session_factory: Callable[..., Session]) -> None:
        solo = session_factory(active=(make_partner("alpha"),))

        with pytest.raises(ValidationError, match="At least one partner"):
            solo.with_partner_removed("alpha")


class TestSessionSettings:
    def test_toggle_tool_on_and_off(self, session: Session) -> None:
        enabled = session.with_tool_toggled("search")
        disabled = enabled.with_tool_toggled("search")

        assert enabled.active_tools == ("search",)
        assert disabled.active_tools == ()

    def test_toggle_unknown_tool(self, session: Session) -> None:
        with pytest.raises(ValidationError, match="Unknown capability"):
            session.with_tool_toggled("teleport")

    def test_threshold_bounds(self, session: Session) -> None:
        assert session.with_threshold(50).convergence_threshold == 50
        assert session.with_threshold(95).convergence_threshold == 95
        with pytest.raises(ValidationError):
            session.with_threshold(96)

    def test_connectivity_partial_update(self, session: Session) -> None:
        updated = session.with_connectivity(archive_connected=True)

        assert updated.archive_connected is True
        assert updated.local_backend_connected is False


class TestRating:
    def test_rating_changes_only_rating_and_metrics(self, session: Session) -> None:
        committed = commit(session, make_round(1))

        rated = committed.with_rating(1, 1, 4)

        round_before, round_after = committed.rounds[0], rated.rounds[0]
        assert round_after.runs[1].rating == 4
        assert round_after.runs[1].response == round_before.runs[1].response
        assert round_after.synthesis == round_before.synthesis
        assert round_after.evolved_contract == round_before.evolved_contract
        assert rated.model_metrics["beta"].avg_rating == 4.0

    def test_re_rating_replaces_previous_rating(self, session: Session) -> None:
        committed = commit(session, make_round(1))

        rated = committed.with_rating(1, 0, 2).with_rating(1, 0, 5)

        metrics = rated.model_metrics["alpha"]
        assert metrics.rating_count == 1
        assert metrics.avg_rating == 5.0

    @pytest.mark.parametrize(
        ("round_number", "run_index", "rating"),
        [(1, 0, 0), (1, 0, 6), (2, 0, 3), (1, 5, 3)],
    )
    def test_invalid_rating_targets(
        self, session: Session, round_number: int, run_index: int, rating: int
    ) -> None:
        committed = commit(session, make_round(1))

        with pytest.raises(ValidationError):
            committed.with_rating(round_number, run_index, rating)


class TestContract:
    def test_schema_alias(self) -> None:
        contract = Contract(topic="t", context="c", schema=ExecutionSchema.COMPETITIVE)

        assert contract.execution_schema == ExecutionSchema.COMPETITIVE
        assert contract.model_dump(by_alias=True)["schema"] == ExecutionSchema.COMPETITIVE

    def test_with_context_records_refiner(self) -> None:
        contract = Contract(topic="t", context="c")

        refined = contract.with_context("better", improved_by="refiner-model")

        assert refined.context == "better"
        assert refined.improved_by == "refiner-model"
        assert contract.context == "c"

    def test_empty_topic_rejected(self) -> None:
        with pytest.raises(PydanticValidationError):
            Contract(topic="", context="c")
