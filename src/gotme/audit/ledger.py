"""Forensic ledger export.

The ledger is a markdown document assembled from a Session: identity,
contract parameters and, per round, every Run, the synthesis, the evolved
contract, the IAT signature and the archival receipt. Generation is
read-only and deterministic apart from the ``GENERATED_UTC`` line.
"""

from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path

from gotme.core.errors import PersistenceError
from gotme.core.session import Round, Run, Session

LOCAL_ONLY = "LOCAL_ONLY"
TIMESTAMP_LABEL = "**GENERATED_UTC:**"
NO_ROUNDS_PLACEHOLDER = "_No rounds recorded yet. The contract has not been dispatched._"


def _format_run(run: Run, round_: Round) -> str:
    lines = [
        f"### [UNIT: {run.display_name.upper()}]",
        f"- **Source:** {run.source.upper()} ({run.model_class})",
        f"- **IAT Signature:** {round_.iat_signature}",
        f"- **Rating:** {f'{run.rating}/5' if run.rating else 'UNRATED'}",
    ]
    if run.failed:
        lines.append("- **Status:** FAILED")
    for call in run.tool_calls:
        lines.append(f"- **Tool:** {call.tool_name} | {call.action} | {call.result}")
    for ref in run.grounding:
        lines.append(f"- **Grounding:** {ref.get('title') or ref.get('url')} <{ref.get('url')}>")
    lines.append("- **Trace:**")
    lines.append(run.response)
    return "\n".join(lines)


def _format_round(round_: Round) -> str:
    runs = "\n\n".join(_format_run(run, round_) for run in round_.runs)
    return f"""## [GEN {round_.round_number}] EVOLUTIONARY TRACE
---
**TIMESTAMP:**      {round_.timestamp.isoformat()}
**SCHEMA:**         {round_.execution_schema.value.upper()}
**IAT_SIGNATURE:**  {round_.iat_signature}
**ARCHIVE_ID:**     {round_.archive_id or LOCAL_ONLY}
**CHAR_COUNT:**     {round_.synthesis_char_count}

### TOPIC SNAPSHOT:
{round_.topic}

### RUNS:
{runs}

### SYNTHESIS:
{round_.synthesis}

### EVOLVED CONTRACT:
```markdown
{round_.evolved_contract}
```

---
"""


def generate_ledger(session: Session, *, generated_at: datetime | None = None) -> str:
    """Assemble the full ledger for ``session``.

    Args:
        session: Session to export. It is not modified.
        generated_at: Timestamp written to the header; defaults to now (UTC).
    """
    stamp = (generated_at or datetime.now(UTC)).isoformat()
    contract = session.contract
    header = f"""# GOTME FORENSIC LEDGER
---
**REPORT_ID:**      {session.id}
{TIMESTAMP_LABEL}  {stamp}
**CORE_THESIS:**    {contract.topic.upper()}
**STATUS:**         {session.status.value.upper()}
**SIGNATURES:**     IAT labels (non-cryptographic tamper-evidence markers)
---

## [00] CONTRACT
**CREATED_AT:**     {contract.created_at.isoformat()}
**CREATED_BY:**     {contract.created_by}
**IMPROVED_BY:**    {contract.improved_by or "-"}
**SCHEMA:**         {contract.execution_schema.value.upper()}
**THRESHOLD:**      {session.convergence_threshold}%
**PARTNERS:**       {", ".join(p.name for p in session.active_partners)}
**TOOLS:**          {", ".join(session.active_tools) or "-"}

### INITIAL PARAMETERS:
{contract.context}

---
"""
    if session.rounds:
        history = "\n".join(_format_round(r) for r in session.rounds)
    else:
        history = f"{NO_ROUNDS_PLACEHOLDER}\n\n---\n"

    footer = f"""
## [99] TELEMETRY
- **TOTAL_ROUNDS:** {len(session.rounds)}
- **ACTIVE_PARTNERS:** {len(session.active_partners)}
- **CONVERGENCE_PEAK:** {session.convergence_peak}
- **TOTAL_CHARS_PRESERVED:** {session.total_chars_preserved}

**[END OF LEDGER]**"""
    return (header + "\n" + history + footer).strip() + "\n"


def write_ledger(session: Session, path: Path) -> Path:
    """Write the ledger to ``path``.

    Raises:
        PersistenceError: If the file cannot be written.
    """
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(generate_ledger(session), encoding="utf-8")
    except OSError as e:
        raise PersistenceError(
            f"Failed to write ledger: {e}", operation="export", path=str(path)
        ) from e
    return path
