"""Specialist persona rotation.

Partners are assigned personas by their position in the active set,
cycling through a fixed table when there are more partners than personas.
"""

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Role:
    """A specialist persona.

    Attributes:
        label: Short name shown next to the partner name.
        focus: What the persona is asked to concentrate on.
    """

    label: str
    focus: str


ROLES: tuple[Role, ...] = (
    Role(
        label="Feasibility Lead",
        focus="Assess technical and resource feasibility; name blocking constraints.",
    ),
    Role(
        label="Skeptic",
        focus="Attack weak assumptions, unsupported claims and hidden failure modes.",
    ),
    Role(
        label="Innovation Scout",
        focus="Propose non-obvious alternatives and higher-leverage directions.",
    ),
    Role(
        label="Operational Architect",
        focus="Turn the thesis into concrete steps, dependencies and measurable milestones.",
    ),
    Role(
        label="Ethics & Audit",
        focus="Flag ethical, legal and audit risks; demand traceable evidence.",
    ),
)


class RoleAssigner:
    """Maps a partner index to a persona, ``index mod len(ROLES)``."""

    def __init__(self, roles: tuple[Role, ...] = ROLES) -> None:
        if not roles:
            msg = "RoleAssigner needs at least one role"
            raise ValueError(msg)
        self._roles = roles

    def assign(self, index: int) -> Role:
        return self._roles[index % len(self._roles)]
